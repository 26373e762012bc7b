import logging
from typing import List

from models import Book
from schemas import BookCreate, BookUpdate
from store import EntityStore

logger = logging.getLogger(__name__)


# --- Book CRUD ---
def add_book(book_data: BookCreate, store: EntityStore) -> Book:
    fields = book_data.model_dump(exclude_none=True)
    book = store.create("books", fields)
    logger.info("Added book %s (%s), quantity %d", book.id, book.title, book.quantity)
    return book


def add_books(books: List[BookCreate], store: EntityStore) -> List[Book]:
    """Insert a batch (e.g. a CSV import) as one unit of work."""
    with store.atomic():
        return [add_book(b, store) for b in books]


def get_book_by_id(book_id: str, store: EntityStore) -> Book:
    return store.get("books", book_id)


def update_book(book_id: str, book_data: BookUpdate, store: EntityStore) -> Book:
    # map only the fields the caller actually sent
    patch = book_data.model_dump(exclude_unset=True, exclude_none=True)
    if not patch:
        return store.get("books", book_id)
    book = store.update("books", book_id, patch)
    logger.info("Updated book %s: %s", book_id, sorted(patch))
    return book


def delete_book(book_id: str, store: EntityStore) -> None:
    store.delete("books", book_id)
    logger.info("Deleted book %s", book_id)


DEMO_BOOKS = [
    BookCreate(
        id="BK001",
        title="The Great Gatsby",
        author="F. Scott Fitzgerald",
        isbn="978-0-7432-7356-5",
        category="Classic Literature",
        quantity=3,
        cover_url="https://images.unsplash.com/photo-1544947950-fa07a98d237f?w=400",
    ),
    BookCreate(
        id="BK002",
        title="Introduction to Algorithms",
        author="Thomas H. Cormen",
        isbn="978-0-262-03384-8",
        category="Computer Science",
        quantity=5,
        cover_url="https://images.unsplash.com/photo-1515378960530-7c0da6231fb1?w=400",
    ),
    BookCreate(
        id="BK003",
        title="Fundamentals of Electrical Circuits",
        author="Alexander & Sadiku",
        isbn="978-0-07-338057-5",
        category="Electrical Engineering",
        quantity=4,
        cover_url="https://images.unsplash.com/photo-1509391366360-2e959784a276?w=400",
    ),
]


def seed_demo_books(store: EntityStore) -> int:
    """Populate an empty catalog with the demo books. Returns number added."""
    if store.list("books"):
        return 0
    add_books(DEMO_BOOKS, store)
    return len(DEMO_BOOKS)
