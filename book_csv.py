"""CSV import/export for the catalog and the circulation log."""

import csv
import io
from typing import Callable, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from errors import ValidationFailed
from schemas import BookCreate

BOOK_HEADERS = ["title", "author", "isbn", "category", "quantity", "coverUrl"]
TRANSACTION_HEADERS = [
    "id", "bookTitle", "userName", "userUSN", "issueDate", "dueDate", "returnDate", "status", "fine",
]


def _quantity(raw: Optional[str]) -> int:
    # absent or non-numeric quantities default to a single copy
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return 1
    return value if value >= 0 else 1


def parse_books_csv(text: str) -> List[BookCreate]:
    """Parse a catalog CSV; only title and author are required per row."""
    text = text.lstrip("\ufeff")
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise ValidationFailed("csv", "missing_header")
    reader.fieldnames = [h.strip() for h in reader.fieldnames]

    books = []
    for line_no, row in enumerate(reader, start=2):
        row = {k: (v or "").strip() for k, v in row.items() if k}
        if not any(row.values()):
            continue
        for field in ("title", "author"):
            if not row.get(field):
                err = ValidationFailed(field, "required")
                err.details["line"] = line_no
                raise err
        try:
            book = BookCreate(
                title=row["title"],
                author=row["author"],
                isbn=row.get("isbn") or None,
                category=row.get("category") or None,
                quantity=_quantity(row.get("quantity")),
                cover_url=row.get("coverUrl") or None,
            )
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = str(first["loc"][0]) if first.get("loc") else "csv"
            err = ValidationFailed("coverUrl" if field == "cover_url" else field, "invalid")
            err.details["line"] = line_no
            raise err
        books.append(book)
    if not books:
        raise ValidationFailed("csv", "no_rows")
    return books


def _iso(value) -> str:
    return value.isoformat() if value else ""


def export_books_csv(books: Iterable) -> str:
    out = io.StringIO()
    writer = csv.writer(out, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(BOOK_HEADERS)
    for b in books:
        writer.writerow([b.title, b.author, b.isbn or "", b.category or "", b.quantity, b.cover_url or ""])
    return out.getvalue()


def export_transactions_csv(transactions: Iterable, fine_for: Callable) -> str:
    out = io.StringIO()
    writer = csv.writer(out, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(TRANSACTION_HEADERS)
    for t in transactions:
        writer.writerow([
            t.id,
            t.book_title or "",
            t.user_name or "",
            t.user_usn or "",
            _iso(t.issue_date),
            _iso(t.due_date),
            _iso(t.return_date),
            t.status,
            fine_for(t),
        ])
    return out.getvalue()
