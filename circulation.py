"""
Circulation rules: issuing and returning books, and the inventory they move.

Per transaction the state machine is ``issued -> returned``; ``returned`` is
terminal. ``Book.quantity`` counts the copies on the shelf and is the only
availability signal.

Issuing is a conditional write. The shelf count is read, checked, and then
decremented with a compare-and-set against the value that was read; the new
transaction is created in the same unit of work. When another writer changed
the count in between, the whole check runs again against fresh state, so the
last copy can only go out once and a losing caller gets ``BookUnavailable``.
Two open loans for the same book and user are rejected both by the check and
by the backend's unique constraint on active loans.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from errors import (
    AccessDenied,
    BookNotFound,
    BookUnavailable,
    DuplicateActiveLoan,
    LoanStillActive,
    NotCurrentlyIssued,
    WriteConflict,
)
from fines import calculate_fine, transaction_fine
from models import Book, LoanStatus, Role, Transaction, utcnow
from store import EntityStore

logger = logging.getLogger(__name__)


class _Contended(Exception):
    """The shelf count moved between our read and our write."""


class CirculationService:
    def __init__(
        self,
        store: EntityStore,
        clock: Optional[Callable[[], datetime]] = None,
        loan_days: Optional[int] = None,
        fine_rate: Optional[int] = None,
        max_attempts: int = 10,
    ) -> None:
        from config import settings

        self.store = store
        self.clock = clock or utcnow
        self.loan_days = loan_days if loan_days is not None else settings.LOAN_PERIOD_DAYS
        self.fine_rate = fine_rate if fine_rate is not None else settings.FINE_PER_DAY
        self.max_attempts = max_attempts

    # ---- issue / return

    def issue_book(self, book_id: str, user_id: str) -> Transaction:
        for attempt in range(self.max_attempts):
            book = self.store.get("books", book_id)
            if book.quantity <= 0:
                raise BookUnavailable(book_id)
            user = self.store.get("users", user_id)
            if self.store.find_one("transactions", book_id=book_id, user_id=user_id, status=LoanStatus.ISSUED.value):
                raise DuplicateActiveLoan(book_id, user_id)

            now = self.clock()
            try:
                with self.store.atomic():
                    taken = self.store.update(
                        "books",
                        book_id,
                        {"quantity": book.quantity - 1},
                        expect={"quantity": book.quantity},
                    )
                    if taken is None:
                        raise _Contended()
                    txn = self.store.create(
                        "transactions",
                        {
                            "book_id": book.id,
                            "book_title": book.title,
                            "user_id": user.id,
                            "user_name": user.name,
                            "user_usn": user.usn,
                            "issue_date": now,
                            "due_date": now + timedelta(days=self.loan_days),
                            "return_date": None,
                            "status": LoanStatus.ISSUED.value,
                        },
                    )
            except _Contended:
                logger.debug("Shelf count for %s changed during issue, retrying (attempt %d)", book_id, attempt + 1)
                continue
            except WriteConflict as e:
                if e.kind == "transactions":
                    raise DuplicateActiveLoan(book_id, user_id)
                if e.kind == "books":
                    raise BookUnavailable(book_id)
                raise

            logger.info("Issued %s to %s as %s (due %s)", book_id, user_id, txn.id, txn.due_date.isoformat())
            return txn

        logger.warning("Gave up issuing %s after %d contended attempts", book_id, self.max_attempts)
        raise BookUnavailable(book_id)

    def return_book(self, transaction_id: str, user_id: str) -> Transaction:
        """Self-service return: the loan must belong to the caller."""
        txn = self.store.get("transactions", transaction_id)
        if txn.user_id != user_id:
            raise AccessDenied(required="owner", actual=user_id, home=Role.STUDENT.value)
        return self._close_loan(transaction_id)

    def force_return(self, transaction_id: str) -> Transaction:
        """Admin return on behalf of any borrower."""
        return self._close_loan(transaction_id)

    def _close_loan(self, transaction_id: str) -> Transaction:
        now = self.clock()
        with self.store.atomic():
            txn = self.store.get("transactions", transaction_id)
            if not txn.is_issued:
                raise NotCurrentlyIssued(transaction_id, txn.status)
            closed = self.store.update(
                "transactions",
                transaction_id,
                {"status": LoanStatus.RETURNED.value, "return_date": now},
                expect={"status": LoanStatus.ISSUED.value},
            )
            if closed is None:
                # somebody else returned it first
                raise NotCurrentlyIssued(transaction_id, LoanStatus.RETURNED.value)
            self._restock(txn.book_id)

        logger.info("Returned %s (book %s, fine %d)", transaction_id, closed.book_id, transaction_fine(closed, rate=self.fine_rate))
        return closed

    def _restock(self, book_id: str) -> None:
        # no upper bound on quantity
        for _ in range(self.max_attempts):
            try:
                book = self.store.get("books", book_id)
            except BookNotFound:
                logger.warning("Book %s no longer exists; return recorded without restocking", book_id)
                return
            if self.store.update("books", book_id, {"quantity": book.quantity + 1}, expect={"quantity": book.quantity}):
                return
        logger.warning("Gave up restocking %s after %d contended attempts", book_id, self.max_attempts)
        raise WriteConflict("books", "restock_contended")

    def delete_transaction(self, transaction_id: str) -> None:
        with self.store.atomic():
            txn = self.store.get("transactions", transaction_id)
            if txn.is_issued:
                raise LoanStillActive(transaction_id)
            self.store.delete("transactions", transaction_id)
        logger.info("Deleted transaction %s", transaction_id)

    # ---- queries

    def search_books(
        self,
        query: Optional[str] = None,
        category: Optional[str] = None,
        available_only: bool = False,
    ) -> List[Book]:
        term = (query or "").strip().lower()

        def matches(b: Book) -> bool:
            if term and not (
                term in (b.title or "").lower()
                or term in (b.author or "").lower()
                or term in (b.isbn or "").lower()
            ):
                return False
            if category and b.category != category:
                return False
            if available_only and not b.available:
                return False
            return True

        return [b for b in self.store.list("books") if matches(b)]

    def categories(self) -> List[str]:
        return sorted({b.category for b in self.store.list("books") if b.category})

    def filter_transactions(
        self,
        query: Optional[str] = None,
        status: Optional[str] = None,
        user_id: Optional[str] = None,
        overdue: bool = False,
        sort: Optional[str] = None,
    ) -> List[Transaction]:
        """
        Filter transactions.
        - **query**: case-insensitive substring of id, book title, borrower name or USN
        - **status**: exact status match (issued / returned)
        - **sort**: None keeps store order, "recent" is newest issue first, "due" is earliest due first
        """
        term = (query or "").strip().lower()
        now = self.clock()
        items = []
        for t in self.store.list("transactions"):
            if term and not any(
                term in (value or "").lower()
                for value in (t.id, t.book_title, t.user_name, t.user_usn)
            ):
                continue
            if status and t.status != status:
                continue
            if user_id and t.user_id != user_id:
                continue
            if overdue and not (t.is_issued and now > t.due_date):
                continue
            items.append(t)

        if sort == "recent":
            items.sort(key=lambda t: t.issue_date, reverse=True)
        elif sort == "due":
            items.sort(key=lambda t: t.due_date)
        elif sort is not None:
            raise ValueError(f"Unknown sort: {sort}")
        return items

    def list_overdue(self) -> List[Transaction]:
        return self.filter_transactions(status=LoanStatus.ISSUED.value, overdue=True, sort="due")

    def fine_for(self, txn: Transaction) -> int:
        return transaction_fine(txn, as_of=self.clock(), rate=self.fine_rate)

    # ---- dashboards

    def dashboard_stats(self) -> Dict[str, Any]:
        """Return aggregated counts for the admin dashboard."""
        books = self.store.list("books")
        issued = self.store.find("transactions", status=LoanStatus.ISSUED.value)
        now = self.clock()
        stats = {}
        stats["total_books"] = len(books)
        stats["available_copies"] = sum(b.quantity or 0 for b in books)
        stats["total_categories"] = len({b.category for b in books if b.category})
        stats["issued_books"] = len(issued)
        stats["overdue_books"] = sum(1 for t in issued if now > t.due_date)
        stats["registered_students"] = len(self.store.find("users", role=Role.STUDENT.value))
        return stats

    def user_stats(self, user_id: str) -> Dict[str, Any]:
        now = self.clock()
        txns = self.store.find("transactions", user_id=user_id)
        issued = [t for t in txns if t.is_issued]
        return {
            "issued": len(issued),
            "overdue": sum(1 for t in issued if now > t.due_date),
            "returned": len(txns) - len(issued),
            "total_fine": sum(calculate_fine(t.due_date, t.return_date or now, self.fine_rate) for t in txns),
        }
