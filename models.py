from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String, text
from database import Base


class Role(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"


class LoanStatus(str, Enum):
    ISSUED = "issued"
    RETURNED = "returned"


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    # unique student identifier, e.g. 1CK23EC001
    usn = Column(String, unique=True, index=True, nullable=False)
    phone = Column(String, nullable=True)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default=Role.STUDENT.value)
    approval_status = Column(String, nullable=False, default=ApprovalStatus.PENDING.value)
    created_at = Column(DateTime, nullable=True)

    @property
    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED.value


class Book(Base):
    __tablename__ = "books"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_books_quantity_non_negative"),
    )

    id = Column(String, primary_key=True, index=True)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False, index=True)
    isbn = Column(String, nullable=True, index=True)
    category = Column(String, nullable=True, index=True)
    # copies currently on the shelf; the only source of truth for availability
    quantity = Column(Integer, nullable=False, default=0)
    cover_url = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=True)

    @property
    def available(self) -> bool:
        return (self.quantity or 0) > 0


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        # at most one open loan per (book, user)
        Index(
            "ux_transactions_active_loan",
            "book_id",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'issued'"),
            postgresql_where=text("status = 'issued'"),
        ),
    )

    id = Column(String, primary_key=True, index=True)
    book_id = Column(String, index=True, nullable=False)
    book_title = Column(String, nullable=True)
    user_id = Column(String, index=True, nullable=False)
    user_name = Column(String, nullable=True)
    user_usn = Column(String, nullable=True)
    issue_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False)
    return_date = Column(DateTime, nullable=True)
    status = Column(String, nullable=False, default=LoanStatus.ISSUED.value, index=True)

    @property
    def is_issued(self) -> bool:
        return self.status == LoanStatus.ISSUED.value


def utcnow() -> datetime:
    """Naive UTC timestamp; the DateTime columns store naive UTC values."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
