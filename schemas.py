from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class BookCreate(BaseModel):
    id: Optional[str] = Field(None, max_length=50, description="Optional catalog id, generated when omitted")
    title: str = Field(..., min_length=1, max_length=200)
    author: str = Field(..., min_length=1, max_length=200)
    isbn: Optional[str] = Field(None, max_length=50)
    category: Optional[str] = Field(None, max_length=100)
    quantity: int = Field(1, ge=0)
    cover_url: Optional[str] = Field(None, max_length=1024)


class BookUpdate(BaseModel):
    # all fields optional for updates
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    author: Optional[str] = Field(None, min_length=1, max_length=200)
    isbn: Optional[str] = Field(None, max_length=50)
    category: Optional[str] = Field(None, max_length=100)
    quantity: Optional[int] = Field(None, ge=0)
    cover_url: Optional[str] = Field(None, max_length=1024)


class BookOut(BaseModel):
    id: str
    title: str
    author: str
    isbn: Optional[str] = None
    category: Optional[str] = None
    quantity: int
    available: bool
    cover_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class IssueRequest(BaseModel):
    book_id: str
    user_id: str


class TransactionOut(BaseModel):
    id: str
    book_id: str
    book_title: Optional[str] = None
    user_id: str
    user_name: Optional[str] = None
    user_usn: Optional[str] = None
    issue_date: datetime
    due_date: datetime
    return_date: Optional[datetime] = None
    status: str
    fine: int = 0
    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_txn(cls, txn, fine: int) -> "TransactionOut":
        out = cls.model_validate(txn)
        out.fine = fine
        return out


class DashboardStats(BaseModel):
    total_books: int
    available_copies: int
    total_categories: int
    issued_books: int
    overdue_books: int
    registered_students: int


class UserStats(BaseModel):
    issued: int
    overdue: int
    returned: int
    total_fine: int


class ImportResult(BaseModel):
    imported: int
    books: List[BookOut]
