import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import PlainTextResponse

import admin_schemas
import auth_schemas
import schemas
from access import AccessGuard
from book_csv import export_books_csv, export_transactions_csv, parse_books_csv
from circulation import CirculationService
from crud import add_book, add_books, delete_book, update_book
from dependencies import get_admin_user, get_circulation, get_guard, get_store
from errors import ValidationFailed
from models import User
from store import EntityStore

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(get_admin_user)],
    responses={404: {"description": "Not found"}},
)


@router.get("/dashboard", response_model=schemas.DashboardStats)
def dashboard(circulation: CirculationService = Depends(get_circulation)):
    return circulation.dashboard_stats()


# User Management Endpoints
@router.get("/users/", response_model=List[auth_schemas.UserInDB])
def read_users(
    pending: bool = False,
    skip: int = 0,
    limit: int = 100,
    guard: AccessGuard = Depends(get_guard),
):
    users = guard.pending_users() if pending else guard.list_users()
    return users[skip:skip + limit]


@router.post("/users/{user_id}/approve", response_model=auth_schemas.UserInDB)
def approve_user(user_id: str, guard: AccessGuard = Depends(get_guard)):
    return guard.approve_user(user_id)


@router.patch("/users/{user_id}/role", response_model=auth_schemas.UserInDB)
def update_user_role(
    user_id: str,
    payload: admin_schemas.RoleUpdate,
    guard: AccessGuard = Depends(get_guard),
    current_user: User = Depends(get_admin_user),
):
    if user_id == current_user.id:
        raise ValidationFailed("role", "self")
    return guard.set_role(user_id, payload.role)


# Book Management Endpoints
@router.post("/books/", response_model=schemas.BookOut, status_code=status.HTTP_201_CREATED)
def create_book(book: schemas.BookCreate, store: EntityStore = Depends(get_store)):
    return add_book(book, store)


@router.patch("/books/{book_id}", response_model=schemas.BookOut)
def modify_book(book_id: str, book: schemas.BookUpdate, store: EntityStore = Depends(get_store)):
    return update_book(book_id, book, store)


@router.delete("/books/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_book(book_id: str, store: EntityStore = Depends(get_store)):
    delete_book(book_id, store)
    return None


@router.post("/books/import", response_model=schemas.ImportResult, status_code=status.HTTP_201_CREATED)
async def import_books(file: UploadFile = File(...), store: EntityStore = Depends(get_store)):
    raw = await file.read()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        raise ValidationFailed("csv", "encoding")
    books = add_books(parse_books_csv(text), store)
    logger.info("Imported %d books from %s", len(books), file.filename)
    return {"imported": len(books), "books": [schemas.BookOut.model_validate(b) for b in books]}


@router.get("/books/export", response_class=PlainTextResponse)
def export_books(store: EntityStore = Depends(get_store)):
    body = export_books_csv(store.list("books"))
    return PlainTextResponse(
        body,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="books.csv"'},
    )


# Circulation Endpoints
@router.get("/transactions/", response_model=List[schemas.TransactionOut])
def list_transactions(
    q: Optional[str] = None,
    status: Optional[admin_schemas.LoanStatusFilter] = None,
    user_id: Optional[str] = None,
    overdue: bool = False,
    sort: Optional[admin_schemas.TransactionSort] = None,
    skip: int = 0,
    limit: int = Query(100, ge=1, le=1000),
    circulation: CirculationService = Depends(get_circulation),
):
    """
    Filter the circulation log.
    - **q**: matches transaction id, book title, borrower name or USN
    - **sort**: `recent` for newest issue first (dashboards), `due` for earliest due first
    """
    txns = circulation.filter_transactions(
        query=q,
        status=status.value if status else None,
        user_id=user_id,
        overdue=overdue,
        sort=sort.value if sort else None,
    )
    return [schemas.TransactionOut.from_txn(t, circulation.fine_for(t)) for t in txns[skip:skip + limit]]


@router.get("/transactions/overdue", response_model=List[schemas.TransactionOut])
def list_overdue(circulation: CirculationService = Depends(get_circulation)):
    return [schemas.TransactionOut.from_txn(t, circulation.fine_for(t)) for t in circulation.list_overdue()]


@router.get("/transactions/export", response_class=PlainTextResponse)
def export_transactions(circulation: CirculationService = Depends(get_circulation)):
    body = export_transactions_csv(circulation.filter_transactions(sort="recent"), circulation.fine_for)
    return PlainTextResponse(
        body,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="transactions.csv"'},
    )


@router.post("/transactions/issue", response_model=schemas.TransactionOut, status_code=status.HTTP_201_CREATED)
def issue_book(payload: schemas.IssueRequest, circulation: CirculationService = Depends(get_circulation)):
    txn = circulation.issue_book(payload.book_id, payload.user_id)
    return schemas.TransactionOut.from_txn(txn, 0)


@router.post("/transactions/{txn_id}/return", response_model=schemas.TransactionOut)
def force_return(txn_id: str, circulation: CirculationService = Depends(get_circulation)):
    txn = circulation.force_return(txn_id)
    return schemas.TransactionOut.from_txn(txn, circulation.fine_for(txn))


@router.delete("/transactions/{txn_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_transaction(txn_id: str, circulation: CirculationService = Depends(get_circulation)):
    circulation.delete_transaction(txn_id)
    return None
