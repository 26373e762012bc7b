import logging
import time
from typing import List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

import errors
import schemas
from access import AccessGuard
from admin import router as admin_router
from auth import router as auth_router
from circulation import CirculationService
from config import settings
from crud import get_book_by_id, seed_demo_books
from database import Base, SessionLocal, engine, get_db
from dependencies import build_store, get_circulation, get_store, get_student_user
from logging_config import setup_logging
from models import User
from store import EntityStore
import models  # ensure models are imported so tables are registered

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(title="Library Circulation API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)


# Log every request with its outcome and duration
@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("%s %s -> %d (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


app.include_router(auth_router)
app.include_router(admin_router)


# --- Error translation ---

HOME_PATHS = {
    "admin": "/admin/dashboard",
    "student": "/user/dashboard",
}
LOGIN_PATH = "/login"

ERROR_STATUS = [
    (errors.NotFound, 404),
    (errors.BookUnavailable, 409),
    (errors.DuplicateActiveLoan, 409),
    (errors.NotCurrentlyIssued, 409),
    (errors.LoanStillActive, 409),
    (errors.WriteConflict, 409),
    (errors.NotAuthenticated, 401),
    (errors.InvalidCredentials, 401),
    (errors.UserRecordMissing, 401),
    (errors.PendingApproval, 403),
    (errors.AccessDenied, 403),
    (errors.ValidationFailed, 400),
]

ERROR_MESSAGES = {
    "BOOK_NOT_FOUND": "Book not found",
    "USER_NOT_FOUND": "User not found",
    "TRANSACTION_NOT_FOUND": "Transaction not found",
    "BOOK_UNAVAILABLE": "Book is not available",
    "DUPLICATE_ACTIVE_LOAN": "User already has this book issued",
    "NOT_CURRENTLY_ISSUED": "Book is not currently issued",
    "LOAN_STILL_ACTIVE": "Return the book before deleting this transaction",
    "WRITE_CONFLICT": "The record conflicts with existing data",
    "NOT_AUTHENTICATED": "Please log in",
    "INVALID_CREDENTIALS": "Incorrect email or password",
    "USER_RECORD_MISSING": "User record not found. Contact admin.",
    "PENDING_APPROVAL": "Your account is pending admin approval.",
    "ACCESS_DENIED": "Access denied.",
    "EMAIL_TAKEN": "Email already registered",
    "USN_TAKEN": "USN already registered",
}

VALIDATION_MESSAGES = {
    ("usn", "format"): "Invalid USN format. Use format: 1CK23ECXXX",
    ("phone", "format"): "Please enter a valid 10-digit phone number",
    ("confirm_password", "mismatch"): "Passwords do not match",
    ("password", "too_short"): "Password must be at least 6 characters long",
    ("role", "self"): "You cannot change your own role",
    ("csv", "missing_header"): "CSV file must have a header row",
    ("csv", "no_rows"): "CSV file must have at least a header and one data row",
    ("csv", "encoding"): "CSV file must be UTF-8 encoded",
}


def _status_for(exc: errors.LibraryError) -> int:
    for cls, code in ERROR_STATUS:
        if isinstance(exc, cls):
            return code
    return 400


def _message_for(exc: errors.LibraryError) -> str:
    if exc.code in ERROR_MESSAGES:
        return ERROR_MESSAGES[exc.code]
    if isinstance(exc, errors.ValidationFailed):
        if (exc.field, exc.reason) in VALIDATION_MESSAGES:
            return VALIDATION_MESSAGES[(exc.field, exc.reason)]
        if exc.reason == "required":
            return "Please fill all required fields"
        return f"Invalid {exc.field}"
    return "Request failed"


@app.exception_handler(errors.LibraryError)
async def library_error_handler(request: Request, exc: errors.LibraryError):
    body = {"detail": _message_for(exc), "code": exc.code, "details": exc.details}
    headers = None
    if isinstance(exc, errors.AccessDenied) and exc.home:
        body["redirect"] = HOME_PATHS.get(exc.home, LOGIN_PATH)
    elif isinstance(exc, (errors.NotAuthenticated, errors.UserRecordMissing, errors.PendingApproval)):
        body["redirect"] = LOGIN_PATH
    if isinstance(exc, (errors.NotAuthenticated, errors.UserRecordMissing)):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=_status_for(exc), content=body, headers=headers)


@app.on_event("startup")
def on_startup():
    setup_logging()
    if settings.STORE_BACKEND == "sql":
        Base.metadata.create_all(bind=engine)
    # Create the default admin user if not exists
    db = SessionLocal()
    try:
        store = build_store(db)
        AccessGuard(store).seed_admin(settings.ADMIN_EMAIL, settings.ADMIN_PASSWORD)
        if settings.SEED_DEMO_BOOKS:
            added = seed_demo_books(store)
            if added:
                logger.info("Seeded %d demo books", added)
    finally:
        db.close()


@app.get("/health")
def health(db: Session = Depends(get_db)):
    """Basic health check endpoint. Returns store connectivity and basic counts."""
    try:
        if settings.STORE_BACKEND == "sql":
            db.execute(text("SELECT 1"))
        store = build_store(db)
        total = len(store.list("books"))
        users = len(store.list("users"))
        return {"status": "ok", "database": "connected", "backend": settings.STORE_BACKEND, "total_books": total, "total_users": users}
    except Exception as e:
        logger.exception("Health check failed")
        return {"status": "error", "database": "disconnected", "detail": str(e)}


# --- Public catalog ---

@app.get("/books/", response_model=List[schemas.BookOut])
def list_books(
    q: Optional[str] = None,
    category: Optional[str] = None,
    available: bool = False,
    circulation: CirculationService = Depends(get_circulation),
):
    """
    Search the catalog.
    - **q**: case-insensitive match on title, author or ISBN
    - **category**: exact category
    - **available**: only books with copies on the shelf
    """
    return circulation.search_books(q, category=category, available_only=available)


@app.get("/books/categories", response_model=List[str])
def list_categories(circulation: CirculationService = Depends(get_circulation)):
    return circulation.categories()


@app.get("/books/{book_id}", response_model=schemas.BookOut)
def retrieve_book(book_id: str, store: EntityStore = Depends(get_store)):
    return get_book_by_id(book_id, store)


# --- Student self-service ---

@app.get("/me/transactions", response_model=List[schemas.TransactionOut])
def my_transactions(
    current_user: User = Depends(get_student_user),
    circulation: CirculationService = Depends(get_circulation),
):
    txns = circulation.filter_transactions(user_id=current_user.id, sort="recent")
    return [schemas.TransactionOut.from_txn(t, circulation.fine_for(t)) for t in txns]


@app.get("/me/stats", response_model=schemas.UserStats)
def my_stats(
    current_user: User = Depends(get_student_user),
    circulation: CirculationService = Depends(get_circulation),
):
    return circulation.user_stats(current_user.id)


@app.post("/me/transactions/{txn_id}/return", response_model=schemas.TransactionOut)
def return_my_book(
    txn_id: str,
    current_user: User = Depends(get_student_user),
    circulation: CirculationService = Depends(get_circulation),
):
    txn = circulation.return_book(txn_id, current_user.id)
    return schemas.TransactionOut.from_txn(txn, circulation.fine_for(txn))


# Add this to run the application directly
if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=9000,
        reload=True
    )
