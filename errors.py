"""
Typed errors raised by the circulation and access layers.

Errors carry a machine-readable ``code`` and structured ``details`` only.
Turning them into something a person reads is the job of the HTTP layer
(see ``main.ERROR_MESSAGES``).

Usage:
    from errors import BookUnavailable

    if book.quantity <= 0:
        raise BookUnavailable(book.id)
"""

from typing import Any, Dict, Optional


class LibraryError(Exception):
    """Base exception for all library errors"""

    code = "LIBRARY_ERROR"

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        self.details = details or {}
        super().__init__(self.code, self.details)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "details": self.details}


# ============================================
# Missing entities
# ============================================

class NotFound(LibraryError):
    code = "NOT_FOUND"

    def __init__(self, kind: str, entity_id: Any):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__({"kind": kind, "id": entity_id})


class BookNotFound(NotFound):
    code = "BOOK_NOT_FOUND"

    def __init__(self, book_id: Any):
        super().__init__("books", book_id)


class UserNotFound(NotFound):
    code = "USER_NOT_FOUND"

    def __init__(self, user_id: Any):
        super().__init__("users", user_id)


class TransactionNotFound(NotFound):
    code = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: Any):
        super().__init__("transactions", transaction_id)


# ============================================
# Circulation rule violations
# ============================================

class BookUnavailable(LibraryError):
    code = "BOOK_UNAVAILABLE"

    def __init__(self, book_id: Any):
        super().__init__({"book_id": book_id})


class DuplicateActiveLoan(LibraryError):
    code = "DUPLICATE_ACTIVE_LOAN"

    def __init__(self, book_id: Any, user_id: Any):
        super().__init__({"book_id": book_id, "user_id": user_id})


class NotCurrentlyIssued(LibraryError):
    code = "NOT_CURRENTLY_ISSUED"

    def __init__(self, transaction_id: Any, status: Optional[str] = None):
        super().__init__({"transaction_id": transaction_id, "status": status})


class LoanStillActive(LibraryError):
    """Deleting an issued transaction would leave the book's quantity understated"""

    code = "LOAN_STILL_ACTIVE"

    def __init__(self, transaction_id: Any):
        super().__init__({"transaction_id": transaction_id})


# ============================================
# Authentication & authorization
# ============================================

class Unauthorized(LibraryError):
    code = "UNAUTHORIZED"


class NotAuthenticated(Unauthorized):
    code = "NOT_AUTHENTICATED"


class InvalidCredentials(Unauthorized):
    code = "INVALID_CREDENTIALS"


class UserRecordMissing(Unauthorized):
    """A valid session points at a user that no longer exists"""

    code = "USER_RECORD_MISSING"

    def __init__(self, user_id: Any):
        super().__init__({"user_id": user_id})


class PendingApproval(Unauthorized):
    code = "PENDING_APPROVAL"

    def __init__(self, user_id: Any):
        super().__init__({"user_id": user_id})


class AccessDenied(Unauthorized):
    code = "ACCESS_DENIED"

    def __init__(self, required: Optional[str] = None, actual: Optional[str] = None, home: Optional[str] = None):
        self.home = home
        super().__init__({"required": required, "actual": actual, "home": home})


# ============================================
# Input validation
# ============================================

class ValidationFailed(LibraryError):
    code = "VALIDATION_FAILED"

    def __init__(self, field: Optional[str] = None, reason: Optional[str] = None):
        self.field = field
        self.reason = reason
        super().__init__({"field": field, "reason": reason})


class EmailTaken(ValidationFailed):
    code = "EMAIL_TAKEN"

    def __init__(self, email: str):
        super().__init__("email", "taken")
        self.details["value"] = email


class USNTaken(ValidationFailed):
    code = "USN_TAKEN"

    def __init__(self, usn: str):
        super().__init__("usn", "taken")
        self.details["value"] = usn


# ============================================
# Persistence
# ============================================

class WriteConflict(LibraryError):
    """A write violated a uniqueness or check constraint in the backend"""

    code = "WRITE_CONFLICT"

    def __init__(self, kind: str, constraint: Optional[str] = None):
        self.kind = kind
        self.constraint = constraint
        super().__init__({"kind": kind, "constraint": constraint})
