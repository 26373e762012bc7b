"""
Access guard: registration, sessions, and role/approval checks.

A session is an explicit value (``Session``) carrying the opaque token; every
call that needs the caller's identity takes the token and resolves the user
record from the store. Role and approval are always read from the stored
record, never from the token's claims.

Session states per user: anonymous, authenticated-pending and
authenticated-approved. ``require_role`` is the single gate used by every
role-restricted operation:

    no / bad token          -> NotAuthenticated
    user record gone        -> session revoked, UserRecordMissing
    approval pending        -> PendingApproval (session kept)
    wrong role              -> AccessDenied(home=<the user's own role>)
    otherwise               -> the resolved User
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from auth_utils import (
    create_access_token,
    decode_access_token,
    get_password_hash,
    revoke_token,
    verify_password,
)
from errors import (
    AccessDenied,
    EmailTaken,
    InvalidCredentials,
    NotAuthenticated,
    PendingApproval,
    UserNotFound,
    UserRecordMissing,
    USNTaken,
    ValidationFailed,
    WriteConflict,
)
from models import ApprovalStatus, Role, User
from store import EntityStore, new_id

logger = logging.getLogger(__name__)

USN_PATTERN = re.compile(r"^1CK\d{2}[A-Z]{2}\d{3}$")
PHONE_PATTERN = re.compile(r"^\d{10}$")
MIN_PASSWORD_LENGTH = 6
ADMIN_USN = "ADMIN001"


@dataclass(frozen=True)
class Session:
    token: str
    user_id: str
    role: str
    approval_status: str

    @property
    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED.value


def _role_value(role) -> str:
    return getattr(role, "value", None) or str(role)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def normalize_usn(usn: str) -> str:
    return (usn or "").strip().upper()


def validate_usn(usn: str) -> str:
    usn = normalize_usn(usn)
    if not USN_PATTERN.match(usn):
        raise ValidationFailed("usn", "format")
    return usn


def validate_phone(phone: str) -> str:
    phone = (phone or "").strip()
    if not PHONE_PATTERN.match(phone):
        raise ValidationFailed("phone", "format")
    return phone


def validate_new_password(password: str, confirm_password: str) -> None:
    if password != confirm_password:
        raise ValidationFailed("confirm_password", "mismatch")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed("password", "too_short")


class AccessGuard:
    def __init__(self, store: EntityStore) -> None:
        self.store = store

    # ---- registration

    def register(
        self,
        name: str,
        email: str,
        usn: str,
        phone: str,
        password: str,
        confirm_password: str,
    ) -> User:
        """Create a pending student account; admins are never self-registered."""
        name = (name or "").strip()
        email = normalize_email(email)
        for field, value in (("name", name), ("email", email), ("usn", usn), ("phone", phone), ("password", password)):
            if not (value or "").strip():
                raise ValidationFailed(field, "required")
        validate_new_password(password, confirm_password)
        phone = validate_phone(phone)
        usn = validate_usn(usn)

        self._ensure_unique(email=email, usn=usn)
        try:
            user = self.store.create(
                "users",
                {
                    "name": name,
                    "email": email,
                    "usn": usn,
                    "phone": phone,
                    "hashed_password": get_password_hash(password),
                    "role": Role.STUDENT.value,
                    "approval_status": ApprovalStatus.PENDING.value,
                },
            )
        except WriteConflict:
            # lost a race with a concurrent registration; the unique
            # constraints decided, report which one
            self._ensure_unique(email=email, usn=usn)
            raise
        logger.info("Registered %s (%s), pending approval", user.id, email)
        return user

    def _ensure_unique(self, email: Optional[str] = None, usn: Optional[str] = None, exclude_id: Optional[str] = None) -> None:
        if email:
            existing = self.store.find_one("users", email=email)
            if existing is not None and existing.id != exclude_id:
                raise EmailTaken(email)
        if usn:
            existing = self.store.find_one("users", usn=usn)
            if existing is not None and existing.id != exclude_id:
                raise USNTaken(usn)

    def seed_admin(self, email: str, password: str, name: str = "Library Administrator") -> User:
        """Out-of-band creation of an approved admin account; idempotent per email."""
        email = normalize_email(email)
        existing = self.store.find_one("users", email=email)
        if existing is not None:
            return existing
        user_id = new_id("users")
        usn = ADMIN_USN
        if self.store.find_one("users", usn=usn) is not None:
            # an earlier admin holds the default placeholder
            usn = "ADMIN-" + user_id.split("_", 1)[1].upper()
        user = self.store.create(
            "users",
            {
                "id": user_id,
                "name": name,
                "email": email,
                "usn": usn,
                "phone": "0000000000",
                "hashed_password": get_password_hash(password),
                "role": Role.ADMIN.value,
                "approval_status": ApprovalStatus.APPROVED.value,
            },
        )
        logger.info("Seeded admin account %s", email)
        return user

    # ---- sessions

    def login(self, email: str, password: str) -> Session:
        email = normalize_email(email)
        user = self.store.find_one("users", email=email)
        if user is None or not verify_password(password, user.hashed_password):
            logger.warning("Failed login for %s", email)
            raise InvalidCredentials()

        token = create_access_token(data={"sub": user.id, "role": user.role})
        logger.info("Login for %s (%s, %s)", user.id, user.role, user.approval_status)
        return Session(token=token, user_id=user.id, role=user.role, approval_status=user.approval_status)

    def logout(self, token: Optional[str]) -> None:
        try:
            payload = decode_access_token(token)
        except NotAuthenticated:
            # already anonymous
            return
        revoke_token(payload.get("jti"))
        logger.info("Logout for %s", payload.get("sub"))

    def resolve(self, token: Optional[str]) -> User:
        payload = decode_access_token(token)
        user_id = payload["sub"]
        try:
            return self.store.get("users", user_id)
        except UserNotFound:
            revoke_token(payload.get("jti"))
            logger.warning("Session for missing user %s revoked", user_id)
            raise UserRecordMissing(user_id)

    def require_role(self, token: Optional[str], expected) -> User:
        expected = _role_value(expected)
        user = self.resolve(token)
        if not user.is_approved:
            raise PendingApproval(user.id)
        if user.role != expected:
            raise AccessDenied(required=expected, actual=user.role, home=user.role)
        return user

    # ---- administration

    def list_users(self) -> List[User]:
        return self.store.list("users")

    def pending_users(self) -> List[User]:
        return self.store.find("users", approval_status=ApprovalStatus.PENDING.value)

    def approve_user(self, user_id: str) -> User:
        user = self.store.update("users", user_id, {"approval_status": ApprovalStatus.APPROVED.value})
        logger.info("Approved user %s", user_id)
        return user

    def set_role(self, user_id: str, role) -> User:
        role = _role_value(role)
        if role not in (Role.STUDENT.value, Role.ADMIN.value):
            raise ValidationFailed("role", "unknown")
        user = self.store.update("users", user_id, {"role": role})
        logger.info("Role of %s set to %s", user_id, role)
        return user

    # ---- self-service profile

    def update_profile(
        self,
        user_id: str,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        usn: Optional[str] = None,
    ) -> User:
        patch = {}
        if name is not None:
            if not name.strip():
                raise ValidationFailed("name", "required")
            patch["name"] = name.strip()
        if phone is not None:
            patch["phone"] = validate_phone(phone)
        if usn is not None:
            patch["usn"] = validate_usn(usn)
            self._ensure_unique(usn=patch["usn"], exclude_id=user_id)
        if not patch:
            return self.store.get("users", user_id)
        try:
            return self.store.update("users", user_id, patch)
        except WriteConflict:
            self._ensure_unique(usn=patch.get("usn"), exclude_id=user_id)
            raise

    def change_password(self, user_id: str, current_password: str, new_password: str, confirm_password: str) -> None:
        user = self.store.get("users", user_id)
        if not verify_password(current_password, user.hashed_password):
            raise InvalidCredentials()
        validate_new_password(new_password, confirm_password)
        self.store.update("users", user_id, {"hashed_password": get_password_hash(new_password)})
        logger.info("Password changed for %s", user_id)

    def reset_password(self, email: str, usn: str, new_password: str, confirm_password: str) -> None:
        """Reset a forgotten password; the email and USN must belong to the same account."""
        email = normalize_email(email)
        usn = normalize_usn(usn)
        user = self.store.find_one("users", email=email)
        if user is None or user.usn != usn:
            raise UserNotFound(email)
        validate_new_password(new_password, confirm_password)
        self.store.update("users", user.id, {"hashed_password": get_password_hash(new_password)})
        logger.info("Password reset for %s", user.id)
