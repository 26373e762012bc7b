"""FastAPI dependencies wiring the request to the store, the guard and the circulation service."""

from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from access import AccessGuard
from circulation import CirculationService
from config import settings
from database import get_db
from models import Role, User
from store import EntityStore, JsonStore, SqlStore

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="auth/login",
    # Do not automatically return a 401 when no token is provided;
    # the guard decides, so every auth failure goes through one path.
    auto_error=False,
)


def build_store(db: Session) -> EntityStore:
    if settings.STORE_BACKEND == "json":
        return JsonStore(settings.JSON_DATA_DIR)
    return SqlStore(db)


def get_store(db: Session = Depends(get_db)) -> EntityStore:
    return build_store(db)


def get_guard(store: EntityStore = Depends(get_store)) -> AccessGuard:
    return AccessGuard(store)


def get_circulation(store: EntityStore = Depends(get_store)) -> CirculationService:
    return CirculationService(store)


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    guard: AccessGuard = Depends(get_guard),
) -> User:
    """Any logged-in user, approved or not."""
    return guard.resolve(token)


def get_admin_user(
    token: Optional[str] = Depends(oauth2_scheme),
    guard: AccessGuard = Depends(get_guard),
) -> User:
    return guard.require_role(token, Role.ADMIN)


def get_student_user(
    token: Optional[str] = Depends(oauth2_scheme),
    guard: AccessGuard = Depends(get_guard),
) -> User:
    return guard.require_role(token, Role.STUDENT)
