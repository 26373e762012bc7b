import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from config import settings
from errors import NotAuthenticated

logger = logging.getLogger(__name__)

SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# jti values of tokens that were logged out; process-local
_revoked_jtis: set = set()
_revoked_lock = threading.Lock()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate a password hash."""
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token with user data, a unique jti and expiration."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire, "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: Optional[str]) -> Dict[str, Any]:
    """Return the token payload or raise NotAuthenticated."""
    if not token:
        raise NotAuthenticated()
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.info("Rejected access token: %s", e)
        raise NotAuthenticated({"reason": "invalid_token"})
    if not payload.get("sub"):
        raise NotAuthenticated({"reason": "invalid_token"})
    if is_revoked(payload.get("jti")):
        raise NotAuthenticated({"reason": "logged_out"})
    return payload


def revoke_token(jti: Optional[str]) -> None:
    if not jti:
        return
    with _revoked_lock:
        _revoked_jtis.add(jti)


def is_revoked(jti: Optional[str]) -> bool:
    return bool(jti) and jti in _revoked_jtis
