"""
Promote an existing account to an approved admin.

Admin accounts are never self-registered; this script is the out-of-band path.

Usage:
    python elevate_user.py someone@example.com
"""

import argparse
import logging

from access import AccessGuard, normalize_email
from database import SessionLocal
from dependencies import build_store
from errors import LibraryError
from logging_config import setup_logging
from models import Role

logger = logging.getLogger("elevate_user")


def run(email: str) -> int:
    db = SessionLocal()
    try:
        store = build_store(db)
        guard = AccessGuard(store)
        user = store.find_one("users", email=normalize_email(email))
        if user is None:
            logger.error("User not found: %s", email)
            return 1
        logger.info("Before: %s %s role=%s approval=%s", user.id, user.email, user.role, user.approval_status)
        with store.atomic():
            guard.set_role(user.id, Role.ADMIN)
            user = guard.approve_user(user.id)
        logger.info("After: %s %s role=%s approval=%s", user.id, user.email, user.role, user.approval_status)
        return 0
    except LibraryError as e:
        logger.error("Could not promote %s: %s %s", email, e.code, e.details)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    setup_logging()
    parser = argparse.ArgumentParser(description="Promote a user to an approved admin")
    parser.add_argument("email")
    args = parser.parse_args()
    raise SystemExit(run(args.email))
