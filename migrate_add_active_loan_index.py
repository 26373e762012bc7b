"""
Run this script to add the circulation constraints to an existing PostgreSQL database:

- a partial unique index so a user can hold at most one open loan per book
- a CHECK keeping books.quantity from going negative

Both use IF NOT EXISTS / a catalog lookup, so the script is safe to re-run.
Fresh databases get both from ``Base.metadata.create_all``.

Usage:
    python migrate_add_active_loan_index.py

It uses the `engine` from `database.py`, so ensure LIBRARY_DATABASE_URL is correct.
Make a backup of your DB before running.
"""

import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from database import engine
from logging_config import setup_logging

logger = logging.getLogger("migrate_add_active_loan_index")

sql_statements = [
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_transactions_active_loan "
    "ON transactions (book_id, user_id) WHERE status = 'issued';",
    "DO $$ BEGIN "
    "IF NOT EXISTS (SELECT 1 FROM pg_constraint WHERE conname = 'ck_books_quantity_non_negative') THEN "
    "ALTER TABLE books ADD CONSTRAINT ck_books_quantity_non_negative CHECK (quantity >= 0); "
    "END IF; END $$;",
]


def migrate() -> bool:
    ok = True
    logger.info("Running active-loan migration...")
    with engine.connect() as conn:
        for sql in sql_statements:
            logger.info("Executing: %s", sql)
            try:
                conn.execute(text(sql))
                conn.commit()
            except SQLAlchemyError as e:
                conn.rollback()
                ok = False
                logger.warning("Statement failed: %s", e)
    if ok:
        logger.info("Migration finished.")
    else:
        logger.warning("Migration finished with warnings. If the index failed, look for duplicate open loans:")
        logger.warning("  SELECT book_id, user_id, count(*) FROM transactions WHERE status = 'issued' "
                       "GROUP BY book_id, user_id HAVING count(*) > 1;")
        logger.warning("If the CHECK failed, look for negative stock:")
        logger.warning("  SELECT id, quantity FROM books WHERE quantity < 0;")
    return ok


if __name__ == "__main__":
    setup_logging()
    raise SystemExit(0 if migrate() else 1)
