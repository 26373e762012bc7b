import logging

from database import engine, Base
from logging_config import setup_logging
import models  # noqa: F401  registers the tables

logger = logging.getLogger("reset_db")


def reset() -> None:
    logger.info("Dropping all tables...")
    Base.metadata.drop_all(bind=engine)

    logger.info("Creating all tables...")
    Base.metadata.create_all(bind=engine)

    logger.info("Database reset complete!")


if __name__ == "__main__":
    setup_logging()
    reset()
