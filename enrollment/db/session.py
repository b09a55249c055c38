# enrollment/db/session.py
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from enrollment.core.config import settings
from enrollment.core.exceptions import TransactionFailed

logger = logging.getLogger(__name__)

# The engine is the entry point to the database. It's configured with the
# database URL and handles the connection pooling.
engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)

# SessionLocal is a factory for creating new Session objects.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    One atomic unit of work.

    Commits when the block exits cleanly. Any exception rolls back every
    change made inside the block; store errors are re-raised as
    ``TransactionFailed`` so callers can tell them apart from domain errors.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Transaction rolled back after store error: {e}", exc_info=True)
        raise TransactionFailed(str(e)) from e
    except Exception:
        db.rollback()
        raise
