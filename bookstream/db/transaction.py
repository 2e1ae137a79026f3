"""Transaction scope used by every engine write"""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bookstream.errors.exceptions import PersistenceUnavailableException

logger = logging.getLogger(__name__)


@contextmanager
def guarded_transaction(db: Session, operation: str) -> Iterator[Session]:
    """
    Commit when the block finishes, roll back on any exception.

    Rolling back also releases row and advisory locks taken inside the
    block. Storage errors are re-raised as ``PersistenceUnavailableException``
    so callers deny the request instead of guessing.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"{operation} failed, store unavailable: {exc}")
        raise PersistenceUnavailableException() from exc
    except Exception:
        db.rollback()
        raise
