from __future__ import annotations

from collections.abc import Callable
import logging
from typing import TypeVar

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def read_with_retry(db: Session, loader: Callable[[], T]) -> T:
    """Run a read, retrying once on a dropped connection."""
    try:
        return loader()
    except OperationalError:
        logger.warning("Read failed, retrying once", exc_info=True)
        db.rollback()
    try:
        return loader()
    except OperationalError as exc:
        db.rollback()
        raise PersistenceError(details={"operation": "read"}) from exc


def commit_or_raise(db: Session) -> None:
    # Writes are never retried.
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Commit failed")
        raise PersistenceError(details={"operation": "write"}) from exc
