from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import AppError, ConflictError, PersistenceError

logger = logging.getLogger(__name__)


@contextmanager
def atomic(db: Session, *, operation: str, conflict_message: str) -> Iterator[None]:
    """Commit everything done in the block, or nothing.

    A unique-constraint violation at flush/commit time means a concurrent
    request won the race for a name and is reported as a conflict. Any other
    store failure is rolled back and surfaced as one opaque error.
    """
    try:
        yield
        db.commit()
    except AppError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.warning("%s rejected by a store constraint: %s", operation, exc.orig)
        raise ConflictError(conflict_message) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("%s failed; transaction rolled back", operation)
        raise PersistenceError(f"Failed to {operation}.") from exc
    except Exception as exc:
        db.rollback()
        logger.exception("%s failed; transaction rolled back", operation)
        raise PersistenceError(f"Failed to {operation}.") from exc
