from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.activity_log import ActivityLog
from app.models.user import User

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    *,
    user: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    entity_name: str | None = None,
    details: dict | None = None,
) -> None:
    """Record one audit event for a mutation that has already been committed.

    Audit is advisory: a failure here is logged and rolled back on its own,
    it never undoes the operation being recorded.
    """
    details = details or {}
    logger.info(
        "%s actor=%s %s=%s details=%s",
        action,
        user.id if user is not None else None,
        entity_type,
        entity_name or entity_id,
        details,
    )
    record = ActivityLog(
        user_id=user.id if user is not None else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_name=entity_name,
        details=details,
    )
    try:
        db.add(record)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Failed to persist audit event %s for %s", action, entity_name or entity_id, exc_info=True)
