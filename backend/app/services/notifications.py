from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.notification import Notification, NotificationEvent
from app.models.teacher import Teacher
from app.models.user import MANAGER_ROLES, User

logger = logging.getLogger(__name__)


def notify(
    db: Session,
    *,
    tenant_id: str,
    recipient_id: str,
    event_type: NotificationEvent,
    payload: dict,
) -> bool:
    """Queue an in-app notification without risking the caller's transaction.

    The row is written inside a savepoint; a failure there is logged and
    reported as ``False`` so the surrounding assignment still commits.
    """
    try:
        with db.begin_nested():
            db.add(
                Notification(
                    tenant_id=tenant_id,
                    recipient_id=recipient_id,
                    event_type=event_type,
                    payload=payload,
                )
            )
    except SQLAlchemyError:
        logger.warning(
            "Notification %s for recipient %s could not be queued",
            event_type.value,
            recipient_id,
            exc_info=True,
        )
        return False
    return True


def notify_managers(
    db: Session,
    *,
    tenant_id: str,
    event_type: NotificationEvent,
    payload: dict,
    exclude_user_id: str | None = None,
) -> int:
    managers = list(
        db.execute(
            select(User).where(
                User.tenant_id == tenant_id,
                User.role.in_(list(MANAGER_ROLES)),
                User.is_active.is_(True),
            )
        ).scalars()
    )
    delivered = 0
    for manager in managers:
        if exclude_user_id and manager.id == exclude_user_id:
            continue
        if notify(db, tenant_id=tenant_id, recipient_id=manager.id, event_type=event_type, payload=payload):
            delivered += 1
    return delivered


def recipient_for_teacher(db: Session, teacher_id: str) -> str:
    teacher = db.get(Teacher, teacher_id)
    if teacher is not None and teacher.user_id:
        return teacher.user_id
    return teacher_id
