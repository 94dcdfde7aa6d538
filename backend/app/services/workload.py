from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.teacher_workload import TeacherWorkloadState

logger = logging.getLogger(__name__)


def lock_workload_row(db: Session, *, tenant_id: str, teacher_id: str) -> TeacherWorkloadState:
    """Return the teacher's workload row, locked for the rest of the transaction."""
    query = (
        select(TeacherWorkloadState)
        .where(
            TeacherWorkloadState.tenant_id == tenant_id,
            TeacherWorkloadState.teacher_id == teacher_id,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    row = db.execute(query).scalar_one_or_none()
    if row is not None:
        return row

    try:
        with db.begin_nested():
            row = TeacherWorkloadState(tenant_id=tenant_id, teacher_id=teacher_id, current_substitutions=0)
            db.add(row)
    except IntegrityError:
        # A concurrent request created the row first.
        row = db.execute(query).scalar_one()
    return row


def increment_substitutions(
    db: Session,
    *,
    tenant_id: str,
    teacher_id: str,
    minimum: int = 0,
    maximum: int | None = None,
) -> int | None:
    """Bump the counter under the row lock.

    Returns the new count, or ``None`` without touching the row when the
    locked value is below ``minimum`` or already at ``maximum``.
    """
    row = lock_workload_row(db, tenant_id=tenant_id, teacher_id=teacher_id)
    current = row.current_substitutions
    if current < minimum or (maximum is not None and current >= maximum):
        return None
    row.current_substitutions = current + 1
    db.flush()
    return row.current_substitutions


def decrement_substitutions(db: Session, *, tenant_id: str, teacher_id: str) -> int:
    row = lock_workload_row(db, tenant_id=tenant_id, teacher_id=teacher_id)
    if row.current_substitutions <= 0:
        logger.warning("Workload counter for teacher %s already at zero", teacher_id)
    row.current_substitutions = max(0, row.current_substitutions - 1)
    db.flush()
    return row.current_substitutions


def current_substitution_counts(db: Session, *, tenant_id: str) -> dict[str, int]:
    rows = db.execute(
        select(TeacherWorkloadState.teacher_id, TeacherWorkloadState.current_substitutions).where(
            TeacherWorkloadState.tenant_id == tenant_id
        )
    ).all()
    return {teacher_id: count for teacher_id, count in rows}
