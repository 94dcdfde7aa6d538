"""State transitions for substitution records.

Every transition is a guarded ``UPDATE ... WHERE status IN (expected)``. When
the guard matches no row the record has moved on under us and the caller gets
``InvalidStateError`` with nothing changed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.exceptions import (
    AuthorizationError,
    InvalidStateError,
    NoEligibleCandidateError,
    ResourceNotFoundError,
    ValidationError,
)
from app.models.notification import NotificationEvent
from app.models.substitution_record import SubstitutionRecord, SubstitutionStatus
from app.models.teacher import Teacher
from app.models.user import User
from app.services.assignment import (
    assign_period,
    notify_substitute_assigned,
    reserve_specific_substitute,
    reserve_substitute,
)
from app.services.audit import log_activity
from app.services.candidates import PeriodRequest, ScoredCandidate
from app.services.config_store import AssignmentPolicy, get_assignment_config
from app.services.notifications import notify, notify_managers, recipient_for_teacher
from app.services.workload import decrement_substitutions

logger = logging.getLogger(__name__)

OPEN_STATUSES = frozenset({SubstitutionStatus.pending, SubstitutionStatus.confirmed})
EDITABLE_STATUSES = OPEN_STATUSES | {SubstitutionStatus.unassigned}
HANDOVER_FIELDS = ("room", "start_time", "end_time", "lesson_plan", "special_instructions")


@dataclass
class ReplacementResult:
    original: SubstitutionRecord
    replacement: SubstitutionRecord

    @property
    def replacement_found(self) -> bool:
        return self.replacement.status == SubstitutionStatus.pending


@dataclass
class RematchResult:
    record: SubstitutionRecord
    previous: SubstitutionRecord | None = None

    @property
    def assigned(self) -> bool:
        return self.record.status == SubstitutionStatus.pending


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _clean_reason(value: str | None, *, field_name: str = "reason") -> str:
    cleaned = (value or "").strip()
    if len(cleaned) < 3:
        raise ValidationError(f"{field_name.capitalize()} must be at least 3 characters", details={"field": field_name})
    return cleaned


def get_record(db: Session, *, tenant_id: str, record_id: str) -> SubstitutionRecord:
    record = db.get(SubstitutionRecord, record_id)
    if record is None or record.tenant_id != tenant_id:
        raise ResourceNotFoundError("SubstitutionRecord", record_id)
    return record


def _is_assigned_substitute(db: Session, record: SubstitutionRecord, user: User) -> bool:
    if not record.substitute_teacher_id:
        return False
    teacher = db.get(Teacher, record.substitute_teacher_id)
    return teacher is not None and teacher.user_id == user.id


def _require_manager(user: User, action: str) -> None:
    if not user.is_manager:
        raise AuthorizationError(f"Only managers can {action} substitutions")


def _require_substitute_or_manager(db: Session, record: SubstitutionRecord, user: User, action: str) -> None:
    if user.is_manager or _is_assigned_substitute(db, record, user):
        return
    raise AuthorizationError(f"Only the assigned substitute or a manager can {action} this substitution")


def _transition(
    db: Session,
    record: SubstitutionRecord,
    *,
    expected: frozenset[SubstitutionStatus],
    values: dict,
    extra_guards: tuple = (),
) -> SubstitutionRecord:
    statement = (
        update(SubstitutionRecord)
        .where(
            SubstitutionRecord.id == record.id,
            SubstitutionRecord.status.in_(list(expected)),
            *extra_guards,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(statement)
    if result.rowcount == 0:
        db.refresh(record)
        raise InvalidStateError(
            f"Substitution cannot move from {record.status.value}",
            details={
                "record_id": record.id,
                "status": record.status.value,
                "expected": sorted(item.value for item in expected),
            },
        )
    db.refresh(record)
    return record


def _period_request(record: SubstitutionRecord, *, exclude: set[str] | None = None) -> PeriodRequest:
    return PeriodRequest(
        tenant_id=record.tenant_id,
        absent_teacher_id=record.absent_teacher_id,
        subject_id=record.subject_id,
        class_id=record.class_id,
        substitution_date=record.substitution_date,
        period_number=record.period_number,
        excluded_teacher_ids=frozenset(exclude or ()),
    )


def _record_payload(record: SubstitutionRecord) -> dict:
    return {
        "record_id": record.id,
        "date": record.substitution_date.isoformat(),
        "period_number": record.period_number,
        "class_id": record.class_id,
        "status": record.status.value,
    }


def confirm_substitution(db: Session, *, actor: User, record_id: str) -> SubstitutionRecord:
    record = get_record(db, tenant_id=actor.tenant_id, record_id=record_id)
    _require_substitute_or_manager(db, record, actor, "confirm")

    _transition(
        db,
        record,
        expected=frozenset({SubstitutionStatus.pending}),
        values={
            "status": SubstitutionStatus.confirmed,
            "confirmed_by_id": actor.id,
            "confirmed_at": _utc_now(),
        },
    )
    notify_managers(
        db,
        tenant_id=record.tenant_id,
        event_type=NotificationEvent.substitution_confirmed,
        payload=_record_payload(record),
        exclude_user_id=actor.id,
    )
    log_activity(
        db,
        tenant_id=record.tenant_id,
        actor_id=actor.id,
        action="substitution.confirm",
        entity_type="substitution_record",
        entity_id=record.id,
    )
    return record


def cancel_substitution(db: Session, *, actor: User, record_id: str, reason: str) -> SubstitutionRecord:
    _require_manager(actor, "cancel")
    record = get_record(db, tenant_id=actor.tenant_id, record_id=record_id)
    reason = _clean_reason(reason)
    substitute_id = record.substitute_teacher_id

    _transition(
        db,
        record,
        expected=OPEN_STATUSES,
        values={
            "status": SubstitutionStatus.cancelled,
            "cancelled_by_id": actor.id,
            "cancelled_at": _utc_now(),
            "cancellation_reason": reason,
            "active_slot_key": None,
        },
    )
    if substitute_id:
        decrement_substitutions(db, tenant_id=record.tenant_id, teacher_id=substitute_id)
        notify(
            db,
            tenant_id=record.tenant_id,
            recipient_id=recipient_for_teacher(db, substitute_id),
            event_type=NotificationEvent.substitution_cancelled,
            payload={**_record_payload(record), "reason": reason},
        )
    log_activity(
        db,
        tenant_id=record.tenant_id,
        actor_id=actor.id,
        action="substitution.cancel",
        entity_type="substitution_record",
        entity_id=record.id,
        details={"reason": reason, "substitute_teacher_id": substitute_id},
    )
    return record


def request_replacement(db: Session, *, actor: User, record_id: str, reason: str) -> ReplacementResult:
    record = get_record(db, tenant_id=actor.tenant_id, record_id=record_id)
    _require_substitute_or_manager(db, record, actor, "request a replacement for")
    reason = _clean_reason(reason)
    original_substitute_id = record.substitute_teacher_id

    _transition(
        db,
        record,
        expected=OPEN_STATUSES,
        values={
            "status": SubstitutionStatus.substituted,
            "replacement_reason": reason,
            "active_slot_key": None,
        },
    )
    if original_substitute_id:
        decrement_substitutions(db, tenant_id=record.tenant_id, teacher_id=original_substitute_id)

    policy = get_assignment_config(db, record.tenant_id)
    exclude = {original_substitute_id} if original_substitute_id else set()
    with db.begin_nested():
        replacement = assign_period(
            db,
            request=_period_request(record, exclude=exclude),
            policy=policy,
            reason=record.reason,
            requested_by_id=actor.id,
            absence_request_id=record.absence_request_id,
            room=record.room,
            supersedes_id=record.id,
        )
    record.superseded_by_id = replacement.id
    db.flush()

    result = ReplacementResult(original=record, replacement=replacement)
    if original_substitute_id:
        notify(
            db,
            tenant_id=record.tenant_id,
            recipient_id=recipient_for_teacher(db, original_substitute_id),
            event_type=NotificationEvent.substitution_replaced,
            payload={**_record_payload(record), "replacement_id": replacement.id},
        )
    if not result.replacement_found:
        notify_managers(
            db,
            tenant_id=record.tenant_id,
            event_type=NotificationEvent.substitution_unassigned,
            payload=_record_payload(replacement),
        )
    log_activity(
        db,
        tenant_id=record.tenant_id,
        actor_id=actor.id,
        action="substitution.replace",
        entity_type="substitution_record",
        entity_id=record.id,
        details={
            "reason": reason,
            "replacement_id": replacement.id,
            "replacement_found": result.replacement_found,
            "previous_substitute_id": original_substitute_id,
            "new_substitute_id": replacement.substitute_teacher_id,
        },
    )
    return result


def _reserve_for_rematch(
    db: Session,
    *,
    request: PeriodRequest,
    policy: AssignmentPolicy,
    substitute_teacher_id: str | None,
) -> ScoredCandidate | None:
    if substitute_teacher_id is not None:
        return reserve_specific_substitute(db, request=request, policy=policy, teacher_id=substitute_teacher_id)
    try:
        return reserve_substitute(db, request=request, policy=policy)
    except NoEligibleCandidateError as exc:
        logger.info("Rematch for period %d found nobody: %s", request.period_number, exc.message)
        return None


def _rematch_in_place(
    db: Session,
    record: SubstitutionRecord,
    *,
    policy: AssignmentPolicy,
    substitute_teacher_id: str | None,
) -> RematchResult:
    with db.begin_nested():
        candidate = _reserve_for_rematch(
            db,
            request=_period_request(record),
            policy=policy,
            substitute_teacher_id=substitute_teacher_id,
        )
        if candidate is None:
            return RematchResult(record=record)
        # Raising here rolls back the counter bump with the savepoint.
        _transition(
            db,
            record,
            expected=frozenset({SubstitutionStatus.unassigned}),
            values={
                "status": SubstitutionStatus.pending,
                "substitute_teacher_id": candidate.teacher_id,
                "score": candidate.score,
                "assigned_at": _utc_now(),
            },
        )
    notify_substitute_assigned(db, record)
    return RematchResult(record=record)


def _rematch_successor(
    db: Session,
    record: SubstitutionRecord,
    *,
    actor: User,
    policy: AssignmentPolicy,
    substitute_teacher_id: str | None,
) -> RematchResult:
    if record.superseded_by_id:
        raise InvalidStateError(
            "Cancelled substitution has already been re-matched",
            details={"record_id": record.id, "superseded_by_id": record.superseded_by_id},
        )
    with db.begin_nested():
        successor = assign_period(
            db,
            request=_period_request(record),
            policy=policy,
            reason=record.reason,
            requested_by_id=actor.id,
            absence_request_id=record.absence_request_id,
            room=record.room,
            supersedes_id=record.id,
            substitute_teacher_id=substitute_teacher_id,
        )
        _transition(
            db,
            record,
            expected=frozenset({SubstitutionStatus.cancelled}),
            values={"superseded_by_id": successor.id},
            extra_guards=(SubstitutionRecord.superseded_by_id.is_(None),),
        )
    return RematchResult(record=successor, previous=record)


def rematch_substitution(
    db: Session,
    *,
    actor: User,
    record_id: str,
    substitute_teacher_id: str | None = None,
) -> RematchResult:
    """Find cover again for an unassigned or cancelled record.

    Unassigned records are filled in place. Cancelled records keep their
    history and get a successor that points back at them.
    """
    _require_manager(actor, "re-match")
    record = get_record(db, tenant_id=actor.tenant_id, record_id=record_id)
    policy = get_assignment_config(db, record.tenant_id)

    if record.status == SubstitutionStatus.unassigned:
        result = _rematch_in_place(db, record, policy=policy, substitute_teacher_id=substitute_teacher_id)
    elif record.status == SubstitutionStatus.cancelled:
        result = _rematch_successor(db, record, actor=actor, policy=policy, substitute_teacher_id=substitute_teacher_id)
    else:
        raise InvalidStateError(
            f"Substitution cannot be re-matched from {record.status.value}",
            details={"record_id": record.id, "status": record.status.value},
        )

    if not result.assigned:
        notify_managers(
            db,
            tenant_id=record.tenant_id,
            event_type=NotificationEvent.substitution_unassigned,
            payload=_record_payload(result.record),
            exclude_user_id=actor.id,
        )
    log_activity(
        db,
        tenant_id=record.tenant_id,
        actor_id=actor.id,
        action="substitution.rematch",
        entity_type="substitution_record",
        entity_id=result.record.id,
        details={
            "source_record_id": record.id,
            "assigned": result.assigned,
            "substitute_teacher_id": result.record.substitute_teacher_id,
            "manual": substitute_teacher_id is not None,
        },
    )
    return result


def complete_substitution(
    db: Session,
    *,
    actor: User,
    record_id: str,
    attendance_marked: bool = False,
    lessons_completed: bool = False,
    students_behavior: str | None = None,
    feedback: str | None = None,
) -> SubstitutionRecord:
    record = get_record(db, tenant_id=actor.tenant_id, record_id=record_id)
    _require_substitute_or_manager(db, record, actor, "complete")

    _transition(
        db,
        record,
        expected=frozenset({SubstitutionStatus.confirmed}),
        values={
            "status": SubstitutionStatus.completed,
            "completed_at": _utc_now(),
            "attendance_marked": attendance_marked,
            "lessons_completed": lessons_completed,
            "students_behavior": (students_behavior or "").strip() or None,
            "feedback": (feedback or "").strip() or None,
        },
    )
    policy = get_assignment_config(db, record.tenant_id)
    if policy.release_capacity_on_completion and record.substitute_teacher_id:
        decrement_substitutions(db, tenant_id=record.tenant_id, teacher_id=record.substitute_teacher_id)

    notify_managers(
        db,
        tenant_id=record.tenant_id,
        event_type=NotificationEvent.substitution_completed,
        payload=_record_payload(record),
        exclude_user_id=actor.id,
    )
    log_activity(
        db,
        tenant_id=record.tenant_id,
        actor_id=actor.id,
        action="substitution.complete",
        entity_type="substitution_record",
        entity_id=record.id,
        details={
            "attendance_marked": attendance_marked,
            "lessons_completed": lessons_completed,
            "released_capacity": policy.release_capacity_on_completion,
        },
    )
    return record


def update_handover(db: Session, *, actor: User, record_id: str, values: dict) -> SubstitutionRecord:
    """Edit room, timing and lesson notes while the record is still open."""
    record = get_record(db, tenant_id=actor.tenant_id, record_id=record_id)
    absent_teacher = db.get(Teacher, record.absent_teacher_id)
    is_absent_teacher = absent_teacher is not None and absent_teacher.user_id == actor.id
    if not is_absent_teacher:
        _require_substitute_or_manager(db, record, actor, "edit")

    changes = {name: values[name] for name in HANDOVER_FIELDS if name in values}
    if not changes:
        raise ValidationError("No handover fields to update", details={"fields": list(HANDOVER_FIELDS)})
    start = changes.get("start_time", record.start_time)
    end = changes.get("end_time", record.end_time)
    if start is not None and end is not None and end <= start:
        raise ValidationError(
            "end_time must be after start_time",
            details={"start_time": start.isoformat(), "end_time": end.isoformat()},
        )

    _transition(db, record, expected=EDITABLE_STATUSES, values=changes)
    log_activity(
        db,
        tenant_id=record.tenant_id,
        actor_id=actor.id,
        action="substitution.update",
        entity_type="substitution_record",
        entity_id=record.id,
        details={"fields": sorted(changes)},
    )
    return record
