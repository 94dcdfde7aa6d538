from __future__ import annotations

from datetime import datetime, timezone
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, NoEligibleCandidateError, ValidationError
from app.models.notification import NotificationEvent
from app.models.substitution_record import SubstitutionRecord, SubstitutionStatus, active_slot_key
from app.services.candidates import (
    PeriodRequest,
    ScoredCandidate,
    evaluate_period,
    load_candidate_snapshots,
    rejection_reason,
    score_candidate,
)
from app.services.config_store import AssignmentPolicy
from app.services.notifications import notify, recipient_for_teacher
from app.services.timetable import TimetableService, day_of_week
from app.services.workload import increment_substitutions

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _reserve_capacity(db: Session, *, tenant_id: str, teacher_id: str, policy: AssignmentPolicy) -> bool:
    count = increment_substitutions(
        db,
        tenant_id=tenant_id,
        teacher_id=teacher_id,
        minimum=policy.min_substitutions,
        maximum=policy.max_substitutions,
    )
    return count is not None


def reserve_substitute(
    db: Session,
    *,
    request: PeriodRequest,
    policy: AssignmentPolicy,
) -> ScoredCandidate:
    """Pick the best candidate and bump their counter under a row lock.

    The cap is re-checked after the lock is taken; a candidate who was filled
    up by a concurrent request is skipped in favour of the next-ranked one.
    Raises ``NoEligibleCandidateError`` when nobody can be reserved.
    """
    ranked = evaluate_period(db, request, policy)
    for candidate in ranked:
        if not _reserve_capacity(db, tenant_id=request.tenant_id, teacher_id=candidate.teacher_id, policy=policy):
            logger.info(
                "Skipping teacher %s for period %d: workload changed since ranking",
                candidate.teacher_id,
                request.period_number,
            )
            continue
        return candidate
    raise NoEligibleCandidateError(request.period_number, details={"candidates_considered": len(ranked)})


def reserve_specific_substitute(
    db: Session,
    *,
    request: PeriodRequest,
    policy: AssignmentPolicy,
    teacher_id: str,
) -> ScoredCandidate:
    day = day_of_week(request.substitution_date)
    if teacher_id != request.absent_teacher_id and not TimetableService(db, request.tenant_id).is_free(
        teacher_id, day, request.period_number
    ):
        raise ValidationError(
            "Substitute teacher is not eligible for this period",
            details={"teacher_id": teacher_id, "reason": "timetabled"},
        )
    snapshots = {item.teacher_id: item for item in load_candidate_snapshots(db, request)}
    snapshot = snapshots.get(teacher_id)
    if snapshot is None:
        raise ValidationError("Substitute teacher is not an active teacher of this school", details={"teacher_id": teacher_id})

    reason = rejection_reason(
        snapshot,
        absent_teacher_id=request.absent_teacher_id,
        policy=policy,
        excluded_teacher_ids=request.excluded_teacher_ids,
    )
    if reason is not None:
        raise ValidationError(
            "Substitute teacher is not eligible for this period",
            details={"teacher_id": teacher_id, "reason": reason},
        )

    if not _reserve_capacity(db, tenant_id=request.tenant_id, teacher_id=teacher_id, policy=policy):
        raise ValidationError(
            "Substitute teacher is not eligible for this period",
            details={"teacher_id": teacher_id, "reason": "at_max_substitutions"},
        )
    return ScoredCandidate(snapshot=snapshot, score=score_candidate(snapshot, subject_id=request.subject_id, policy=policy))


def notify_substitute_assigned(db: Session, record: SubstitutionRecord) -> bool:
    if not record.substitute_teacher_id:
        return False
    return notify(
        db,
        tenant_id=record.tenant_id,
        recipient_id=recipient_for_teacher(db, record.substitute_teacher_id),
        event_type=NotificationEvent.substitution_assigned,
        payload={
            "record_id": record.id,
            "date": record.substitution_date.isoformat(),
            "period_number": record.period_number,
            "class_id": record.class_id,
            "subject_id": record.subject_id,
            "absent_teacher_id": record.absent_teacher_id,
        },
    )


def assign_period(
    db: Session,
    *,
    request: PeriodRequest,
    policy: AssignmentPolicy,
    reason: str,
    requested_by_id: str,
    absence_request_id: str | None = None,
    room: str | None = None,
    supersedes_id: str | None = None,
    substitute_teacher_id: str | None = None,
) -> SubstitutionRecord:
    """Create the substitution record for one period.

    Must run inside a transaction (or savepoint) so the counter bump and the
    record insert land together. With ``substitute_teacher_id`` the given
    teacher is reserved or ``ValidationError`` is raised; otherwise the best
    candidate is picked and the record is left unassigned when there is none.
    """
    candidate: ScoredCandidate | None
    if substitute_teacher_id is not None:
        candidate = reserve_specific_substitute(
            db,
            request=request,
            policy=policy,
            teacher_id=substitute_teacher_id,
        )
    else:
        try:
            candidate = reserve_substitute(db, request=request, policy=policy)
        except NoEligibleCandidateError as exc:
            logger.info("Period %d on %s left unassigned: %s", request.period_number, request.substitution_date, exc.message)
            candidate = None

    record = SubstitutionRecord(
        tenant_id=request.tenant_id,
        absence_request_id=absence_request_id,
        absent_teacher_id=request.absent_teacher_id,
        substitute_teacher_id=candidate.teacher_id if candidate else None,
        class_id=request.class_id,
        subject_id=request.subject_id,
        substitution_date=request.substitution_date,
        period_number=request.period_number,
        room=room,
        reason=reason,
        status=SubstitutionStatus.pending if candidate else SubstitutionStatus.unassigned,
        active_slot_key=active_slot_key(request.absent_teacher_id, request.substitution_date, request.period_number),
        score=candidate.score if candidate else None,
        requested_by_id=requested_by_id,
        supersedes_id=supersedes_id,
        assigned_at=_utc_now() if candidate else None,
    )
    db.add(record)
    try:
        db.flush()
    except IntegrityError as exc:
        raise ConflictError(
            "An active substitution already exists for this teacher, date and period",
            details={
                "absent_teacher_id": request.absent_teacher_id,
                "date": request.substitution_date.isoformat(),
                "period_number": request.period_number,
            },
        ) from exc

    if candidate is not None:
        notify_substitute_assigned(db, record)
    return record
