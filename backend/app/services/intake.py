from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
import logging
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    ResourceNotFoundError,
    SubmissionWindowClosedError,
    ValidationError,
)
from app.models.absence_request import AbsenceRequest, LeaveType
from app.models.notification import NotificationEvent
from app.models.school_class import SchoolClass
from app.models.substitution_record import (
    INACTIVE_STATUSES,
    SubstitutionRecord,
    SubstitutionStatus,
    active_slot_key,
)
from app.models.teacher import Teacher
from app.models.user import User
from app.services.assignment import assign_period
from app.services.audit import log_activity
from app.services.candidates import PeriodRequest
from app.services.config_store import get_assignment_config
from app.services.notifications import notify_managers
from app.services.timetable import TimetableService, day_of_week

logger = logging.getLogger(__name__)

LEAVE_TYPE_PERIODS: dict[LeaveType, tuple[int, ...]] = {
    LeaveType.full_day: (1, 2, 3, 4, 5, 6, 7, 8, 9),
    LeaveType.on_duty: (1, 2, 3, 4, 5, 6, 7, 8, 9),
    LeaveType.half_day_morning: (1, 2, 3, 4),
    LeaveType.half_day_afternoon: (5, 6, 7, 8, 9),
    LeaveType.permission_morning: (1, 2),
    LeaveType.permission_evening: (8, 9),
}


def periods_for_leave_type(leave_type: LeaveType) -> tuple[int, ...]:
    return LEAVE_TYPE_PERIODS[leave_type]


def local_now() -> datetime:
    settings = get_settings()
    return datetime.now(ZoneInfo(settings.school_timezone))


def ensure_submission_window(
    *,
    absence_date: date,
    now: datetime,
    is_manager: bool,
    window_start: time,
    window_end: time,
) -> None:
    if is_manager:
        return
    if absence_date != now.date():
        raise SubmissionWindowClosedError(
            "Leave can only be submitted for today",
            details={"absence_date": absence_date.isoformat(), "today": now.date().isoformat()},
        )
    current = now.time().replace(tzinfo=None)
    if not window_start <= current <= window_end:
        raise SubmissionWindowClosedError(
            f"Leave submissions are accepted between {window_start:%H:%M} and {window_end:%H:%M}",
            details={
                "window_start": window_start.strftime("%H:%M"),
                "window_end": window_end.strftime("%H:%M"),
                "submitted_at": current.strftime("%H:%M"),
            },
        )


@dataclass
class LeaveSubmissionResult:
    absence_request: AbsenceRequest
    records: list[SubstitutionRecord] = field(default_factory=list)
    skipped_periods: list[int] = field(default_factory=list)

    @property
    def periods_requested(self) -> int:
        return len(self.records)

    @property
    def periods_assigned(self) -> int:
        return sum(1 for item in self.records if item.status == SubstitutionStatus.pending)

    @property
    def message(self) -> str:
        # periods_requested counts new records only; already-covered periods are reported separately.
        if not self.records:
            return "Leave processed: no timetabled periods need cover"
        if self.periods_assigned == 0:
            text = f"Leave processed: 0 of {self.periods_requested} periods covered, no substitutes found"
        else:
            text = f"Leave processed: {self.periods_assigned} of {self.periods_requested} periods covered"
        if self.skipped_periods:
            text += f"; {len(self.skipped_periods)} already had cover"
        return text


def _resolve_teacher(db: Session, *, requester: User, teacher_id: str | None) -> Teacher:
    if teacher_id is None:
        teacher = db.execute(
            select(Teacher).where(Teacher.tenant_id == requester.tenant_id, Teacher.user_id == requester.id)
        ).scalar_one_or_none()
        if teacher is None:
            raise ValidationError("No teacher profile is linked to this account; pass teacher_id")
        return teacher

    teacher = db.get(Teacher, teacher_id)
    if teacher is None or teacher.tenant_id != requester.tenant_id:
        raise ResourceNotFoundError("Teacher", teacher_id)
    return teacher


def _active_periods(db: Session, *, tenant_id: str, teacher_id: str, on_date: date, periods: list[int]) -> set[int]:
    keys = [active_slot_key(teacher_id, on_date, period) for period in periods]
    if not keys:
        return set()
    rows = db.execute(
        select(SubstitutionRecord.period_number).where(
            SubstitutionRecord.tenant_id == tenant_id,
            SubstitutionRecord.active_slot_key.in_(keys),
        )
    ).scalars()
    return set(rows)


def submit_leave(
    db: Session,
    *,
    requester: User,
    teacher_id: str | None,
    absence_date: date,
    leave_type: LeaveType,
    reason: str,
    now: datetime | None = None,
) -> LeaveSubmissionResult:
    settings = get_settings()
    reason = reason.strip()
    if len(reason) < 3:
        raise ValidationError("Reason must be at least 3 characters")

    teacher = _resolve_teacher(db, requester=requester, teacher_id=teacher_id)
    if not teacher.is_active:
        raise ValidationError("Teacher is not active", details={"teacher_id": teacher.id})
    if not requester.is_manager and teacher.user_id != requester.id:
        raise AuthorizationError("Only the absent teacher or a manager can submit this leave")

    ensure_submission_window(
        absence_date=absence_date,
        now=now or local_now(),
        is_manager=requester.is_manager,
        window_start=settings.submission_window_start,
        window_end=settings.submission_window_end,
    )

    tenant_id = teacher.tenant_id
    covered = set(periods_for_leave_type(leave_type))
    slots = [
        slot
        for slot in TimetableService(db, tenant_id).get_slots(teacher.id, day_of_week(absence_date))
        if slot.period_number in covered
    ]
    already_active = _active_periods(
        db,
        tenant_id=tenant_id,
        teacher_id=teacher.id,
        on_date=absence_date,
        periods=[slot.period_number for slot in slots],
    )
    if slots and len(already_active) == len(slots):
        raise ConflictError(
            "Every requested period already has an active substitution",
            details={"periods": sorted(already_active)},
        )

    absence = AbsenceRequest(
        tenant_id=tenant_id,
        teacher_id=teacher.id,
        requested_by_id=requester.id,
        absence_date=absence_date,
        leave_type=leave_type,
        reason=reason,
        periods=sorted(covered),
    )
    db.add(absence)
    db.flush()

    policy = get_assignment_config(db, tenant_id)
    result = LeaveSubmissionResult(absence_request=absence, skipped_periods=sorted(already_active))

    # Sequential by period so later periods see the load added by earlier ones.
    for slot in slots:
        if slot.period_number in already_active:
            continue
        request = PeriodRequest(
            tenant_id=tenant_id,
            absent_teacher_id=teacher.id,
            subject_id=slot.subject_id,
            class_id=slot.class_id,
            substitution_date=absence_date,
            period_number=slot.period_number,
        )
        try:
            with db.begin_nested():
                record = assign_period(
                    db,
                    request=request,
                    policy=policy,
                    reason=reason,
                    requested_by_id=requester.id,
                    absence_request_id=absence.id,
                    room=slot.room,
                )
        except ConflictError:
            logger.warning("Period %d for teacher %s became active concurrently", slot.period_number, teacher.id)
            result.skipped_periods.append(slot.period_number)
            continue
        result.records.append(record)

    unassigned = [item.period_number for item in result.records if item.status == SubstitutionStatus.unassigned]
    if unassigned:
        notify_managers(
            db,
            tenant_id=tenant_id,
            event_type=NotificationEvent.substitution_unassigned,
            payload={
                "absence_request_id": absence.id,
                "absent_teacher_id": teacher.id,
                "date": absence_date.isoformat(),
                "periods": unassigned,
            },
        )

    log_activity(
        db,
        tenant_id=tenant_id,
        actor_id=requester.id,
        action="leave.submit",
        entity_type="absence_request",
        entity_id=absence.id,
        details={
            "teacher_id": teacher.id,
            "date": absence_date.isoformat(),
            "leave_type": leave_type.value,
            "periods_requested": result.periods_requested,
            "periods_assigned": result.periods_assigned,
            "skipped_periods": result.skipped_periods,
        },
    )
    logger.info(
        "Leave %s for teacher %s on %s: %d of %d periods covered",
        absence.id,
        teacher.id,
        absence_date,
        result.periods_assigned,
        result.periods_requested,
    )
    return result


def create_manual_substitution(
    db: Session,
    *,
    requester: User,
    absent_teacher_id: str,
    class_id: str,
    subject_id: str,
    substitution_date: date,
    period_number: int,
    reason: str,
    substitute_teacher_id: str | None = None,
    room: str | None = None,
    start_time: time | None = None,
    end_time: time | None = None,
    lesson_plan: str | None = None,
    special_instructions: str | None = None,
) -> SubstitutionRecord:
    """Record cover for a single period outside a leave submission.

    The record has no absence request. A named substitute must pass the same
    filters as an automatic pick; without one the best candidate is chosen and
    the record is left unassigned when nobody qualifies.
    """
    if not requester.is_manager:
        raise AuthorizationError("Only managers can create substitutions directly")
    reason = reason.strip()
    if len(reason) < 3:
        raise ValidationError("Reason must be at least 3 characters")

    tenant_id = requester.tenant_id
    teacher = db.get(Teacher, absent_teacher_id)
    if teacher is None or teacher.tenant_id != tenant_id:
        raise ResourceNotFoundError("Teacher", absent_teacher_id)
    school_class = db.get(SchoolClass, class_id)
    if school_class is None or school_class.tenant_id != tenant_id:
        raise ResourceNotFoundError("SchoolClass", class_id)

    # The class can only be covered once per period, whoever is absent.
    class_conflict = db.execute(
        select(SubstitutionRecord.id).where(
            SubstitutionRecord.tenant_id == tenant_id,
            SubstitutionRecord.class_id == class_id,
            SubstitutionRecord.substitution_date == substitution_date,
            SubstitutionRecord.period_number == period_number,
            SubstitutionRecord.status.not_in(list(INACTIVE_STATUSES)),
        )
    ).first()
    if class_conflict is not None:
        raise ConflictError(
            "Class already has an active substitution for this period",
            details={"class_id": class_id, "record_id": class_conflict.id},
        )

    request = PeriodRequest(
        tenant_id=tenant_id,
        absent_teacher_id=teacher.id,
        subject_id=subject_id,
        class_id=class_id,
        substitution_date=substitution_date,
        period_number=period_number,
    )
    policy = get_assignment_config(db, tenant_id)
    with db.begin_nested():
        record = assign_period(
            db,
            request=request,
            policy=policy,
            reason=reason,
            requested_by_id=requester.id,
            room=room,
            substitute_teacher_id=substitute_teacher_id,
        )
        record.start_time = start_time
        record.end_time = end_time
        record.lesson_plan = lesson_plan
        record.special_instructions = special_instructions
        db.flush()

    if record.status == SubstitutionStatus.unassigned:
        notify_managers(
            db,
            tenant_id=tenant_id,
            event_type=NotificationEvent.substitution_unassigned,
            payload={
                "record_id": record.id,
                "absent_teacher_id": teacher.id,
                "date": substitution_date.isoformat(),
                "periods": [period_number],
            },
            exclude_user_id=requester.id,
        )
    log_activity(
        db,
        tenant_id=tenant_id,
        actor_id=requester.id,
        action="substitution.create",
        entity_type="substitution_record",
        entity_id=record.id,
        details={
            "absent_teacher_id": teacher.id,
            "date": substitution_date.isoformat(),
            "period_number": period_number,
            "substitute_teacher_id": record.substitute_teacher_id,
            "manual": substitute_teacher_id is not None,
        },
    )
    return record
