from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import ResourceNotFoundError
from app.models.substitution_record import ASSIGNED_STATUSES, SubstitutionRecord, SubstitutionStatus
from app.models.teacher import Teacher
from app.services.config_store import get_assignment_config
from app.services.timetable import DAY_ORDER, TimetableService
from app.services.workload import current_substitution_counts

TOP_SUBSTITUTES_LIMIT = 5
MAX_PERIODS_PER_DAY = 9


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _load_records(
    db: Session,
    *,
    tenant_id: str,
    start_date: date | None,
    end_date: date | None,
) -> list[SubstitutionRecord]:
    query = select(SubstitutionRecord).where(SubstitutionRecord.tenant_id == tenant_id)
    if start_date is not None:
        query = query.where(SubstitutionRecord.substitution_date >= start_date)
    if end_date is not None:
        query = query.where(SubstitutionRecord.substitution_date <= end_date)
    return list(db.execute(query).scalars())


def average_response_hours(records: list[SubstitutionRecord]) -> float:
    """Mean hours between assignment and confirmation, over confirmed records."""
    spans = []
    for record in records:
        assigned = _as_utc(record.assigned_at)
        confirmed = _as_utc(record.confirmed_at)
        if assigned is None or confirmed is None:
            continue
        spans.append((confirmed - assigned).total_seconds() / 3600)
    if not spans:
        return 0.0
    return round(sum(spans) / len(spans), 2)


def substitution_overview(
    db: Session,
    *,
    tenant_id: str,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    records = _load_records(db, tenant_id=tenant_id, start_date=start_date, end_date=end_date)
    teachers = {
        item.id: item
        for item in db.execute(select(Teacher).where(Teacher.tenant_id == tenant_id)).scalars()
    }
    policy = get_assignment_config(db, tenant_id)
    workload = current_substitution_counts(db, tenant_id=tenant_id)

    by_status = Counter(record.status.value for record in records)
    substitutes = Counter(
        record.substitute_teacher_id
        for record in records
        if record.substitute_teacher_id and record.status in ASSIGNED_STATUSES
    )

    top_substitutes = [
        {
            "teacher_id": teacher_id,
            "teacher_name": teachers[teacher_id].name if teacher_id in teachers else "Unknown",
            "substitution_count": count,
        }
        for teacher_id, count in sorted(substitutes.items(), key=lambda item: (-item[1], item[0]))[
            :TOP_SUBSTITUTES_LIMIT
        ]
    ]

    teacher_workload = []
    for teacher in sorted(teachers.values(), key=lambda item: item.name):
        if not teacher.is_active:
            continue
        current = workload.get(teacher.id, 0)
        utilization = (current / policy.max_substitutions * 100) if policy.max_substitutions > 0 else 0.0
        teacher_workload.append(
            {
                "teacher_id": teacher.id,
                "teacher_name": teacher.name,
                "current_substitutions": current,
                "max_substitutions": policy.max_substitutions,
                "utilization_rate": round(utilization, 1),
            }
        )

    return {
        "total": len(records),
        "by_status": {item.value: by_status.get(item.value, 0) for item in SubstitutionStatus},
        "reasons": dict(Counter(record.reason for record in records)),
        "top_substitutes": top_substitutes,
        "subject_distribution": dict(Counter(record.subject_id for record in records)),
        "average_response_hours": average_response_hours(records),
        "teacher_workload": teacher_workload,
    }


def teacher_availability(
    db: Session,
    *,
    tenant_id: str,
    teacher_id: str,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    teacher = db.get(Teacher, teacher_id)
    if teacher is None or teacher.tenant_id != tenant_id:
        raise ResourceNotFoundError("Teacher", teacher_id)

    timetable = TimetableService(db, tenant_id)
    weekly_free_periods: dict[str, list[int]] = {}
    for day in DAY_ORDER:
        busy = {slot.period_number for slot in timetable.get_slots(teacher.id, day)}
        weekly_free_periods[day] = [
            period for period in range(1, MAX_PERIODS_PER_DAY + 1) if period not in busy
        ]

    query = (
        select(SubstitutionRecord)
        .where(
            SubstitutionRecord.tenant_id == tenant_id,
            SubstitutionRecord.substitute_teacher_id == teacher.id,
            SubstitutionRecord.status.in_([SubstitutionStatus.pending, SubstitutionStatus.confirmed]),
        )
        .order_by(SubstitutionRecord.substitution_date, SubstitutionRecord.period_number)
    )
    if start_date is not None:
        query = query.where(SubstitutionRecord.substitution_date >= start_date)
    if end_date is not None:
        query = query.where(SubstitutionRecord.substitution_date <= end_date)

    policy = get_assignment_config(db, tenant_id)
    current = current_substitution_counts(db, tenant_id=tenant_id).get(teacher.id, 0)
    return {
        "teacher": teacher,
        "weekly_free_periods": weekly_free_periods,
        "current_substitutions": current,
        "max_substitutions": policy.max_substitutions,
        "permanently_excluded": teacher.id in policy.excluded_teacher_ids,
        "upcoming_substitutions": list(db.execute(query).scalars()),
    }
