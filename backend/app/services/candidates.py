"""Substitute candidate evaluation.

Eligibility and scoring are pure functions over ``CandidateSnapshot`` values so
they can be exercised without a database. ``load_candidate_snapshots`` is the
only part that reads the store.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.absence_request import AbsenceRequest
from app.models.substitution_record import ASSIGNED_STATUSES, SubstitutionRecord
from app.models.teacher import Teacher
from app.services.config_store import AssignmentPolicy
from app.services.timetable import TimetableService, day_of_week
from app.services.workload import current_substitution_counts


@dataclass(frozen=True)
class CandidateSnapshot:
    teacher_id: str
    subject_ids: tuple[str, ...] = ()
    periods_today: int = 0
    current_substitutions: int = 0
    is_class_teacher: bool = False
    has_slot_at_period: bool = False
    busy_substituting: bool = False
    on_leave: bool = False


@dataclass(frozen=True)
class ScoredCandidate:
    snapshot: CandidateSnapshot
    score: int

    @property
    def teacher_id(self) -> str:
        return self.snapshot.teacher_id


@dataclass(frozen=True)
class PeriodRequest:
    tenant_id: str
    absent_teacher_id: str
    subject_id: str
    class_id: str
    substitution_date: date
    period_number: int
    excluded_teacher_ids: frozenset[str] = field(default_factory=frozenset)


def rejection_reason(
    snapshot: CandidateSnapshot,
    *,
    absent_teacher_id: str,
    policy: AssignmentPolicy,
    excluded_teacher_ids: frozenset[str] = frozenset(),
) -> str | None:
    if snapshot.teacher_id == absent_teacher_id:
        return "absent_teacher"
    if snapshot.teacher_id in excluded_teacher_ids:
        return "excluded_for_request"
    if snapshot.current_substitutions < policy.min_substitutions:
        return "below_min_substitutions"
    if snapshot.current_substitutions >= policy.max_substitutions:
        return "at_max_substitutions"
    if not snapshot.periods_today < policy.max_daily_periods_exclusion + 1:
        return "overloaded_today"
    if snapshot.teacher_id in policy.excluded_teacher_ids:
        return "permanently_excluded"
    if snapshot.has_slot_at_period:
        return "timetabled"
    if snapshot.busy_substituting:
        return "already_substituting"
    if snapshot.on_leave:
        return "on_leave"
    return None


def is_eligible(
    snapshot: CandidateSnapshot,
    *,
    absent_teacher_id: str,
    policy: AssignmentPolicy,
    excluded_teacher_ids: frozenset[str] = frozenset(),
) -> bool:
    reason = rejection_reason(
        snapshot,
        absent_teacher_id=absent_teacher_id,
        policy=policy,
        excluded_teacher_ids=excluded_teacher_ids,
    )
    return reason is None


def score_candidate(snapshot: CandidateSnapshot, *, subject_id: str, policy: AssignmentPolicy) -> int:
    score = 0
    if subject_id in snapshot.subject_ids:
        score += policy.subject_match_weight
    if snapshot.is_class_teacher:
        score += policy.class_teacher_weight
    if snapshot.periods_today < policy.daily_load_pivot:
        score += (policy.daily_load_pivot - snapshot.periods_today) * policy.daily_load_bonus
    score -= snapshot.current_substitutions * policy.active_substitution_penalty
    return score


def _ranking_key(candidate: ScoredCandidate) -> tuple[int, int, str]:
    return (-candidate.score, candidate.snapshot.current_substitutions, candidate.snapshot.teacher_id)


def rank_candidates(
    snapshots: list[CandidateSnapshot],
    *,
    subject_id: str,
    absent_teacher_id: str,
    policy: AssignmentPolicy,
    excluded_teacher_ids: frozenset[str] = frozenset(),
) -> list[ScoredCandidate]:
    ranked = [
        ScoredCandidate(snapshot=snapshot, score=score_candidate(snapshot, subject_id=subject_id, policy=policy))
        for snapshot in snapshots
        if is_eligible(
            snapshot,
            absent_teacher_id=absent_teacher_id,
            policy=policy,
            excluded_teacher_ids=excluded_teacher_ids,
        )
    ]
    ranked.sort(key=_ranking_key)
    return ranked


def select_best(
    snapshots: list[CandidateSnapshot],
    *,
    subject_id: str,
    absent_teacher_id: str,
    policy: AssignmentPolicy,
    excluded_teacher_ids: frozenset[str] = frozenset(),
) -> ScoredCandidate | None:
    ranked = rank_candidates(
        snapshots,
        subject_id=subject_id,
        absent_teacher_id=absent_teacher_id,
        policy=policy,
        excluded_teacher_ids=excluded_teacher_ids,
    )
    return ranked[0] if ranked else None


def _teachers_on_leave(db: Session, *, tenant_id: str, on_date: date, period_number: int) -> set[str]:
    rows = db.execute(
        select(AbsenceRequest.teacher_id, AbsenceRequest.periods).where(
            AbsenceRequest.tenant_id == tenant_id,
            AbsenceRequest.absence_date == on_date,
        )
    ).all()
    return {teacher_id for teacher_id, periods in rows if period_number in (periods or [])}


def load_candidate_snapshots(db: Session, request: PeriodRequest) -> list[CandidateSnapshot]:
    timetable = TimetableService(db, request.tenant_id)
    day = day_of_week(request.substitution_date)

    teachers = list(
        db.execute(
            select(Teacher)
            .where(Teacher.tenant_id == request.tenant_id, Teacher.is_active.is_(True))
            .order_by(Teacher.id)
        ).scalars()
    )
    teaching_counts = timetable.teaching_period_counts(day)
    timetabled_now = timetable.busy_teacher_ids(day, request.period_number)
    class_teacher_id = timetable.get_class_teacher(request.class_id)
    workload = current_substitution_counts(db, tenant_id=request.tenant_id)
    on_leave = _teachers_on_leave(
        db,
        tenant_id=request.tenant_id,
        on_date=request.substitution_date,
        period_number=request.period_number,
    )

    assignments = db.execute(
        select(SubstitutionRecord.substitute_teacher_id, SubstitutionRecord.period_number).where(
            SubstitutionRecord.tenant_id == request.tenant_id,
            SubstitutionRecord.substitution_date == request.substitution_date,
            SubstitutionRecord.status.in_(list(ASSIGNED_STATUSES)),
            SubstitutionRecord.substitute_teacher_id.is_not(None),
        )
    ).all()
    substitutions_today = Counter(teacher_id for teacher_id, _ in assignments)
    substituting_now = {teacher_id for teacher_id, period in assignments if period == request.period_number}

    return [
        CandidateSnapshot(
            teacher_id=teacher.id,
            subject_ids=tuple(teacher.subject_ids or ()),
            periods_today=teaching_counts.get(teacher.id, 0) + substitutions_today.get(teacher.id, 0),
            current_substitutions=workload.get(teacher.id, 0),
            is_class_teacher=class_teacher_id is not None and teacher.id == class_teacher_id,
            has_slot_at_period=teacher.id in timetabled_now,
            busy_substituting=teacher.id in substituting_now,
            on_leave=teacher.id in on_leave,
        )
        for teacher in teachers
    ]


def evaluate_period(db: Session, request: PeriodRequest, policy: AssignmentPolicy) -> list[ScoredCandidate]:
    snapshots = load_candidate_snapshots(db, request)
    return rank_candidates(
        snapshots,
        subject_id=request.subject_id,
        absent_teacher_id=request.absent_teacher_id,
        policy=policy,
        excluded_teacher_ids=request.excluded_teacher_ids,
    )
