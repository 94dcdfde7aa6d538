from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_manager
from app.db.persistence import commit_or_raise, read_with_retry
from app.models.substitution_record import SubstitutionRecord, SubstitutionStatus
from app.models.teacher import Teacher
from app.models.user import User
from app.schemas.substitution import (
    CancelRequest,
    CandidateOut,
    CompleteRequest,
    HandoverUpdate,
    ManualSubstitutionCreate,
    RematchRequest,
    RematchResponse,
    ReplacementRequest,
    ReplacementResponse,
    SubstitutionRecordOut,
    SubstitutionStatsOut,
)
from app.services.candidates import PeriodRequest, evaluate_period
from app.services.config_store import get_assignment_config
from app.services.intake import create_manual_substitution
from app.services.lifecycle import (
    cancel_substitution,
    complete_substitution,
    confirm_substitution,
    get_record,
    rematch_substitution,
    request_replacement,
    update_handover,
)
from app.services.reporting import substitution_overview

router = APIRouter()


def _teacher_id_for_user(db: Session, user: User) -> str | None:
    return db.execute(
        select(Teacher.id).where(Teacher.tenant_id == user.tenant_id, Teacher.user_id == user.id)
    ).scalar_one_or_none()


def _record_out(db: Session, record: SubstitutionRecord) -> SubstitutionRecordOut:
    db.refresh(record)
    return SubstitutionRecordOut.model_validate(record)


@router.get("/substitutions", response_model=list[SubstitutionRecordOut])
def list_substitutions(
    on_date: date | None = Query(default=None, alias="date"),
    record_status: SubstitutionStatus | None = Query(default=None, alias="status"),
    teacher_id: str | None = Query(default=None),
    class_id: str | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=1000),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[SubstitutionRecordOut]:
    query = select(SubstitutionRecord).where(SubstitutionRecord.tenant_id == current_user.tenant_id)
    if not current_user.is_manager:
        own_teacher_id = _teacher_id_for_user(db, current_user)
        if own_teacher_id is None:
            return []
        query = query.where(
            or_(
                SubstitutionRecord.absent_teacher_id == own_teacher_id,
                SubstitutionRecord.substitute_teacher_id == own_teacher_id,
            )
        )
    if on_date is not None:
        query = query.where(SubstitutionRecord.substitution_date == on_date)
    if record_status is not None:
        query = query.where(SubstitutionRecord.status == record_status)
    if teacher_id is not None:
        query = query.where(
            or_(
                SubstitutionRecord.absent_teacher_id == teacher_id,
                SubstitutionRecord.substitute_teacher_id == teacher_id,
            )
        )
    if class_id is not None:
        query = query.where(SubstitutionRecord.class_id == class_id)
    query = query.order_by(
        SubstitutionRecord.substitution_date.desc(),
        SubstitutionRecord.period_number,
        SubstitutionRecord.created_at,
    ).limit(limit)

    records = read_with_retry(db, lambda: list(db.execute(query).scalars()))
    return [SubstitutionRecordOut.model_validate(item) for item in records]


@router.post("/substitutions", response_model=SubstitutionRecordOut, status_code=status.HTTP_201_CREATED)
def create_substitution(
    payload: ManualSubstitutionCreate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> SubstitutionRecordOut:
    record = create_manual_substitution(
        db,
        requester=current_user,
        absent_teacher_id=payload.absent_teacher_id,
        class_id=payload.class_id,
        subject_id=payload.subject_id,
        substitution_date=payload.substitution_date,
        period_number=payload.period_number,
        reason=payload.reason,
        substitute_teacher_id=payload.substitute_teacher_id,
        room=payload.room,
        start_time=payload.start_time,
        end_time=payload.end_time,
        lesson_plan=payload.lesson_plan,
        special_instructions=payload.special_instructions,
    )
    commit_or_raise(db)
    return _record_out(db, record)


@router.get("/substitutions/available", response_model=list[CandidateOut])
def list_available_substitutes(
    on_date: date = Query(alias="date"),
    period_number: int = Query(alias="period", ge=1, le=9),
    subject_id: str = Query(min_length=1),
    class_id: str = Query(min_length=1),
    absent_teacher_id: str = Query(default="", alias="absent_teacher_id"),
    exclude: list[str] = Query(default=[]),
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> list[CandidateOut]:
    request = PeriodRequest(
        tenant_id=current_user.tenant_id,
        absent_teacher_id=absent_teacher_id,
        subject_id=subject_id,
        class_id=class_id,
        substitution_date=on_date,
        period_number=period_number,
        excluded_teacher_ids=frozenset(exclude),
    )

    def load() -> list[CandidateOut]:
        policy = get_assignment_config(db, current_user.tenant_id)
        ranked = evaluate_period(db, request, policy)
        names = dict(
            db.execute(select(Teacher.id, Teacher.name).where(Teacher.tenant_id == current_user.tenant_id)).all()
        )
        return [
            CandidateOut(
                teacher_id=item.teacher_id,
                teacher_name=names.get(item.teacher_id),
                score=item.score,
                subject_match=subject_id in item.snapshot.subject_ids,
                is_class_teacher=item.snapshot.is_class_teacher,
                periods_today=item.snapshot.periods_today,
                current_substitutions=item.snapshot.current_substitutions,
            )
            for item in ranked
        ]

    return read_with_retry(db, load)


@router.get("/substitutions/stats/overview", response_model=SubstitutionStatsOut)
def substitution_stats(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> SubstitutionStatsOut:
    overview = read_with_retry(
        db,
        lambda: substitution_overview(
            db,
            tenant_id=current_user.tenant_id,
            start_date=start_date,
            end_date=end_date,
        ),
    )
    return SubstitutionStatsOut(**overview)


@router.get("/substitutions/{record_id}", response_model=SubstitutionRecordOut)
def get_substitution(
    record_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SubstitutionRecordOut:
    record = read_with_retry(db, lambda: get_record(db, tenant_id=current_user.tenant_id, record_id=record_id))
    return SubstitutionRecordOut.model_validate(record)


@router.put("/substitutions/{record_id}", response_model=SubstitutionRecordOut)
def update_substitution(
    record_id: str,
    payload: HandoverUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SubstitutionRecordOut:
    record = update_handover(db, actor=current_user, record_id=record_id, values=payload.model_dump(exclude_unset=True))
    commit_or_raise(db)
    return _record_out(db, record)


@router.post("/substitutions/{record_id}/confirm", response_model=SubstitutionRecordOut)
def confirm(
    record_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SubstitutionRecordOut:
    record = confirm_substitution(db, actor=current_user, record_id=record_id)
    commit_or_raise(db)
    return _record_out(db, record)


@router.post("/substitutions/{record_id}/cancel", response_model=SubstitutionRecordOut)
def cancel(
    record_id: str,
    payload: CancelRequest,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> SubstitutionRecordOut:
    record = cancel_substitution(db, actor=current_user, record_id=record_id, reason=payload.reason)
    commit_or_raise(db)
    return _record_out(db, record)


@router.post("/substitutions/{record_id}/replacement", response_model=ReplacementResponse)
def replacement(
    record_id: str,
    payload: ReplacementRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ReplacementResponse:
    result = request_replacement(db, actor=current_user, record_id=record_id, reason=payload.reason)
    commit_or_raise(db)
    return ReplacementResponse(
        original=_record_out(db, result.original),
        replacement=_record_out(db, result.replacement),
        replacement_found=result.replacement_found,
    )


@router.post("/substitutions/{record_id}/rematch", response_model=RematchResponse)
def rematch(
    record_id: str,
    payload: RematchRequest | None = None,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> RematchResponse:
    result = rematch_substitution(
        db,
        actor=current_user,
        record_id=record_id,
        substitute_teacher_id=payload.substitute_teacher_id if payload else None,
    )
    commit_or_raise(db)
    return RematchResponse(
        record=_record_out(db, result.record),
        previous=_record_out(db, result.previous) if result.previous is not None else None,
        assigned=result.assigned,
    )


@router.post("/substitutions/{record_id}/complete", response_model=SubstitutionRecordOut)
def complete(
    record_id: str,
    payload: CompleteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SubstitutionRecordOut:
    record = complete_substitution(
        db,
        actor=current_user,
        record_id=record_id,
        attendance_marked=payload.attendance_marked,
        lessons_completed=payload.lessons_completed,
        students_behavior=payload.students_behavior,
        feedback=payload.feedback,
    )
    commit_or_raise(db)
    return _record_out(db, record)
