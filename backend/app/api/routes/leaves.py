from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db
from app.db.persistence import commit_or_raise
from app.models.user import User
from app.schemas.substitution import LeaveSubmitRequest, LeaveSubmitResponse, SubstitutionRecordOut
from app.services.intake import submit_leave

router = APIRouter()


@router.post("/leaves", response_model=LeaveSubmitResponse, status_code=status.HTTP_201_CREATED)
def create_leave(
    payload: LeaveSubmitRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> LeaveSubmitResponse:
    result = submit_leave(
        db,
        requester=current_user,
        teacher_id=payload.teacher_id,
        absence_date=payload.absence_date,
        leave_type=payload.leave_type,
        reason=payload.reason,
    )
    commit_or_raise(db)
    return LeaveSubmitResponse(
        absence_request_id=result.absence_request.id,
        message=result.message,
        periods_requested=result.periods_requested,
        periods_assigned=result.periods_assigned,
        skipped_periods=result.skipped_periods,
        substitutions=[SubstitutionRecordOut.model_validate(item) for item in result.records],
    )
