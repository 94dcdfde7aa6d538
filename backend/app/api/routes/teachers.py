from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db
from app.core.exceptions import AuthorizationError
from app.db.persistence import read_with_retry
from app.models.user import User
from app.schemas.substitution import SubstitutionRecordOut, TeacherAvailabilityOut, TeacherOut
from app.services.reporting import teacher_availability

router = APIRouter()


@router.get("/teachers/{teacher_id}/availability", response_model=TeacherAvailabilityOut)
def get_teacher_availability(
    teacher_id: str,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TeacherAvailabilityOut:
    view = read_with_retry(
        db,
        lambda: teacher_availability(
            db,
            tenant_id=current_user.tenant_id,
            teacher_id=teacher_id,
            start_date=start_date,
            end_date=end_date,
        ),
    )
    teacher = view["teacher"]
    if not current_user.is_manager and teacher.user_id != current_user.id:
        raise AuthorizationError("Teachers can only view their own availability")
    return TeacherAvailabilityOut(
        teacher=TeacherOut.model_validate(teacher),
        weekly_free_periods=view["weekly_free_periods"],
        current_substitutions=view["current_substitutions"],
        max_substitutions=view["max_substitutions"],
        permanently_excluded=view["permanently_excluded"],
        upcoming_substitutions=[SubstitutionRecordOut.model_validate(item) for item in view["upcoming_substitutions"]],
    )
