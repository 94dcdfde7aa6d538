from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_manager
from app.db.persistence import commit_or_raise, read_with_retry
from app.models.assignment_config import AssignmentConfig
from app.models.user import User
from app.schemas.settings import AssignmentConfigOut, AssignmentConfigUpdate
from app.services.audit import log_activity
from app.services.config_store import AssignmentPolicy, get_assignment_config, update_assignment_config

router = APIRouter()


def build_config_out(policy: AssignmentPolicy, record: AssignmentConfig | None) -> AssignmentConfigOut:
    return AssignmentConfigOut(
        subject_match_weight=policy.subject_match_weight,
        class_teacher_weight=policy.class_teacher_weight,
        daily_load_pivot=policy.daily_load_pivot,
        daily_load_bonus=policy.daily_load_bonus,
        active_substitution_penalty=policy.active_substitution_penalty,
        min_substitutions=policy.min_substitutions,
        max_substitutions=policy.max_substitutions,
        max_daily_periods_exclusion=policy.max_daily_periods_exclusion,
        excluded_teacher_ids=sorted(policy.excluded_teacher_ids),
        release_capacity_on_completion=policy.release_capacity_on_completion,
        updated_by_id=record.updated_by_id if record is not None else None,
        updated_at=record.updated_at if record is not None else None,
    )


@router.get("/settings/assignment", response_model=AssignmentConfigOut)
def get_assignment_settings(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AssignmentConfigOut:
    tenant_id = current_user.tenant_id
    policy = read_with_retry(db, lambda: get_assignment_config(db, tenant_id))
    return build_config_out(policy, db.get(AssignmentConfig, tenant_id))


@router.put("/settings/assignment", response_model=AssignmentConfigOut)
def update_assignment_settings(
    payload: AssignmentConfigUpdate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
) -> AssignmentConfigOut:
    values = payload.model_dump(exclude_none=True)
    update_assignment_config(
        db,
        tenant_id=current_user.tenant_id,
        values=values,
        updated_by_id=current_user.id,
    )
    log_activity(
        db,
        tenant_id=current_user.tenant_id,
        actor_id=current_user.id,
        action="settings.assignment.update",
        entity_type="assignment_config",
        entity_id=current_user.tenant_id,
        details={"fields": sorted(values)},
    )
    commit_or_raise(db)

    record = db.get(AssignmentConfig, current_user.tenant_id)
    db.refresh(record)
    return build_config_out(get_assignment_config(db, current_user.tenant_id), record)
