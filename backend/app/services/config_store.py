from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from app.core.exceptions import ValidationError
from app.models.assignment_config import AssignmentConfig


@dataclass(frozen=True)
class AssignmentPolicy:
    subject_match_weight: int = 40
    class_teacher_weight: int = 20
    daily_load_pivot: int = 7
    daily_load_bonus: int = 5
    active_substitution_penalty: int = 15
    min_substitutions: int = 0
    max_substitutions: int = 8
    max_daily_periods_exclusion: int = 7
    excluded_teacher_ids: frozenset[str] = field(default_factory=frozenset)
    release_capacity_on_completion: bool = False


DEFAULT_ASSIGNMENT_POLICY = AssignmentPolicy()

POLICY_FIELDS = (
    "subject_match_weight",
    "class_teacher_weight",
    "daily_load_pivot",
    "daily_load_bonus",
    "active_substitution_penalty",
    "min_substitutions",
    "max_substitutions",
    "max_daily_periods_exclusion",
    "release_capacity_on_completion",
)


def build_policy(record: AssignmentConfig | None) -> AssignmentPolicy:
    if record is None:
        return DEFAULT_ASSIGNMENT_POLICY
    values = {name: getattr(record, name) for name in POLICY_FIELDS}
    return AssignmentPolicy(
        excluded_teacher_ids=frozenset(record.excluded_teacher_ids or []),
        **values,
    )


def get_assignment_config(db: Session, tenant_id: str) -> AssignmentPolicy:
    return build_policy(db.get(AssignmentConfig, tenant_id))


def update_assignment_config(
    db: Session,
    *,
    tenant_id: str,
    values: dict,
    updated_by_id: str,
) -> AssignmentPolicy:
    record = db.get(AssignmentConfig, tenant_id)
    if record is None:
        defaults = {name: getattr(DEFAULT_ASSIGNMENT_POLICY, name) for name in POLICY_FIELDS}
        record = AssignmentConfig(tenant_id=tenant_id, excluded_teacher_ids=[], **defaults)
        db.add(record)

    for name in POLICY_FIELDS:
        if name in values:
            setattr(record, name, values[name])
    if "excluded_teacher_ids" in values:
        record.excluded_teacher_ids = sorted(set(values["excluded_teacher_ids"]))
    if record.min_substitutions >= record.max_substitutions:
        raise ValidationError(
            "min_substitutions must be lower than max_substitutions",
            details={"min_substitutions": record.min_substitutions, "max_substitutions": record.max_substitutions},
        )
    record.updated_by_id = updated_by_id
    db.flush()
    return build_policy(record)
