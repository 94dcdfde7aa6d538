from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator


class AssignmentConfigOut(BaseModel):
    subject_match_weight: int
    class_teacher_weight: int
    daily_load_pivot: int
    daily_load_bonus: int
    active_substitution_penalty: int
    min_substitutions: int
    max_substitutions: int
    max_daily_periods_exclusion: int
    excluded_teacher_ids: list[str] = Field(default_factory=list)
    release_capacity_on_completion: bool
    updated_by_id: str | None = None
    updated_at: datetime | None = None


class AssignmentConfigUpdate(BaseModel):
    subject_match_weight: int | None = Field(default=None, ge=0, le=1000)
    class_teacher_weight: int | None = Field(default=None, ge=0, le=1000)
    daily_load_pivot: int | None = Field(default=None, ge=0, le=20)
    daily_load_bonus: int | None = Field(default=None, ge=0, le=1000)
    active_substitution_penalty: int | None = Field(default=None, ge=0, le=1000)
    min_substitutions: int | None = Field(default=None, ge=0, le=100)
    max_substitutions: int | None = Field(default=None, ge=1, le=100)
    max_daily_periods_exclusion: int | None = Field(default=None, ge=0, le=20)
    excluded_teacher_ids: list[str] | None = None
    release_capacity_on_completion: bool | None = None

    @field_validator("excluded_teacher_ids")
    @classmethod
    def normalize_excluded(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        cleaned = sorted({item.strip() for item in value if item and item.strip()})
        return cleaned

    @model_validator(mode="after")
    def validate_bounds(self) -> "AssignmentConfigUpdate":
        if (
            self.min_substitutions is not None
            and self.max_substitutions is not None
            and self.min_substitutions >= self.max_substitutions
        ):
            raise ValueError("min_substitutions must be lower than max_substitutions")
        return self
