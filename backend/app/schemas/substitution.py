from datetime import date, datetime, time
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from app.models.absence_request import LeaveType
from app.models.substitution_record import Active, SubstitutionStatus, SupersededBy


class LeaveSubmitRequest(BaseModel):
    teacher_id: str | None = Field(default=None, min_length=1, max_length=36)
    absence_date: date = Field(validation_alias=AliasChoices("date", "absence_date"))
    leave_type: LeaveType
    reason: str = Field(min_length=3, max_length=1000)


class LineageOut(BaseModel):
    kind: Literal["active", "superseded"]
    record_id: str | None = None


class SubstitutionRecordOut(BaseModel):
    id: str
    absence_request_id: str | None = None
    absent_teacher_id: str
    substitute_teacher_id: str | None = None
    class_id: str
    subject_id: str
    substitution_date: date
    period_number: int
    room: str | None = None
    start_time: time | None = None
    end_time: time | None = None
    lesson_plan: str | None = None
    special_instructions: str | None = None
    reason: str
    status: SubstitutionStatus
    score: int | None = None
    requested_by_id: str
    confirmed_by_id: str | None = None
    cancelled_by_id: str | None = None
    cancellation_reason: str | None = None
    replacement_reason: str | None = None
    supersedes_id: str | None = None
    superseded_by_id: str | None = None
    attendance_marked: bool = False
    lessons_completed: bool = False
    students_behavior: str | None = None
    feedback: str | None = None
    assigned_at: datetime | None = None
    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    lineage: LineageOut

    model_config = {"from_attributes": True}

    @field_validator("lineage", mode="before")
    @classmethod
    def convert_lineage(cls, value):
        match value:
            case SupersededBy(record_id=successor_id):
                return {"kind": "superseded", "record_id": successor_id}
            case Active():
                return {"kind": "active"}
        return value


class LeaveSubmitResponse(BaseModel):
    success: bool = True
    absence_request_id: str
    message: str
    periods_requested: int = Field(description="New records written; periods listed in skipped_periods are not counted")
    periods_assigned: int
    skipped_periods: list[int] = Field(default_factory=list)
    substitutions: list[SubstitutionRecordOut] = Field(default_factory=list)


class CancelRequest(BaseModel):
    reason: str = Field(min_length=3, max_length=1000)


class ReplacementRequest(BaseModel):
    reason: str = Field(min_length=3, max_length=1000)


class ReplacementResponse(BaseModel):
    original: SubstitutionRecordOut
    replacement: SubstitutionRecordOut
    replacement_found: bool


class RematchRequest(BaseModel):
    substitute_teacher_id: str | None = Field(default=None, min_length=1, max_length=36)


class RematchResponse(BaseModel):
    record: SubstitutionRecordOut
    previous: SubstitutionRecordOut | None = None
    assigned: bool


class CompleteRequest(BaseModel):
    attendance_marked: bool = False
    lessons_completed: bool = False
    students_behavior: str | None = Field(default=None, max_length=50)
    feedback: str | None = Field(default=None, max_length=2000)


class HandoverFields(BaseModel):
    room: str | None = Field(default=None, max_length=100)
    start_time: time | None = None
    end_time: time | None = None
    lesson_plan: str | None = Field(default=None, max_length=5000)
    special_instructions: str | None = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def validate_times(self):
        if self.start_time is not None and self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class ManualSubstitutionCreate(HandoverFields):
    absent_teacher_id: str = Field(min_length=1, max_length=36)
    class_id: str = Field(min_length=1, max_length=36)
    subject_id: str = Field(min_length=1, max_length=36)
    substitution_date: date = Field(validation_alias=AliasChoices("date", "substitution_date"))
    period_number: int = Field(validation_alias=AliasChoices("period", "period_number"), ge=1, le=9)
    reason: str = Field(min_length=3, max_length=1000)
    substitute_teacher_id: str | None = Field(default=None, min_length=1, max_length=36)


class HandoverUpdate(HandoverFields):
    pass


class CandidateOut(BaseModel):
    teacher_id: str
    teacher_name: str | None = None
    score: int
    subject_match: bool
    is_class_teacher: bool
    periods_today: int
    current_substitutions: int


class TopSubstituteOut(BaseModel):
    teacher_id: str
    teacher_name: str
    substitution_count: int


class TeacherWorkloadOut(BaseModel):
    teacher_id: str
    teacher_name: str
    current_substitutions: int
    max_substitutions: int
    utilization_rate: float


class SubstitutionStatsOut(BaseModel):
    total: int
    by_status: dict[str, int]
    reasons: dict[str, int]
    top_substitutes: list[TopSubstituteOut]
    subject_distribution: dict[str, int]
    average_response_hours: float
    teacher_workload: list[TeacherWorkloadOut]


class TeacherOut(BaseModel):
    id: str
    name: str
    email: str | None = None
    subject_ids: list[str] = Field(default_factory=list)
    is_active: bool

    model_config = {"from_attributes": True}


class TeacherAvailabilityOut(BaseModel):
    teacher: TeacherOut
    weekly_free_periods: dict[str, list[int]]
    current_substitutions: int
    max_substitutions: int
    permanently_excluded: bool
    upcoming_substitutions: list[SubstitutionRecordOut]
