import uuid
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Enum as SAEnum, Integer, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class SubstitutionStatus(str, Enum):
    unassigned = "unassigned"
    pending = "pending"
    confirmed = "confirmed"
    substituted = "substituted"
    cancelled = "cancelled"
    completed = "completed"


INACTIVE_STATUSES = frozenset({SubstitutionStatus.cancelled, SubstitutionStatus.substituted})
ASSIGNED_STATUSES = frozenset(
    {SubstitutionStatus.pending, SubstitutionStatus.confirmed, SubstitutionStatus.completed}
)


@dataclass(frozen=True)
class Active:
    pass


@dataclass(frozen=True)
class SupersededBy:
    record_id: str


Lineage = Active | SupersededBy


def active_slot_key(absent_teacher_id: str, substitution_date: date, period_number: int) -> str:
    return f"{absent_teacher_id}:{substitution_date.isoformat()}:{period_number}"


class SubstitutionRecord(Base):
    __tablename__ = "substitution_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    absence_request_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    absent_teacher_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    substitute_teacher_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    class_id: Mapped[str] = mapped_column(String(36), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(36), nullable=False)
    substitution_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    period_number: Mapped[int] = mapped_column(Integer, nullable=False)
    room: Mapped[str | None] = mapped_column(String(100), nullable=True)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    lesson_plan: Mapped[str | None] = mapped_column(Text, nullable=True)
    special_instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[SubstitutionStatus] = mapped_column(
        SAEnum(SubstitutionStatus, name="substitution_status"),
        nullable=False,
        default=SubstitutionStatus.unassigned,
        index=True,
    )
    # Set while the record is active, cleared on cancel/substitute; NULLs never collide.
    active_slot_key: Mapped[str | None] = mapped_column(String(120), nullable=True, unique=True)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    requested_by_id: Mapped[str] = mapped_column(String(36), nullable=False)
    confirmed_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    cancelled_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    replacement_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    supersedes_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    superseded_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    attendance_marked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    lessons_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    students_behavior: Mapped[str | None] = mapped_column(String(50), nullable=True)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_STATUSES

    @property
    def lineage(self) -> Lineage:
        if self.superseded_by_id:
            return SupersededBy(self.superseded_by_id)
        return Active()
