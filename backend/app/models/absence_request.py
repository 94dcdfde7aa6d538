import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class LeaveType(str, Enum):
    full_day = "full_day"
    on_duty = "on_duty"
    half_day_morning = "half_day_morning"
    half_day_afternoon = "half_day_afternoon"
    permission_morning = "permission_morning"
    permission_evening = "permission_evening"


class AbsenceRequest(Base):
    __tablename__ = "absence_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    teacher_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    requested_by_id: Mapped[str] = mapped_column(String(36), nullable=False)
    absence_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    leave_type: Mapped[LeaveType] = mapped_column(SAEnum(LeaveType, name="leave_type"), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    periods: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
