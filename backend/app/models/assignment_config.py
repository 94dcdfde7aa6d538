from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class AssignmentConfig(Base):
    __tablename__ = "assignment_config"

    tenant_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    subject_match_weight: Mapped[int] = mapped_column(Integer, nullable=False, default=40)
    class_teacher_weight: Mapped[int] = mapped_column(Integer, nullable=False, default=20)
    daily_load_pivot: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    daily_load_bonus: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    active_substitution_penalty: Mapped[int] = mapped_column(Integer, nullable=False, default=15)
    min_substitutions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_substitutions: Mapped[int] = mapped_column(Integer, nullable=False, default=8)
    max_daily_periods_exclusion: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    excluded_teacher_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    release_capacity_on_completion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
