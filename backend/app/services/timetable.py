from __future__ import annotations

from datetime import date

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.school_class import SchoolClass
from app.models.timetable_slot import TimetableSlot

DAY_ORDER = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def day_of_week(value: date) -> str:
    return DAY_ORDER[value.weekday()]


class TimetableService:
    """Read-only view over the tenant's published timetable."""

    def __init__(self, db: Session, tenant_id: str) -> None:
        self.db = db
        self.tenant_id = tenant_id

    def get_slots(self, teacher_id: str, day: str) -> list[TimetableSlot]:
        return list(
            self.db.execute(
                select(TimetableSlot)
                .where(
                    TimetableSlot.tenant_id == self.tenant_id,
                    TimetableSlot.teacher_id == teacher_id,
                    TimetableSlot.day_of_week == day,
                )
                .order_by(TimetableSlot.period_number)
            ).scalars()
        )

    def is_free(self, teacher_id: str, day: str, period_number: int) -> bool:
        count = self.db.execute(
            select(func.count(TimetableSlot.id)).where(
                TimetableSlot.tenant_id == self.tenant_id,
                TimetableSlot.teacher_id == teacher_id,
                TimetableSlot.day_of_week == day,
                TimetableSlot.period_number == period_number,
            )
        ).scalar_one()
        return count == 0

    def get_class_teacher(self, class_id: str) -> str | None:
        return self.db.execute(
            select(SchoolClass.class_teacher_id).where(
                SchoolClass.tenant_id == self.tenant_id,
                SchoolClass.id == class_id,
            )
        ).scalar_one_or_none()

    def busy_teacher_ids(self, day: str, period_number: int) -> set[str]:
        return set(
            self.db.execute(
                select(TimetableSlot.teacher_id).where(
                    TimetableSlot.tenant_id == self.tenant_id,
                    TimetableSlot.day_of_week == day,
                    TimetableSlot.period_number == period_number,
                )
            ).scalars()
        )

    def teaching_period_counts(self, day: str) -> dict[str, int]:
        rows = self.db.execute(
            select(TimetableSlot.teacher_id, func.count(TimetableSlot.id))
            .where(
                TimetableSlot.tenant_id == self.tenant_id,
                TimetableSlot.day_of_week == day,
            )
            .group_by(TimetableSlot.teacher_id)
        ).all()
        return {teacher_id: count for teacher_id, count in rows}
