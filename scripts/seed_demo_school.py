"""Seed a small demo school: accounts, teachers, classes and a weekly timetable.

Run:
  PYTHONPATH=backend python scripts/seed_demo_school.py

Prints a bearer token per account so the substitution API can be exercised
straight away.
"""

from __future__ import annotations

import os
from typing import Iterable

from sqlalchemy import delete, select

from app.core.security import create_access_token
from app.db.bootstrap import ensure_runtime_schema_compatibility
from app.db.session import SessionLocal
from app.models.school_class import SchoolClass
from app.models.teacher import Teacher
from app.models.timetable_slot import TimetableSlot
from app.models.user import User, UserRole

TENANT_ID = os.getenv("DEMO_TENANT_ID", "demo-school")
WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]

DEMO_ACCOUNTS = {
    "admin": {"name": "Demo Principal", "email": "principal@demo-school.test", "role": UserRole.admin},
    "manager": {"name": "Demo Coordinator", "email": "coordinator@demo-school.test", "role": UserRole.manager},
    "maths": {"name": "Anita Rao", "email": "anita@demo-school.test", "role": UserRole.teacher},
    "science": {"name": "Vikram Iyer", "email": "vikram@demo-school.test", "role": UserRole.teacher},
    "english": {"name": "Meera Nair", "email": "meera@demo-school.test", "role": UserRole.teacher},
    "history": {"name": "Suresh Menon", "email": "suresh@demo-school.test", "role": UserRole.teacher},
}

TEACHER_SUBJECTS = {
    "maths": ["maths"],
    "science": ["physics", "chemistry"],
    "english": ["english"],
    "history": ["history", "civics"],
}

CLASSES = {
    "class-6a": ("6A", "maths"),
    "class-7b": ("7B", "english"),
}

# (teacher key, period, class id, subject id), repeated on every weekday.
DAILY_TIMETABLE = [
    ("maths", 1, "class-6a", "maths"),
    ("maths", 2, "class-7b", "maths"),
    ("maths", 5, "class-6a", "maths"),
    ("science", 2, "class-6a", "physics"),
    ("science", 3, "class-7b", "chemistry"),
    ("english", 1, "class-7b", "english"),
    ("english", 4, "class-6a", "english"),
    ("history", 6, "class-7b", "history"),
]


def _upsert_user(*, name: str, email: str, role: UserRole) -> User:
    with SessionLocal() as session:
        existing = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if existing is None:
            existing = User(tenant_id=TENANT_ID, name=name, email=email, role=role, is_active=True)
            session.add(existing)
        else:
            existing.name = name
            existing.role = role
            existing.is_active = True
        session.commit()
        session.refresh(existing)
        return existing


def _upsert_teacher(*, user: User, subject_ids: list[str]) -> Teacher:
    with SessionLocal() as session:
        existing = session.execute(select(Teacher).where(Teacher.user_id == user.id)).scalar_one_or_none()
        if existing is None:
            existing = Teacher(
                tenant_id=TENANT_ID,
                user_id=user.id,
                name=user.name,
                email=user.email,
                subject_ids=subject_ids,
                is_active=True,
            )
            session.add(existing)
        else:
            existing.name = user.name
            existing.subject_ids = subject_ids
            existing.is_active = True
        session.commit()
        session.refresh(existing)
        return existing


def _replace_timetable(teachers: dict[str, Teacher]) -> int:
    with SessionLocal() as session:
        for class_id, (name, class_teacher_key) in CLASSES.items():
            record = session.get(SchoolClass, class_id)
            if record is None:
                record = SchoolClass(id=class_id, tenant_id=TENANT_ID)
                session.add(record)
            record.name = name
            record.class_teacher_id = teachers[class_teacher_key].id

        session.execute(delete(TimetableSlot).where(TimetableSlot.tenant_id == TENANT_ID))
        created = 0
        for day in WEEKDAYS:
            for teacher_key, period, class_id, subject_id in DAILY_TIMETABLE:
                session.add(
                    TimetableSlot(
                        tenant_id=TENANT_ID,
                        teacher_id=teachers[teacher_key].id,
                        day_of_week=day,
                        period_number=period,
                        class_id=class_id,
                        subject_id=subject_id,
                        room=f"R{period:02d}",
                    )
                )
                created += 1
        session.commit()
        return created


def _print_accounts(items: Iterable[tuple[str, User]]) -> None:
    print("\nDemo accounts ready:")
    for label, user in items:
        token = create_access_token(user.id, extra_claims={"tenant_id": user.tenant_id})
        print(f"  - {label}: {user.email} | role={user.role.value}")
        print(f"    Authorization: Bearer {token}")


def main() -> None:
    ensure_runtime_schema_compatibility()

    users: dict[str, User] = {}
    for key, item in DEMO_ACCOUNTS.items():
        users[key] = _upsert_user(name=item["name"], email=item["email"], role=item["role"])

    teachers = {
        key: _upsert_teacher(user=users[key], subject_ids=subjects)
        for key, subjects in TEACHER_SUBJECTS.items()
    }
    slot_count = _replace_timetable(teachers)
    print(f"Seeded {len(teachers)} teachers and {slot_count} timetable slots for tenant {TENANT_ID}")
    _print_accounts(users.items())


if __name__ == "__main__":
    main()
