import os

# Point the app at SQLite before anything imports the settings.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("AUTO_CREATE_SCHEMA", "false")

from datetime import date  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.api.deps import get_db  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.session import enable_sqlite_savepoints  # noqa: E402
from app.main import app  # noqa: E402
from app.models.assignment_config import AssignmentConfig  # noqa: E402
from app.models.school_class import SchoolClass  # noqa: E402
from app.models.teacher import Teacher  # noqa: E402
from app.models.teacher_workload import TeacherWorkloadState  # noqa: E402
from app.models.timetable_slot import TimetableSlot  # noqa: E402
from app.models.user import User, UserRole  # noqa: E402

TENANT_ID = "school-1"
MONDAY = date(2026, 10, 19)


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


class SchoolBuilder:
    """Writes directory and timetable rows with fixed ids, then commits."""

    def __init__(self, db, tenant_id: str = TENANT_ID) -> None:
        self.db = db
        self.tenant_id = tenant_id

    def user(self, user_id: str, role: UserRole = UserRole.teacher, *, name: str | None = None) -> User:
        user = User(
            id=user_id,
            tenant_id=self.tenant_id,
            name=name or user_id,
            email=f"{user_id}@{self.tenant_id}.test",
            role=role,
            is_active=True,
        )
        self.db.add(user)
        return user

    def teacher(
        self,
        teacher_id: str,
        subjects: list[str],
        *,
        with_user: bool = True,
        current_substitutions: int | None = None,
    ) -> Teacher:
        user_id = None
        if with_user:
            user_id = f"user-{teacher_id}"
            self.user(user_id, UserRole.teacher, name=teacher_id)
        teacher = Teacher(
            id=teacher_id,
            tenant_id=self.tenant_id,
            user_id=user_id,
            name=teacher_id,
            subject_ids=subjects,
            is_active=True,
        )
        self.db.add(teacher)
        if current_substitutions is not None:
            self.workload(teacher_id, current_substitutions)
        return teacher

    def workload(self, teacher_id: str, current: int) -> None:
        self.db.add(
            TeacherWorkloadState(
                id=f"wl-{teacher_id}",
                tenant_id=self.tenant_id,
                teacher_id=teacher_id,
                current_substitutions=current,
            )
        )

    def school_class(self, class_id: str, class_teacher_id: str | None = None) -> None:
        self.db.add(
            SchoolClass(id=class_id, tenant_id=self.tenant_id, name=class_id, class_teacher_id=class_teacher_id)
        )

    def slot(self, teacher_id: str, day: str, period: int, subject_id: str, class_id: str = "class-1") -> None:
        self.db.add(
            TimetableSlot(
                id=f"slot-{teacher_id}-{day}-{period}",
                tenant_id=self.tenant_id,
                teacher_id=teacher_id,
                day_of_week=day,
                period_number=period,
                class_id=class_id,
                subject_id=subject_id,
                room=f"R{period}",
            )
        )

    def config(self, **values) -> None:
        record = AssignmentConfig(tenant_id=self.tenant_id, excluded_teacher_ids=[])
        for name, value in values.items():
            setattr(record, name, value)
        self.db.add(record)

    def commit(self) -> None:
        self.db.commit()


@pytest.fixture()
def school(db):
    return SchoolBuilder(db)


@pytest.fixture()
def seeded_school(session_factory):
    """Builder on its own short-lived session, for API tests."""
    session = session_factory()
    builder = SchoolBuilder(session)
    yield builder
    session.close()


def auth_headers(user_id: str, tenant_id: str = TENANT_ID) -> dict[str, str]:
    token = create_access_token(user_id, extra_claims={"tenant_id": tenant_id})
    return {"Authorization": f"Bearer {token}"}


def monday_scenario(builder: SchoolBuilder, *, c2_current: int = 2, max_substitutions: int = 3) -> None:
    """Absent T teaches A at period 2 and B at period 4 on Mondays; C1 and C2 are free."""
    builder.user("manager-1", UserRole.manager)
    builder.teacher("T", ["A", "B"])
    builder.teacher("C1", ["A"], current_substitutions=0)
    builder.teacher("C2", ["B"], current_substitutions=c2_current)
    builder.school_class("class-1")
    builder.slot("T", "Monday", 2, "A")
    builder.slot("T", "Monday", 4, "B")
    builder.config(max_substitutions=max_substitutions)
    builder.commit()
