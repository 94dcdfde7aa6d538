from __future__ import annotations

import logging

from sqlalchemy import inspect, text

import app.models  # noqa: F401
from app.db.base import Base
from app.db.session import engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "tenant_id", "role"},
    "teachers": {"id", "tenant_id", "subject_ids"},
    "timetable_slots": {"id", "teacher_id", "day_of_week", "period_number"},
    "substitution_records": {"id", "status", "active_slot_key", "supersedes_id", "superseded_by_id"},
    "teacher_workload_state": {"id", "teacher_id", "current_substitutions"},
    "assignment_config": {"tenant_id", "release_capacity_on_completion"},
}


def _ensure_release_capacity_column() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        if "assignment_config" not in set(inspector.get_table_names()):
            return
        column_names = {item["name"] for item in inspector.get_columns("assignment_config")}
        if "release_capacity_on_completion" in column_names:
            return
        default = "FALSE" if connection.dialect.name == "postgresql" else "0"
        connection.execute(
            text(
                "ALTER TABLE assignment_config "
                f"ADD COLUMN release_capacity_on_completion BOOLEAN NOT NULL DEFAULT {default}"
            )
        )


def _assert_required_columns() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = [name for name in REQUIRED_COLUMNS if name not in table_names]
        if missing_tables:
            raise RuntimeError(f"Missing required tables: {', '.join(sorted(missing_tables))}")

        missing_columns: list[str] = []
        for table_name, required in REQUIRED_COLUMNS.items():
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            for column_name in sorted(required - existing):
                missing_columns.append(f"{table_name}.{column_name}")
        if missing_columns:
            raise RuntimeError(f"Missing required columns: {', '.join(missing_columns)}")


def ensure_runtime_schema_compatibility() -> None:
    try:
        # Ensure missing tables are present before additive compatibility patches.
        Base.metadata.create_all(bind=engine)
        _ensure_release_capacity_column()
        _assert_required_columns()
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc
