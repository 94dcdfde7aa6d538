"""create absence requests, substitution records, workload and assignment config

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


leave_type_enum = sa.Enum(
    "full_day",
    "on_duty",
    "half_day_morning",
    "half_day_afternoon",
    "permission_morning",
    "permission_evening",
    name="leave_type",
)
substitution_status_enum = sa.Enum(
    "unassigned",
    "pending",
    "confirmed",
    "substituted",
    "cancelled",
    "completed",
    name="substitution_status",
)


def upgrade() -> None:
    op.create_table(
        "absence_requests",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("requested_by_id", sa.String(length=36), nullable=False),
        sa.Column("absence_date", sa.Date(), nullable=False),
        sa.Column("leave_type", leave_type_enum, nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("periods", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    index_specs = [
        ("ix_absence_requests_tenant_id", "absence_requests", ["tenant_id"]),
        ("ix_absence_requests_teacher_id", "absence_requests", ["teacher_id"]),
        ("ix_absence_requests_absence_date", "absence_requests", ["absence_date"]),
    ]

    op.create_table(
        "substitution_records",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("absence_request_id", sa.String(length=36), nullable=True),
        sa.Column("absent_teacher_id", sa.String(length=36), nullable=False),
        sa.Column("substitute_teacher_id", sa.String(length=36), nullable=True),
        sa.Column("class_id", sa.String(length=36), nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=False),
        sa.Column("substitution_date", sa.Date(), nullable=False),
        sa.Column("period_number", sa.Integer(), nullable=False),
        sa.Column("room", sa.String(length=100), nullable=True),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("lesson_plan", sa.Text(), nullable=True),
        sa.Column("special_instructions", sa.Text(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", substitution_status_enum, nullable=False),
        sa.Column("active_slot_key", sa.String(length=120), nullable=True),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("requested_by_id", sa.String(length=36), nullable=False),
        sa.Column("confirmed_by_id", sa.String(length=36), nullable=True),
        sa.Column("cancelled_by_id", sa.String(length=36), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("replacement_reason", sa.Text(), nullable=True),
        sa.Column("supersedes_id", sa.String(length=36), nullable=True),
        sa.Column("superseded_by_id", sa.String(length=36), nullable=True),
        sa.Column("attendance_marked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("lessons_completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("students_behavior", sa.String(length=50), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("active_slot_key", name="uq_substitution_records_active_slot_key"),
    )
    index_specs += [
        ("ix_substitution_records_tenant_id", "substitution_records", ["tenant_id"]),
        ("ix_substitution_records_absence_request_id", "substitution_records", ["absence_request_id"]),
        ("ix_substitution_records_absent_teacher_id", "substitution_records", ["absent_teacher_id"]),
        ("ix_substitution_records_substitute_teacher_id", "substitution_records", ["substitute_teacher_id"]),
        ("ix_substitution_records_substitution_date", "substitution_records", ["substitution_date"]),
        ("ix_substitution_records_status", "substitution_records", ["status"]),
        ("ix_substitution_records_supersedes_id", "substitution_records", ["supersedes_id"]),
    ]

    op.create_table(
        "teacher_workload_state",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("current_substitutions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "teacher_id", name="uq_teacher_workload_state_teacher"),
    )
    index_specs += [
        ("ix_teacher_workload_state_tenant_id", "teacher_workload_state", ["tenant_id"]),
        ("ix_teacher_workload_state_teacher_id", "teacher_workload_state", ["teacher_id"]),
    ]

    op.create_table(
        "assignment_config",
        sa.Column("tenant_id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("subject_match_weight", sa.Integer(), nullable=False, server_default="40"),
        sa.Column("class_teacher_weight", sa.Integer(), nullable=False, server_default="20"),
        sa.Column("daily_load_pivot", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("daily_load_bonus", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("active_substitution_penalty", sa.Integer(), nullable=False, server_default="15"),
        sa.Column("min_substitutions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_substitutions", sa.Integer(), nullable=False, server_default="8"),
        sa.Column("max_daily_periods_exclusion", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("excluded_teacher_ids", sa.JSON(), nullable=False),
        sa.Column("release_capacity_on_completion", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("updated_by_id", sa.String(length=36), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    for index_name, table_name, columns in index_specs:
        op.create_index(index_name, table_name, columns, unique=False)


def downgrade() -> None:
    op.drop_table("assignment_config")
    op.drop_index("ix_teacher_workload_state_teacher_id", table_name="teacher_workload_state")
    op.drop_index("ix_teacher_workload_state_tenant_id", table_name="teacher_workload_state")
    op.drop_table("teacher_workload_state")
    for index_name in (
        "ix_substitution_records_supersedes_id",
        "ix_substitution_records_status",
        "ix_substitution_records_substitution_date",
        "ix_substitution_records_substitute_teacher_id",
        "ix_substitution_records_absent_teacher_id",
        "ix_substitution_records_absence_request_id",
        "ix_substitution_records_tenant_id",
    ):
        op.drop_index(index_name, table_name="substitution_records")
    op.drop_table("substitution_records")
    for index_name in (
        "ix_absence_requests_absence_date",
        "ix_absence_requests_teacher_id",
        "ix_absence_requests_tenant_id",
    ):
        op.drop_index(index_name, table_name="absence_requests")
    op.drop_table("absence_requests")

    bind = op.get_bind()
    substitution_status_enum.drop(bind, checkfirst=True)
    leave_type_enum.drop(bind, checkfirst=True)
