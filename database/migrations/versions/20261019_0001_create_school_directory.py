"""create users, teachers, classes and timetable slots

Revision ID: 20261019_0001
Revises: None
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role_enum = sa.Enum("admin", "manager", "teacher", name="user_role")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"], unique=False)

    op.create_table(
        "teachers",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("subject_ids", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_teachers_tenant_id", "teachers", ["tenant_id"], unique=False)
    op.create_index("ix_teachers_user_id", "teachers", ["user_id"], unique=True)

    op.create_table(
        "school_classes",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("class_teacher_id", sa.String(length=36), nullable=True),
    )
    op.create_index("ix_school_classes_tenant_id", "school_classes", ["tenant_id"], unique=False)
    op.create_index("ix_school_classes_class_teacher_id", "school_classes", ["class_teacher_id"], unique=False)

    op.create_table(
        "timetable_slots",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("day_of_week", sa.String(length=10), nullable=False),
        sa.Column("period_number", sa.Integer(), nullable=False),
        sa.Column("class_id", sa.String(length=36), nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=False),
        sa.Column("room", sa.String(length=100), nullable=True),
        sa.UniqueConstraint(
            "tenant_id",
            "teacher_id",
            "day_of_week",
            "period_number",
            name="uq_timetable_slot_teacher_period",
        ),
    )
    op.create_index("ix_timetable_slots_tenant_id", "timetable_slots", ["tenant_id"], unique=False)
    op.create_index("ix_timetable_slots_teacher_id", "timetable_slots", ["teacher_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_timetable_slots_teacher_id", table_name="timetable_slots")
    op.drop_index("ix_timetable_slots_tenant_id", table_name="timetable_slots")
    op.drop_table("timetable_slots")
    op.drop_index("ix_school_classes_class_teacher_id", table_name="school_classes")
    op.drop_index("ix_school_classes_tenant_id", table_name="school_classes")
    op.drop_table("school_classes")
    op.drop_index("ix_teachers_user_id", table_name="teachers")
    op.drop_index("ix_teachers_tenant_id", table_name="teachers")
    op.drop_table("teachers")
    op.drop_index("ix_users_tenant_id", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    user_role_enum.drop(op.get_bind(), checkfirst=True)
