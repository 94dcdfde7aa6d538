"""create notifications and activity logs

Revision ID: 20261019_0003
Revises: 20261019_0002
Create Date: 2026-10-19 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "20261019_0003"
down_revision = "20261019_0002"
branch_labels = None
depends_on = None


notification_event_enum = sa.Enum(
    "substitution.assigned",
    "substitution.unassigned",
    "substitution.confirmed",
    "substitution.cancelled",
    "substitution.replaced",
    "substitution.completed",
    name="notification_event",
)


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("notifications"):
        op.create_table(
            "notifications",
            sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column("tenant_id", sa.String(length=36), nullable=False),
            sa.Column("recipient_id", sa.String(length=36), nullable=False),
            sa.Column("event_type", notification_event_enum, nullable=False),
            sa.Column("payload", sa.JSON(), nullable=False),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index("ix_notifications_tenant_id", "notifications", ["tenant_id"], unique=False)
        op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"], unique=False)

    if not inspector.has_table("activity_logs"):
        op.create_table(
            "activity_logs",
            sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column("tenant_id", sa.String(length=36), nullable=False),
            sa.Column("actor_id", sa.String(length=36), nullable=True),
            sa.Column("action", sa.String(length=100), nullable=False),
            sa.Column("entity_type", sa.String(length=100), nullable=True),
            sa.Column("entity_id", sa.String(length=100), nullable=True),
            sa.Column("details", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index("ix_activity_logs_tenant_id", "activity_logs", ["tenant_id"], unique=False)


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if inspector.has_table("activity_logs"):
        op.drop_index("ix_activity_logs_tenant_id", table_name="activity_logs")
        op.drop_table("activity_logs")
    if inspector.has_table("notifications"):
        op.drop_index("ix_notifications_recipient_id", table_name="notifications")
        op.drop_index("ix_notifications_tenant_id", table_name="notifications")
        op.drop_table("notifications")
    notification_event_enum.drop(bind, checkfirst=True)
