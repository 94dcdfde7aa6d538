import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class NotificationEvent(str, Enum):
    substitution_assigned = "substitution.assigned"
    substitution_unassigned = "substitution.unassigned"
    substitution_confirmed = "substitution.confirmed"
    substitution_cancelled = "substitution.cancelled"
    substitution_replaced = "substitution.replaced"
    substitution_completed = "substitution.completed"


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    recipient_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    event_type: Mapped[NotificationEvent] = mapped_column(
        SAEnum(NotificationEvent, name="notification_event", values_callable=lambda items: [item.value for item in items]),
        nullable=False,
    )
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
