"""Notification model."""

from __future__ import annotations

from sqlalchemy import JSON, Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin
from .enums import NotificationPriority


class Notification(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "notification"

    user_id: Mapped[str] = mapped_column(String(100), index=True)
    type: Mapped[str] = mapped_column(String(30))  # TASK_ASSIGNED, TASK_COMPLETED, SYSTEM, ...
    priority: Mapped[str] = mapped_column(String(10), default=NotificationPriority.MEDIUM.value)
    title: Mapped[str] = mapped_column(String(300))
    message: Mapped[str] = mapped_column(Text)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    action_url: Mapped[str | None] = mapped_column(String(500), default=None)
    metadata_json: Mapped[dict | None] = mapped_column(JSON, default=None)

    def to_payload(self) -> dict:
        """JSON-safe representation used by the real-time channel."""
        return {
            "id": str(self.id),
            "user_id": self.user_id,
            "type": self.type,
            "priority": self.priority,
            "title": self.title,
            "message": self.message,
            "is_read": self.is_read,
            "action_url": self.action_url,
            "metadata": self.metadata_json,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Notification {self.type} -> {self.user_id}>"
