"""Task history model - append-only audit trail."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, utcnow


class TaskHistory(UUIDMixin, Base):
    __tablename__ = "task_history"

    # No FK: rows outlive the task they describe.
    task_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    user_id: Mapped[str] = mapped_column(String(100))
    action: Mapped[str] = mapped_column(String(30))  # CREATED, UPDATED, STATUS_CHANGED, ...
    changes: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True
    )

    def __repr__(self) -> str:
        return f"<TaskHistory {self.action} {self.task_id}>"
