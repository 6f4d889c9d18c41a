"""Task model."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuthorshipMixin, Base, TimestampMixin, UUIDMixin
from .enums import TaskPriority, TaskStatus


class Task(UUIDMixin, TimestampMixin, AuthorshipMixin, Base):
    __tablename__ = "task"

    title: Mapped[str] = mapped_column(String(300))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    status: Mapped[str] = mapped_column(String(20), default=TaskStatus.TODO.value, index=True)
    priority: Mapped[str] = mapped_column(String(20), default=TaskPriority.MEDIUM.value, index=True)
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("project.id", ondelete="SET NULL"), default=None, index=True
    )
    assignee_id: Mapped[str | None] = mapped_column(String(100), default=None, index=True)
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("task.id", ondelete="SET NULL"), default=None, index=True
    )
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    estimated_hours: Mapped[float | None] = mapped_column(Float, default=None)
    actual_hours: Mapped[float | None] = mapped_column(Float, default=None)
    # Soft-delete marker; independent of status == ARCHIVED.
    archived_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None, index=True
    )

    # Associations are written only through tag_usage_svc.
    tags: Mapped[list["Tag"]] = relationship(  # noqa: F821
        secondary="task_tag",
        viewonly=True,
        lazy="selectin",
        order_by="Tag.name",
    )

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    @property
    def tag_ids(self) -> list[uuid.UUID]:
        return [tag.id for tag in self.tags]

    def __repr__(self) -> str:
        return f"<Task {self.title!r}>"
