"""Tag model with M2M task relationship."""

from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin


class TaskTag(Base):
    """M2M join table for tasks <-> tags."""

    __tablename__ = "task_tag"

    task_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("task.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tag.id", ondelete="CASCADE"), primary_key=True, index=True
    )


class Tag(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "tag"
    __table_args__ = (
        CheckConstraint("usage_count >= 0", name="ck_tag_usage_count_non_negative"),
    )

    name: Mapped[str] = mapped_column(String(100), unique=True)
    color: Mapped[str] = mapped_column(String(7))
    # Live associations of non-archived tasks; owned by tag_usage_svc.
    usage_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    def __repr__(self) -> str:
        return f"<Tag {self.name!r}>"
