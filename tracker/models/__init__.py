"""Tracker models - re-exports all models and Base.metadata."""

from .base import Base, UUIDMixin, TimestampMixin, AuthorshipMixin
from .enums import (
    HistoryAction,
    NotificationPriority,
    NotificationType,
    TaskPriority,
    TaskStatus,
)
from .project import Project
from .tag import Tag, TaskTag
from .task import Task
from .history import TaskHistory
from .notification import Notification

__all__ = [
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "AuthorshipMixin",
    "HistoryAction",
    "NotificationPriority",
    "NotificationType",
    "TaskPriority",
    "TaskStatus",
    "Project",
    "Tag",
    "TaskTag",
    "Task",
    "TaskHistory",
    "Notification",
]
