"""Enumerations stored as plain strings in the database."""

from __future__ import annotations

from enum import StrEnum


class TaskStatus(StrEnum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    ARCHIVED = "ARCHIVED"


# TODO/IN_PROGRESS/DONE move freely; ARCHIVED is reachable from anywhere and
# cannot be left.
VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.TODO: {TaskStatus.IN_PROGRESS, TaskStatus.DONE, TaskStatus.ARCHIVED},
    TaskStatus.IN_PROGRESS: {TaskStatus.TODO, TaskStatus.DONE, TaskStatus.ARCHIVED},
    TaskStatus.DONE: {TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.ARCHIVED},
    TaskStatus.ARCHIVED: set(),
}


class TaskPriority(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"
    CRITICAL = "CRITICAL"


PRIORITY_RANK: dict[str, int] = {p.value: i for i, p in enumerate(TaskPriority)}
STATUS_RANK: dict[str, int] = {s.value: i for i, s in enumerate(TaskStatus)}


class HistoryAction(StrEnum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    PRIORITY_CHANGED = "PRIORITY_CHANGED"
    ASSIGNED = "ASSIGNED"
    ARCHIVED = "ARCHIVED"
    DELETED = "DELETED"


class NotificationType(StrEnum):
    TASK_DEADLINE = "TASK_DEADLINE"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_COMPLETED = "TASK_COMPLETED"
    MENTION = "MENTION"
    PROJECT_UPDATE = "PROJECT_UPDATE"
    SYSTEM = "SYSTEM"


class NotificationPriority(StrEnum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
