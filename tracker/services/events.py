"""Domain events emitted after a task mutation commits."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..models.task import Task


class EventKind(StrEnum):
    TASK_CREATED = "TASK_CREATED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_STATUS_CHANGED = "TASK_STATUS_CHANGED"
    TASK_ARCHIVED = "TASK_ARCHIVED"
    TASK_DELETED = "TASK_DELETED"
    TASK_DUPLICATED = "TASK_DUPLICATED"


@dataclass(frozen=True)
class DomainEvent:
    kind: EventKind
    task_id: uuid.UUID
    actor_id: str
    task_title: str
    created_by: str | None = None
    assignee_id: str | None = None
    priority: str | None = None
    changes: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_task(
        cls,
        kind: EventKind,
        task: Task,
        actor_id: str,
        changes: dict[str, Any] | None = None,
    ) -> DomainEvent:
        return cls(
            kind=kind,
            task_id=task.id,
            actor_id=actor_id,
            task_title=task.title,
            created_by=task.created_by,
            assignee_id=task.assignee_id,
            priority=task.priority,
            changes=changes or {},
        )
