"""Task history service - append-only audit trail with field-level diffs."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ValidationError
from ..models.enums import HistoryAction
from ..models.history import TaskHistory
from ..models.task import Task

TRACKED_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "status",
    "priority",
    "project_id",
    "assignee_id",
    "parent_id",
    "due_date",
    "estimated_hours",
    "actual_hours",
    "tags",
)


def as_utc(value: datetime | None) -> datetime | None:
    """Naive datetimes (as SQLite returns them) are taken to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _jsonable(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, (set, frozenset, list, tuple)):
        return sorted(_jsonable(v) for v in value)
    return value


@dataclass(frozen=True)
class TaskSnapshot:
    """Point-in-time copy of the tracked fields of a task."""

    title: str
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    project_id: uuid.UUID | None = None
    assignee_id: str | None = None
    parent_id: uuid.UUID | None = None
    due_date: datetime | None = None
    estimated_hours: float | None = None
    actual_hours: float | None = None
    tags: frozenset[uuid.UUID] = field(default_factory=frozenset)

    def values(self) -> dict[str, Any]:
        raw = asdict(self)
        return {name: _jsonable(raw[name]) for name in TRACKED_FIELDS}


def snapshot(task: Task, tag_ids) -> TaskSnapshot:
    return TaskSnapshot(
        title=task.title,
        description=task.description,
        status=task.status,
        priority=task.priority,
        project_id=task.project_id,
        assignee_id=task.assignee_id,
        parent_id=task.parent_id,
        due_date=as_utc(task.due_date),
        estimated_hours=task.estimated_hours,
        actual_hours=task.actual_hours,
        tags=frozenset(tag_ids),
    )


def diff_snapshots(before: TaskSnapshot, after: TaskSnapshot) -> dict[str, dict[str, Any]]:
    """Return ``{field: {"from": old, "to": new}}`` for changed fields only."""
    old, new = before.values(), after.values()
    return {
        name: {"from": old[name], "to": new[name]}
        for name in TRACKED_FIELDS
        if old[name] != new[name]
    }


def initial_values(after: TaskSnapshot) -> dict[str, Any]:
    return {name: value for name, value in after.values().items() if value not in (None, [])}


async def record_change(
    tx: AsyncSession,
    task_id: uuid.UUID,
    user_id: str,
    action: HistoryAction | str,
    before: TaskSnapshot | None,
    after: TaskSnapshot,
) -> TaskHistory | None:
    """Append one history row describing ``before -> after``.

    CREATED records the initial values (``before`` must be None). Any other
    action records the field diff; an empty diff writes nothing and returns
    None.
    """
    action = HistoryAction(action)
    if action is HistoryAction.CREATED:
        changes = initial_values(after)
    else:
        if before is None:
            raise ValidationError(f"{action.value} history requires a prior snapshot")
        changes = diff_snapshots(before, after)
        if not changes:
            return None
    return await record_event(tx, task_id, user_id, action, changes)


async def record_event(
    tx: AsyncSession,
    task_id: uuid.UUID,
    user_id: str,
    action: HistoryAction | str,
    changes: dict[str, Any],
) -> TaskHistory:
    """Append a history row with a caller-built payload (archive, delete)."""
    entry = TaskHistory(
        task_id=task_id,
        user_id=user_id,
        action=HistoryAction(action).value,
        changes=changes,
    )
    tx.add(entry)
    await tx.flush()
    return entry


async def list_history(
    db: AsyncSession, task_id: uuid.UUID, *, limit: int = 50
) -> list[TaskHistory]:
    stmt = (
        select(TaskHistory)
        .where(TaskHistory.task_id == task_id)
        .order_by(TaskHistory.created_at.desc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def purge_history(tx: AsyncSession, older_than_days: int) -> int:
    """Maintenance: drop history rows older than the retention window."""
    if older_than_days < 1:
        raise ValidationError("Retention window must be at least one day")
    cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
    result = await tx.execute(delete(TaskHistory).where(TaskHistory.created_at < cutoff))
    return result.rowcount or 0
