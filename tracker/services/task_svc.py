"""Task service - atomic task mutations.

Each public mutation is one unit of work on the transaction gateway: the
task write, the tag association/counter delta and the history row commit
together or not at all. Notifications are dispatched only after the commit
and can never fail the mutation.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import TrackerSettings, settings
from ..database import TransactionGateway
from ..errors import InvalidStatusError, NotFoundError, ValidationError
from ..models.base import utcnow
from ..models.enums import VALID_TRANSITIONS, HistoryAction, TaskPriority, TaskStatus
from ..models.history import TaskHistory
from ..models.project import Project
from ..models.task import Task
from ..schemas.task import (
    PageInfo,
    Pagination,
    SortOptions,
    TaskCreate,
    TaskFilter,
    TaskStats,
    TaskUpdate,
)
from . import history_svc, query_svc, tag_usage_svc
from .events import DomainEvent, EventKind
from .history_svc import as_utc, snapshot
from .notification_svc import NotificationDispatcher

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 300
_NON_NULLABLE = {"title", "status", "priority"}
# Guards the ancestor walk against a corrupted tree.
_MAX_TREE_DEPTH = 1000


def _clean_title(title: str | None) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("Task title must not be empty")
    if len(cleaned) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Task title must be at most {TITLE_MAX_LENGTH} characters")
    return cleaned


def check_status(value: Any) -> str:
    try:
        return TaskStatus(value).value
    except ValueError:
        allowed = ", ".join(s.value for s in TaskStatus)
        raise InvalidStatusError(
            f"Invalid task status {value!r}; expected one of {allowed}"
        ) from None


def check_transition(current: str, new: str) -> None:
    if new not in VALID_TRANSITIONS[TaskStatus(current)]:
        raise InvalidStatusError(f"Cannot move task from {current} to {new}")


def _check_priority(value: Any) -> str:
    try:
        return TaskPriority(value).value
    except ValueError:
        allowed = ", ".join(p.value for p in TaskPriority)
        raise ValidationError(
            f"Invalid task priority {value!r}; expected one of {allowed}"
        ) from None


def _check_hours(name: str, value: float | None) -> float | None:
    if value is not None and value < 0:
        raise ValidationError(f"{name} must not be negative")
    return value


def _require_user(user_id: str) -> None:
    if not user_id or not str(user_id).strip():
        raise ValidationError("An acting user id is required")


class TaskService:
    """Create/update/archive/delete/duplicate tasks inside one transaction."""

    def __init__(
        self,
        gateway: TransactionGateway,
        dispatcher: NotificationDispatcher | None = None,
        *,
        app_settings: TrackerSettings | None = None,
    ) -> None:
        self._gateway = gateway
        self._dispatcher = dispatcher
        self._settings = app_settings or settings

    # -- helpers -----------------------------------------------------------

    async def _dispatch(self, event: DomainEvent | None) -> None:
        if event is None or self._dispatcher is None:
            return
        try:
            await self._dispatcher.notify(event)
        except Exception:
            logger.exception("Notification dispatch raised for task=%s", event.task_id)

    @staticmethod
    async def _lock_task(tx: AsyncSession, task_id: uuid.UUID) -> Task:
        stmt = (
            select(Task)
            .where(Task.id == task_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        task = (await tx.execute(stmt)).scalar_one_or_none()
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    @staticmethod
    async def _hydrate(tx: AsyncSession, task_id: uuid.UUID) -> Task:
        stmt = select(Task).where(Task.id == task_id).execution_options(populate_existing=True)
        return (await tx.execute(stmt)).scalar_one()

    @staticmethod
    async def _ensure_project(tx: AsyncSession, project_id: uuid.UUID | None) -> None:
        if project_id is None:
            return
        found = (await tx.execute(select(Project.id).where(Project.id == project_id))).scalar_one_or_none()
        if found is None:
            raise NotFoundError("Project", project_id)

    @staticmethod
    async def _ensure_parent(
        tx: AsyncSession, parent_id: uuid.UUID | None, task_id: uuid.UUID | None = None
    ) -> None:
        """Parent must exist and must not be the task itself or a descendant."""
        current = parent_id
        for _ in range(_MAX_TREE_DEPTH):
            if current is None:
                return
            if task_id is not None and current == task_id:
                raise ValidationError("A task cannot be its own ancestor")
            row = (
                await tx.execute(select(Task.parent_id).where(Task.id == current))
            ).one_or_none()
            if row is None:
                if current == parent_id:
                    raise NotFoundError("Task", parent_id)
                return
            current = row.parent_id

    def _create_values(self, data: TaskCreate) -> dict[str, Any]:
        return {
            "title": _clean_title(data.title),
            "description": data.description,
            "status": check_status(data.status) if data.status is not None else TaskStatus.TODO.value,
            "priority": (
                _check_priority(data.priority)
                if data.priority is not None
                else TaskPriority.MEDIUM.value
            ),
            "project_id": data.project_id,
            "assignee_id": data.assignee_id or None,
            "parent_id": data.parent_id,
            "due_date": as_utc(data.due_date),
            "estimated_hours": _check_hours("estimated_hours", data.estimated_hours),
            "actual_hours": _check_hours("actual_hours", data.actual_hours),
        }

    @staticmethod
    def _update_values(task: Task, fields: dict[str, Any]) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for name, value in fields.items():
            if value is None and name in _NON_NULLABLE:
                raise ValidationError(f"{name} cannot be null")
            if name == "title":
                value = _clean_title(value)
            elif name == "status":
                value = check_status(value)
                if value != task.status:
                    check_transition(task.status, value)
            elif name == "priority":
                value = _check_priority(value)
            elif name in ("estimated_hours", "actual_hours"):
                value = _check_hours(name, value)
            elif name == "due_date":
                value = as_utc(value)
            elif name == "assignee_id":
                value = value or None
            values[name] = value
        return values

    def _copy_title(self, title: str) -> str:
        suffix = self._settings.duplicate_title_suffix
        return title[: TITLE_MAX_LENGTH - len(suffix)] + suffix

    # -- mutations ---------------------------------------------------------

    async def create_task(self, data: TaskCreate, user_id: str) -> Task:
        _require_user(user_id)
        values = self._create_values(data)
        tag_ids = set(data.tag_ids)

        async def work(tx: AsyncSession) -> Task:
            await self._ensure_project(tx, values["project_id"])
            await self._ensure_parent(tx, values["parent_id"])
            task = Task(**values, created_by=user_id, updated_by=user_id)
            tx.add(task)
            await tx.flush()
            await tag_usage_svc.apply_tag_delta(tx, task.id, set(), tag_ids)
            await history_svc.record_change(
                tx, task.id, user_id, HistoryAction.CREATED, None, snapshot(task, tag_ids)
            )
            return await self._hydrate(tx, task.id)

        task = await self._gateway.run(work)
        logger.info("Task created id=%s by=%s tags=%d", task.id, user_id, len(tag_ids))
        await self._dispatch(DomainEvent.for_task(EventKind.TASK_CREATED, task, user_id))
        return task

    async def update_task(self, task_id: uuid.UUID, data: TaskUpdate, user_id: str) -> Task:
        """Apply explicitly set fields; ``tag_ids`` replaces the whole set."""
        _require_user(user_id)
        fields = data.model_dump(exclude_unset=True)
        requested_tags = fields.pop("tag_ids", None)

        async def work(tx: AsyncSession) -> tuple[Task, TaskHistory | None]:
            task = await self._lock_task(tx, task_id)
            previous_tags = await tag_usage_svc.current_tag_ids(tx, task.id)
            before = snapshot(task, previous_tags)

            values = self._update_values(task, fields)
            if values.get("project_id") is not None:
                await self._ensure_project(tx, values["project_id"])
            if values.get("parent_id") is not None:
                await self._ensure_parent(tx, values["parent_id"], task.id)
            for name, value in values.items():
                current = getattr(task, name)
                if name == "due_date":
                    current = as_utc(current)
                if current != value:
                    setattr(task, name, value)

            new_tags = set(requested_tags) if requested_tags is not None else previous_tags
            await tag_usage_svc.apply_tag_delta(
                tx, task.id, previous_tags, new_tags, count=not task.is_archived
            )

            entry = await history_svc.record_change(
                tx, task.id, user_id, HistoryAction.UPDATED, before, snapshot(task, new_tags)
            )
            if entry is not None:
                task.updated_by = user_id
            await tx.flush()
            return await self._hydrate(tx, task.id), entry

        task, entry = await self._gateway.run(work)
        if entry is None:
            return task
        logger.info("Task updated id=%s by=%s fields=%s", task.id, user_id, sorted(entry.changes))
        await self._dispatch(
            DomainEvent.for_task(EventKind.TASK_UPDATED, task, user_id, entry.changes)
        )
        return task

    async def _change_field(
        self,
        task_id: uuid.UUID,
        name: str,
        value: Any,
        action: HistoryAction,
        kind: EventKind,
        user_id: str,
    ) -> Task:
        """Single-field change with its own history action. Same value is a no-op."""

        async def work(tx: AsyncSession) -> tuple[Task, TaskHistory | None]:
            task = await self._lock_task(tx, task_id)
            if getattr(task, name) == value:
                return task, None
            if name == "status":
                check_transition(task.status, value)
            tag_ids = await tag_usage_svc.current_tag_ids(tx, task.id)
            before = snapshot(task, tag_ids)
            setattr(task, name, value)
            task.updated_by = user_id
            entry = await history_svc.record_change(
                tx, task.id, user_id, action, before, snapshot(task, tag_ids)
            )
            await tx.flush()
            return await self._hydrate(tx, task.id), entry

        task, entry = await self._gateway.run(work)
        if entry is None:
            return task
        logger.info("Task %s id=%s to=%s by=%s", action.value.lower(), task.id, value, user_id)
        await self._dispatch(DomainEvent.for_task(kind, task, user_id, entry.changes))
        return task

    async def update_task_status(self, task_id: uuid.UUID, status: str, user_id: str) -> Task:
        _require_user(user_id)
        return await self._change_field(
            task_id,
            "status",
            check_status(status),
            HistoryAction.STATUS_CHANGED,
            EventKind.TASK_STATUS_CHANGED,
            user_id,
        )

    async def update_task_priority(self, task_id: uuid.UUID, priority: str, user_id: str) -> Task:
        _require_user(user_id)
        return await self._change_field(
            task_id,
            "priority",
            _check_priority(priority),
            HistoryAction.PRIORITY_CHANGED,
            EventKind.TASK_UPDATED,
            user_id,
        )

    async def assign_task(self, task_id: uuid.UUID, assignee_id: str | None, user_id: str) -> Task:
        """Set or clear the assignee. ``None`` unassigns."""
        _require_user(user_id)
        return await self._change_field(
            task_id,
            "assignee_id",
            (assignee_id or "").strip() or None,
            HistoryAction.ASSIGNED,
            EventKind.TASK_UPDATED,
            user_id,
        )

    async def archive_task(self, task_id: uuid.UUID, user_id: str) -> None:
        """Soft-delete: set archived_at, release tag usage, keep status."""
        _require_user(user_id)

        async def work(tx: AsyncSession) -> DomainEvent | None:
            task = await self._lock_task(tx, task_id)
            if task.archived_at is not None:
                return None
            tag_ids = await tag_usage_svc.current_tag_ids(tx, task.id)
            archived_at = utcnow()
            task.archived_at = archived_at
            task.updated_by = user_id
            await tag_usage_svc.release_tag_usage(tx, tag_ids)
            await history_svc.record_event(
                tx,
                task.id,
                user_id,
                HistoryAction.ARCHIVED,
                {"archived_at": {"from": None, "to": archived_at.isoformat()}},
            )
            await tx.flush()
            return DomainEvent.for_task(EventKind.TASK_ARCHIVED, task, user_id)

        event = await self._gateway.run(work)
        if event is not None:
            logger.info("Task archived id=%s by=%s", task_id, user_id)
        await self._dispatch(event)

    async def delete_task(self, task_id: uuid.UUID, user_id: str) -> None:
        """Remove the row and its associations; history rows stay."""
        _require_user(user_id)

        async def work(tx: AsyncSession) -> DomainEvent:
            task = await self._lock_task(tx, task_id)
            tag_ids = await tag_usage_svc.current_tag_ids(tx, task.id)
            final = snapshot(task, tag_ids)
            event = DomainEvent.for_task(EventKind.TASK_DELETED, task, user_id)
            # Archived tasks already released their usage.
            await tag_usage_svc.apply_tag_delta(
                tx, task.id, tag_ids, set(), count=not task.is_archived
            )
            await history_svc.record_event(
                tx,
                task.id,
                user_id,
                HistoryAction.DELETED,
                {"snapshot": final.values(), "was_archived": task.is_archived},
            )
            await tx.delete(task)
            await tx.flush()
            return event

        event = await self._gateway.run(work)
        logger.info("Task deleted id=%s by=%s", task_id, user_id)
        await self._dispatch(event)

    async def duplicate_task(self, task_id: uuid.UUID, user_id: str) -> Task:
        """Logical create from an existing task: fresh history, tags copied."""
        _require_user(user_id)

        async def work(tx: AsyncSession) -> Task:
            source = await query_svc.get_task(tx, task_id)
            if source is None:
                raise NotFoundError("Task", task_id)
            tag_ids = await tag_usage_svc.current_tag_ids(tx, source.id)
            copy = Task(
                title=self._copy_title(source.title),
                description=source.description,
                status=source.status,
                priority=source.priority,
                project_id=source.project_id,
                assignee_id=source.assignee_id,
                parent_id=source.parent_id,
                due_date=source.due_date,
                estimated_hours=source.estimated_hours,
                actual_hours=source.actual_hours,
                created_by=user_id,
                updated_by=user_id,
            )
            tx.add(copy)
            await tx.flush()
            await tag_usage_svc.apply_tag_delta(tx, copy.id, set(), tag_ids)
            await history_svc.record_change(
                tx, copy.id, user_id, HistoryAction.CREATED, None, snapshot(copy, tag_ids)
            )
            return await self._hydrate(tx, copy.id)

        task = await self._gateway.run(work)
        logger.info("Task duplicated source=%s copy=%s by=%s", task_id, task.id, user_id)
        await self._dispatch(DomainEvent.for_task(EventKind.TASK_DUPLICATED, task, user_id))
        return task

    async def purge_history(self, older_than_days: int | None = None) -> int:
        days = self._settings.history_retention_days if older_than_days is None else older_than_days

        async def work(tx: AsyncSession) -> int:
            return await history_svc.purge_history(tx, days)

        count = await self._gateway.run(work)
        logger.info("Purged %d history row(s) older than %d days", count, days)
        return count

    # -- reads -------------------------------------------------------------

    async def get_task(self, task_id: uuid.UUID) -> Task:
        async with self._gateway.reader() as db:
            task = await query_svc.get_task(db, task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    async def list_tasks(
        self,
        task_filter: TaskFilter | None = None,
        pagination: Pagination | None = None,
        sort: SortOptions | None = None,
    ) -> tuple[list[Task], PageInfo]:
        async with self._gateway.reader() as db:
            return await query_svc.list_tasks(db, task_filter, pagination, sort)

    async def get_task_stats(self, user_id: str, project_id: uuid.UUID | None = None) -> TaskStats:
        async with self._gateway.reader() as db:
            return await query_svc.task_stats(db, user_id, project_id)

    async def get_history(self, task_id: uuid.UUID, *, limit: int = 50) -> list[TaskHistory]:
        async with self._gateway.reader() as db:
            return await history_svc.list_history(db, task_id, limit=limit)
