"""Task queries - filtering, sorting, pagination and statistics.

Read-only: nothing here goes through the mutation pipeline.
"""

from __future__ import annotations

import math
import uuid

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import InvalidStatusError, ValidationError
from ..models.enums import PRIORITY_RANK, STATUS_RANK, TaskPriority, TaskStatus
from ..models.tag import TaskTag
from ..models.task import Task
from ..schemas.task import PageInfo, Pagination, SortOptions, TaskFilter, TaskStats
from .history_svc import as_utc

_SORT_COLUMNS = {
    "created_at": Task.created_at,
    "updated_at": Task.updated_at,
    "due_date": Task.due_date,
    "title": Task.title,
    "priority": case(PRIORITY_RANK, value=Task.priority, else_=len(PRIORITY_RANK)),
    "status": case(STATUS_RANK, value=Task.status, else_=len(STATUS_RANK)),
}


def resolve_pagination(
    pagination: Pagination | None,
    *,
    default_limit: int | None = None,
    max_limit: int | None = None,
) -> tuple[int, int, int]:
    """Clamp to page >= 1 and 1 <= limit <= max. Returns (page, limit, offset)."""
    max_limit = max_limit or settings.max_page_size
    default_limit = default_limit or settings.default_page_size
    page = pagination.page if pagination else 1
    limit = pagination.limit if pagination and pagination.limit is not None else default_limit
    page = max(1, page)
    limit = min(max_limit, max(1, limit))
    return page, limit, (page - 1) * limit


def page_info(page: int, limit: int, total: int) -> PageInfo:
    total_pages = math.ceil(total / limit) if total else 0
    return PageInfo(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_previous_page=page > 1,
    )


def like_pattern(text: str) -> str:
    """Case-insensitive substring pattern with LIKE wildcards escaped."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _check_values(values: list[str], allowed: type, error: type, label: str) -> list[str]:
    valid = {member.value for member in allowed}
    bad = [v for v in values if v not in valid]
    if bad:
        raise error(f"Unknown {label}: {', '.join(bad)}")
    return values


def build_task_conditions(task_filter: TaskFilter | None) -> list:
    task_filter = task_filter or TaskFilter()
    conditions = []

    if not task_filter.include_archived:
        conditions.append(Task.archived_at.is_(None))

    if task_filter.statuses:
        statuses = _check_values(task_filter.statuses, TaskStatus, InvalidStatusError, "status")
        conditions.append(Task.status.in_(statuses))

    if task_filter.priorities:
        priorities = _check_values(task_filter.priorities, TaskPriority, ValidationError, "priority")
        conditions.append(Task.priority.in_(priorities))

    if task_filter.project_id:
        conditions.append(Task.project_id == task_filter.project_id)

    if task_filter.assignee_id:
        conditions.append(Task.assignee_id == task_filter.assignee_id)

    if task_filter.created_by:
        conditions.append(Task.created_by == task_filter.created_by)

    due_from, due_to = as_utc(task_filter.due_from), as_utc(task_filter.due_to)
    if due_from and due_to and due_from > due_to:
        raise ValidationError("due_from must not be after due_to")
    if due_from:
        conditions.append(Task.due_date >= due_from)
    if due_to:
        conditions.append(Task.due_date <= due_to)

    if task_filter.tag_ids:
        tagged = select(TaskTag.task_id).where(TaskTag.tag_id.in_(task_filter.tag_ids))
        conditions.append(Task.id.in_(tagged))

    search = (task_filter.search or "").strip()
    if search:
        q = like_pattern(search)
        conditions.append(
            or_(
                Task.title.ilike(q, escape="\\"),
                Task.description.ilike(q, escape="\\"),
            )
        )

    return conditions


def task_order_by(sort: SortOptions | None) -> list:
    sort = sort or SortOptions()
    column = _SORT_COLUMNS.get(sort.field)
    if column is None:
        raise ValidationError(
            f"Cannot sort by {sort.field!r}; allowed: {', '.join(sorted(_SORT_COLUMNS))}"
        )
    order = sort.order.lower()
    if order not in ("asc", "desc"):
        raise ValidationError(f"Sort order must be 'asc' or 'desc', got {sort.order!r}")
    primary = column.asc() if order == "asc" else column.desc()
    if sort.field == "due_date":
        primary = primary.nulls_last()
    tiebreak = Task.id.asc() if order == "asc" else Task.id.desc()
    return [primary, tiebreak]


async def list_tasks(
    db: AsyncSession,
    task_filter: TaskFilter | None = None,
    pagination: Pagination | None = None,
    sort: SortOptions | None = None,
) -> tuple[list[Task], PageInfo]:
    """List tasks with filters and pagination. Returns (tasks, meta)."""
    page, limit, offset = resolve_pagination(pagination)
    conditions = build_task_conditions(task_filter)
    order_by = task_order_by(sort)

    count_stmt = select(func.count()).select_from(Task).where(*conditions)
    total = (await db.execute(count_stmt)).scalar() or 0

    stmt = select(Task).where(*conditions).order_by(*order_by).offset(offset).limit(limit)
    result = await db.execute(stmt)
    tasks = list(result.scalars().all())

    return tasks, page_info(page, limit, total)


async def get_task(db: AsyncSession, task_id: uuid.UUID) -> Task | None:
    stmt = select(Task).where(Task.id == task_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def task_stats(
    db: AsyncSession, user_id: str, project_id: uuid.UUID | None = None
) -> TaskStats:
    """Counts over the user's active tasks (created by or assigned to them)."""
    conditions = [
        Task.archived_at.is_(None),
        or_(Task.created_by == user_id, Task.assignee_id == user_id),
    ]
    if project_id:
        conditions.append(Task.project_id == project_id)

    by_status = {status.value: 0 for status in TaskStatus}
    stmt = select(Task.status, func.count()).where(*conditions).group_by(Task.status)
    for status, count in (await db.execute(stmt)).all():
        by_status[status] = count

    by_priority = {priority.value: 0 for priority in TaskPriority}
    stmt = select(Task.priority, func.count()).where(*conditions).group_by(Task.priority)
    for priority, count in (await db.execute(stmt)).all():
        by_priority[priority] = count

    return TaskStats(total=sum(by_status.values()), by_status=by_status, by_priority=by_priority)
