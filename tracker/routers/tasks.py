"""Task routes (JSON)."""

from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response

from ..deps import get_current_user, get_task_service
from ..schemas.task import (
    HistoryResponse,
    Pagination,
    SortOptions,
    TaskAssign,
    TaskCreate,
    TaskFilter,
    TaskPage,
    TaskPriorityUpdate,
    TaskResponse,
    TaskStats,
    TaskStatusUpdate,
    TaskUpdate,
)
from ..services.task_svc import TaskService

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.post("", status_code=201, response_model=TaskResponse)
async def task_create(
    data: TaskCreate,
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.create_task(data, user_id)


@router.get("", response_model=TaskPage)
async def task_list(
    status: list[str] | None = Query(None),
    priority: list[str] | None = Query(None),
    tag_id: list[uuid.UUID] | None = Query(None),
    project_id: uuid.UUID | None = None,
    assignee_id: str | None = None,
    created_by: str | None = None,
    due_from: datetime | None = None,
    due_to: datetime | None = None,
    search: str | None = None,
    include_archived: bool = False,
    page: int = 1,
    limit: int | None = None,
    sort: str = "created_at",
    order: str = "desc",
    service: TaskService = Depends(get_task_service),
):
    task_filter = TaskFilter(
        statuses=status,
        priorities=priority,
        tag_ids=tag_id,
        project_id=project_id,
        assignee_id=assignee_id,
        created_by=created_by,
        due_from=due_from,
        due_to=due_to,
        search=search,
        include_archived=include_archived,
    )
    tasks, meta = await service.list_tasks(
        task_filter, Pagination(page=page, limit=limit), SortOptions(field=sort, order=order)
    )
    return TaskPage(items=[TaskResponse.model_validate(t) for t in tasks], meta=meta)


@router.get("/stats", response_model=TaskStats)
async def task_stats(
    project_id: uuid.UUID | None = None,
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.get_task_stats(user_id, project_id)


@router.get("/{task_id}", response_model=TaskResponse)
async def task_detail(task_id: uuid.UUID, service: TaskService = Depends(get_task_service)):
    return await service.get_task(task_id)


@router.patch("/{task_id}", response_model=TaskResponse)
async def task_update(
    task_id: uuid.UUID,
    data: TaskUpdate,
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.update_task(task_id, data, user_id)


@router.put("/{task_id}/status", response_model=TaskResponse)
async def task_status(
    task_id: uuid.UUID,
    data: TaskStatusUpdate,
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.update_task_status(task_id, data.status, user_id)


@router.put("/{task_id}/priority", response_model=TaskResponse)
async def task_priority(
    task_id: uuid.UUID,
    data: TaskPriorityUpdate,
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.update_task_priority(task_id, data.priority, user_id)


@router.put("/{task_id}/assignee", response_model=TaskResponse)
async def task_assign(
    task_id: uuid.UUID,
    data: TaskAssign,
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.assign_task(task_id, data.assignee_id, user_id)


@router.post("/{task_id}/archive", status_code=204)
async def task_archive(
    task_id: uuid.UUID,
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    await service.archive_task(task_id, user_id)
    return Response(status_code=204)


@router.post("/{task_id}/duplicate", status_code=201, response_model=TaskResponse)
async def task_duplicate(
    task_id: uuid.UUID,
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return await service.duplicate_task(task_id, user_id)


@router.delete("/{task_id}", status_code=204)
async def task_delete(
    task_id: uuid.UUID,
    user_id: str = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    await service.delete_task(task_id, user_id)
    return Response(status_code=204)


@router.get("/{task_id}/history", response_model=list[HistoryResponse])
async def task_history(
    task_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=500),
    service: TaskService = Depends(get_task_service),
):
    return await service.get_history(task_id, limit=limit)
