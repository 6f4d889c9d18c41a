"""Task schemas."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class TaskCreate(BaseModel):
    title: str
    description: str | None = None
    # Plain strings: the core owns status/priority validation.
    status: str | None = None
    priority: str | None = None
    project_id: uuid.UUID | None = None
    assignee_id: str | None = None
    parent_id: uuid.UUID | None = None
    due_date: datetime | None = None
    estimated_hours: float | None = None
    actual_hours: float | None = None
    tag_ids: list[uuid.UUID] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    """Partial update; only explicitly set fields are applied.

    ``tag_ids`` replaces the whole association set when provided.
    """

    title: str | None = None
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    project_id: uuid.UUID | None = None
    assignee_id: str | None = None
    parent_id: uuid.UUID | None = None
    due_date: datetime | None = None
    estimated_hours: float | None = None
    actual_hours: float | None = None
    tag_ids: list[uuid.UUID] | None = None


class TaskStatusUpdate(BaseModel):
    status: str


class TaskPriorityUpdate(BaseModel):
    priority: str


class TaskAssign(BaseModel):
    assignee_id: str | None = None


class TaskFilter(BaseModel):
    statuses: list[str] | None = None
    priorities: list[str] | None = None
    project_id: uuid.UUID | None = None
    assignee_id: str | None = None
    created_by: str | None = None
    due_from: datetime | None = None
    due_to: datetime | None = None
    tag_ids: list[uuid.UUID] | None = None
    search: str | None = None
    include_archived: bool = False


class Pagination(BaseModel):
    page: int = 1
    limit: int | None = None


class SortOptions(BaseModel):
    field: str = "created_at"
    order: str = "desc"


class PageInfo(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class TaskStats(BaseModel):
    total: int
    by_status: dict[str, int]
    by_priority: dict[str, int]


class TagSummary(BaseModel):
    id: uuid.UUID
    name: str
    color: str

    model_config = {"from_attributes": True}


class TaskResponse(BaseModel):
    id: uuid.UUID
    title: str
    description: str | None = None
    status: str
    priority: str
    project_id: uuid.UUID | None = None
    assignee_id: str | None = None
    parent_id: uuid.UUID | None = None
    due_date: datetime | None = None
    estimated_hours: float | None = None
    actual_hours: float | None = None
    archived_at: datetime | None = None
    created_by: str
    updated_by: str
    created_at: datetime
    updated_at: datetime
    tags: list[TagSummary] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class TaskPage(BaseModel):
    items: list[TaskResponse]
    meta: PageInfo


class HistoryResponse(BaseModel):
    id: uuid.UUID
    task_id: uuid.UUID
    user_id: str
    action: str
    changes: dict
    created_at: datetime

    model_config = {"from_attributes": True}
