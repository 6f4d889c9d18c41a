"""Notification schemas."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from .task import PageInfo


class NotificationCreate(BaseModel):
    user_id: str
    type: str
    priority: str = "MEDIUM"
    title: str
    message: str
    action_url: str | None = None
    metadata: dict | None = None


class SystemNotificationCreate(BaseModel):
    user_ids: list[str]
    type: str = "SYSTEM"
    priority: str = "MEDIUM"
    title: str
    message: str
    action_url: str | None = None


class NotificationFilter(BaseModel):
    types: list[str] | None = None
    priorities: list[str] | None = None
    is_read: bool | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    search: str | None = None


class NotificationIds(BaseModel):
    notification_ids: list[uuid.UUID] = Field(min_length=1)


class NotificationResponse(BaseModel):
    id: uuid.UUID
    user_id: str
    type: str
    priority: str
    title: str
    message: str
    is_read: bool
    action_url: str | None = None
    metadata_json: dict | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationStats(BaseModel):
    total: int
    unread: int
    by_type: dict[str, int]
    by_priority: dict[str, int]


class NotificationPage(BaseModel):
    items: list[NotificationResponse]
    meta: PageInfo
