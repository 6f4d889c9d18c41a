"""Notification routes, including the real-time SSE stream."""

from __future__ import annotations

import asyncio
import json
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, Response
from sse_starlette.sse import EventSourceResponse

from ..deps import get_current_user, get_dispatcher, get_hub
from ..schemas.notification import (
    NotificationCreate,
    NotificationFilter,
    NotificationIds,
    NotificationPage,
    NotificationResponse,
    NotificationStats,
    SystemNotificationCreate,
)
from ..schemas.task import Pagination
from ..services.notification_hub import NotificationHub
from ..services.notification_svc import NotificationDispatcher

router = APIRouter(prefix="/notifications", tags=["notifications"])

HEARTBEAT_INTERVAL = 15.0


@router.get("", response_model=NotificationPage)
async def notification_list(
    type: list[str] | None = Query(None),
    priority: list[str] | None = Query(None),
    is_read: bool | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int | None = None,
    user_id: str = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    filters = NotificationFilter(
        types=type,
        priorities=priority,
        is_read=is_read,
        date_from=date_from,
        date_to=date_to,
        search=search,
    )
    rows, meta = await dispatcher.list_notifications(
        user_id, filters, Pagination(page=page, limit=limit)
    )
    return NotificationPage(items=[NotificationResponse.model_validate(r) for r in rows], meta=meta)


@router.post("", status_code=201, response_model=NotificationResponse)
async def notification_create(
    data: NotificationCreate,
    user_id: str = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return await dispatcher.create_notification(
        data.user_id,
        data.type,
        data.title,
        data.message,
        priority=data.priority,
        action_url=data.action_url,
        metadata=data.metadata,
    )


@router.post("/system", status_code=201)
async def notification_broadcast(
    data: SystemNotificationCreate,
    user_id: str = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    created = await dispatcher.create_bulk(
        data.user_ids,
        data.type,
        data.title,
        data.message,
        priority=data.priority,
        action_url=data.action_url,
        created_by=user_id,
    )
    return {"created": created}


@router.get("/unread-count")
async def notification_unread_count(
    user_id: str = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return {"count": await dispatcher.unread_count(user_id)}


@router.get("/stats", response_model=NotificationStats)
async def notification_stats(
    user_id: str = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return await dispatcher.stats(user_id)


@router.post("/read")
async def notification_mark_many(
    data: NotificationIds,
    user_id: str = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return {"updated": await dispatcher.mark_many_as_read(data.notification_ids, user_id)}


@router.post("/read-all")
async def notification_mark_all(
    user_id: str = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return {"updated": await dispatcher.mark_all_as_read(user_id)}


@router.post("/delete")
async def notification_delete_many(
    data: NotificationIds,
    user_id: str = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return {"deleted": await dispatcher.delete_many(data.notification_ids, user_id)}


@router.post("/cleanup")
async def notification_cleanup(
    older_than_days: int | None = None,
    user_id: str = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return {"deleted": await dispatcher.cleanup_read(user_id, older_than_days)}


@router.get("/stream")
async def notification_stream(
    request: Request,
    user_id: str = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    hub: NotificationHub = Depends(get_hub),
):
    """SSE stream: current unread count first, then live pushes and heartbeats."""
    queue = hub.subscribe(user_id)
    try:
        unread = await dispatcher.unread_count(user_id)
    except Exception:
        hub.unsubscribe(user_id, queue)
        raise

    async def event_generator():
        try:
            yield {"event": "unread_count", "data": json.dumps({"count": unread})}
            while True:
                if await request.is_disconnected():
                    return
                try:
                    payload = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_INTERVAL)
                except asyncio.TimeoutError:
                    yield {"comment": "heartbeat"}
                    continue
                yield {"event": payload["event"], "data": json.dumps(payload["data"])}
        finally:
            hub.unsubscribe(user_id, queue)

    return EventSourceResponse(event_generator())


@router.get("/{notification_id}", response_model=NotificationResponse)
async def notification_detail(
    notification_id: uuid.UUID,
    user_id: str = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return await dispatcher.get_notification(notification_id, user_id)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def notification_mark_read(
    notification_id: uuid.UUID,
    user_id: str = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return await dispatcher.mark_as_read(notification_id, user_id)


@router.post("/{notification_id}/unread", response_model=NotificationResponse)
async def notification_mark_unread(
    notification_id: uuid.UUID,
    user_id: str = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return await dispatcher.mark_as_unread(notification_id, user_id)


@router.delete("/{notification_id}", status_code=204)
async def notification_delete(
    notification_id: uuid.UUID,
    user_id: str = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    await dispatcher.delete_notification(notification_id, user_id)
    return Response(status_code=204)
