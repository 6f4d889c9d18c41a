"""FastAPI dependencies. Services live on ``app.state``, built by create_app."""

from __future__ import annotations

from fastapi import Header, Request

from .database import TransactionGateway
from .errors import ValidationError
from .services.notification_hub import NotificationHub
from .services.notification_svc import NotificationDispatcher
from .services.task_svc import TaskService


def get_gateway(request: Request) -> TransactionGateway:
    return request.app.state.gateway


def get_task_service(request: Request) -> TaskService:
    return request.app.state.task_service


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def get_hub(request: Request) -> NotificationHub:
    return request.app.state.hub


def get_current_user(x_user_id: str | None = Header(default=None)) -> str:
    """Acting user, asserted by the upstream auth proxy."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise ValidationError("Missing X-User-Id header")
    return user_id
