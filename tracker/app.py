"""FastAPI application factory for the task tracker."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from .config import TrackerSettings, settings
from .database import TransactionGateway, build_session_factory, create_engine
from .errors import (
    ConflictError,
    ConstraintError,
    InvalidStatusError,
    NotFoundError,
    TrackerError,
    TransactionTimeoutError,
    ValidationError,
)
from .services.notification_hub import NotificationHub
from .services.notification_svc import NotificationDispatcher
from .services.task_svc import TaskService

logger = logging.getLogger(__name__)

_STATUS_CODES: dict[type[TrackerError], int] = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    InvalidStatusError: 422,
    ConstraintError: 409,
    TransactionTimeoutError: 503,
}


def status_code_for(exc: TrackerError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_CODES:
            return _STATUS_CODES[cls]
    return 500


async def tracker_error_handler(request: Request, exc: TrackerError) -> JSONResponse:
    status = status_code_for(exc)
    if status >= 500:
        logger.warning("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "details": exc.details,
                "retryable": exc.retryable,
            }
        },
    )


def create_app(app_settings: TrackerSettings | None = None, *, engine: AsyncEngine | None = None) -> FastAPI:
    """Wire engine -> gateway -> hub -> dispatcher -> task service."""
    cfg = app_settings or settings
    logging.basicConfig(level=cfg.log_level.upper())

    engine = engine or create_engine(cfg)
    gateway = TransactionGateway(
        build_session_factory(engine), timeout=cfg.transaction_timeout_seconds
    )
    hub = NotificationHub(queue_maxsize=cfg.hub_queue_maxsize)
    dispatcher = NotificationDispatcher(gateway, hub, app_settings=cfg)
    task_service = TaskService(gateway, dispatcher, app_settings=cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Auto-create tables for SQLite (local dev); PostgreSQL uses Alembic migrations
        if engine.dialect.name == "sqlite":
            from .models import Base

            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        yield
        await engine.dispose()

    app = FastAPI(title=cfg.app_title, lifespan=lifespan)
    app.state.settings = cfg
    app.state.engine = engine
    app.state.gateway = gateway
    app.state.hub = hub
    app.state.dispatcher = dispatcher
    app.state.task_service = task_service

    app.add_exception_handler(TrackerError, tracker_error_handler)

    from .routers import health, notifications, tags, tasks

    app.include_router(health.router)
    app.include_router(tasks.router)
    app.include_router(tags.router)
    app.include_router(notifications.router)
    return app


app = create_app()
