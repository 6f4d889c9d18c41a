"""Notification service - dispatch after commit, read/unread, cleanup.

``NotificationDispatcher.notify`` runs strictly after the originating
mutation has committed and in its own transaction. It never raises: a
failed notification is logged and dropped, the mutation stands.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import TrackerSettings, settings
from ..database import TransactionGateway
from ..errors import NotFoundError, ValidationError
from ..models.enums import (
    NotificationPriority,
    NotificationType,
    TaskPriority,
    TaskStatus,
)
from ..models.notification import Notification
from ..schemas.notification import NotificationFilter, NotificationStats
from ..schemas.task import PageInfo, Pagination
from .events import DomainEvent, EventKind
from .history_svc import as_utc
from .notification_hub import NotificationHub
from .query_svc import like_pattern, page_info, resolve_pagination

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{(.+?)\}\}")


def render_template(text: str, variables: dict[str, Any]) -> str:
    """Replace {{variable}} placeholders; unknown ones stay literal."""
    def replacer(match):
        key = match.group(1).strip()
        value = variables.get(key)
        return str(value) if value is not None else match.group(0)

    return _PLACEHOLDER.sub(replacer, text)


@dataclass(frozen=True)
class NotificationTemplate:
    type: NotificationType
    priority: NotificationPriority
    title_template: str
    message_template: str
    action_url_template: str | None = None

    def render(self, variables: dict[str, Any]) -> tuple[str, str, str | None]:
        action_url = (
            render_template(self.action_url_template, variables)
            if self.action_url_template
            else None
        )
        return (
            render_template(self.title_template, variables),
            render_template(self.message_template, variables),
            action_url,
        )


TASK_ASSIGNED = NotificationTemplate(
    type=NotificationType.TASK_ASSIGNED,
    priority=NotificationPriority.MEDIUM,
    title_template="New task assigned",
    message_template="Task '{{task_title}}' has been assigned to you by {{actor_id}}",
    action_url_template="/tasks/{{task_id}}",
)
TASK_COMPLETED = NotificationTemplate(
    type=NotificationType.TASK_COMPLETED,
    priority=NotificationPriority.MEDIUM,
    title_template="Task completed",
    message_template="Task '{{task_title}}' was marked as done by {{actor_id}}",
    action_url_template="/tasks/{{task_id}}",
)
TASK_ARCHIVED = NotificationTemplate(
    type=NotificationType.PROJECT_UPDATE,
    priority=NotificationPriority.LOW,
    title_template="Task archived",
    message_template="Task '{{task_title}}' was archived by {{actor_id}}",
    action_url_template="/tasks/{{task_id}}",
)
TASK_DELETED = NotificationTemplate(
    type=NotificationType.PROJECT_UPDATE,
    priority=NotificationPriority.LOW,
    title_template="Task deleted",
    message_template="Task '{{task_title}}' was deleted by {{actor_id}}",
)

_ESCALATING_PRIORITIES = {TaskPriority.URGENT.value, TaskPriority.CRITICAL.value}


def _became_done(changes: dict[str, Any]) -> bool:
    status = changes.get("status")
    return isinstance(status, dict) and status.get("to") == TaskStatus.DONE.value


def plan_notifications(event: DomainEvent) -> list[tuple[str, NotificationTemplate]]:
    """Decide who hears about ``event``. The actor is never notified."""
    plan: list[tuple[str, NotificationTemplate]] = []
    kind = event.kind

    if kind in (EventKind.TASK_CREATED, EventKind.TASK_DUPLICATED):
        plan.append((event.assignee_id, TASK_ASSIGNED))
    elif kind in (EventKind.TASK_UPDATED, EventKind.TASK_STATUS_CHANGED):
        assignee_change = event.changes.get("assignee_id")
        if isinstance(assignee_change, dict) and assignee_change.get("to"):
            plan.append((assignee_change["to"], TASK_ASSIGNED))
        if _became_done(event.changes):
            plan.append((event.created_by, TASK_COMPLETED))
            plan.append((event.assignee_id, TASK_COMPLETED))
    elif kind is EventKind.TASK_ARCHIVED:
        plan.append((event.assignee_id, TASK_ARCHIVED))
        plan.append((event.created_by, TASK_ARCHIVED))
    elif kind is EventKind.TASK_DELETED:
        plan.append((event.assignee_id, TASK_DELETED))
        plan.append((event.created_by, TASK_DELETED))

    seen: set[tuple[str, NotificationType]] = set()
    result = []
    for user_id, template in plan:
        if not user_id or user_id == event.actor_id:
            continue
        key = (user_id, template.type)
        if key in seen:
            continue
        seen.add(key)
        result.append((user_id, template))
    return result


def _check_enum(value: str, allowed: type, label: str) -> str:
    try:
        return allowed(value).value
    except ValueError:
        raise ValidationError(f"Unknown notification {label}: {value!r}") from None


def _filter_conditions(user_id: str, filters: NotificationFilter | None) -> list:
    conditions = [Notification.user_id == user_id]
    if not filters:
        return conditions
    if filters.types:
        conditions.append(Notification.type.in_(filters.types))
    if filters.priorities:
        conditions.append(Notification.priority.in_(filters.priorities))
    if filters.is_read is not None:
        conditions.append(Notification.is_read == filters.is_read)
    if filters.date_from:
        conditions.append(Notification.created_at >= as_utc(filters.date_from))
    if filters.date_to:
        conditions.append(Notification.created_at <= as_utc(filters.date_to))
    if filters.search and filters.search.strip():
        q = like_pattern(filters.search.strip())
        conditions.append(
            or_(
                Notification.title.ilike(q, escape="\\"),
                Notification.message.ilike(q, escape="\\"),
            )
        )
    return conditions


class NotificationDispatcher:
    """Creates notification rows and pushes them to live subscribers."""

    def __init__(
        self,
        gateway: TransactionGateway,
        hub: NotificationHub | None = None,
        *,
        app_settings: TrackerSettings | None = None,
    ) -> None:
        self._gateway = gateway
        self._hub = hub
        self._settings = app_settings or settings

    # -- fan-out -----------------------------------------------------------

    async def notify(self, event: DomainEvent) -> list[Notification]:
        """Turn a committed domain event into notifications. Never raises."""
        try:
            plan = plan_notifications(event)
            if not plan:
                return []
            variables = {
                "task_id": str(event.task_id),
                "task_title": event.task_title,
                "actor_id": event.actor_id,
                "event": event.kind.value,
            }
            escalate = event.priority in _ESCALATING_PRIORITIES

            async def work(tx: AsyncSession) -> list[Notification]:
                rows = []
                for user_id, template in plan:
                    title, message, action_url = template.render(variables)
                    priority = template.priority
                    if escalate and priority is NotificationPriority.MEDIUM:
                        priority = NotificationPriority.HIGH
                    row = Notification(
                        user_id=user_id,
                        type=template.type.value,
                        priority=priority.value,
                        title=title,
                        message=message,
                        action_url=action_url,
                        metadata_json=dict(variables),
                    )
                    tx.add(row)
                    rows.append(row)
                await tx.flush()
                return rows

            rows = await self._gateway.run(work)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(
                "Notification dispatch failed for %s task=%s", event.kind.value, event.task_id
            )
            return []

        self._publish(rows)
        logger.info(
            "Dispatched %d notification(s) for %s task=%s", len(rows), event.kind.value, event.task_id
        )
        return rows

    def _publish(self, rows: Iterable[Notification]) -> None:
        if self._hub is None:
            return
        for row in rows:
            try:
                self._hub.publish(row.user_id, {"event": "notification", "data": row.to_payload()})
            except Exception:  # pragma: no cover - defensive log path
                logger.exception("Real-time push failed for notification=%s", row.id)

    async def _push_unread_count(self, user_id: str) -> None:
        if self._hub is None or not self._hub.subscriber_count(user_id):
            return
        try:
            count = await self.unread_count(user_id)
            self._hub.publish(user_id, {"event": "unread_count", "data": {"count": count}})
        except Exception:  # pragma: no cover - defensive log path
            logger.exception("Unread-count push failed for user=%s", user_id)

    # -- creation ----------------------------------------------------------

    async def create_notification(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        *,
        priority: str = NotificationPriority.MEDIUM.value,
        action_url: str | None = None,
        metadata: dict | None = None,
    ) -> Notification:
        if not user_id:
            raise ValidationError("Notification requires a target user")
        if not title or not title.strip():
            raise ValidationError("Notification title must not be empty")
        row_type = _check_enum(type, NotificationType, "type")
        row_priority = _check_enum(priority, NotificationPriority, "priority")

        async def work(tx: AsyncSession) -> Notification:
            row = Notification(
                user_id=user_id,
                type=row_type,
                priority=row_priority,
                title=title.strip(),
                message=message,
                action_url=action_url,
                metadata_json=metadata,
            )
            tx.add(row)
            await tx.flush()
            return row

        row = await self._gateway.run(work)
        self._publish([row])
        logger.info("Notification created id=%s type=%s user=%s", row.id, row.type, row.user_id)
        return row

    async def create_from_template(
        self,
        template: NotificationTemplate,
        variables: dict[str, Any],
        user_id: str,
    ) -> Notification:
        title, message, action_url = template.render(variables)
        return await self.create_notification(
            user_id,
            template.type.value,
            title,
            message,
            priority=template.priority.value,
            action_url=action_url,
            metadata={key: str(value) for key, value in variables.items()},
        )

    async def create_bulk(
        self,
        user_ids: Iterable[str],
        type: str,
        title: str,
        message: str,
        *,
        priority: str = NotificationPriority.MEDIUM.value,
        action_url: str | None = None,
        created_by: str | None = None,
    ) -> int:
        """One notification per distinct user, e.g. system announcements."""
        targets = list(dict.fromkeys(u for u in user_ids if u))
        if not targets:
            raise ValidationError("Bulk notification requires at least one user")
        if not title or not title.strip():
            raise ValidationError("Notification title must not be empty")
        row_type = _check_enum(type, NotificationType, "type")
        row_priority = _check_enum(priority, NotificationPriority, "priority")
        metadata = {"created_by": created_by} if created_by else None

        async def work(tx: AsyncSession) -> list[Notification]:
            rows = [
                Notification(
                    user_id=user_id,
                    type=row_type,
                    priority=row_priority,
                    title=title.strip(),
                    message=message,
                    action_url=action_url,
                    metadata_json=metadata,
                )
                for user_id in targets
            ]
            tx.add_all(rows)
            await tx.flush()
            return rows

        rows = await self._gateway.run(work)
        self._publish(rows)
        logger.info("Bulk notification created count=%d by=%s", len(rows), created_by)
        return len(rows)

    # -- reads -------------------------------------------------------------

    async def list_notifications(
        self,
        user_id: str,
        filters: NotificationFilter | None = None,
        pagination: Pagination | None = None,
    ) -> tuple[list[Notification], PageInfo]:
        page, limit, offset = resolve_pagination(pagination)
        conditions = _filter_conditions(user_id, filters)
        async with self._gateway.reader() as db:
            total = (
                await db.execute(select(func.count()).select_from(Notification).where(*conditions))
            ).scalar() or 0
            stmt = (
                select(Notification)
                .where(*conditions)
                .order_by(Notification.created_at.desc(), Notification.id.desc())
                .offset(offset)
                .limit(limit)
            )
            rows = list((await db.execute(stmt)).scalars().all())
        return rows, page_info(page, limit, total)

    async def get_notification(self, notification_id: uuid.UUID, user_id: str) -> Notification:
        async with self._gateway.reader() as db:
            row = await _get_for_user(db, notification_id, user_id)
        if row is None:
            raise NotFoundError("Notification", notification_id)
        return row

    async def unread_count(self, user_id: str) -> int:
        stmt = select(func.count()).select_from(Notification).where(
            Notification.user_id == user_id, Notification.is_read.is_(False)
        )
        async with self._gateway.reader() as db:
            return (await db.execute(stmt)).scalar() or 0

    async def recent_unread(self, user_id: str, limit: int = 10) -> list[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .order_by(Notification.created_at.desc())
            .limit(max(1, limit))
        )
        async with self._gateway.reader() as db:
            return list((await db.execute(stmt)).scalars().all())

    async def stats(self, user_id: str) -> NotificationStats:
        by_type = {t.value: 0 for t in NotificationType}
        by_priority = {p.value: 0 for p in NotificationPriority}
        async with self._gateway.reader() as db:
            base = Notification.user_id == user_id
            total = (
                await db.execute(select(func.count()).select_from(Notification).where(base))
            ).scalar() or 0
            unread = (
                await db.execute(
                    select(func.count())
                    .select_from(Notification)
                    .where(base, Notification.is_read.is_(False))
                )
            ).scalar() or 0
            for kind, count in (
                await db.execute(
                    select(Notification.type, func.count()).where(base).group_by(Notification.type)
                )
            ).all():
                by_type[kind] = count
            for priority, count in (
                await db.execute(
                    select(Notification.priority, func.count())
                    .where(base)
                    .group_by(Notification.priority)
                )
            ).all():
                by_priority[priority] = count
        return NotificationStats(total=total, unread=unread, by_type=by_type, by_priority=by_priority)

    # -- read state --------------------------------------------------------

    async def _set_read(self, notification_id: uuid.UUID, user_id: str, is_read: bool) -> Notification:
        async def work(tx: AsyncSession) -> Notification:
            row = await _get_for_user(tx, notification_id, user_id)
            if row is None:
                raise NotFoundError("Notification", notification_id)
            row.is_read = is_read
            await tx.flush()
            return row

        row = await self._gateway.run(work)
        await self._push_unread_count(user_id)
        return row

    async def mark_as_read(self, notification_id: uuid.UUID, user_id: str) -> Notification:
        return await self._set_read(notification_id, user_id, True)

    async def mark_as_unread(self, notification_id: uuid.UUID, user_id: str) -> Notification:
        return await self._set_read(notification_id, user_id, False)

    async def mark_many_as_read(self, notification_ids: Iterable[uuid.UUID], user_id: str) -> int:
        ids = list(notification_ids)
        if not ids:
            return 0

        async def work(tx: AsyncSession) -> int:
            result = await tx.execute(
                update(Notification)
                .where(
                    Notification.id.in_(ids),
                    Notification.user_id == user_id,
                    Notification.is_read.is_(False),
                )
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

        count = await self._gateway.run(work)
        logger.info("Marked %d notification(s) read for user=%s", count, user_id)
        await self._push_unread_count(user_id)
        return count

    async def mark_all_as_read(self, user_id: str, filters: NotificationFilter | None = None) -> int:
        conditions = _filter_conditions(user_id, filters)

        async def work(tx: AsyncSession) -> int:
            result = await tx.execute(
                update(Notification)
                .where(*conditions, Notification.is_read.is_(False))
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

        count = await self._gateway.run(work)
        logger.info("Marked all (%d) notification(s) read for user=%s", count, user_id)
        await self._push_unread_count(user_id)
        return count

    # -- deletion ----------------------------------------------------------

    async def delete_notification(self, notification_id: uuid.UUID, user_id: str) -> None:
        async def work(tx: AsyncSession) -> None:
            row = await _get_for_user(tx, notification_id, user_id)
            if row is None:
                raise NotFoundError("Notification", notification_id)
            await tx.delete(row)

        await self._gateway.run(work)
        logger.info("Notification deleted id=%s user=%s", notification_id, user_id)

    async def delete_many(self, notification_ids: Iterable[uuid.UUID], user_id: str) -> int:
        ids = list(notification_ids)
        if not ids:
            return 0

        async def work(tx: AsyncSession) -> int:
            result = await tx.execute(
                delete(Notification)
                .where(Notification.id.in_(ids), Notification.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

        count = await self._gateway.run(work)
        logger.info("Deleted %d notification(s) for user=%s", count, user_id)
        return count

    async def cleanup_read(self, user_id: str, older_than_days: int | None = None) -> int:
        """Delete the user's read notifications older than the window.

        The window defaults to the configured retention and is capped at the
        configured maximum.
        """
        days = self._settings.notification_retention_days if older_than_days is None else older_than_days
        if days < 1:
            raise ValidationError("Retention window must be at least one day")
        days = min(days, self._settings.notification_retention_max_days)
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)

        async def work(tx: AsyncSession) -> int:
            result = await tx.execute(
                delete(Notification)
                .where(
                    Notification.user_id == user_id,
                    Notification.is_read.is_(True),
                    Notification.created_at < cutoff,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

        count = await self._gateway.run(work)
        logger.info("Cleaned up %d read notification(s) for user=%s older_than_days=%d", count, user_id, days)
        return count


async def _get_for_user(
    db: AsyncSession, notification_id: uuid.UUID, user_id: str
) -> Notification | None:
    stmt = select(Notification).where(
        Notification.id == notification_id, Notification.user_id == user_id
    )
    return (await db.execute(stmt)).scalar_one_or_none()
