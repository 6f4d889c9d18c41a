"""Tag usage tracker - association rows and usage counters in lockstep.

Every TaskTag insert/delete is paired with a +1/-1 on the tag's usage_count
in the caller's transaction. Counters are moved with in-store arithmetic
(``usage_count = usage_count + 1``) so concurrent writers never lose an
update.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import NotFoundError
from ..models.tag import Tag, TaskTag
from ..models.task import Task


@dataclass(frozen=True)
class TagDelta:
    added: frozenset[uuid.UUID]
    removed: frozenset[uuid.UUID]

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed


def compute_delta(
    previous_tag_ids: Iterable[uuid.UUID], new_tag_ids: Iterable[uuid.UUID]
) -> TagDelta:
    previous = frozenset(previous_tag_ids)
    new = frozenset(new_tag_ids)
    return TagDelta(added=new - previous, removed=previous - new)


async def current_tag_ids(tx: AsyncSession, task_id: uuid.UUID) -> set[uuid.UUID]:
    stmt = select(TaskTag.tag_id).where(TaskTag.task_id == task_id)
    return set((await tx.execute(stmt)).scalars().all())


async def _ensure_tags_exist(tx: AsyncSession, tag_ids: frozenset[uuid.UUID]) -> None:
    stmt = select(Tag.id).where(Tag.id.in_(tag_ids))
    found = set((await tx.execute(stmt)).scalars().all())
    missing = tag_ids - found
    if missing:
        raise NotFoundError("Tag", sorted(str(tag_id) for tag_id in missing)[0])


async def _shift_usage(tx: AsyncSession, tag_ids: Iterable[uuid.UUID], step: int) -> None:
    ids = list(tag_ids)
    if not ids:
        return
    await tx.execute(
        update(Tag)
        .where(Tag.id.in_(ids))
        .values(usage_count=Tag.usage_count + step)
        .execution_options(synchronize_session="fetch")
    )


async def apply_tag_delta(
    tx: AsyncSession,
    task_id: uuid.UUID,
    previous_tag_ids: Iterable[uuid.UUID],
    new_tag_ids: Iterable[uuid.UUID],
    *,
    count: bool = True,
) -> TagDelta:
    """Rewire a task's tag associations from ``previous`` to ``new``.

    Removed associations are deleted and their tags decremented by one;
    added ones are inserted and incremented by one. Equal sets are a no-op.
    Unknown tag ids raise ``NotFoundError`` before anything is written.

    ``count=False`` rewires associations without touching counters; it is
    used for archived tasks, which are excluded from usage accounting.
    """
    delta = compute_delta(previous_tag_ids, new_tag_ids)
    if delta.is_empty:
        return delta

    if delta.added:
        await _ensure_tags_exist(tx, delta.added)

    if delta.removed:
        await tx.execute(
            delete(TaskTag).where(
                TaskTag.task_id == task_id, TaskTag.tag_id.in_(delta.removed)
            )
        )
        if count:
            await _shift_usage(tx, delta.removed, -1)

    if delta.added:
        await tx.execute(
            insert(TaskTag),
            [{"task_id": task_id, "tag_id": tag_id} for tag_id in delta.added],
        )
        if count:
            await _shift_usage(tx, delta.added, +1)

    return delta


async def release_tag_usage(tx: AsyncSession, tag_ids: Iterable[uuid.UUID]) -> None:
    """Decrement counters for a task leaving active accounting (archive)."""
    await _shift_usage(tx, tag_ids, -1)


async def find_usage_drift(db: AsyncSession) -> dict[uuid.UUID, tuple[int, int]]:
    """Compare stored counters with live associations of active tasks.

    Returns ``{tag_id: (stored, actual)}`` for every tag that disagrees.
    Read-only; nothing is corrected here.
    """
    live = (
        select(TaskTag.tag_id, func.count().label("actual"))
        .join(Task, Task.id == TaskTag.task_id)
        .where(Task.archived_at.is_(None))
        .group_by(TaskTag.tag_id)
        .subquery()
    )
    stmt = select(Tag.id, Tag.usage_count, func.coalesce(live.c.actual, 0)).outerjoin(
        live, live.c.tag_id == Tag.id
    )
    drift: dict[uuid.UUID, tuple[int, int]] = {}
    for tag_id, stored, actual in (await db.execute(stmt)).all():
        if stored != actual:
            drift[tag_id] = (stored, actual)
    return drift
