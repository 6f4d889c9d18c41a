"""Test tag association bookkeeping and usage counters."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import update

from tracker.errors import NotFoundError
from tracker.models.tag import Tag
from tracker.models.task import Task
from tracker.services import tag_usage_svc
from tracker.services.tag_usage_svc import compute_delta


async def _make_task(gateway, title: str = "T") -> uuid.UUID:
    async def work(tx):
        task = Task(title=title, created_by="alice", updated_by="alice")
        tx.add(task)
        await tx.flush()
        return task.id

    return await gateway.run(work)


def test_compute_delta():
    a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()

    delta = compute_delta([a, b], [b, c])

    assert delta.added == {c}
    assert delta.removed == {a}
    assert not delta.is_empty
    assert compute_delta([a, b], [b, a]).is_empty


@pytest.mark.asyncio
async def test_apply_delta_moves_associations_and_counts(gateway, make_tag, tag_count):
    a = await make_tag("a")
    b = await make_tag("b")
    c = await make_tag("c")
    task_id = await _make_task(gateway)

    await gateway.run(lambda tx: tag_usage_svc.apply_tag_delta(tx, task_id, set(), {a.id, b.id}))
    delta = await gateway.run(
        lambda tx: tag_usage_svc.apply_tag_delta(tx, task_id, {a.id, b.id}, {b.id, c.id})
    )

    assert delta.added == {c.id}
    assert delta.removed == {a.id}
    assert (await tag_count(a.id), await tag_count(b.id), await tag_count(c.id)) == (0, 1, 1)
    async with gateway.reader() as db:
        assert await tag_usage_svc.current_tag_ids(db, task_id) == {b.id, c.id}


@pytest.mark.asyncio
async def test_apply_delta_same_sets_is_noop(gateway, make_tag, tag_count):
    a = await make_tag("a")
    task_id = await _make_task(gateway)
    await gateway.run(lambda tx: tag_usage_svc.apply_tag_delta(tx, task_id, set(), {a.id}))

    delta = await gateway.run(
        lambda tx: tag_usage_svc.apply_tag_delta(tx, task_id, {a.id}, [a.id, a.id])
    )

    assert delta.is_empty
    assert await tag_count(a.id) == 1


@pytest.mark.asyncio
async def test_apply_delta_unknown_tag_fails(gateway, make_tag, tag_count):
    a = await make_tag("a")
    task_id = await _make_task(gateway)

    with pytest.raises(NotFoundError) as excinfo:
        await gateway.run(
            lambda tx: tag_usage_svc.apply_tag_delta(tx, task_id, set(), {a.id, uuid.uuid4()})
        )

    assert excinfo.value.entity == "Tag"
    assert await tag_count(a.id) == 0
    async with gateway.reader() as db:
        assert await tag_usage_svc.current_tag_ids(db, task_id) == set()


@pytest.mark.asyncio
async def test_apply_delta_without_counting(gateway, make_tag, tag_count):
    a = await make_tag("a")
    task_id = await _make_task(gateway)

    await gateway.run(
        lambda tx: tag_usage_svc.apply_tag_delta(tx, task_id, set(), {a.id}, count=False)
    )

    assert await tag_count(a.id) == 0
    async with gateway.reader() as db:
        assert await tag_usage_svc.current_tag_ids(db, task_id) == {a.id}


@pytest.mark.asyncio
async def test_find_usage_drift_reports_mismatch(gateway, make_tag):
    a = await make_tag("a")
    b = await make_tag("b")
    task_id = await _make_task(gateway)
    await gateway.run(lambda tx: tag_usage_svc.apply_tag_delta(tx, task_id, set(), {a.id}))

    async with gateway.reader() as db:
        assert await tag_usage_svc.find_usage_drift(db) == {}

    async def corrupt(tx):
        await tx.execute(update(Tag).where(Tag.id == b.id).values(usage_count=3))

    await gateway.run(corrupt)

    async with gateway.reader() as db:
        assert await tag_usage_svc.find_usage_drift(db) == {b.id: (3, 0)}
