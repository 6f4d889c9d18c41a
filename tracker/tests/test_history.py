"""Test history snapshots, diffs and retention."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from tracker.errors import ValidationError
from tracker.models.history import TaskHistory
from tracker.services import history_svc
from tracker.services.history_svc import TaskSnapshot, diff_snapshots


def test_diff_only_changed_fields():
    tag = uuid.uuid4()
    before = TaskSnapshot(title="T", status="TODO", priority="LOW", tags=frozenset({tag}))
    after = TaskSnapshot(title="T", status="DONE", priority="LOW", tags=frozenset())

    assert diff_snapshots(before, after) == {
        "status": {"from": "TODO", "to": "DONE"},
        "tags": {"from": [str(tag)], "to": []},
    }


def test_diff_treats_naive_and_aware_utc_as_equal():
    aware = datetime(2026, 5, 1, 8, 0, tzinfo=timezone.utc)
    before = TaskSnapshot(title="T", due_date=history_svc.as_utc(aware.replace(tzinfo=None)))
    after = TaskSnapshot(title="T", due_date=aware)

    assert diff_snapshots(before, after) == {}


def test_snapshot_values_are_json_safe():
    project = uuid.uuid4()
    due = datetime(2026, 5, 1, 8, 0, tzinfo=timezone.utc)
    values = TaskSnapshot(title="T", project_id=project, due_date=due).values()

    assert values["project_id"] == str(project)
    assert values["due_date"] == "2026-05-01T08:00:00+00:00"
    assert values["tags"] == []


@pytest.mark.asyncio
async def test_record_change_created_stores_initial_values(gateway):
    task_id = uuid.uuid4()
    after = TaskSnapshot(title="T", status="TODO", priority="MEDIUM")

    entry = await gateway.run(
        lambda tx: history_svc.record_change(tx, task_id, "alice", "CREATED", None, after)
    )

    assert entry.action == "CREATED"
    assert entry.changes == {"title": "T", "status": "TODO", "priority": "MEDIUM"}


@pytest.mark.asyncio
async def test_record_change_empty_diff_writes_nothing(gateway):
    task_id = uuid.uuid4()
    snap = TaskSnapshot(title="T", status="TODO")

    entry = await gateway.run(
        lambda tx: history_svc.record_change(tx, task_id, "alice", "UPDATED", snap, snap)
    )

    assert entry is None
    async with gateway.reader() as db:
        assert await history_svc.list_history(db, task_id) == []


@pytest.mark.asyncio
async def test_record_change_requires_prior_snapshot(gateway):
    with pytest.raises(ValidationError):
        await gateway.run(
            lambda tx: history_svc.record_change(
                tx, uuid.uuid4(), "alice", "UPDATED", None, TaskSnapshot(title="T")
            )
        )


@pytest.mark.asyncio
async def test_purge_history_respects_window(gateway):
    task_id = uuid.uuid4()
    old = await gateway.run(
        lambda tx: history_svc.record_event(tx, task_id, "alice", "CREATED", {"title": "T"})
    )
    await gateway.run(
        lambda tx: history_svc.record_event(tx, task_id, "alice", "ARCHIVED", {})
    )

    async def age(tx):
        await tx.execute(
            update(TaskHistory)
            .where(TaskHistory.id == old.id)
            .values(created_at=datetime.now(timezone.utc) - timedelta(days=400))
        )

    await gateway.run(age)

    purged = await gateway.run(lambda tx: history_svc.purge_history(tx, 365))

    assert purged == 1
    async with gateway.reader() as db:
        remaining = await history_svc.list_history(db, task_id)
    assert [h.action for h in remaining] == ["ARCHIVED"]

    with pytest.raises(ValidationError):
        await gateway.run(lambda tx: history_svc.purge_history(tx, 0))
