"""Test tag and project services and palette colors."""

from __future__ import annotations

import random
import uuid

import pytest

from tracker.colors import PROJECT_PALETTE, TAG_PALETTE, is_hex_color, pick_color
from tracker.errors import ConflictError, NotFoundError, ValidationError
from tracker.schemas.task import TaskCreate
from tracker.services import project_svc, tag_svc


def test_pick_color_is_deterministic_with_seed():
    first = [pick_color(TAG_PALETTE, random.Random(7)) for _ in range(3)]
    second = [pick_color(TAG_PALETTE, random.Random(7)) for _ in range(3)]
    assert first == second
    assert all(color in TAG_PALETTE for color in first)
    assert pick_color(PROJECT_PALETTE, random.Random(1)) in PROJECT_PALETTE


def test_is_hex_color():
    assert is_hex_color("#A1B2C3")
    assert not is_hex_color("A1B2C3")
    assert not is_hex_color("#GGGGGG")
    assert not is_hex_color("#FFF")


@pytest.mark.asyncio
async def test_create_tag_defaults_and_conflict(gateway):
    tag = await gateway.run(lambda tx: tag_svc.create_tag(tx, " backend ", rng=random.Random(3)))

    assert tag.name == "backend"
    assert tag.color in TAG_PALETTE
    assert tag.usage_count == 0

    with pytest.raises(ConflictError):
        await gateway.run(lambda tx: tag_svc.create_tag(tx, "backend"))
    with pytest.raises(ValidationError):
        await gateway.run(lambda tx: tag_svc.create_tag(tx, "   "))
    with pytest.raises(ValidationError):
        await gateway.run(lambda tx: tag_svc.create_tag(tx, "bad-color", "red"))


@pytest.mark.asyncio
async def test_get_or_create_tags(gateway, make_tag):
    existing = await make_tag("frontend")

    tags = await gateway.run(
        lambda tx: tag_svc.get_or_create_tags(tx, ["frontend", "infra", "frontend"])
    )

    assert [t.name for t in tags] == ["frontend", "infra"]
    assert tags[0].id == existing.id


@pytest.mark.asyncio
async def test_update_and_delete_tag(gateway, make_tag):
    a = await make_tag("a")
    await make_tag("b")

    renamed = await gateway.run(lambda tx: tag_svc.update_tag(tx, a.id, name="alpha", color="#abcdef"))
    assert renamed.name == "alpha"
    assert renamed.color == "#ABCDEF"

    with pytest.raises(ConflictError):
        await gateway.run(lambda tx: tag_svc.update_tag(tx, a.id, name="b"))

    await gateway.run(lambda tx: tag_svc.delete_tag(tx, a.id))
    with pytest.raises(NotFoundError):
        await gateway.run(lambda tx: tag_svc.delete_tag(tx, a.id))
    with pytest.raises(NotFoundError):
        await gateway.run(lambda tx: tag_svc.update_tag(tx, uuid.uuid4(), name="x"))


@pytest.mark.asyncio
async def test_popular_tags_follow_usage(gateway, service, make_tag):
    a = await make_tag("a")
    b = await make_tag("b")
    await make_tag("unused")
    await service.create_task(TaskCreate(title="1", tag_ids=[a.id, b.id]), "alice")
    await service.create_task(TaskCreate(title="2", tag_ids=[b.id]), "alice")

    async with gateway.reader() as db:
        popular = await tag_svc.popular_tags(db)
        everything = await tag_svc.list_tags(db)

    assert [t.name for t in popular] == ["b", "a"]
    assert [t.name for t in everything] == ["b", "a", "unused"]


@pytest.mark.asyncio
async def test_projects(gateway):
    project = await gateway.run(
        lambda tx: project_svc.create_project(tx, "Launch", "alice", rng=random.Random(2))
    )
    await gateway.run(lambda tx: project_svc.create_project(tx, "Backlog", "bob", color="#000000"))

    assert project.color in PROJECT_PALETTE
    async with gateway.reader() as db:
        assert [p.name for p in await project_svc.list_projects(db)] == ["Backlog", "Launch"]
        assert [p.name for p in await project_svc.list_projects(db, owner_id="alice")] == ["Launch"]
        assert (await project_svc.get_project(db, project.id)).owner_id == "alice"

    with pytest.raises(ValidationError):
        await gateway.run(lambda tx: project_svc.create_project(tx, "", "alice"))
