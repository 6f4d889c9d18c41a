"""Test task listing: filters, search, sorting and pagination."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tracker.errors import InvalidStatusError, ValidationError
from tracker.schemas.task import Pagination, SortOptions, TaskCreate, TaskFilter
from tracker.services.query_svc import like_pattern, page_info, resolve_pagination


def test_resolve_pagination_clamps():
    assert resolve_pagination(Pagination(page=0, limit=0)) == (1, 1, 0)
    assert resolve_pagination(Pagination(page=3, limit=500)) == (3, 100, 200)
    assert resolve_pagination(None, default_limit=20) == (1, 20, 0)


def test_page_info():
    meta = page_info(page=2, limit=10, total=25)
    assert meta.total_pages == 3
    assert meta.has_next_page is True
    assert meta.has_previous_page is True

    empty = page_info(page=1, limit=10, total=0)
    assert empty.total_pages == 0
    assert empty.has_next_page is False


def test_like_pattern_escapes_wildcards():
    assert like_pattern("50%_off") == "%50\\%\\_off%"


@pytest.mark.asyncio
async def test_filter_by_status_and_priority(service):
    await service.create_task(TaskCreate(title="a", status="TODO", priority="LOW"), "alice")
    await service.create_task(TaskCreate(title="b", status="DONE", priority="HIGH"), "alice")
    await service.create_task(TaskCreate(title="c", status="DONE", priority="LOW"), "alice")

    tasks, meta = await service.list_tasks(TaskFilter(statuses=["DONE"], priorities=["LOW"]))

    assert [t.title for t in tasks] == ["c"]
    assert meta.total == 1


@pytest.mark.asyncio
async def test_filter_rejects_unknown_values(service):
    with pytest.raises(InvalidStatusError):
        await service.list_tasks(TaskFilter(statuses=["BLOCKED"]))
    with pytest.raises(ValidationError):
        await service.list_tasks(TaskFilter(priorities=["SOMEDAY"]))


@pytest.mark.asyncio
async def test_filter_by_tag_membership_without_duplicates(service, make_tag):
    a = await make_tag("a")
    b = await make_tag("b")
    await service.create_task(TaskCreate(title="both", tag_ids=[a.id, b.id]), "alice")
    await service.create_task(TaskCreate(title="only-b", tag_ids=[b.id]), "alice")
    await service.create_task(TaskCreate(title="none"), "alice")

    tasks, meta = await service.list_tasks(TaskFilter(tag_ids=[a.id, b.id]))

    assert sorted(t.title for t in tasks) == ["both", "only-b"]
    assert meta.total == 2


@pytest.mark.asyncio
async def test_search_title_and_description_case_insensitive(service):
    await service.create_task(TaskCreate(title="Fix LOGIN bug"), "alice")
    await service.create_task(TaskCreate(title="Other", description="login page copy"), "alice")
    await service.create_task(TaskCreate(title="Unrelated"), "alice")

    tasks, _ = await service.list_tasks(TaskFilter(search="Login"))

    assert sorted(t.title for t in tasks) == ["Fix LOGIN bug", "Other"]


@pytest.mark.asyncio
async def test_search_treats_wildcards_literally(service):
    await service.create_task(TaskCreate(title="100% done"), "alice")
    await service.create_task(TaskCreate(title="100 done"), "alice")

    tasks, _ = await service.list_tasks(TaskFilter(search="100%"))

    assert [t.title for t in tasks] == ["100% done"]


@pytest.mark.asyncio
async def test_filter_by_assignee_creator_and_due_range(service):
    early = datetime(2026, 1, 10, tzinfo=timezone.utc)
    late = datetime(2026, 3, 10, tzinfo=timezone.utc)
    await service.create_task(TaskCreate(title="early", assignee_id="carol", due_date=early), "alice")
    await service.create_task(TaskCreate(title="late", assignee_id="carol", due_date=late), "bob")
    await service.create_task(TaskCreate(title="nodue", assignee_id="dave"), "alice")

    tasks, _ = await service.list_tasks(TaskFilter(assignee_id="carol", created_by="alice"))
    assert [t.title for t in tasks] == ["early"]

    tasks, _ = await service.list_tasks(
        TaskFilter(
            due_from=datetime(2026, 2, 1, tzinfo=timezone.utc),
            due_to=datetime(2026, 4, 1, tzinfo=timezone.utc),
        )
    )
    assert [t.title for t in tasks] == ["late"]

    with pytest.raises(ValidationError):
        await service.list_tasks(TaskFilter(due_from=late, due_to=early))


@pytest.mark.asyncio
async def test_default_sort_is_newest_first_and_pages(service):
    for i in range(5):
        await service.create_task(TaskCreate(title=f"t{i}"), "alice")

    page1, meta1 = await service.list_tasks(pagination=Pagination(page=1, limit=2))
    page3, meta3 = await service.list_tasks(pagination=Pagination(page=3, limit=2))

    assert [t.title for t in page1] == ["t4", "t3"]
    assert [t.title for t in page3] == ["t0"]
    assert meta1.total == 5
    assert meta1.total_pages == 3
    assert meta1.has_next_page is True
    assert meta3.has_next_page is False
    assert meta3.has_previous_page is True


@pytest.mark.asyncio
async def test_sort_by_priority_rank_and_title(service):
    await service.create_task(TaskCreate(title="b", priority="CRITICAL"), "alice")
    await service.create_task(TaskCreate(title="c", priority="LOW"), "alice")
    await service.create_task(TaskCreate(title="a", priority="HIGH"), "alice")

    by_priority, _ = await service.list_tasks(sort=SortOptions(field="priority", order="asc"))
    by_title, _ = await service.list_tasks(sort=SortOptions(field="title", order="asc"))

    assert [t.priority for t in by_priority] == ["LOW", "HIGH", "CRITICAL"]
    assert [t.title for t in by_title] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_sort_rejects_unknown_field_or_order(service):
    with pytest.raises(ValidationError):
        await service.list_tasks(sort=SortOptions(field="password"))
    with pytest.raises(ValidationError):
        await service.list_tasks(sort=SortOptions(order="sideways"))


@pytest.mark.asyncio
async def test_due_range_with_offset_is_compared_in_utc(service):
    await service.create_task(
        TaskCreate(title="noon", due_date=datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)), "alice"
    )
    plus_five = timezone(timedelta(hours=5))

    tasks, meta = await service.list_tasks(
        TaskFilter(
            due_from=datetime(2026, 6, 1, 16, 0, tzinfo=plus_five),
            due_to=datetime(2026, 6, 1, 18, 0, tzinfo=plus_five),
        )
    )

    assert [t.title for t in tasks] == ["noon"]
    assert meta.total == 1
