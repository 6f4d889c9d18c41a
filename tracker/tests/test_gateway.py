"""Test the transaction gateway: atomicity, timeouts and error translation."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from tracker.database import TransactionGateway, translate_store_error
from tracker.errors import ConflictError, ConstraintError, TransactionTimeoutError
from tracker.models.tag import Tag


async def _tag_total(gateway: TransactionGateway) -> int:
    async with gateway.reader() as db:
        return (await db.execute(select(func.count()).select_from(Tag))).scalar()


@pytest.mark.asyncio
async def test_run_commits_all_writes(gateway: TransactionGateway):
    async def work(tx):
        tx.add_all([Tag(name="a", color="#FF6B6B"), Tag(name="b", color="#4ECDC4")])
        await tx.flush()
        return "done"

    assert await gateway.run(work) == "done"
    assert await _tag_total(gateway) == 2


@pytest.mark.asyncio
async def test_run_rolls_back_on_error(gateway: TransactionGateway):
    async def work(tx):
        tx.add(Tag(name="a", color="#FF6B6B"))
        await tx.flush()
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await gateway.run(work)
    assert await _tag_total(gateway) == 0


@pytest.mark.asyncio
async def test_unique_violation_becomes_conflict(gateway: TransactionGateway):
    async def work(tx):
        tx.add(Tag(name="dup", color="#FF6B6B"))
        await tx.flush()
        tx.add(Tag(name="dup", color="#4ECDC4"))
        await tx.flush()

    with pytest.raises(ConflictError) as excinfo:
        await gateway.run(work)
    assert excinfo.value.retryable is False
    assert await _tag_total(gateway) == 0


@pytest.mark.asyncio
async def test_check_violation_becomes_constraint_error(gateway: TransactionGateway):
    async def work(tx):
        tx.add(Tag(name="neg", color="#FF6B6B", usage_count=-1))
        await tx.flush()

    with pytest.raises(ConstraintError):
        await gateway.run(work)


@pytest.mark.asyncio
async def test_timeout_rolls_back_and_is_retryable(gateway: TransactionGateway):
    async def slow(tx):
        tx.add(Tag(name="slow", color="#FF6B6B"))
        await tx.flush()
        await asyncio.sleep(5)

    with pytest.raises(TransactionTimeoutError) as excinfo:
        await gateway.run(slow, timeout=0.05)
    assert excinfo.value.retryable is True
    assert await _tag_total(gateway) == 0


@pytest.mark.asyncio
async def test_cancellation_rolls_back(gateway: TransactionGateway):
    started = asyncio.Event()

    async def slow(tx):
        tx.add(Tag(name="cancelled", color="#FF6B6B"))
        await tx.flush()
        started.set()
        await asyncio.sleep(5)

    runner = asyncio.create_task(gateway.run(slow, timeout=None))
    await started.wait()
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner
    assert await _tag_total(gateway) == 0


class _DriverError(Exception):
    def __init__(self, message: str, sqlstate: str | None = None):
        super().__init__(message)
        self.sqlstate = sqlstate


def test_translate_store_error_by_sqlstate():
    unique = IntegrityError("INSERT", {}, _DriverError("dup", "23505"))
    fk = IntegrityError("INSERT", {}, _DriverError("fk", "23503"))
    serialization = OperationalError("UPDATE", {}, _DriverError("retry", "40001"))

    assert isinstance(translate_store_error(unique), ConflictError)
    assert isinstance(translate_store_error(fk), ConstraintError)
    translated = translate_store_error(serialization)
    assert isinstance(translated, ConflictError)
    assert translated.retryable is True


def test_translate_store_error_sqlite_messages():
    locked = OperationalError("UPDATE", {}, _DriverError("database is locked"))
    unique = IntegrityError("INSERT", {}, _DriverError("UNIQUE constraint failed: tag.name"))
    other = OperationalError("SELECT", {}, _DriverError("no such table: nope"))

    assert translate_store_error(locked).retryable is True
    assert isinstance(translate_store_error(unique), ConflictError)
    assert translate_store_error(other) is other
