"""Async engine construction and the transaction gateway.

Every multi-entity write of one logical mutation goes through
``TransactionGateway.run``: the callable receives a session that is already
inside ``session.begin()``, so all writes commit together or not at all.
Store failures are translated into the core error taxonomy on the way out.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import TrackerSettings, settings
from .errors import ConflictError, ConstraintError, TransactionTimeoutError

logger = logging.getLogger(__name__)

R = TypeVar("R")

_CONFLICT_SQLSTATES = {"40001", "40P01"}
_UNIQUE_SQLSTATE = "23505"
_DEFAULT = object()


def _configure_sqlite_connection(dbapi_connection, connection_record) -> None:
    # Hand transaction control to SQLAlchemy; the driver would otherwise
    # defer BEGIN until the first write.
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_immediate(conn) -> None:
    # Take the write lock up front so reads inside a unit of work see the
    # same state its writes are applied to.
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(app_settings: TrackerSettings | None = None, *, url: str | None = None) -> AsyncEngine:
    """Build the async engine.

    SQLite connections get FK enforcement and open every transaction with
    ``BEGIN IMMEDIATE``, which serialises writers for the whole unit of work.
    """
    cfg = app_settings or settings
    engine = create_async_engine(url or cfg.database_url, echo=cfg.echo_sql)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _configure_sqlite_connection)
        event.listen(engine.sync_engine, "begin", _begin_immediate)
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _is_unique_violation(exc: IntegrityError) -> bool:
    if _sqlstate(exc) == _UNIQUE_SQLSTATE:
        return True
    text = str(exc.orig).lower()
    return "unique" in text or "duplicate key" in text


def _is_write_conflict(exc: DBAPIError) -> bool:
    if _sqlstate(exc) in _CONFLICT_SQLSTATES:
        return True
    text = str(exc.orig).lower()
    return (
        "database is locked" in text
        or "deadlock" in text
        or "could not serialize" in text
    )


def translate_store_error(exc: DBAPIError) -> Exception:
    """Map a driver error onto ConflictError / ConstraintError.

    Returns the original exception when it is neither.
    """
    if isinstance(exc, IntegrityError):
        if _is_unique_violation(exc):
            return ConflictError(f"Unique constraint violated: {exc.orig}")
        return ConstraintError(f"Constraint violated: {exc.orig}")
    if _is_write_conflict(exc):
        return ConflictError(f"Write conflict: {exc.orig}", retryable=True)
    return exc


class TransactionGateway:
    """Runs a unit of work inside a single database transaction.

    The gateway never retries; a retryable error is surfaced to the caller,
    who decides whether to run the whole unit of work again.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        timeout: float | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._timeout = timeout

    async def run(
        self,
        work: Callable[[AsyncSession], Awaitable[R]],
        *,
        timeout: float | None | object = _DEFAULT,
    ) -> R:
        """Execute ``work(tx)`` atomically.

        ``timeout`` overrides the gateway default for this call; ``None``
        disables it. On timeout the transaction is rolled back and
        ``TransactionTimeoutError`` is raised. Cancellation of the caller
        also rolls back before ``CancelledError`` propagates.
        """
        limit = self._timeout if timeout is _DEFAULT else timeout
        if limit is None:
            return await self._run(work)
        try:
            return await asyncio.wait_for(self._run(work), timeout=limit)
        except asyncio.TimeoutError:
            logger.warning("Transaction exceeded %.3fs and was rolled back", limit)
            raise TransactionTimeoutError(
                f"Transaction exceeded {limit}s and was rolled back",
                details={"timeout": limit},
            ) from None

    async def _run(self, work: Callable[[AsyncSession], Awaitable[R]]) -> R:
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    return await work(session)
            except DBAPIError as exc:
                translated = translate_store_error(exc)
                if translated is exc:
                    raise
                raise translated from exc

    @asynccontextmanager
    async def reader(self) -> AsyncIterator[AsyncSession]:
        """Session for read-only paths that bypass the mutation pipeline."""
        async with self._session_factory() as session:
            yield session
