"""CLI command tests."""

from __future__ import annotations

import asyncio

from typer.testing import CliRunner

from tracker import __main__ as cli
from tracker.config import settings
from tracker.database import create_engine
from tracker.models import Base


def test_purge_history_on_empty_database(tmp_path, monkeypatch):
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setattr(settings, "database_url", url)

    async def create_tables():
        engine = create_engine(settings)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()

    asyncio.run(create_tables())

    result = CliRunner().invoke(cli.app, ["purge-history", "--older-than-days", "30"])

    assert result.exit_code == 0, result.output
    assert "Purged 0 history entries" in result.output


def test_purge_history_rejects_bad_window(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "database_url", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")

    result = CliRunner().invoke(cli.app, ["purge-history", "--older-than-days", "0"])

    assert result.exit_code != 0
