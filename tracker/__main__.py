"""Command-line entry point: ``python -m tracker serve`` and maintenance jobs."""

from __future__ import annotations

import asyncio

import typer

app = typer.Typer(help="Task tracker API and maintenance commands.")


@app.command()
def serve(
    port: int = typer.Option(8020, "--port", "-p", help="Port to run on"),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Launch the tracker API."""
    import uvicorn

    typer.echo(f"Starting task tracker at http://{host}:{port}")
    uvicorn.run("tracker.app:app", host=host, port=port, reload=reload)


@app.command("purge-history")
def purge_history(
    older_than_days: int | None = typer.Option(None, "--older-than-days", help="Retention window"),
):
    """Delete task history entries older than the retention window."""
    from .config import settings
    from .database import TransactionGateway, build_session_factory, create_engine
    from .services.task_svc import TaskService

    async def _run() -> int:
        engine = create_engine(settings)
        try:
            gateway = TransactionGateway(
                build_session_factory(engine), timeout=settings.transaction_timeout_seconds
            )
            return await TaskService(gateway).purge_history(older_than_days)
        finally:
            await engine.dispose()

    typer.echo(f"Purged {asyncio.run(_run())} history entries")


if __name__ == "__main__":
    app()
