"""
perfsync CLI - Sync command.

Poll buildbot and trigger builds for pending build requests.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import httpx
import typer
from rich.console import Console

from perfsync.core.buildbot import (
    BuildbotClient,
    BuildbotSyncer,
    BuildbotTriggerable,
    SyncReport,
    load_syncers_file,
)
from perfsync.core.config import load_config
from perfsync.core.exceptions import BuildbotConfigError, PerfSyncError
from perfsync.core.store import Store

console = Console()
logger = logging.getLogger(__name__)


def _print_report(report: SyncReport) -> None:
    style = "green" if report.success else "yellow"
    console.print(
        f"[{style}]{report.triggerable}[/{style}]: "
        f"{report.build_requests} requests, "
        f"{len(report.correlated)} on buildbot, "
        f"{len(report.scheduled)} scheduled "
        f"[dim]({report.duration_seconds:.2f}s)[/dim]"
    )
    for request_id in report.scheduled:
        console.print(f"  [cyan]→[/cyan] triggered build request {request_id}")
    for request_id, status in report.updated.items():
        if request_id not in report.scheduled:
            console.print(f"  [dim]build request {request_id} is now {status}[/dim]")
    for error in report.errors:
        console.print(f"  [red]✗[/red] {error}")


async def _run(
    store: Store,
    syncers: list[BuildbotSyncer],
    triggerable_name: str,
    *,
    count: int,
    timeout: float,
    interval: float,
    once: bool,
) -> None:
    async with BuildbotClient(timeout=timeout) as client:
        triggerable = BuildbotTriggerable(
            store, syncers, triggerable_name, client, recent_build_count=count
        )
        while True:
            try:
                _print_report(await triggerable.sync_once())
            except httpx.HTTPError as e:
                if once:
                    raise
                # Buildbot outages are retried on the next pass
                logger.warning("Sync pass for %s failed: %s", triggerable_name, e)
                console.print(f"[yellow]Warning:[/yellow] sync pass failed: {e}")
            if once:
                return
            await asyncio.sleep(interval)


def sync(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to the buildbot sync configuration"),
    ] = None,
    url: Annotated[
        str | None,
        typer.Option("--url", help="Buildbot base URL (overrides buildbotUrl)"),
    ] = None,
    triggerable: Annotated[
        str | None,
        typer.Option("--triggerable", "-t", help="Triggerable to sync"),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the SQLite database"),
    ] = None,
    count: Annotated[
        int | None,
        typer.Option("--count", help="Recent builds to fetch per builder", min=0),
    ] = None,
    interval: Annotated[
        float | None,
        typer.Option("--interval", help="Seconds between passes", min=0.0),
    ] = None,
    once: Annotated[
        bool,
        typer.Option("--once", help="Run a single pass and exit"),
    ] = False,
) -> None:
    """
    Keep a triggerable's build requests moving through buildbot.

    Each pass reads the pending build requests, pulls pending and recent
    builds of every configured builder, and triggers the next request of
    each test group that has nothing in flight.

    Examples:
        perfsync sync --once -c buildbot.json -t build-webkit
        perfsync sync --url http://build.webkit.org --interval 30
    """
    settings = load_config()
    config_path = config_path or (
        Path(settings.buildbot.config_path) if settings.buildbot.config_path else None
    )
    triggerable = triggerable or settings.buildbot.triggerable

    if config_path is None:
        console.print("[red]Error:[/red] No sync configuration given (use --config)")
        raise typer.Exit(1)
    if not triggerable:
        console.print("[red]Error:[/red] No triggerable given (use --triggerable)")
        raise typer.Exit(1)

    try:
        syncers = load_syncers_file(config_path, url or settings.buildbot.url)
    except BuildbotConfigError as e:
        console.print(f"[red]Error:[/red] Invalid sync configuration: {e}")
        raise typer.Exit(1)

    store = Store(db or Path(settings.database.path))
    if not store.db_path.exists():
        console.print(f"[red]Error:[/red] Database not found: {store.db_path}")
        raise typer.Exit(1)

    try:
        asyncio.run(
            _run(
                store,
                syncers,
                triggerable,
                count=settings.buildbot.recent_build_count if count is None else count,
                timeout=settings.buildbot.timeout,
                interval=settings.buildbot.interval if interval is None else interval,
                once=once,
            )
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Sync stopped[/yellow]")
        raise typer.Exit(0)
    except (PerfSyncError, httpx.HTTPError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
