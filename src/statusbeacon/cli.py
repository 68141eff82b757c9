"""statusbeacon CLI - developer environment status monitor."""

import asyncio
import logging
from typing import Annotated, Any

import typer
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import settings
from .exceptions import FetchError
from .fetchers.factory import build_cluster_fetcher
from .models import ClusterContexts, PullRequest, ToolStatus, VersionInfo
from .monitor import MonitorService, Snapshot, check_once
from .sources import MIN_BASE_INTERVAL, Source
from .utils import console, setup_logging

logger = logging.getLogger(__name__)


def _print_panel(message: str, style: str = "blue") -> None:
    """Print a styled panel message.

    Args:
        message: Message to display in the panel
        style: Panel style (default: "blue")
    """
    console.print(Panel(f"[bold]{message}[/bold]", style=style))


def _parse_sources(names: list[str] | None) -> list[Source] | None:
    """Map --source options to Source members, exit on unknown names."""
    if not names:
        return None
    selected = []
    for name in names:
        try:
            selected.append(Source(name))
        except ValueError:
            valid = ", ".join(source.value for source in Source)
            console.print(f"[red]Unknown source '{name}'. Valid sources: {valid}[/red]")
            raise typer.Exit(code=1)
    return selected


def _build_service() -> MonitorService:
    """Build the monitor from settings, exit on invalid configuration."""
    try:
        return MonitorService.from_settings(settings)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(code=1)


def _describe_value(value: Any) -> str:
    """One-line human summary of a snapshot value."""
    if isinstance(value, VersionInfo):
        if value.update_available:
            return f"update available: {value.latest_version} (running {value.current_version})"
        return f"up to date ({value.current_version})"
    if isinstance(value, ClusterContexts):
        local = value.local.cluster if value.local else f"unknown ({value.local_error!r})"
        stable = value.stable.name if value.stable else f"unknown ({value.stable_error!r})"
        marker = " [green](stable)[/green]" if value.on_stable else ""
        return f"local: {local}{marker}, stable: {stable}"
    if isinstance(value, list):
        if value and isinstance(value[0], ToolStatus):
            missing = [tool.name for tool in value if not tool.available]
            if missing:
                return f"{len(value) - len(missing)}/{len(value)} available, missing: {', '.join(missing)}"
            return f"{len(value)}/{len(value)} available"
        if not value or isinstance(value[0], PullRequest):
            return f"{len(value)} open pull request(s)"
    return str(value)


def _describe(snapshot: Snapshot) -> str:
    if snapshot.never_fetched:
        return "[dim]not fetched yet[/dim]"
    parts = []
    if snapshot.value is not None:
        parts.append(_describe_value(snapshot.value))
    if snapshot.error is not None:
        label = "stale, last error" if snapshot.stale else "error"
        parts.append(f"[red]{label}: {snapshot.error!r}[/red]")
    return " | ".join(parts)


def _print_snapshot(snapshot: Snapshot) -> None:
    stamp = snapshot.observed_at.strftime("%H:%M:%S") if snapshot.observed_at else "--:--:--"
    console.print(f"[dim]{stamp}[/dim] [bold cyan]{snapshot.source.value}[/bold cyan] {_describe(snapshot)}")


app = typer.Typer(
    name="statusbeacon",
    help="Developer environment status monitor - tools, clusters, pull requests, releases",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]statusbeacon[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Show log messages on the console"),
    ] = False,
) -> None:
    """statusbeacon - keep an eye on your development environment."""
    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_file=settings.log_file,
        console_level="DEBUG" if verbose else "WARNING",
    )


async def _watch(service: MonitorService, base_interval: float | None) -> None:
    subscription = service.subscribe()
    runner = asyncio.create_task(service.run(base_interval))
    async for snapshot in subscription:
        _print_snapshot(snapshot)
    await runner


@app.command()
def watch(
    base_interval: Annotated[
        float | None,
        typer.Option(
            "--base-interval",
            "-i",
            help=f"Base polling interval in seconds (minimum {MIN_BASE_INTERVAL:g})",
        ),
    ] = None,
) -> None:
    """Poll every source and print each update as it arrives.

    Intervals are multiples of the base interval:
    - tools: 1x
    - cluster context: 3x
    - pull requests: 5x
    - version: 30x
    """
    service = _build_service()
    interval = base_interval if base_interval is not None else settings.base_interval
    _print_panel(f"Watching {len(service.coordinator.sources)} sources (base interval {interval:g}s)")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")
    try:
        asyncio.run(_watch(service, base_interval))
    except KeyboardInterrupt:
        pass
    console.print("\n[dim]Monitor stopped.[/dim]")


@app.command()
def check(
    source: Annotated[
        list[str] | None,
        typer.Option("--source", "-s", help="Source to check (repeatable): " + ", ".join(s.value for s in Source)),
    ] = None,
) -> None:
    """Refresh sources once and print a summary. Exits 1 if any failed."""
    selected = _parse_sources(source)
    service = _build_service()
    snapshots = asyncio.run(check_once(service, selected))

    table = Table(title="Status")
    table.add_column("Source", style="cyan")
    table.add_column("Interval", justify="right")
    table.add_column("Status")
    for src, snapshot in snapshots.items():
        interval = service.coordinator.state(src).interval
        table.add_row(src.value, f"{interval:g}s", _describe(snapshot))
    console.print(table)

    failures = [snapshot for snapshot in snapshots.values() if snapshot.error is not None]
    for snapshot in failures:
        console.print(f"[red]✗ {snapshot.source.value}: {snapshot.error.detail}[/red]")
    if failures:
        raise typer.Exit(code=1)


@app.command("use-stable-cluster")
def use_stable_cluster() -> None:
    """Point the local kubeconfig at the stable EKS cluster."""
    try:
        fetcher = build_cluster_fetcher(settings)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    console.print("[bold cyan]Switching to the stable cluster...[/bold cyan]")
    try:
        contexts = asyncio.run(fetcher.use_stable_cluster())
    except FetchError as e:
        logger.error("Failed to switch to stable cluster: %r", e)
        console.print(f"[red]✗ Failed: {e.detail}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ {_describe_value(contexts)}[/green]")


if __name__ == "__main__":
    app()
