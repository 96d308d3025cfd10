"""Typer CLI entrypoint for block-harvester."""

from __future__ import annotations

import json
import signal
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository
from .engine import CleanupPredicate, CollectorStats, DataUnit
from .engine.block_store import SECONDS_PER_DAY
from .errors import HarvesterError, InvalidLimit, NoPredicateSpecified
from .logging_conf import configure_logging, log_files, tail_log
from .orchestrator import HarvestOrchestrator

app = typer.Typer(
    help="block-harvester command line tool",
    no_args_is_help=True,
    rich_markup_mode=None,
)
blocks_app = typer.Typer(name="blocks", help="Inspect stored blocks", no_args_is_help=True)
db_app = typer.Typer(name="db", help="Database administration", no_args_is_help=True)
log_app = typer.Typer(name="log", help="Log inspection", no_args_is_help=True)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    orchestrator: HarvestOrchestrator


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository()
    orchestrator = HarvestOrchestrator.from_repository(repository)
    return AppState(repository=repository, orchestrator=orchestrator)


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _fail(exc: HarvesterError) -> None:
    if isinstance(exc, (InvalidLimit, NoPredicateSpecified)):
        raise typer.BadParameter(exc.message) from exc
    console.print(f"Operation failed: {exc.message}", style="red")
    raise typer.Exit(code=1)


def _render_blocks_table(units: Iterable[DataUnit], title: str) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAD)
    table.add_column("Block", style="cyan", justify="right", no_wrap=True)
    table.add_column("Timestamp", justify="right")
    table.add_column("Txs", style="green", justify="right")
    table.add_column("Gas used", style="magenta", justify="right")
    table.add_column("Stored at", style="dim")
    for unit in units:
        table.add_row(
            str(unit.sequence_number),
            str(unit.timestamp),
            str(unit.item_count),
            str(unit.resource_used),
            unit.stored_at.isoformat() if unit.stored_at else "-",
        )
    return table


def _render_mapping(title: str, data: dict) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAD)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="green", overflow="fold")
    for key, value in data.items():
        table.add_row(key, "-" if value is None else str(value))
    return table


def _render_collector_stats(stats: CollectorStats, running: bool, interval: int) -> Table:
    data = {"running": running, "interval_seconds": interval}
    data.update(stats.to_dict())
    data["success_rate"] = f"{stats.success_rate * 100:.1f}%"
    return _render_mapping("Collector status", data)


def _wait_for_shutdown(stop_event: threading.Event) -> None:
    while not stop_event.wait(timeout=1.0):
        continue


app.add_typer(blocks_app, name="blocks")
app.add_typer(db_app, name="db")
app.add_typer(log_app, name="log")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging", is_flag=True),
) -> None:
    ctx.obj = build_state(verbose)


@app.command("run", help="Collect blocks on a fixed interval until interrupted.")
def run(
    ctx: typer.Context,
    interval: Optional[int] = typer.Option(
        None, "--interval", help="Override the configured poll interval (seconds, >= 5)."
    ),
) -> None:
    state = _get_state(ctx)
    orchestrator = state.orchestrator
    if interval is not None and not orchestrator.update_interval(interval):
        raise typer.BadParameter("Interval must be at least 5 seconds", param_hint="--interval")

    stop_event = threading.Event()

    def _handle_signal(signum, _frame) -> None:  # noqa: ANN001
        console.print(f"Received signal {signum}, stopping…", style="yellow")
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    status = orchestrator.start()
    console.print(
        f"Collecting every {status.interval_seconds}s from {orchestrator.config.source.endpoint_url}",
        style="green",
    )
    try:
        _wait_for_shutdown(stop_event)
    finally:
        orchestrator.stop()
        orchestrator.close()
    final = orchestrator.status()
    console.print(_render_collector_stats(final.stats, final.running, final.interval_seconds))


@app.command("collect", help="Run a single collection cycle now.")
def collect(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    success = state.orchestrator.trigger_collection()
    status = state.orchestrator.status()
    console.print(_render_collector_stats(status.stats, status.running, status.interval_seconds))
    if not success:
        console.print("Collection failed, see logs for details.", style="red")
        raise typer.Exit(code=1)
    console.print("Collection succeeded.", style="green")


@blocks_app.command("list", help="Show the most recent blocks.")
def blocks_list(
    ctx: typer.Context,
    limit: int = typer.Option(50, "--limit", help="Number of blocks (1-1000)."),
) -> None:
    state = _get_state(ctx)
    try:
        page = state.orchestrator.list_blocks(limit)
    except HarvesterError as exc:
        _fail(exc)
        return
    if not page.units:
        console.print("No blocks stored yet.", style="dim")
        return
    console.print(_render_blocks_table(page.units, f"Latest {len(page.units)} of {page.total} blocks"))


@blocks_app.command("stats", help="Aggregate statistics over the most recent blocks.")
def blocks_stats(
    ctx: typer.Context,
    window: int = typer.Option(100, "--window", help="Number of recent blocks to aggregate."),
) -> None:
    state = _get_state(ctx)
    try:
        stats = state.orchestrator.block_stats(window)
    except HarvesterError as exc:
        _fail(exc)
        return
    console.print(_render_mapping(f"Block stats (last {window})", stats.to_dict()))


@blocks_app.command("latest", help="Print the latest stored block number.")
def blocks_latest(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    console.print(str(state.orchestrator.latest_sequence_number()))


@db_app.command("stats", help="Database size and extent.")
def db_stats(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    try:
        stats = state.orchestrator.database_stats()
    except HarvesterError as exc:
        _fail(exc)
        return
    console.print(_render_mapping("Database", stats.to_dict()))


@db_app.command("clear", help="Delete every stored block.")
def db_clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    if not yes and not typer.confirm("Delete ALL stored blocks?", default=False):
        console.print("Cancelled.", style="yellow")
        raise typer.Exit(code=0)
    try:
        deleted = state.orchestrator.clear_all()
    except HarvesterError as exc:
        _fail(exc)
        return
    console.print(f"Cleared {deleted} blocks.", style="green")


@db_app.command("cleanup", help="Delete blocks matching one predicate.")
def db_cleanup(
    ctx: typer.Context,
    keep_latest: Optional[int] = typer.Option(None, "--keep-latest", help="Keep only the latest N blocks."),
    older_than_days: Optional[int] = typer.Option(
        None, "--older-than-days", help="Delete blocks older than N days."
    ),
    before: Optional[int] = typer.Option(None, "--before", help="Delete blocks below this number."),
) -> None:
    state = _get_state(ctx)
    predicate = CleanupPredicate(
        keep_latest_n=keep_latest,
        older_than_seconds=older_than_days * SECONDS_PER_DAY if older_than_days is not None else None,
        before_sequence_number=before,
    )
    try:
        deleted = state.orchestrator.cleanup(predicate)
    except HarvesterError as exc:
        _fail(exc)
        return
    if not deleted:
        console.print("No blocks matched the cleanup criteria.", style="dim")
        return
    console.print(f"Deleted {deleted} blocks.", style="green")


@db_app.command("auto-cleanup", help="Apply the configured retention policy.")
def db_auto_cleanup(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    deleted = state.orchestrator.auto_cleanup()
    if deleted is None:
        console.print("No cleanup needed.", style="dim")
        return
    console.print(f"Auto-cleanup deleted {deleted} blocks.", style="green")


@db_app.command("optimize", help="Analyze, vacuum and reindex the database.")
def db_optimize(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    try:
        state.orchestrator.optimize()
    except HarvesterError as exc:
        _fail(exc)
        return
    console.print("Database optimization complete.", style="green")


@db_app.command("export", help="Export blocks as JSON (newest first).")
def db_export(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(None, "--limit", help="Latest N blocks (1-10000); all if omitted."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to file instead of stdout."),
) -> None:
    state = _get_state(ctx)
    try:
        units = state.orchestrator.export(limit)
    except HarvesterError as exc:
        _fail(exc)
        return
    payload = json.dumps(
        {"blocks": [unit.to_dict() for unit in units], "count": len(units)},
        ensure_ascii=False,
        indent=2,
    )
    if output is None:
        typer.echo(payload)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(payload, encoding="utf-8")
    console.print(f"Exported {len(units)} blocks to {output}", style="green")


@log_app.command("show", help="Show the tail of the application log.")
def log_show(
    tail: int = typer.Option(100, "--tail", help="Number of lines to show."),
    errors: bool = typer.Option(False, "--errors", help="Show the error log instead.", is_flag=True),
) -> None:
    harvester_log, error_log = log_files()
    path = error_log if errors else harvester_log
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{path.name} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
