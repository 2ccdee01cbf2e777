"""tidesync jobs command - Inspect and edit per-job configuration.

Edits are written straight to the job database. A running daemon is
sent SIGHUP so it rearms timers from the new configuration.
"""

import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from tidesync.cli.error_handler import NotFoundError, ValidationError, handle_errors
from tidesync.cli.run import APP_OPTION, CONFIG_OPTION, load_app_registry
from tidesync.config import TidesyncConfig
from tidesync.engine.config_store import ConfigEdit, ConfigStore
from tidesync.engine.parsing import format_time_span, parse_time_span
from tidesync.engine.registry import JobRegistry
from tidesync.engine.state_store import RetryStateStore
from tidesync.exceptions import InvalidConfig

app = typer.Typer(help="Inspect and edit job configuration.")
console = Console()


@contextmanager
def _open_stores(
    config_file: Optional[Path],
    app_target: Optional[str],
) -> Iterator[Tuple[TidesyncConfig, JobRegistry, ConfigStore, RetryStateStore]]:
    """Load config and registry, and open the stores with registry defaults applied."""
    from tidesync.config import load_config
    from tidesync.database.connection import open_database

    config = load_config(config_file)
    registry = load_app_registry(config, app_target)
    engine, session_factory = open_database(config)
    try:
        config_store = ConfigStore(session_factory)
        for definition in registry.values():
            config_store.set_default(definition.name, definition.defaults)
        yield config, registry, config_store, RetryStateStore(session_factory)
    finally:
        engine.dispose()


def _notify_daemon(config: TidesyncConfig) -> None:
    from tidesync.daemon.pid import PIDFile

    if PIDFile(config.pid_file).send_signal(signal.SIGHUP):
        console.print("[dim]Daemon notified, timers will be rearmed[/dim]")
    else:
        console.print("[dim]Daemon is not running; changes apply on next start[/dim]")


def _span(value: str, option: str) -> int:
    try:
        return parse_time_span(value)
    except InvalidConfig as e:
        raise ValidationError(e.message, details={"option": option})


def _require(registry: JobRegistry, name: str) -> None:
    if name not in registry:
        raise NotFoundError("Job is not registered", details={"job": name})


def _describe_interval(interval_ms: int) -> str:
    return format_time_span(interval_ms) if interval_ms else "manual"


@app.command("list")
@handle_errors
def list_jobs(
    config_file: Optional[Path] = CONFIG_OPTION,
    app_target: Optional[str] = APP_OPTION,
    enabled_only: bool = typer.Option(
        False,
        "--enabled",
        "-e",
        help="Only show enabled jobs.",
    ),
) -> None:
    """List registered jobs with their effective configuration.

    Example:
        tidesync jobs list --app myapp.jobs:registry
        tidesync jobs list --enabled
    """
    with _open_stores(config_file, app_target) as (_, registry, config_store, retry_store):
        backoffs = retry_store.all_backoffs()

        table = Table(title="Jobs")
        table.add_column("Name", style="cyan")
        table.add_column("Status", style="bold")
        table.add_column("Interval", style="green")
        table.add_column("Range", style="magenta")
        table.add_column("Override")
        table.add_column("Backoff", style="yellow")

        for name in registry:
            job_config = config_store.get(name)
            if enabled_only and not job_config.enabled:
                continue
            status_str = "[green]enabled[/green]" if job_config.enabled else "[yellow]disabled[/yellow]"
            override = "yes" if config_store.get_override(name) else ""
            backoff = backoffs.get(name, 0)

            table.add_row(
                name,
                status_str,
                _describe_interval(job_config.interval_ms),
                format_time_span(job_config.range_ms),
                override,
                format_time_span(backoff) if backoff else "",
            )

    console.print(table)


@app.command("show")
@handle_errors
def show_job(
    name: str = typer.Argument(..., help="Name of the job."),
    config_file: Optional[Path] = CONFIG_OPTION,
    app_target: Optional[str] = APP_OPTION,
) -> None:
    """Show one job's configuration layers and retry state.

    Example:
        tidesync jobs show refresh-feed
    """
    with _open_stores(config_file, app_target) as (_, registry, config_store, retry_store):
        _require(registry, name)
        effective = config_store.get(name)
        default = config_store.get_default(name)
        override = config_store.get_override(name) or ConfigEdit()
        backoff = retry_store.get_backoff(name)

    table = Table(title=f"Job: {name}")
    table.add_column("Field", style="cyan")
    table.add_column("Effective", style="green")
    table.add_column("Default")
    table.add_column("Override", style="yellow")

    def cell(value, render=str) -> str:
        return "" if value is None else render(value)

    table.add_row("enabled", str(effective.enabled), cell(default.enabled), cell(override.enabled))
    table.add_row(
        "interval",
        _describe_interval(effective.interval_ms),
        cell(default.interval_ms, _describe_interval),
        cell(override.interval_ms, _describe_interval),
    )
    table.add_row(
        "range",
        format_time_span(effective.range_ms),
        cell(default.range_ms, format_time_span),
        cell(override.range_ms, format_time_span),
    )
    console.print(table)
    console.print(f"  Last failed backoff: {format_time_span(backoff) if backoff else 'none'}")


@app.command("edit")
@handle_errors
def edit_job(
    name: str = typer.Argument(..., help="Name of the job."),
    enable: Optional[bool] = typer.Option(
        None,
        "--enable/--disable",
        help="Enable or disable the job.",
    ),
    every: Optional[str] = typer.Option(
        None,
        "--every",
        help="Interval, e.g. '15 minutes' or milliseconds (minimum 5 seconds).",
    ),
    range_: Optional[str] = typer.Option(
        None,
        "--range",
        help="Jitter range, e.g. '2 minutes' or milliseconds.",
    ),
    config_file: Optional[Path] = CONFIG_OPTION,
    app_target: Optional[str] = APP_OPTION,
) -> None:
    """Persist a configuration override for a job.

    Only the given fields are changed.

    Example:
        tidesync jobs edit refresh-feed --every "30 minutes" --range "5 minutes"
        tidesync jobs edit refresh-feed --disable
    """
    edit = ConfigEdit()
    if enable is not None:
        edit |= ConfigEdit.enable(enable)
    if every is not None:
        edit |= ConfigEdit.every(_span(every, "--every"))
    if range_ is not None:
        edit |= ConfigEdit.range(_span(range_, "--range"))

    if edit.empty:
        raise ValidationError("Nothing to change", details={"hint": "pass --enable/--disable, --every or --range"})

    with _open_stores(config_file, app_target) as (config, registry, config_store, _):
        _require(registry, name)
        config_store.set_override(name, edit)
        effective = config_store.get(name)

    console.print(f"[green]✓[/green] Updated {name}")
    console.print(f"  Enabled: {effective.enabled}")
    console.print(f"  Interval: {_describe_interval(effective.interval_ms)}")
    console.print(f"  Range: {format_time_span(effective.range_ms)}")
    _notify_daemon(config)


@app.command("reset")
@handle_errors
def reset_job(
    name: str = typer.Argument(..., help="Name of the job."),
    retry: bool = typer.Option(
        False,
        "--retry",
        help="Also clear the job's retry backoff.",
    ),
    config_file: Optional[Path] = CONFIG_OPTION,
    app_target: Optional[str] = APP_OPTION,
) -> None:
    """Drop a job's override so its defaults apply again.

    Example:
        tidesync jobs reset refresh-feed
        tidesync jobs reset refresh-feed --retry
    """
    with _open_stores(config_file, app_target) as (config, registry, config_store, retry_store):
        _require(registry, name)
        removed = config_store.clear_override(name)
        if retry:
            retry_store.reset(name)

    if removed:
        console.print(f"[green]✓[/green] Override removed for {name}")
    else:
        console.print(f"[yellow]{name} has no override[/yellow]")
    if retry:
        console.print(f"[green]✓[/green] Retry backoff cleared for {name}")
    _notify_daemon(config)
