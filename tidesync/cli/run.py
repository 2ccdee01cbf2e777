"""tidesync daemon commands: run, status, stop, restart."""

import asyncio
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from tidesync.cli.error_handler import ConfigurationError, DaemonError, handle_errors
from tidesync.config import TidesyncConfig

console = Console()

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to configuration file.",
    exists=True,
    file_okay=True,
    dir_okay=False,
    resolve_path=True,
)

APP_OPTION = typer.Option(
    None,
    "--app",
    "-a",
    help="Job registry as module:attribute (default: scheduler.app from config).",
)


def load_app_registry(config: TidesyncConfig, app: Optional[str]):
    """Resolve the host job registry from --app or the configuration.

    Raises:
        ConfigurationError: If no registry is configured
        InvalidConfig: If the target cannot be resolved
    """
    from tidesync.engine.registry import load_registry

    target = app or config.scheduler.app
    if not target:
        raise ConfigurationError(
            "No job registry configured",
            details={"hint": "pass --app module:attribute or set scheduler.app"},
        )
    # The host module is usually importable from the working directory
    if "" not in sys.path:
        sys.path.insert(0, "")
    return load_registry(target)


def _add_file_logging(log_file: Path, level: str) -> None:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(min(root.level or logging.WARNING, getattr(logging, level.upper(), logging.INFO)))


@handle_errors
def run(
    config_file: Optional[Path] = CONFIG_OPTION,
    app: Optional[str] = APP_OPTION,
    daemon: bool = typer.Option(
        False,
        "--daemon",
        "-d",
        help="Run in background as daemon.",
    ),
) -> None:
    """Start the tidesync daemon for a job registry.

    The daemon arms a timer for every enabled periodic job, runs jobs as
    they come due and keeps retry state across restarts.

    Example:
        tidesync run --app myapp.jobs:registry
        tidesync run --daemon
    """
    from tidesync.config import ensure_directories, load_config
    from tidesync.daemon.pid import PIDFile
    from tidesync.daemon.service import daemonize, run_daemon

    config = load_config(config_file)
    ensure_directories(config)
    registry = load_app_registry(config, app)

    pid_file = PIDFile(config.pid_file)
    running_pid = pid_file.get_pid()
    if running_pid is not None:
        raise DaemonError("Daemon is already running", details={"pid": running_pid})
    pid_file.clear_if_stale()

    console.print(f"[bold green]Starting tidesync daemon[/bold green] ({len(registry)} jobs)")

    log_file = config.logging.file or (config.data_dir / "daemon.log" if daemon else None)
    if log_file:
        _add_file_logging(log_file, config.logging.level)

    if daemon:
        if sys.platform == "win32":
            console.print("[yellow]Warning: Daemon mode not supported on Windows, running in foreground[/yellow]")
        else:
            console.print("[dim]Forking to background...[/dim]")
            daemonize(log_file)

    try:
        pid_file.acquire()
    except (OSError, RuntimeError) as e:
        raise DaemonError(f"Failed to create PID file: {e}")

    try:
        asyncio.run(run_daemon(config, registry))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
    finally:
        pid_file.remove()


@handle_errors
def status(config_file: Optional[Path] = CONFIG_OPTION) -> None:
    """Show whether the daemon is running.

    Example:
        tidesync status
    """
    from tidesync.config import load_config
    from tidesync.daemon.pid import PIDFile

    config = load_config(config_file)
    pid_file = PIDFile(config.pid_file)

    pid = pid_file.get_pid()
    if pid is not None:
        console.print(f"[green]● Daemon is running[/green] (PID: {pid})")
        console.print(f"  Registry: {config.scheduler.app or '(from --app)'}")
        console.print(f"  Data directory: {config.data_dir}")
        console.print(f"  Database: {config.database_url}")
    else:
        console.print("[yellow]○ Daemon is not running[/yellow]")
        if pid_file.clear_if_stale():
            console.print("[dim]  (removed stale PID file)[/dim]")


@handle_errors
def stop(
    config_file: Optional[Path] = CONFIG_OPTION,
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Force kill the daemon (SIGKILL).",
    ),
) -> None:
    """Stop the daemon.

    SIGTERM lets the daemon shut down its timers cleanly; job
    configuration and retry state stay in the database.

    Example:
        tidesync stop
        tidesync stop --force
    """
    from tidesync.config import load_config
    from tidesync.daemon.pid import PIDFile

    config = load_config(config_file)
    pid_file = PIDFile(config.pid_file)

    pid = pid_file.get_pid()
    if pid is None:
        pid_file.clear_if_stale()
        console.print("[yellow]Daemon is not running[/yellow]")
        raise typer.Exit()

    sig = signal.SIGKILL if force else signal.SIGTERM
    try:
        delivered = pid_file.send_signal(sig)
    except PermissionError:
        raise DaemonError(f"Permission denied: cannot signal process {pid}")

    if not delivered:
        console.print("[yellow]Daemon process not found (already stopped)[/yellow]")
        pid_file.remove()
    elif force:
        console.print(f"[red]Force killed daemon (PID: {pid})[/red]")
        pid_file.remove()
    else:
        console.print(f"[green]Shutdown signal sent to daemon (PID: {pid})[/green]")


@handle_errors
def restart(
    config_file: Optional[Path] = CONFIG_OPTION,
    app: Optional[str] = APP_OPTION,
    daemon: bool = typer.Option(
        False,
        "--daemon",
        "-d",
        help="Run in background as daemon.",
    ),
) -> None:
    """Stop the running daemon (if any) and start a new one.

    Example:
        tidesync restart --daemon
    """
    from tidesync.config import load_config
    from tidesync.daemon.pid import PIDFile

    config = load_config(config_file)
    pid_file = PIDFile(config.pid_file)

    if pid_file.send_signal(signal.SIGTERM):
        console.print("[yellow]Stopping existing daemon...[/yellow]")
        for _ in range(10):
            time.sleep(0.5)
            if not pid_file.is_running():
                break
        else:
            console.print("[red]Daemon did not stop gracefully, forcing...[/red]")
            pid_file.send_signal(signal.SIGKILL)
        pid_file.remove()

    run(config_file=config_file, app=app, daemon=daemon)
