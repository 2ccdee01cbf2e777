"""Main CLI entry point for tidesync."""

import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from tidesync import __app_name__, __version__
from tidesync.cli import config, jobs, run
from tidesync.cli.exit_codes import ExitCode

app = typer.Typer(
    name=__app_name__,
    help="tidesync - jittered periodic jobs with retry backoff.",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

# Daemon lifecycle
app.command("run")(run.run)
app.command("status")(run.status)
app.command("stop")(run.stop)
app.command("restart")(run.restart)

# Command groups
app.add_typer(jobs.app, name="jobs")
app.add_typer(config.app, name="config")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"{__app_name__} v{__version__}")
        raise typer.Exit(code=ExitCode.SUCCESS)


def _setup_logging(
    verbose: bool = False,
    debug: bool = False,
    quiet: bool = False,
    log_file: Optional[Path] = None,
) -> None:
    """Configure the root logger from the global options.

    Args:
        verbose: INFO level on the console
        debug: DEBUG level with source locations
        quiet: Errors only on the console
        log_file: Also log everything at DEBUG to this file
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING

    if debug:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
    else:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handlers: list[logging.Handler] = []

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)  # Always log debug to file
        handlers.append(file_handler)

    if not quiet:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        handlers.append(console_handler)
    elif not log_file:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=logging.DEBUG if log_file else level,
        format=format_str,
        handlers=handlers,
        force=True,
    )

    # APScheduler logs every job execution at INFO
    if not debug:
        logging.getLogger("apscheduler").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.debug(f"Logging configured: level={logging.getLevelName(level)}, debug={debug}")


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output (INFO level logging).",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode (DEBUG level logging).",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-error output.",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Log to file (logs DEBUG level regardless of console settings).",
    ),
) -> None:
    """tidesync - jittered periodic jobs with retry backoff.

    [bold]Commands:[/bold]

    • [cyan]run[/cyan] / [cyan]stop[/cyan] / [cyan]status[/cyan] - Manage the scheduling daemon
    • [cyan]jobs[/cyan] - Inspect and edit per-job configuration
    • [cyan]config[/cyan] - Manage daemon configuration

    [bold]Examples:[/bold]

        tidesync run --app myapp.jobs:registry
        tidesync jobs edit refresh-feed --every "30 minutes"
        tidesync jobs list
    """
    if quiet and (verbose or debug):
        console.print("[red]Error:[/red] --quiet cannot be combined with --verbose or --debug")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    _setup_logging(verbose=verbose, debug=debug, quiet=quiet, log_file=log_file)
    logging.getLogger(__name__).debug(f"tidesync v{__version__} starting")


if __name__ == "__main__":
    app()
