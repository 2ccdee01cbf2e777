"""Error handling for tidesync commands.

Commands raise TidesyncError subclasses (or let engine exceptions
escape); the handle_errors decorator turns them into a red message on
stderr and the matching exit code.
"""

from functools import wraps
from typing import Any, Callable, TypeVar
import logging

import typer
from rich.console import Console

from tidesync.cli.exit_codes import ExitCode
from tidesync.exceptions import InvalidConfig, JobNotRegistered, PersistenceFailure, SyncError

# Console for error output (stderr)
console = Console(stderr=True)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class TidesyncError(Exception):
    """Base exception for tidesync commands.

    Attributes:
        message: Error message
        exit_code: Exit code to use when exiting
        details: Additional key/value context shown under the message
    """

    exit_code: int = ExitCode.GENERAL_ERROR

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigurationError(TidesyncError):
    """Bad config file, registry target or job configuration."""

    exit_code = ExitCode.CONFIGURATION_ERROR


class DaemonError(TidesyncError):
    """The daemon is not in the state a command needs."""

    exit_code = ExitCode.DAEMON_ERROR


class StorageError(TidesyncError):
    """The job state database could not be used."""

    exit_code = ExitCode.STORAGE_ERROR


class ValidationError(TidesyncError):
    """User input failed validation, e.g. an unparseable time span."""

    exit_code = ExitCode.INVALID_ARGUMENT


class NotFoundError(TidesyncError):
    """A named job is not in the registry."""

    exit_code = ExitCode.NOT_FOUND


def from_sync_error(error: SyncError) -> TidesyncError:
    """Translate an engine exception into its command line counterpart."""
    details = {"job": error.job} if error.job else None
    if isinstance(error, JobNotRegistered):
        return NotFoundError(error.message, details=details)
    if isinstance(error, InvalidConfig):
        return ConfigurationError(error.message, details=details)
    if isinstance(error, PersistenceFailure):
        return StorageError(error.message, details=details)
    return TidesyncError(error.message, details=details)


def _report(error: TidesyncError) -> None:
    logger.error(
        f"TidesyncError: {error.message}",
        extra={"exit_code": error.exit_code, "details": error.details},
    )
    console.print(f"[red]Error:[/red] {error.message}")
    for key, value in error.details.items():
        console.print(f"  [dim]{key}:[/dim] {value}")


def handle_errors(func: F) -> F:
    """Decorator giving a command consistent error output and exit codes.

    - TidesyncError: message, details, and the error's exit code
    - SyncError from the engine: translated with from_sync_error()
    - KeyboardInterrupt: cancellation message, exit code 130
    - Anything else: generic message, exit code 1

    Example:
        @app.command()
        @handle_errors
        def show(name: str):
            raise NotFoundError(f"No such job: {name}")
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except TidesyncError as e:
            _report(e)
            raise typer.Exit(code=e.exit_code)

        except SyncError as e:
            error = from_sync_error(e)
            _report(error)
            raise typer.Exit(code=error.exit_code)

        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user.[/yellow]")
            logger.info("Operation cancelled by user (KeyboardInterrupt)")
            raise typer.Exit(code=ExitCode.CANCELLED)

        except typer.Exit:
            raise

        except Exception as e:
            logger.exception("Unexpected error occurred")
            console.print(f"[red]Unexpected error:[/red] {e}")
            console.print("[dim]Run with --debug for more details[/dim]")
            raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    return wrapper  # type: ignore[return-value]
