"""CLI command modules for tidesync."""

from tidesync.cli import config, jobs, run
from tidesync.cli.exit_codes import ExitCode
from tidesync.cli.error_handler import (
    ConfigurationError,
    DaemonError,
    NotFoundError,
    StorageError,
    TidesyncError,
    ValidationError,
    from_sync_error,
    handle_errors,
)

__all__ = [
    # Command modules
    "config",
    "jobs",
    "run",
    # Exit codes
    "ExitCode",
    # Error handling
    "ConfigurationError",
    "DaemonError",
    "NotFoundError",
    "StorageError",
    "TidesyncError",
    "ValidationError",
    "from_sync_error",
    "handle_errors",
]
