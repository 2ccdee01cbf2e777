"""Exit codes of the tidesync command line.

Codes follow common Unix conventions where possible; tidesync-specific
codes occupy 2-9 and 130 is reserved for Ctrl+C.
"""


class ExitCode:
    """Standard exit codes for tidesync."""

    SUCCESS = 0
    GENERAL_ERROR = 1

    CONFIGURATION_ERROR = 2  # Bad config file, job config or registry
    DAEMON_ERROR = 3  # Daemon already running, not running, or failed
    STORAGE_ERROR = 6  # Database unreadable or unwritable
    INVALID_ARGUMENT = 7
    NOT_FOUND = 8  # Unknown job name
    PERMISSION_DENIED = 9

    CANCELLED = 130  # Ctrl+C (128 + SIGINT)

    _DESCRIPTIONS = {
        SUCCESS: "Operation completed successfully",
        GENERAL_ERROR: "An unexpected error occurred",
        CONFIGURATION_ERROR: "Configuration error or invalid job configuration",
        DAEMON_ERROR: "Daemon is not in the required state",
        STORAGE_ERROR: "Job state database could not be read or written",
        INVALID_ARGUMENT: "Invalid command-line argument",
        NOT_FOUND: "Job is not registered",
        PERMISSION_DENIED: "Permission denied",
        CANCELLED: "Operation cancelled by user",
    }

    @classmethod
    def get_name(cls, code: int) -> str:
        """Name of an exit code, e.g. ``NOT_FOUND``."""
        for name, value in vars(cls).items():
            if name.isupper() and not name.startswith("_") and value == code:
                return name
        return f"UNKNOWN({code})"

    @classmethod
    def get_description(cls, code: int) -> str:
        """Human-readable description of an exit code."""
        return cls._DESCRIPTIONS.get(code, f"Unknown exit code: {code}")
