"""PID file tracking the running tidesync daemon."""

import os
import signal
from pathlib import Path
from typing import Optional

import psutil


class PIDFile:
    """Daemon PID file.

    The CLI uses it to find the daemon: ``tidesync status`` reads it,
    ``tidesync stop`` sends SIGTERM through it and ``tidesync jobs edit``
    sends SIGHUP so the daemon picks up new overrides.

    Example:
        pid_file = PIDFile(config.pid_file)
        pid_file.acquire()
        try:
            ...  # run the daemon
        finally:
            pid_file.remove()
    """

    def __init__(self, path: Path):
        self.path = path

    def create(self) -> None:
        """Write the current process ID, creating the parent directory."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(str(os.getpid()))

    def acquire(self) -> None:
        """Claim the PID file for this process.

        A stale file left by a crashed daemon is replaced.

        Raises:
            RuntimeError: If another live daemon holds the file
        """
        pid = self.get_pid()
        if pid is not None and pid != os.getpid():
            raise RuntimeError(f"Daemon already running (PID: {pid})")
        self.create()

    def remove(self) -> None:
        """Remove the file; no-op if it is missing."""
        self.path.unlink(missing_ok=True)

    def read(self) -> Optional[int]:
        """PID recorded in the file, or None if missing or unreadable."""
        try:
            return int(self.path.read_text().strip())
        except (ValueError, OSError):
            return None

    def is_running(self) -> bool:
        """True if the recorded process is alive."""
        pid = self.read()
        return pid is not None and psutil.pid_exists(pid)

    def get_pid(self) -> Optional[int]:
        """PID of the live daemon, or None."""
        return self.read() if self.is_running() else None

    def clear_if_stale(self) -> bool:
        """Remove the file if its process is gone.

        Returns:
            True if a stale file was removed
        """
        pid = self.read()
        if pid is None or psutil.pid_exists(pid):
            return False
        self.remove()
        return True

    def send_signal(self, sig: signal.Signals) -> bool:
        """Signal the live daemon.

        Returns:
            True if a daemon was running and the signal was delivered
        """
        pid = self.get_pid()
        if pid is None:
            return False
        try:
            os.kill(pid, sig)
        except ProcessLookupError:
            return False
        return True
