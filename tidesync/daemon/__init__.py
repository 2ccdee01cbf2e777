"""Daemon module for tidesync.

Runs the scheduling engine as a background service with signal
handling and a PID file.
"""

from tidesync.daemon.pid import PIDFile
from tidesync.daemon.service import (
    SyncDaemon,
    create_apscheduler,
    daemonize,
    run_daemon,
)

__all__ = [
    "PIDFile",
    "SyncDaemon",
    "create_apscheduler",
    "daemonize",
    "run_daemon",
]
