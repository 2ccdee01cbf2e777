"""tidesync daemon service.

Wires the scheduling engine to its host backends and keeps it running:
- SQLite persistence through SQLAlchemy
- APScheduler timers and polling observers
- psutil network and power probes
- Signal handling (SIGTERM/SIGINT shut down, SIGHUP reloads job config)
"""

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional, Set

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from tidesync.config import TidesyncConfig
from tidesync.database.connection import open_database
from tidesync.engine.config_store import ConfigStore
from tidesync.engine.interfaces import PowerSource, Reachability
from tidesync.engine.observers import (
    BootObserver,
    NetworkRestoredObserver,
    PowerObserver,
    PsutilPowerSource,
    PsutilReachability,
)
from tidesync.engine.registry import JobRegistry
from tidesync.engine.scheduler import SyncScheduler
from tidesync.engine.state_store import RetryStateStore
from tidesync.engine.timers import APSchedulerTimer

logger = logging.getLogger(__name__)


def create_apscheduler() -> AsyncIOScheduler:
    """Create the APScheduler instance shared by timers and observers."""
    return AsyncIOScheduler(
        jobstores={"default": MemoryJobStore()},
        executors={"default": AsyncIOExecutor()},
        job_defaults={
            "coalesce": True,  # Combine missed runs into one
            "max_instances": 1,
        },
        timezone="UTC",
    )


class SyncDaemon:
    """Runs a SyncScheduler for a host job registry.

    Attributes:
        _config: tidesync configuration
        _registry: Host job registry
        _engine: Scheduling engine, built on start()
        _apscheduler: APScheduler instance driving timers and observers
        _started: Whether the engine's start() command has been issued

    Example:
        daemon = SyncDaemon(config, registry)
        await daemon.start()
        await daemon.run_until_shutdown()
        await daemon.stop()
    """

    def __init__(
        self,
        config: TidesyncConfig,
        registry: JobRegistry,
        reachability: Optional[Reachability] = None,
        power_source: Optional[PowerSource] = None,
    ):
        """Initialize the daemon.

        Args:
            config: tidesync configuration
            registry: Host job registry
            reachability: Network probe (default: psutil interfaces)
            power_source: Power probe (default: psutil battery)
        """
        self._config = config
        self._registry = registry
        self._reachability = reachability or PsutilReachability(config.network.ignore_interfaces)
        self._power_source = power_source or PsutilPowerSource(
            config.power.assume_connected_without_battery
        )
        self._db_engine: Optional[Engine] = None
        self._retry_store: Optional[RetryStateStore] = None
        self._apscheduler: Optional[AsyncIOScheduler] = None
        self._timer: Optional[APSchedulerTimer] = None
        self._engine: Optional[SyncScheduler] = None
        self._running = False
        self._started = False
        self._shutdown_event = asyncio.Event()

    def _build_engine(self, session_factory: sessionmaker) -> SyncScheduler:
        retry_store = RetryStateStore(session_factory)
        self._retry_store = retry_store

        # The engine picks the wake mode from the persisted power state,
        # so bring it up to date before the first arm
        connected = self._power_source.is_connected()
        if connected != retry_store.is_power_connected():
            retry_store.set_power_connected(connected)

        self._timer = APSchedulerTimer(self._apscheduler)
        scheduler_config = self._config.scheduler
        return SyncScheduler(
            self._registry,
            config_store=ConfigStore(session_factory),
            retry_store=retry_store,
            timer=self._timer,
            reachability=self._reachability,
            network_observer=NetworkRestoredObserver(
                self._apscheduler,
                self._reachability,
                poll_interval=self._config.network.poll_interval,
            ),
            power_observer=PowerObserver(
                self._apscheduler,
                self._power_source,
                poll_interval=self._config.power.poll_interval,
            ),
            boot_observer=BootObserver(retry_store),
            base_retry_span=scheduler_config.base_retry_span_ms,
            min_retry_cap=scheduler_config.min_retry_cap_ms,
        )

    async def start(self) -> None:
        """Open storage, build the engine and start the timer runtime.

        The engine's start() command is issued if autostart is configured
        or the previous daemon left the boot observer enabled.

        Raises:
            PersistenceFailure: If the database cannot be read or written
            InvalidConfig: If a job's defaults are invalid
        """
        logger.info("Starting tidesync daemon...")

        self._db_engine, session_factory = open_database(self._config)
        self._apscheduler = create_apscheduler()
        self._engine = self._build_engine(session_factory)
        self._apscheduler.start()
        logger.info(f"Engine initialized with {len(self._registry)} jobs")

        if self._config.scheduler.autostart or self._retry_store.is_boot_enabled():
            await self._engine.start()
            self._started = True
        else:
            logger.info("Autostart disabled, engine waiting for start")

        self._running = True
        logger.info("tidesync daemon started successfully")

    async def stop(self) -> None:
        """Shut down the timer runtime and release storage.

        Jobs already running are awaited first. The engine's stop()
        command is not issued, so the boot flag and every persisted job
        state survive for the next daemon.
        """
        logger.info("Stopping tidesync daemon...")
        self._running = False

        if self._timer is not None:
            # Let jobs already handed to the engine finish before storage goes away
            await self._timer.drain()

        if self._apscheduler is not None and self._apscheduler.running:
            try:
                self._apscheduler.shutdown(wait=False)
                logger.info("Timer runtime stopped")
            except Exception as e:
                logger.warning(f"Error stopping timer runtime: {e}")

        if self._db_engine is not None:
            self._db_engine.dispose()
            self._db_engine = None

        logger.info("tidesync daemon stopped")

    async def reload_config(self) -> None:
        """Re-read every job's configuration and rearm its timer."""
        if self._engine is None or not self._started:
            logger.debug("Engine not started, ignoring config reload")
            return

        logger.info("Reloading job configuration")
        for name in self._registry:
            await self._engine.config_changed(name)

    async def run_until_shutdown(self) -> None:
        """Block until request_shutdown() is called."""
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def engine(self) -> Optional[SyncScheduler]:
        """The scheduling engine, or None if not started."""
        return self._engine


async def run_daemon(config: TidesyncConfig, registry: JobRegistry) -> None:
    """Run the daemon until SIGTERM or SIGINT.

    SIGHUP makes the daemon re-read job configuration, which is how
    ``tidesync jobs edit`` reaches a running daemon.

    Args:
        config: tidesync configuration
        registry: Host job registry
    """
    daemon = SyncDaemon(config, registry)
    loop = asyncio.get_running_loop()
    reloads: Set[asyncio.Task] = set()

    def handle_shutdown(sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        daemon.request_shutdown()

    def handle_reload() -> None:
        logger.info("Received signal SIGHUP, reloading job configuration...")
        task = loop.create_task(daemon.reload_config())
        reloads.add(task)
        task.add_done_callback(reloads.discard)

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, lambda s=sig: handle_shutdown(s))
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda signum, frame: handle_shutdown(signal.Signals(signum)))

    if hasattr(signal, "SIGHUP"):
        try:
            loop.add_signal_handler(signal.SIGHUP, handle_reload)
        except NotImplementedError:
            logger.warning("SIGHUP reload is not supported on this platform")

    try:
        await daemon.start()
        await daemon.run_until_shutdown()
    finally:
        await daemon.stop()


def daemonize(log_file: Optional[Path] = None) -> None:
    """Detach from the terminal with the Unix double fork.

    Args:
        log_file: File receiving stdout/stderr; /dev/null if None
    """
    if sys.platform == "win32":
        logger.warning("Daemon mode not supported on Windows")
        return

    if os.fork() > 0:
        sys.exit(0)
    os.setsid()
    if os.fork() > 0:
        sys.exit(0)

    sys.stdout.flush()
    sys.stderr.flush()

    with open(os.devnull, "r") as devnull:
        os.dup2(devnull.fileno(), sys.stdin.fileno())

    target = log_file if log_file else Path(os.devnull)
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "a+") as out:
        os.dup2(out.fileno(), sys.stdout.fileno())
        os.dup2(out.fileno(), sys.stderr.fileno())

    logger.info(f"Daemon process started (PID: {os.getpid()})")
