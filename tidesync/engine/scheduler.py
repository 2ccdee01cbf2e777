"""Scheduling engine for jittered periodic jobs.

The SyncScheduler decides, for every registered job, when it should
next fire. Periodic jobs fire on epoch-aligned multiples of their
interval plus a per-install jitter offset. A failed run is retried
with exponential backoff capped at the job's interval. If the network
is unreachable when a job comes due, every timer is cancelled and
scheduling resumes once the network comes back.

All commands are serialized: each one holds a single FIFO lock for
its whole duration, so commands are observed in the order they were
issued and never interleave. Job bodies run inside that window, which
means a slow job delays every command queued behind it.

Example:
    scheduler = SyncScheduler(
        registry,
        config_store=ConfigStore(session_factory),
        retry_store=RetryStateStore(session_factory),
        timer=timer,
        reachability=reachability,
        network_observer=network_observer,
        power_observer=power_observer,
        boot_observer=boot_observer,
    )
    await scheduler.start()
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Callable, Dict, Optional

from tidesync.engine.config_store import (
    SECONDS,
    ConfigEdit,
    ConfigStore,
    JobConfig,
)
from tidesync.engine.events import next_event, now_ms
from tidesync.engine.interfaces import Observer, Reachability, TimerFacility, WakeMode
from tidesync.engine.jitter import JitterSource, find_or_create_seed
from tidesync.engine.registry import JobDefinition, JobRegistry
from tidesync.engine.state_store import RetryStateStore
from tidesync.exceptions import NoNetwork, PersistenceFailure, SyncFailure

logger = logging.getLogger(__name__)

BASE_RETRY_SPAN = 500
MIN_RETRY_CAP = 5 * SECONDS


class JobStatus(Enum):
    """Scheduling state of a job."""

    DISABLED = auto()  # Disabled in config, never armed
    IDLE = auto()  # Enabled but not armed (manual-only, stopped or offline)
    SCHEDULED = auto()  # Armed for a normal or run-soon fire
    RUNNING = auto()  # Body is executing
    BACKOFF_SCHEDULED = auto()  # Armed for a retry after failure


@dataclass
class JobState:
    """Engine-owned runtime state of one job.

    Attributes:
        name: Job name
        status: Current scheduling state
        fire_at: Armed fire time in epoch milliseconds, if armed
        backoff_ms: Backoff span behind the armed retry, 0 otherwise
        wake_mode: Timer mode of the armed fire, if armed
        run_count: Number of times the body was invoked
        failure_count: Number of failed invocations
        last_run: Start of the last invocation in epoch milliseconds
        last_error: Error of the last invocation, None if it succeeded
    """

    name: str
    status: JobStatus = JobStatus.IDLE
    fire_at: Optional[int] = None
    backoff_ms: int = 0
    wake_mode: Optional[WakeMode] = None
    run_count: int = 0
    failure_count: int = 0
    last_run: Optional[int] = None
    last_error: Optional[str] = None


class SyncScheduler:
    """Serialized command processor owning every job's timer and retry state."""

    def __init__(
        self,
        registry: JobRegistry,
        config_store: ConfigStore,
        retry_store: RetryStateStore,
        timer: TimerFacility,
        reachability: Reachability,
        network_observer: Observer,
        power_observer: Observer,
        boot_observer: Observer,
        jitter: Optional[JitterSource] = None,
        clock: Callable[[], int] = now_ms,
        base_retry_span: int = BASE_RETRY_SPAN,
        min_retry_cap: int = MIN_RETRY_CAP,
    ) -> None:
        """Initialize the scheduler.

        Registration defaults are applied to the config store here, so
        they are in place before any job is scheduled.

        Args:
            registry: Host job registry
            config_store: Per-job configuration
            retry_store: Retry backoff and global state
            timer: Timer facility; its fires are routed to run_now()
            reachability: Network reachability query
            network_observer: One-shot network restored observer
            power_observer: Power change observer
            boot_observer: Boot observer
            jitter: Jitter source (default: seeded from the persisted seed)
            clock: Callable returning epoch milliseconds
            base_retry_span: First backoff after a failure (ms)
            min_retry_cap: Floor of the backoff ceiling (ms)
        """
        self._registry = registry
        self._config_store = config_store
        self._retry_store = retry_store
        self._timer = timer
        self._reachability = reachability
        self._network_observer = network_observer
        self._power_observer = power_observer
        self._boot_observer = boot_observer
        self._clock = clock
        self._base_retry_span = base_retry_span
        self._min_retry_cap = min_retry_cap
        self._lock = asyncio.Lock()

        for definition in registry.values():
            config_store.set_default(definition.name, definition.defaults)

        self._jitter = jitter or JitterSource(find_or_create_seed(retry_store))
        self._power_connected = retry_store.is_power_connected()

        self._states: Dict[str, JobState] = {}
        for name in registry:
            enabled = config_store.get(name).enabled
            status = JobStatus.IDLE if enabled else JobStatus.DISABLED
            self._states[name] = JobState(name=name, status=status)

        timer.connect(self.run_now)
        network_observer.connect(self.network_restored)
        power_observer.connect(self.power_changed)

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    @property
    def power_connected(self) -> bool:
        return self._power_connected

    @property
    def suspended(self) -> bool:
        """True while scheduling is suspended waiting for the network."""
        return self._network_observer.enabled

    def job_state(self, name: str) -> JobState:
        """Get a copy of a job's runtime state.

        Raises:
            JobNotRegistered: If the job is unknown
        """
        self._require(name)
        return replace(self._states[name])

    def snapshot(self) -> Dict[str, JobState]:
        """Copies of every job's runtime state."""
        return {name: replace(state) for name, state in self._states.items()}

    # Commands

    async def start(self) -> None:
        """Arm every enabled periodic job and enable the power and boot observers."""
        async with self._lock:
            logger.info(f"Starting scheduler with {len(self._registry)} jobs")
            self._cancel_all()
            for name in self._registry:
                self._schedule(name)
            self._power_observer.enable()
            self._boot_observer.enable()

    async def stop(self) -> None:
        """Cancel every timer and disable all observers.

        Persisted configuration and retry state are kept.
        """
        async with self._lock:
            logger.info("Stopping scheduler")
            self._cancel_all()
            self._network_observer.disable()
            self._power_observer.disable()
            self._boot_observer.disable()

    async def run_now(self, name: str) -> JobState:
        """Run a job immediately, then reschedule it.

        This is also what a due timer delivers. Disabled jobs are
        skipped. If the network is unreachable nothing runs: every
        timer is cancelled until the network comes back.

        Returns:
            Copy of the job's state after the command

        Raises:
            JobNotRegistered: If the job is unknown
            PersistenceFailure: If retry state cannot be written
        """
        definition = self._require(name)
        async with self._lock:
            state = self._states[name]
            config = self._config_store.get(name)
            if not config.enabled:
                logger.debug(f"Job {name} is disabled, skipping run")
                self._cancel(name)
                state.status = JobStatus.DISABLED
                return replace(state)

            try:
                self._require_network(name)
            except NoNetwork as e:
                logger.warning(f"{e}, suspending all jobs")
                self._cancel_all()
                self._network_observer.enable()
                return replace(state)

            await self._run(definition, state, config)
            return replace(state)

    async def run_soon(self, name: str) -> JobState:
        """Fire a job once within its jitter range from now.

        Use this in response to an external push so that every machine
        does not hit the server at the same moment.

        Raises:
            JobNotRegistered: If the job is unknown
        """
        self._require(name)
        async with self._lock:
            state = self._states[name]
            config = self._config_store.get(name)
            self._cancel(name)
            if not config.enabled:
                state.status = JobStatus.DISABLED
                return replace(state)

            fire_at = self._clock() + self._jitter.offset(0, config.range_ms)
            self._arm(name, fire_at, JobStatus.SCHEDULED)
            return replace(state)

    async def config_changed(self, name: str) -> JobState:
        """Recompute a job's timer from its current configuration.

        Raises:
            JobNotRegistered: If the job is unknown
        """
        self._require(name)
        async with self._lock:
            self._reschedule(name)
            return replace(self._states[name])

    async def network_restored(self) -> None:
        """Resume scheduling after a network outage."""
        async with self._lock:
            logger.info("Network restored, rescheduling jobs")
            self._network_observer.disable()
            for name in self._registry:
                self._schedule(name)

    async def power_changed(self, connected: bool) -> None:
        """Record the power state and rearm every job in the matching timer mode."""
        async with self._lock:
            logger.info(f"Power {'connected' if connected else 'disconnected'}")
            self._retry_store.set_power_connected(connected)
            self._power_connected = connected
            if self.suspended:
                # Timers come back with the new mode on network_restored()
                return
            for name in self._registry:
                self._reschedule(name)

    def get_config(self, name: str) -> JobConfig:
        """Resolved configuration of a job.

        Raises:
            JobNotRegistered: If the job is unknown
        """
        self._require(name)
        return self._config_store.get(name)

    async def edit_config(self, name: str, *edits: ConfigEdit) -> JobConfig:
        """Persist configuration edits and apply them to the job's timer.

        Raises:
            JobNotRegistered: If the job is unknown
            InvalidConfig: If an edit is out of range; nothing is changed
            PersistenceFailure: If the edit cannot be committed
        """
        self._require(name)
        async with self._lock:
            self._config_store.set_override(name, *edits)
            self._reschedule(name)
            return self._config_store.get(name)

    def edit_default_config(self, name: str, *edits: ConfigEdit) -> JobConfig:
        """Change a job's in-memory default configuration.

        Defaults do not reschedule anything; set them before start().

        Raises:
            JobNotRegistered: If the job is unknown
            InvalidConfig: If an edit is out of range
        """
        self._require(name)
        self._config_store.set_default(name, *edits)
        return self._config_store.get(name)

    def _require(self, name: str) -> JobDefinition:
        return self._registry[name]

    def _require_network(self, name: str) -> None:
        if not self._reachability.is_reachable():
            raise NoNetwork("Network unreachable", name)

    # Internals, always called with the lock held

    async def _run(self, definition: JobDefinition, state: JobState, config: JobConfig) -> None:
        """Invoke the body, then persist the outcome before touching the timer.

        If the outcome cannot be persisted the job keeps the timer and
        status it had before the run and PersistenceFailure propagates.
        """
        name = definition.name
        previous = state.status
        state.status = JobStatus.RUNNING
        state.last_run = self._clock()
        state.run_count += 1
        logger.info(f"Running job {name}")

        try:
            result = definition.body()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            failure = SyncFailure(name, e)
            state.failure_count += 1
            state.last_error = failure.message
            try:
                backoff = self._schedule_retry(name, config)
            except PersistenceFailure:
                state.status = previous
                raise
            logger.error(f"Job {name} failed: {failure.message}; retrying in {backoff} ms")
            return

        state.last_error = None
        try:
            self._retry_store.reset(name)
        except PersistenceFailure:
            state.status = previous
            raise
        state.status = JobStatus.IDLE
        self._reschedule(name)
        logger.info(f"Job {name} completed successfully")

    def _schedule_retry(self, name: str, config: JobConfig) -> int:
        cap = max(config.interval_ms, self._min_retry_cap)
        last = self._retry_store.get_backoff(name)
        backoff = self._base_retry_span if last == 0 else min(last * 2, cap)
        self._retry_store.set_backoff(name, backoff)

        fire_at = next_event(self._clock(), backoff) + self._jitter.offset(0, config.range_ms)
        self._arm(name, fire_at, JobStatus.BACKOFF_SCHEDULED, backoff)
        return backoff

    def _reschedule(self, name: str) -> None:
        # Read first so a storage error leaves the current timer alone
        config = self._config_store.get(name)
        self._cancel(name)
        self._schedule(name, config)

    def _schedule(self, name: str, config: Optional[JobConfig] = None) -> None:
        """Arm the normal next fire of a job if it is enabled and periodic."""
        if config is None:
            config = self._config_store.get(name)
        state = self._states[name]
        if not config.enabled:
            self._cancel(name)
            state.status = JobStatus.DISABLED
            return
        if state.status is JobStatus.DISABLED:
            state.status = JobStatus.IDLE
        if not config.periodic:
            return

        fire_at = next_event(self._clock(), config.interval_ms) + self._jitter.offset(0, config.range_ms)
        self._arm(name, fire_at, JobStatus.SCHEDULED)

    def _arm(self, name: str, fire_at: int, status: JobStatus, backoff_ms: int = 0) -> None:
        if self.suspended:
            # Everything is rearmed by network_restored()
            logger.debug(f"Not arming {name} while waiting for the network")
            self._states[name].status = JobStatus.IDLE
            return

        mode = WakeMode.WAKEUP if self._power_connected else WakeMode.NO_WAKEUP
        self._timer.arm(name, fire_at, mode)

        state = self._states[name]
        state.status = status
        state.fire_at = fire_at
        state.backoff_ms = backoff_ms
        state.wake_mode = mode
        logger.debug(f"Armed {name} at {fire_at} ({mode.value})")

    def _cancel(self, name: str) -> None:
        self._timer.cancel(name)

        state = self._states[name]
        state.fire_at = None
        state.backoff_ms = 0
        state.wake_mode = None
        if state.status in (JobStatus.SCHEDULED, JobStatus.BACKOFF_SCHEDULED):
            state.status = JobStatus.IDLE

    def _cancel_all(self) -> None:
        for name in self._registry:
            self._cancel(name)
