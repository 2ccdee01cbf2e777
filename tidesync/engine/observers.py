"""Host observers: network restored, power change, boot.

The network and power observers poll psutil on APScheduler interval
jobs sharing the engine's scheduler. The boot observer persists whether
the engine should be started automatically the next time the daemon
comes up.
"""

import logging
from typing import Iterable, Optional

import psutil
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tidesync.engine.interfaces import Observer, PowerSource, Reachability
from tidesync.engine.state_store import RetryStateStore

logger = logging.getLogger(__name__)


class PsutilReachability(Reachability):
    """Network is reachable if any non-ignored interface is up."""

    def __init__(self, ignore_interfaces: Iterable[str] = ("lo",)) -> None:
        self._ignore = tuple(ignore_interfaces)

    def is_reachable(self) -> bool:
        stats = psutil.net_if_stats()
        return any(
            s.isup
            for name, s in stats.items()
            if not name.startswith(self._ignore) and not name.lower().startswith("loopback")
        )


class PsutilPowerSource(PowerSource):
    """Power state from the battery sensor.

    Machines without a battery (or where the plug state is unknown)
    report ``assume_connected_without_battery``.
    """

    def __init__(self, assume_connected_without_battery: bool = True) -> None:
        self._assume_connected = assume_connected_without_battery

    def is_connected(self) -> bool:
        battery = psutil.sensors_battery()
        if battery is None or battery.power_plugged is None:
            return self._assume_connected
        return bool(battery.power_plugged)


class PollingObserver(Observer):
    """Observer that polls on an APScheduler interval job while enabled."""

    def __init__(self, scheduler: BaseScheduler, poll_interval: float, job_id: str) -> None:
        super().__init__()
        self._scheduler = scheduler
        self._poll_interval = poll_interval
        self._job_id = job_id

    def enable(self) -> None:
        if self._enabled:
            return
        self._on_enable()
        self._scheduler.add_job(
            func=self.poll,
            trigger=IntervalTrigger(seconds=self._poll_interval),
            id=self._job_id,
            name=self._job_id,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._enabled = True
        logger.debug(f"Observer {self._job_id} enabled")

    def disable(self) -> None:
        if not self._enabled:
            return
        self._enabled = False
        try:
            self._scheduler.remove_job(self._job_id)
        except JobLookupError:
            pass
        logger.debug(f"Observer {self._job_id} disabled")

    def _on_enable(self) -> None:
        """Hook run before polling starts."""

    async def poll(self) -> None:
        raise NotImplementedError


class NetworkRestoredObserver(PollingObserver):
    """One-shot: delivers a single restored event, then disables itself."""

    def __init__(
        self,
        scheduler: BaseScheduler,
        reachability: Reachability,
        poll_interval: float = 30,
    ) -> None:
        super().__init__(scheduler, poll_interval, "tidesync-network")
        self._reachability = reachability

    async def poll(self) -> None:
        if not self._enabled or not self._reachability.is_reachable():
            return
        self.disable()
        logger.info("Network is reachable again")
        if self._handler is not None:
            await self._handler()


class PowerObserver(PollingObserver):
    """Delivers the new state on every power transition."""

    def __init__(
        self,
        scheduler: BaseScheduler,
        power_source: PowerSource,
        poll_interval: float = 60,
    ) -> None:
        super().__init__(scheduler, poll_interval, "tidesync-power")
        self._power_source = power_source
        self._last: Optional[bool] = None

    def _on_enable(self) -> None:
        self._last = self._power_source.is_connected()

    async def poll(self) -> None:
        if not self._enabled:
            return
        connected = self._power_source.is_connected()
        if connected == self._last:
            return
        self._last = connected
        if self._handler is not None:
            await self._handler(connected)


class BootObserver(Observer):
    """Persists whether the engine starts automatically with the daemon."""

    def __init__(self, store: RetryStateStore) -> None:
        super().__init__()
        self._store = store
        self._enabled = store.is_boot_enabled()

    def enable(self) -> None:
        self._store.set_boot_enabled(True)
        self._enabled = True

    def disable(self) -> None:
        self._store.set_boot_enabled(False)
        self._enabled = False
