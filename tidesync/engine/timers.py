"""APScheduler-backed timer facility.

Each armed job becomes a one-shot DateTrigger job on a shared
AsyncIOScheduler, keyed by job name so that arming again replaces the
previous timer.

A due timer is handed to the engine on its own task, so the APScheduler
job finishes (and releases its instance slot) before the engine rearms
the same timer id.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Set, Tuple

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger

from tidesync.engine.interfaces import TimerFacility, WakeMode

logger = logging.getLogger(__name__)

TIMER_ID_PREFIX = "tidesync-timer:"


def to_datetime(epoch_ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)


class APSchedulerTimer(TimerFacility):
    """Timer facility on top of an APScheduler scheduler.

    A userspace process cannot wake a suspended machine, so the wake
    mode is recorded with the timer rather than enforced. Timers never
    expire: a fire missed during suspend is delivered late, never early.

    Example:
        scheduler = AsyncIOScheduler(timezone="UTC")
        timer = APSchedulerTimer(scheduler)
        timer.connect(engine.run_now)
        timer.arm("refresh-feed", fire_at_ms, WakeMode.WAKEUP)
    """

    def __init__(self, scheduler: BaseScheduler) -> None:
        super().__init__()
        self._scheduler = scheduler
        self._armed: Dict[str, Tuple[int, WakeMode]] = {}
        self._deliveries: Set[asyncio.Task] = set()

    @staticmethod
    def timer_id(name: str) -> str:
        return f"{TIMER_ID_PREFIX}{name}"

    def arm(self, name: str, fire_at_ms: int, mode: WakeMode) -> None:
        self._scheduler.add_job(
            func=self._on_due,
            trigger=DateTrigger(run_date=to_datetime(fire_at_ms)),
            id=self.timer_id(name),
            name=f"{name} ({mode.value})",
            args=[name],
            replace_existing=True,
            misfire_grace_time=None,
            coalesce=True,
            max_instances=1,
        )
        self._armed[name] = (fire_at_ms, mode)
        logger.debug(f"Timer armed for {name} at {to_datetime(fire_at_ms).isoformat()}")

    def cancel(self, name: str) -> None:
        self._armed.pop(name, None)
        try:
            self._scheduler.remove_job(self.timer_id(name))
            logger.debug(f"Timer cancelled for {name}")
        except JobLookupError:
            # Nothing armed
            pass

    def armed(self) -> Dict[str, Tuple[int, WakeMode]]:
        """Currently armed timers: job name to (fire time, mode)."""
        return dict(self._armed)

    async def drain(self) -> None:
        """Wait for fires already handed to the engine."""
        if self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    async def _on_due(self, name: str) -> None:
        self._armed.pop(name, None)
        logger.debug(f"Timer due for {name}")
        task = asyncio.get_running_loop().create_task(self.fire(name))
        self._deliveries.add(task)
        task.add_done_callback(self._delivered)

    def _delivered(self, task: asyncio.Task) -> None:
        self._deliveries.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Timer delivery failed: {error}", exc_info=error)
