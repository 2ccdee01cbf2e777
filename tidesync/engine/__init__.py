"""Scheduling engine for jittered periodic jobs.

The engine core (SyncScheduler) has no knowledge of APScheduler or
psutil; those backends live in ``timers`` and ``observers`` and are
wired together by the daemon.
"""

from tidesync.engine.config_store import (
    DAYS,
    HOURS,
    MINUTES,
    SECONDS,
    WEEKS,
    ConfigEdit,
    ConfigStore,
    JobConfig,
)
from tidesync.engine.events import next_event, now_ms
from tidesync.engine.interfaces import (
    Observer,
    PowerSource,
    Reachability,
    TimerFacility,
    WakeMode,
)
from tidesync.engine.jitter import JitterSource, find_or_create_seed
from tidesync.engine.parsing import format_time_span, parse_bool, parse_time_span
from tidesync.engine.registry import (
    JobDefinition,
    JobRegistry,
    RegistryBuilder,
    load_registry,
)
from tidesync.engine.scheduler import (
    BASE_RETRY_SPAN,
    MIN_RETRY_CAP,
    JobState,
    JobStatus,
    SyncScheduler,
)
from tidesync.engine.state_store import RetryStateStore

__all__ = [
    "BASE_RETRY_SPAN",
    "DAYS",
    "HOURS",
    "MINUTES",
    "MIN_RETRY_CAP",
    "SECONDS",
    "WEEKS",
    "ConfigEdit",
    "ConfigStore",
    "JitterSource",
    "JobConfig",
    "JobDefinition",
    "JobRegistry",
    "JobState",
    "JobStatus",
    "Observer",
    "PowerSource",
    "Reachability",
    "RegistryBuilder",
    "RetryStateStore",
    "SyncScheduler",
    "TimerFacility",
    "WakeMode",
    "find_or_create_seed",
    "format_time_span",
    "load_registry",
    "next_event",
    "now_ms",
    "parse_bool",
    "parse_time_span",
]
