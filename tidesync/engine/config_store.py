"""Per-job configuration with persisted overrides.

A job's effective configuration is resolved field by field: the
persisted override wins, then the default supplied at registration,
then the built-in default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Dict, Optional

from sqlalchemy.orm import sessionmaker

from tidesync.database.repositories import repository_scope
from tidesync.exceptions import InvalidConfig

logger = logging.getLogger(__name__)

# Time units, in milliseconds
SECONDS = 1000
MINUTES = SECONDS * 60
HOURS = MINUTES * 60
DAYS = HOURS * 24
WEEKS = DAYS * 7

DEFAULT_ENABLED = True
DEFAULT_INTERVAL_MS = 0
DEFAULT_RANGE_MS = 5 * MINUTES

MIN_INTERVAL_MS = 5 * SECONDS


@dataclass(frozen=True)
class JobConfig:
    """Resolved configuration of a job.

    Attributes:
        enabled: Whether the job may run at all
        interval_ms: Period in milliseconds, 0 for manual-only jobs
        range_ms: Width of the jitter window added to each fire time
    """

    enabled: bool = DEFAULT_ENABLED
    interval_ms: int = DEFAULT_INTERVAL_MS
    range_ms: int = DEFAULT_RANGE_MS

    @property
    def periodic(self) -> bool:
        """True if the job fires on its own schedule."""
        return self.interval_ms > 0


@dataclass(frozen=True)
class ConfigEdit:
    """A partial change to a job's configuration.

    Fields left as None are not touched when the edit is applied.

    Example:
        edit = ConfigEdit.every(15, MINUTES) | ConfigEdit.range(2, MINUTES)
    """

    enabled: Optional[bool] = None
    interval_ms: Optional[int] = None
    range_ms: Optional[int] = None

    @classmethod
    def enable(cls, value: bool = True) -> "ConfigEdit":
        """Set whether the job is enabled. Disabled jobs never run."""
        return cls(enabled=value)

    @classmethod
    def disable(cls) -> "ConfigEdit":
        """Disable the job."""
        return cls(enabled=False)

    @classmethod
    def every(cls, span: int, unit: int = 1) -> "ConfigEdit":
        """Set the interval to ``span * unit`` milliseconds.

        Units are plain multipliers: ``every(2, DAYS)`` is 2 * 86400000 ms,
        which is not necessarily two calendar days.
        """
        return cls(interval_ms=span * unit)

    @classmethod
    def range(cls, span: int, unit: int = 1) -> "ConfigEdit":
        """Set the jitter range to ``span * unit`` milliseconds."""
        return cls(range_ms=span * unit)

    def merge(self, other: "ConfigEdit") -> "ConfigEdit":
        """Combine two edits; fields set on ``other`` win."""
        return ConfigEdit(
            enabled=other.enabled if other.enabled is not None else self.enabled,
            interval_ms=other.interval_ms if other.interval_ms is not None else self.interval_ms,
            range_ms=other.range_ms if other.range_ms is not None else self.range_ms,
        )

    __or__ = merge

    @property
    def empty(self) -> bool:
        """True if the edit changes nothing."""
        return all(getattr(self, f.name) is None for f in fields(self))

    def validate(self, job: Optional[str] = None) -> None:
        """Reject values the engine cannot schedule.

        Raises:
            InvalidConfig: If the interval is below the 5 second minimum
                or the range is negative
        """
        if self.interval_ms is not None and self.interval_ms < MIN_INTERVAL_MS:
            raise InvalidConfig(
                f"Interval must be at least {MIN_INTERVAL_MS} ms, got {self.interval_ms}",
                job,
            )
        if self.range_ms is not None and self.range_ms < 0:
            raise InvalidConfig(f"Range must not be negative, got {self.range_ms}", job)


def combine(*edits: ConfigEdit) -> ConfigEdit:
    """Merge edits left to right."""
    result = ConfigEdit()
    for edit in edits:
        result = result.merge(edit)
    return result


class ConfigStore:
    """Resolves and persists job configuration.

    Overrides are written to the database and committed before the
    call returns. Defaults are held in memory only and are expected to
    be set at registration time, before the job is first scheduled.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        """Initialize the store.

        Args:
            session_factory: Session factory for the backing database
        """
        self._session_factory = session_factory
        self._defaults: Dict[str, ConfigEdit] = {}

    def get(self, job: str) -> JobConfig:
        """Resolve the effective configuration of a job.

        Raises:
            PersistenceFailure: If the override cannot be read
        """
        override = self.get_override(job) or ConfigEdit()
        default = self._defaults.get(job, ConfigEdit())
        builtin = JobConfig()

        def pick(name: str):
            for layer in (override, default):
                value = getattr(layer, name)
                if value is not None:
                    return value
            return getattr(builtin, name)

        return JobConfig(
            enabled=pick("enabled"),
            interval_ms=pick("interval_ms"),
            range_ms=pick("range_ms"),
        )

    def get_override(self, job: str) -> Optional[ConfigEdit]:
        """Get the persisted override of a job, or None if there is none."""
        with repository_scope(self._session_factory) as repos:
            row = repos.configs.get(job)
            if row is None:
                return None
            return ConfigEdit(
                enabled=row.enabled,
                interval_ms=row.interval_ms,
                range_ms=row.range_ms,
            )

    def set_override(self, job: str, *edits: ConfigEdit) -> None:
        """Persist the fields present in ``edits``.

        Raises:
            InvalidConfig: If a value is out of range; nothing is written
            PersistenceFailure: If the write cannot be committed
        """
        edit = combine(*edits)
        edit.validate(job)
        if edit.empty:
            return

        with repository_scope(self._session_factory) as repos:
            repos.configs.upsert(
                job,
                enabled=edit.enabled,
                interval_ms=edit.interval_ms,
                range_ms=edit.range_ms,
            )
        logger.debug(f"Persisted config override for {job}: {edit}")

    def clear_override(self, job: str) -> bool:
        """Delete the persisted override of a job.

        Returns:
            True if an override existed
        """
        with repository_scope(self._session_factory) as repos:
            return repos.configs.delete(job)

    def set_default(self, job: str, *edits: ConfigEdit) -> None:
        """Change the in-memory default configuration of a job.

        Raises:
            InvalidConfig: If a value is out of range
        """
        edit = combine(*edits)
        edit.validate(job)
        self._defaults[job] = self._defaults.get(job, ConfigEdit()).merge(edit)

    def get_default(self, job: str) -> ConfigEdit:
        """Get the registration default of a job."""
        return self._defaults.get(job, ConfigEdit())
