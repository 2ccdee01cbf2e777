"""Persisted retry backoff and install-wide engine state."""

from __future__ import annotations

import logging
from typing import Dict

from sqlalchemy.orm import sessionmaker

from tidesync.database.repositories import repository_scope

logger = logging.getLogger(__name__)

JITTER_SEED_KEY = "jitter_seed"
POWER_CONNECTED_KEY = "power_connected"
BOOT_ENABLED_KEY = "boot_enabled"


class RetryStateStore:
    """Per-job last failed backoff span plus global engine state.

    Every write is committed before the method returns. Storage errors
    surface as PersistenceFailure.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    # Retry backoff

    def get_backoff(self, job: str) -> int:
        """Last failed backoff of a job in milliseconds, 0 if none."""
        with repository_scope(self._session_factory) as repos:
            return repos.retries.get_backoff(job)

    def set_backoff(self, job: str, backoff_ms: int) -> None:
        """Record the backoff applied after a failed run."""
        with repository_scope(self._session_factory) as repos:
            repos.retries.set_backoff(job, backoff_ms)

    def reset(self, job: str) -> None:
        """Clear a job's backoff after a successful run."""
        self.set_backoff(job, 0)

    def all_backoffs(self) -> Dict[str, int]:
        """Every recorded backoff keyed by job name."""
        with repository_scope(self._session_factory) as repos:
            return repos.retries.get_all()

    def delete(self, job: str) -> bool:
        """Forget a job's retry state entirely."""
        with repository_scope(self._session_factory) as repos:
            return repos.retries.delete(job)

    # Global state

    def get_seed(self) -> int:
        """Persisted jitter seed, 0 if none has been generated yet."""
        with repository_scope(self._session_factory) as repos:
            value = repos.globals.get(JITTER_SEED_KEY)
        return int(value) if value is not None else 0

    def set_seed(self, seed: int) -> None:
        """Persist the jitter seed.

        Raises:
            ValueError: If a different seed was already persisted
        """
        with repository_scope(self._session_factory) as repos:
            current = repos.globals.get(JITTER_SEED_KEY)
            if current is not None and int(current) != seed:
                raise ValueError("Jitter seed is already set and cannot change")
            repos.globals.set(JITTER_SEED_KEY, str(seed))

    def is_power_connected(self) -> bool:
        """Last observed power state; False until one has been recorded."""
        with repository_scope(self._session_factory) as repos:
            return repos.globals.get(POWER_CONNECTED_KEY) == "1"

    def set_power_connected(self, connected: bool) -> None:
        with repository_scope(self._session_factory) as repos:
            repos.globals.set(POWER_CONNECTED_KEY, "1" if connected else "0")

    def is_boot_enabled(self) -> bool:
        """Whether start() should be issued automatically on daemon startup."""
        with repository_scope(self._session_factory) as repos:
            return repos.globals.get(BOOT_ENABLED_KEY) == "1"

    def set_boot_enabled(self, enabled: bool) -> None:
        with repository_scope(self._session_factory) as repos:
            repos.globals.set(BOOT_ENABLED_KEY, "1" if enabled else "0")
