"""Database repositories for tidesync.

Thin data access objects over the engine's three tables. Repositories
never commit; the surrounding session scope does.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Generator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from tidesync.database.connection import session_scope
from tidesync.database.models import GlobalState, JobConfigOverride, RetryState
from tidesync.exceptions import PersistenceFailure


class ConfigOverrideRepository:
    """
    Repository for persisted job configuration overrides.
    """

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    def get(self, name: str) -> Optional[JobConfigOverride]:
        """
        Get the override row for a job.

        Args:
            name: Job name

        Returns:
            Override if present, None otherwise
        """
        return self.session.get(JobConfigOverride, name)

    def get_all(self) -> List[JobConfigOverride]:
        """Get all overrides ordered by job name."""
        return self.session.query(JobConfigOverride).order_by(JobConfigOverride.name).all()

    def upsert(
        self,
        name: str,
        enabled: Optional[bool] = None,
        interval_ms: Optional[int] = None,
        range_ms: Optional[int] = None,
    ) -> JobConfigOverride:
        """
        Write the given fields of a job's override.

        Fields passed as None are left untouched.

        Args:
            name: Job name
            enabled: New enabled flag
            interval_ms: New interval in milliseconds
            range_ms: New jitter range in milliseconds

        Returns:
            The updated override row
        """
        override = self.get(name)
        if override is None:
            override = JobConfigOverride(name=name)
            self.session.add(override)

        if enabled is not None:
            override.enabled = enabled
        if interval_ms is not None:
            override.interval_ms = interval_ms
        if range_ms is not None:
            override.range_ms = range_ms

        self.session.flush()
        return override

    def delete(self, name: str) -> bool:
        """
        Delete a job's override.

        Args:
            name: Job name

        Returns:
            True if an override was deleted
        """
        override = self.get(name)
        if override is None:
            return False
        self.session.delete(override)
        self.session.flush()
        return True


class RetryStateRepository:
    """
    Repository for per-job retry backoff state.
    """

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    def get_backoff(self, name: str) -> int:
        """
        Get the last failed backoff span for a job.

        Args:
            name: Job name

        Returns:
            Backoff in milliseconds, 0 if none recorded
        """
        state = self.session.get(RetryState, name)
        return state.last_failed_backoff_ms if state else 0

    def set_backoff(self, name: str, backoff_ms: int) -> RetryState:
        """
        Record the last failed backoff span for a job.

        Args:
            name: Job name
            backoff_ms: Backoff in milliseconds

        Returns:
            The updated retry state row
        """
        state = self.session.get(RetryState, name)
        if state is None:
            state = RetryState(name=name, last_failed_backoff_ms=backoff_ms)
            self.session.add(state)
        else:
            state.last_failed_backoff_ms = backoff_ms
        self.session.flush()
        return state

    def get_all(self) -> Dict[str, int]:
        """Get every recorded backoff keyed by job name."""
        return {
            state.name: state.last_failed_backoff_ms
            for state in self.session.query(RetryState).order_by(RetryState.name)
        }

    def delete(self, name: str) -> bool:
        """
        Delete a job's retry state.

        Args:
            name: Job name

        Returns:
            True if a row was deleted
        """
        state = self.session.get(RetryState, name)
        if state is None:
            return False
        self.session.delete(state)
        self.session.flush()
        return True


class GlobalStateRepository:
    """
    Repository for install-wide key/value state.
    """

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    def get(self, key: str) -> Optional[str]:
        """Get a value, or None if the key has never been written."""
        row = self.session.get(GlobalState, key)
        return row.value if row else None

    def set(self, key: str, value: str) -> None:
        """Write a value."""
        row = self.session.get(GlobalState, key)
        if row is None:
            self.session.add(GlobalState(key=key, value=value))
        else:
            row.value = value
        self.session.flush()


class RepositoryFactory:
    """
    Factory for creating repository instances.

    Provides a convenient way to access all repositories
    with a shared session.
    """

    def __init__(self, session: Session):
        """
        Initialize factory with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session
        self._configs: Optional[ConfigOverrideRepository] = None
        self._retries: Optional[RetryStateRepository] = None
        self._globals: Optional[GlobalStateRepository] = None

    @property
    def configs(self) -> ConfigOverrideRepository:
        """Get configuration override repository."""
        if self._configs is None:
            self._configs = ConfigOverrideRepository(self.session)
        return self._configs

    @property
    def retries(self) -> RetryStateRepository:
        """Get retry state repository."""
        if self._retries is None:
            self._retries = RetryStateRepository(self.session)
        return self._retries

    @property
    def globals(self) -> GlobalStateRepository:
        """Get global state repository."""
        if self._globals is None:
            self._globals = GlobalStateRepository(self.session)
        return self._globals


@contextmanager
def repository_scope(factory: sessionmaker) -> Generator[RepositoryFactory, None, None]:
    """
    Open a committed session and yield repositories on it.

    Any SQLAlchemy error, including a failed commit, surfaces as
    PersistenceFailure so that callers abort before acting on state
    that never reached the store.

    Args:
        factory: Session factory

    Yields:
        RepositoryFactory bound to the session
    """
    try:
        with session_scope(factory) as session:
            yield RepositoryFactory(session)
    except SQLAlchemyError as e:
        raise PersistenceFailure(f"Database operation failed: {e}") from e
