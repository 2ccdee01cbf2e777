"""Database layer for tidesync.

Persists job configuration overrides, retry backoff state and the
global engine state (jitter seed, last power state) with SQLAlchemy.
"""

from tidesync.database.connection import (
    create_db_engine,
    create_session_factory,
    create_tables,
    get_db_path,
    open_database,
    session_scope,
)
from tidesync.database.models import Base, GlobalState, JobConfigOverride, RetryState
from tidesync.database.repositories import (
    ConfigOverrideRepository,
    GlobalStateRepository,
    RepositoryFactory,
    RetryStateRepository,
    repository_scope,
)

__all__ = [
    "Base",
    "ConfigOverrideRepository",
    "GlobalState",
    "GlobalStateRepository",
    "JobConfigOverride",
    "RepositoryFactory",
    "RetryState",
    "RetryStateRepository",
    "create_db_engine",
    "create_session_factory",
    "create_tables",
    "get_db_path",
    "open_database",
    "repository_scope",
    "session_scope",
]
