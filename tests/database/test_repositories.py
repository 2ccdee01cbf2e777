"""Tests for the database layer."""

import pytest
from sqlalchemy.exc import OperationalError

from tidesync.config import TidesyncConfig
from tidesync.database.connection import get_db_path, open_database, session_scope
from tidesync.database.models import GlobalState, JobConfigOverride, RetryState
from tidesync.database.repositories import (
    ConfigOverrideRepository,
    RepositoryFactory,
    repository_scope,
)
from tidesync.exceptions import PersistenceFailure


class TestConfigOverrideRepository:
    """Tests for job configuration overrides."""

    def test_upsert_creates_row(self, session_factory) -> None:
        with session_scope(session_factory) as session:
            ConfigOverrideRepository(session).upsert("feed", interval_ms=60_000)

        with session_scope(session_factory) as session:
            row = ConfigOverrideRepository(session).get("feed")
            assert row.interval_ms == 60_000
            assert row.enabled is None
            assert row.range_ms is None

    def test_upsert_leaves_unset_fields(self, session_factory) -> None:
        """Fields passed as None keep their stored value."""
        with repository_scope(session_factory) as repos:
            repos.configs.upsert("feed", enabled=False, interval_ms=60_000)
        with repository_scope(session_factory) as repos:
            repos.configs.upsert("feed", range_ms=1_000)

        with repository_scope(session_factory) as repos:
            row = repos.configs.get("feed")
            assert (row.enabled, row.interval_ms, row.range_ms) == (False, 60_000, 1_000)

    def test_get_all_sorted(self, session_factory) -> None:
        with repository_scope(session_factory) as repos:
            repos.configs.upsert("mail", enabled=True)
            repos.configs.upsert("feed", enabled=True)

        with repository_scope(session_factory) as repos:
            assert [row.name for row in repos.configs.get_all()] == ["feed", "mail"]

    def test_delete(self, session_factory) -> None:
        with repository_scope(session_factory) as repos:
            repos.configs.upsert("feed", enabled=True)

        with repository_scope(session_factory) as repos:
            assert repos.configs.delete("feed") is True
            assert repos.configs.delete("feed") is False

    def test_to_dict(self, session_factory) -> None:
        with repository_scope(session_factory) as repos:
            data = repos.configs.upsert("feed", range_ms=0).to_dict()

        assert data["name"] == "feed"
        assert data["range_ms"] == 0
        assert data["updated_at"] is not None


class TestRetryStateRepository:
    """Tests for retry backoff rows."""

    def test_missing_is_zero(self, session_factory) -> None:
        with repository_scope(session_factory) as repos:
            assert repos.retries.get_backoff("feed") == 0

    def test_set_and_update(self, session_factory) -> None:
        with repository_scope(session_factory) as repos:
            repos.retries.set_backoff("feed", 500)
        with repository_scope(session_factory) as repos:
            repos.retries.set_backoff("feed", 1_000)
            repos.retries.set_backoff("mail", 500)

        with repository_scope(session_factory) as repos:
            assert repos.retries.get_all() == {"feed": 1_000, "mail": 500}

    def test_delete(self, session_factory) -> None:
        with repository_scope(session_factory) as repos:
            repos.retries.set_backoff("feed", 500)

        with repository_scope(session_factory) as repos:
            assert repos.retries.delete("feed") is True
            assert repos.retries.get_backoff("feed") == 0


class TestGlobalStateRepository:
    """Tests for the key/value table."""

    def test_get_set(self, session_factory) -> None:
        with repository_scope(session_factory) as repos:
            assert repos.globals.get("jitter_seed") is None
            repos.globals.set("jitter_seed", "42")
            repos.globals.set("jitter_seed", "43")

        with session_scope(session_factory) as session:
            assert session.get(GlobalState, "jitter_seed").value == "43"


class TestRepositoryScope:
    """Tests for the committing repository scope."""

    def test_factory_caches_repositories(self, session_factory) -> None:
        with session_scope(session_factory) as session:
            repos = RepositoryFactory(session)
            assert repos.configs is repos.configs
            assert repos.retries is repos.retries

    def test_rolls_back_on_error(self, session_factory) -> None:
        """Nothing from a failed scope is committed."""
        with pytest.raises(RuntimeError):
            with repository_scope(session_factory) as repos:
                repos.retries.set_backoff("feed", 500)
                raise RuntimeError("boom")

        with session_scope(session_factory) as session:
            assert session.get(RetryState, "feed") is None

    def test_database_errors_become_persistence_failures(self, session_factory) -> None:
        with pytest.raises(PersistenceFailure):
            with repository_scope(session_factory) as repos:
                raise OperationalError("UPDATE", {}, Exception("disk I/O error"))

    def test_missing_tables(self, tmp_path) -> None:
        from tidesync.database.connection import create_db_engine, create_session_factory

        engine = create_db_engine(f"sqlite:///{tmp_path / 'empty.db'}")
        try:
            with pytest.raises(PersistenceFailure):
                with repository_scope(create_session_factory(engine)) as repos:
                    repos.configs.get("feed")
        finally:
            engine.dispose()


class TestOpenDatabase:
    """Tests for opening the configured database."""

    def test_creates_directory_and_tables(self, tmp_path) -> None:
        config = TidesyncConfig(data_dir=tmp_path / "data")

        engine, factory = open_database(config)
        try:
            assert get_db_path(config) == tmp_path / "data" / "tidesync.db"
            assert get_db_path(config).exists()
            with session_scope(factory) as session:
                session.add(JobConfigOverride(name="feed", enabled=True))
            with session_scope(factory) as session:
                assert session.get(JobConfigOverride, "feed").enabled is True
        finally:
            engine.dispose()

    def test_unopenable_database(self, tmp_path) -> None:
        # A directory cannot be opened as a SQLite file
        target = tmp_path / "dir.db"
        target.mkdir()
        config = TidesyncConfig(data_dir=tmp_path, database_url=f"sqlite:///{target}")

        with pytest.raises(PersistenceFailure):
            open_database(config)
