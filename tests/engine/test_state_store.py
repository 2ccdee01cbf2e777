"""Tests for persisted retry and global engine state."""

import pytest

from tidesync.engine.state_store import RetryStateStore


class TestRetryBackoff:
    """Tests for per-job backoff persistence."""

    def test_default_is_zero(self, retry_store):
        assert retry_store.get_backoff("feed") == 0

    def test_set_reset(self, retry_store):
        """reset() returns a job to "no backoff"."""
        retry_store.set_backoff("feed", 4000)
        assert retry_store.get_backoff("feed") == 4000

        retry_store.reset("feed")
        assert retry_store.get_backoff("feed") == 0

    def test_scoped_per_job(self, retry_store):
        retry_store.set_backoff("feed", 500)
        retry_store.set_backoff("mail", 1000)

        assert retry_store.all_backoffs() == {"feed": 500, "mail": 1000}

    def test_survives_reopen(self, retry_store, session_factory):
        """Backoff state is committed before the call returns."""
        retry_store.set_backoff("feed", 8000)

        assert RetryStateStore(session_factory).get_backoff("feed") == 8000

    def test_delete(self, retry_store):
        retry_store.set_backoff("feed", 500)

        assert retry_store.delete("feed") is True
        assert retry_store.delete("feed") is False
        assert retry_store.all_backoffs() == {}


class TestGlobalState:
    """Tests for install-wide engine state."""

    def test_seed_set_once(self, retry_store):
        """The seed cannot change once persisted."""
        retry_store.set_seed(17)
        retry_store.set_seed(17)

        with pytest.raises(ValueError):
            retry_store.set_seed(18)
        assert retry_store.get_seed() == 17

    def test_power_state(self, retry_store):
        """Power state defaults to disconnected and round-trips."""
        assert retry_store.is_power_connected() is False

        retry_store.set_power_connected(True)
        assert retry_store.is_power_connected() is True

        retry_store.set_power_connected(False)
        assert retry_store.is_power_connected() is False

    def test_boot_flag(self, retry_store, session_factory):
        retry_store.set_boot_enabled(True)

        assert RetryStateStore(session_factory).is_boot_enabled() is True
