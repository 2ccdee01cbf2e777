"""Tests for daemon service."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tidesync.config import TidesyncConfig
from tidesync.daemon.service import SyncDaemon, create_apscheduler, run_daemon
from tidesync.database.connection import open_database
from tidesync.engine.config_store import HOURS, ConfigEdit, ConfigStore
from tidesync.engine.interfaces import WakeMode
from tidesync.engine.registry import load_registry
from tidesync.engine.scheduler import JobStatus
from tidesync.engine.state_store import RetryStateStore
from tidesync.engine.timers import APSchedulerTimer


@pytest.fixture
def daemon_config(tmp_path) -> TidesyncConfig:
    return TidesyncConfig(config_dir=tmp_path / "config", data_dir=tmp_path / "data")


@pytest.fixture
def registry(host_app):
    return load_registry(host_app)


@pytest.fixture
def make_daemon(daemon_config, registry, reachability, power_source_factory):
    """Build daemons sharing one configuration; stops them all afterwards."""
    daemons = []

    def factory(connected: bool = False) -> SyncDaemon:
        daemon = SyncDaemon(
            daemon_config,
            registry,
            reachability=reachability,
            power_source=power_source_factory(connected=connected),
        )
        daemons.append(daemon)
        return daemon

    yield factory
    for daemon in daemons:
        if daemon._db_engine is not None:
            daemon._db_engine.dispose()


class TestCreateApscheduler:
    """Tests for the shared APScheduler instance."""

    def test_job_defaults(self):
        scheduler = create_apscheduler()

        assert scheduler._job_defaults["coalesce"] is True
        assert scheduler._job_defaults["max_instances"] == 1
        assert str(scheduler.timezone) == "UTC"


class TestSyncDaemon:
    """Tests for SyncDaemon class."""

    def test_initialization(self, make_daemon):
        daemon = make_daemon()

        assert daemon.engine is None
        assert daemon.is_running is False

    @pytest.mark.asyncio
    async def test_start_arms_enabled_jobs(self, make_daemon):
        daemon = make_daemon()

        await daemon.start()
        try:
            assert daemon.is_running
            feed = daemon.engine.job_state("feed")
            assert feed.status is JobStatus.SCHEDULED
            assert feed.fire_at % HOURS == 0
            assert daemon._apscheduler.get_job(APSchedulerTimer.timer_id("feed")) is not None
            assert daemon._apscheduler.get_job(APSchedulerTimer.timer_id("mail")) is None
            assert daemon._apscheduler.get_job("tidesync-power") is not None
        finally:
            await daemon.stop()

        assert daemon.is_running is False

    @pytest.mark.asyncio
    async def test_start_records_power_state(self, make_daemon, daemon_config):
        daemon = make_daemon(connected=True)

        await daemon.start()
        try:
            assert daemon.engine.power_connected is True
            assert daemon.engine.job_state("feed").wake_mode is WakeMode.WAKEUP
        finally:
            await daemon.stop()

    @pytest.mark.asyncio
    async def test_autostart_disabled(self, make_daemon, daemon_config):
        daemon_config.scheduler.autostart = False
        daemon = make_daemon()

        await daemon.start()
        try:
            assert daemon.engine.job_state("feed").status is JobStatus.IDLE
            assert daemon._apscheduler.get_jobs() == []
        finally:
            await daemon.stop()

    @pytest.mark.asyncio
    async def test_boot_flag_survives_restart(self, make_daemon, daemon_config):
        """A daemon that started the engine starts it again next time."""
        first = make_daemon()
        await first.start()
        await first.stop()

        daemon_config.scheduler.autostart = False
        second = make_daemon()
        await second.start()
        try:
            assert second.engine.job_state("feed").status is JobStatus.SCHEDULED
        finally:
            await second.stop()

    @pytest.mark.asyncio
    async def test_reload_applies_external_edits(self, make_daemon, daemon_config):
        """Overrides written by the CLI are picked up on reload."""
        daemon = make_daemon()
        await daemon.start()
        try:
            engine, factory = open_database(daemon_config)
            try:
                ConfigStore(factory).set_override("mail", ConfigEdit.enable(), ConfigEdit.range(0))
                ConfigStore(factory).set_override("feed", ConfigEdit.disable())
            finally:
                engine.dispose()

            await daemon.reload_config()

            assert daemon.engine.job_state("feed").status is JobStatus.DISABLED
            assert daemon.engine.job_state("mail").status is JobStatus.SCHEDULED
            assert daemon._apscheduler.get_job(APSchedulerTimer.timer_id("feed")) is None
        finally:
            await daemon.stop()

    @pytest.mark.asyncio
    async def test_reload_before_start_is_ignored(self, make_daemon):
        daemon = make_daemon()

        await daemon.reload_config()

        assert daemon.engine is None

    @pytest.mark.asyncio
    async def test_stop_keeps_retry_state(self, make_daemon, daemon_config):
        daemon = make_daemon()
        await daemon.start()
        await daemon.stop()

        engine, factory = open_database(daemon_config)
        try:
            store = RetryStateStore(factory)
            assert store.is_boot_enabled() is True
            assert store.get_seed() != 0
        finally:
            engine.dispose()

    @pytest.mark.asyncio
    async def test_stop_waits_for_running_jobs(self, make_daemon):
        """Fires already handed to the engine finish before the runtime stops."""
        daemon = make_daemon()
        await daemon.start()
        runtime_running = []

        async def drain(timer) -> None:
            runtime_running.append(daemon._apscheduler.running)

        with patch.object(APSchedulerTimer, "drain", autospec=True, side_effect=drain) as mock_drain:
            await daemon.stop()

        mock_drain.assert_awaited_once()
        assert runtime_running == [True]
        assert not daemon.is_running

    @pytest.mark.asyncio
    async def test_shutdown_request(self, make_daemon):
        daemon = make_daemon()

        waiter = asyncio.create_task(daemon.run_until_shutdown())
        await asyncio.sleep(0)
        assert not waiter.done()

        daemon.request_shutdown()
        await asyncio.wait_for(waiter, timeout=1)


class TestRunDaemon:
    """Tests for run_daemon."""

    @pytest.mark.asyncio
    async def test_starts_waits_and_stops(self, daemon_config, registry):
        daemon = MagicMock()
        daemon.start = AsyncMock()
        daemon.run_until_shutdown = AsyncMock()
        daemon.stop = AsyncMock()

        with patch("tidesync.daemon.service.SyncDaemon", return_value=daemon):
            await run_daemon(daemon_config, registry)

        daemon.start.assert_awaited_once()
        daemon.run_until_shutdown.assert_awaited_once()
        daemon.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stops_after_failed_start(self, daemon_config, registry):
        daemon = MagicMock()
        daemon.start = AsyncMock(side_effect=RuntimeError("boom"))
        daemon.stop = AsyncMock()

        with patch("tidesync.daemon.service.SyncDaemon", return_value=daemon):
            with pytest.raises(RuntimeError):
                await run_daemon(daemon_config, registry)

        daemon.stop.assert_awaited_once()
