"""Shared fixtures: a throwaway SQLite database and fake host collaborators."""

from typing import Dict, List, Tuple

import pytest

from tidesync.database.connection import create_db_engine, create_session_factory, create_tables
from tidesync.engine.config_store import ConfigStore
from tidesync.engine.interfaces import Observer, PowerSource, Reachability, TimerFacility, WakeMode
from tidesync.engine.jitter import JitterSource
from tidesync.engine.scheduler import SyncScheduler
from tidesync.engine.state_store import RetryStateStore

# Not a multiple of one minute, so epoch alignment is visible
START_MS = 1_700_000_000_000


class RecordingTimer(TimerFacility):
    """Timer facility that only records what is armed."""

    def __init__(self) -> None:
        super().__init__()
        self.armed: Dict[str, Tuple[int, WakeMode]] = {}
        self.history: List[tuple] = []

    def arm(self, name: str, fire_at_ms: int, mode: WakeMode) -> None:
        self.armed[name] = (fire_at_ms, mode)
        self.history.append(("arm", name, fire_at_ms, mode))

    def cancel(self, name: str) -> None:
        self.armed.pop(name, None)
        self.history.append(("cancel", name))


class FakeObserver(Observer):
    def __init__(self) -> None:
        super().__init__()
        self.enable_calls = 0

    def enable(self) -> None:
        self._enabled = True
        self.enable_calls += 1

    def disable(self) -> None:
        self._enabled = False


class FakeReachability(Reachability):
    def __init__(self, reachable: bool = True) -> None:
        self.reachable = reachable

    def is_reachable(self) -> bool:
        return self.reachable


class FakePowerSource(PowerSource):
    def __init__(self, connected: bool = True) -> None:
        self.connected = connected

    def is_connected(self) -> bool:
        return self.connected


class ManualClock:
    """Clock callable whose time only moves when told to."""

    def __init__(self, now: int = START_MS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FixedJitter(JitterSource):
    """Jitter source returning ``low + value``, clamped into the range."""

    def __init__(self, value: int = 0) -> None:
        super().__init__(seed=1)
        self.value = value

    def offset(self, low: int, high: int) -> int:
        if high <= low:
            return low
        self._draws += 1
        return min(low + self.value, high - 1)


@pytest.fixture
def db_engine(tmp_path):
    """SQLite engine on a file under tmp_path with all tables created."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'tidesync.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def config_store(session_factory):
    return ConfigStore(session_factory)


@pytest.fixture
def retry_store(session_factory):
    return RetryStateStore(session_factory)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def timer():
    return RecordingTimer()


@pytest.fixture
def reachability():
    return FakeReachability()


@pytest.fixture
def network_observer():
    return FakeObserver()


@pytest.fixture
def power_observer():
    return FakeObserver()


@pytest.fixture
def boot_observer():
    return FakeObserver()


@pytest.fixture
def make_scheduler(
    config_store,
    retry_store,
    timer,
    reachability,
    network_observer,
    power_observer,
    boot_observer,
    clock,
):
    """Factory building a SyncScheduler wired to the fakes.

    Jitter is fixed at 0 unless another source is passed.
    """
    def factory(registry, jitter=None, **kwargs) -> SyncScheduler:
        return SyncScheduler(
            registry,
            config_store=config_store,
            retry_store=retry_store,
            timer=timer,
            reachability=reachability,
            network_observer=network_observer,
            power_observer=power_observer,
            boot_observer=boot_observer,
            jitter=jitter if jitter is not None else FixedJitter(0),
            clock=clock,
            **kwargs,
        )
    return factory


@pytest.fixture
def power_source_factory():
    """Build FakePowerSource instances."""
    return FakePowerSource


@pytest.fixture
def host_app(monkeypatch) -> str:
    """Importable host module exposing a two-job registry; returns its target."""
    import sys
    import types

    from tidesync.engine.config_store import HOURS, MINUTES, ConfigEdit
    from tidesync.engine.registry import RegistryBuilder

    builder = RegistryBuilder()
    builder.add("feed", lambda: None, ConfigEdit.every(1, HOURS), ConfigEdit.range(0))
    builder.add("mail", lambda: None, ConfigEdit.every(15, MINUTES), ConfigEdit.disable())

    module = types.ModuleType("tidesync_host")
    module.registry = builder.build()
    monkeypatch.setitem(sys.modules, "tidesync_host", module)
    return "tidesync_host:registry"


@pytest.fixture
def cli_env(tmp_path, monkeypatch, host_app):
    """Point the CLI at tmp_path and the fake host registry."""
    monkeypatch.setenv("TIDESYNC_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("TIDESYNC_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("TIDESYNC_APP", host_app)
    return tmp_path
