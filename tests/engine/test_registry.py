"""Tests for the host job registry."""

import sys
import types

import pytest

from tidesync.engine.config_store import HOURS, ConfigEdit
from tidesync.engine.registry import JobDefinition, JobRegistry, RegistryBuilder, load_registry
from tidesync.exceptions import InvalidConfig, JobNotRegistered


def noop() -> None:
    pass


class TestJobRegistry:
    """Tests for JobRegistry."""

    def test_lookup_by_exact_name(self):
        definition = JobDefinition("feed", noop)
        registry = JobRegistry([definition])

        assert registry["feed"] is definition
        assert "feed" in registry
        assert "Feed" not in registry
        assert len(registry) == 1
        assert registry.names == ["feed"]

    def test_unknown_name_raises(self):
        """Unknown names raise JobNotRegistered, which is also a KeyError."""
        registry = JobRegistry([JobDefinition("feed", noop)])

        with pytest.raises(JobNotRegistered) as exc_info:
            registry["mail"]
        assert isinstance(exc_info.value, KeyError)
        assert exc_info.value.job == "mail"

    def test_duplicate_names_rejected(self):
        with pytest.raises(InvalidConfig):
            JobRegistry([JobDefinition("feed", noop), JobDefinition("feed", noop)])

    def test_registry_is_read_only(self):
        registry = JobRegistry([JobDefinition("feed", noop)])

        with pytest.raises(TypeError):
            registry._jobs["mail"] = JobDefinition("mail", noop)

    def test_invalid_default_interval_rejected(self):
        """A sub-minimum default interval is fatal at construction."""
        with pytest.raises(InvalidConfig):
            JobDefinition("feed", noop, ConfigEdit.every(1000))

    def test_definition_requires_name_and_callable(self):
        with pytest.raises(InvalidConfig):
            JobDefinition("", noop)
        with pytest.raises(InvalidConfig):
            JobDefinition("feed", "not callable")


class TestRegistryBuilder:
    """Tests for RegistryBuilder."""

    def test_add_combines_defaults(self):
        builder = RegistryBuilder()
        builder.add("feed", noop, ConfigEdit.every(1, HOURS), ConfigEdit.range(0))

        registry = builder.build()

        assert registry["feed"].defaults == ConfigEdit(interval_ms=HOURS, range_ms=0)

    def test_decorator_uses_function_name(self):
        builder = RegistryBuilder()

        @builder.job()
        def refresh_feed() -> None:
            pass

        @builder.job("mail", ConfigEdit.disable())
        async def poll_mail() -> None:
            pass

        registry = builder.build()

        assert registry.names == ["refresh_feed", "mail"]
        assert registry["refresh_feed"].body is refresh_feed
        assert registry["mail"].defaults.enabled is False

    def test_cannot_add_after_build(self):
        builder = RegistryBuilder()
        builder.build()

        with pytest.raises(InvalidConfig):
            builder.add("feed", noop)


class TestLoadRegistry:
    """Tests for load_registry()."""

    @pytest.fixture
    def host_module(self, monkeypatch):
        """Install a fake host module exposing several registry forms."""
        module = types.ModuleType("tidesync_test_host")
        builder = RegistryBuilder()
        builder.add("feed", noop)
        module.builder = builder
        module.registry = JobRegistry([JobDefinition("mail", noop)])
        module.make_registry = lambda: JobRegistry([JobDefinition("news", noop)])
        module.not_a_registry = 42
        monkeypatch.setitem(sys.modules, "tidesync_test_host", module)
        return module

    def test_registry_attribute(self, host_module):
        assert load_registry("tidesync_test_host:registry").names == ["mail"]

    def test_builder_attribute(self, host_module):
        assert load_registry("tidesync_test_host:builder").names == ["feed"]

    def test_factory_attribute(self, host_module):
        assert load_registry("tidesync_test_host:make_registry").names == ["news"]

    @pytest.mark.parametrize(
        "target",
        [
            "tidesync_test_host",
            "tidesync_test_host:missing",
            "tidesync_test_host:not_a_registry",
            "no_such_module_for_tidesync:registry",
        ],
    )
    def test_bad_targets(self, host_module, target):
        with pytest.raises(InvalidConfig):
            load_registry(target)
