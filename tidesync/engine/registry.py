"""Job registry.

The host application declares its jobs explicitly: a name, a body to
call, and optional default configuration. The registry is built once
and is read-only afterwards.

Example:
    builder = RegistryBuilder()

    @builder.job("refresh-feed", ConfigEdit.every(1, HOURS))
    async def refresh_feed() -> None:
        ...

    registry = builder.build()
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from tidesync.engine.config_store import ConfigEdit, combine
from tidesync.exceptions import InvalidConfig, JobNotRegistered

logger = logging.getLogger(__name__)

JobBody = Callable[[], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class JobDefinition:
    """A job declared by the host.

    Attributes:
        name: Unique job name
        body: Callable run when the job fires. May be a coroutine
            function. Raising signals failure.
        defaults: Default configuration applied at registration
    """

    name: str
    body: JobBody
    defaults: ConfigEdit = field(default_factory=ConfigEdit)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise InvalidConfig(f"Job name must be a non-empty string, got {self.name!r}")
        if not callable(self.body):
            raise InvalidConfig("Job body must be callable", self.name)
        self.defaults.validate(self.name)


class JobRegistry(Mapping[str, JobDefinition]):
    """Immutable mapping of job name to definition.

    Raises:
        InvalidConfig: On duplicate names or invalid defaults
    """

    def __init__(self, definitions: Iterable[JobDefinition] = ()) -> None:
        jobs: Dict[str, JobDefinition] = {}
        for definition in definitions:
            if definition.name in jobs:
                raise InvalidConfig("Job is registered twice", definition.name)
            jobs[definition.name] = definition
        self._jobs = MappingProxyType(jobs)

    def __getitem__(self, name: str) -> JobDefinition:
        try:
            return self._jobs[name]
        except KeyError:
            raise JobNotRegistered(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._jobs

    def __iter__(self) -> Iterator[str]:
        return iter(self._jobs)

    def __len__(self) -> int:
        return len(self._jobs)

    def __repr__(self) -> str:
        return f"JobRegistry({list(self._jobs)})"

    @property
    def names(self) -> List[str]:
        """Registered job names in registration order."""
        return list(self._jobs)


class RegistryBuilder:
    """Collects job definitions before the registry is frozen."""

    def __init__(self) -> None:
        self._definitions: List[JobDefinition] = []
        self._built = False

    def add(self, name: str, body: JobBody, *defaults: ConfigEdit) -> JobDefinition:
        """Register a job.

        Args:
            name: Unique job name
            body: Callable to run
            *defaults: Default configuration edits

        Returns:
            The job definition
        """
        if self._built:
            raise InvalidConfig("Registry has already been built", name)
        definition = JobDefinition(name=name, body=body, defaults=combine(*defaults))
        self._definitions.append(definition)
        return definition

    def job(self, name: Optional[str] = None, *defaults: ConfigEdit) -> Callable[[JobBody], JobBody]:
        """Decorator form of add(); the function name is the default job name."""
        def decorator(body: JobBody) -> JobBody:
            self.add(name or body.__name__, body, *defaults)
            return body
        return decorator

    def build(self) -> JobRegistry:
        """Freeze the collected definitions into a registry."""
        registry = JobRegistry(self._definitions)
        self._built = True
        return registry


def load_registry(target: str) -> JobRegistry:
    """Resolve a host registry from a "module:attribute" target.

    The attribute may be a JobRegistry, a RegistryBuilder, or a zero
    argument callable returning either.

    Raises:
        InvalidConfig: If the target cannot be imported or resolved
    """
    module_name, sep, attr_path = target.partition(":")
    if not sep or not module_name or not attr_path:
        raise InvalidConfig(f"Registry target must be 'module:attribute', got {target!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise InvalidConfig(f"Cannot import registry module {module_name!r}: {e}") from e

    obj: Any = module
    for part in attr_path.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError:
            raise InvalidConfig(f"Module {module_name!r} has no attribute {attr_path!r}") from None

    if callable(obj) and not isinstance(obj, (JobRegistry, RegistryBuilder)):
        obj = obj()
    if isinstance(obj, RegistryBuilder):
        obj = obj.build()
    if not isinstance(obj, JobRegistry):
        raise InvalidConfig(f"{target!r} did not resolve to a JobRegistry (got {type(obj).__name__})")

    logger.debug(f"Loaded {len(obj)} jobs from {target}")
    return obj
