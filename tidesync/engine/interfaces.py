"""Collaborators the scheduling engine depends on.

The engine never talks to a clock facility, the network stack or the
power supply directly. It is handed implementations of these narrow
interfaces; the daemon wires in the APScheduler and psutil backed ones,
tests wire in fakes.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[Any]]


class WakeMode(Enum):
    """How a timer behaves while the machine is suspended."""

    WAKEUP = "wakeup"  # May wake the machine to deliver the fire
    NO_WAKEUP = "no_wakeup"  # Delivered once the machine is awake anyway


class TimerFacility(ABC):
    """One-shot timers keyed by job name.

    Arming a job replaces any timer already armed for it. When a timer
    comes due the facility calls the connected handler with the job
    name, exactly once per arm and no earlier than requested.
    """

    def __init__(self) -> None:
        self._handler: Optional[Handler] = None

    def connect(self, handler: Handler) -> None:
        """Set the coroutine function called with the job name on fire."""
        self._handler = handler

    @abstractmethod
    def arm(self, name: str, fire_at_ms: int, mode: WakeMode) -> None:
        """Arm the timer for ``name`` at an absolute epoch millisecond."""

    @abstractmethod
    def cancel(self, name: str) -> None:
        """Cancel the timer for ``name``; no-op if none is armed."""

    async def fire(self, name: str) -> None:
        """Deliver a due timer to the handler."""
        if self._handler is None:
            logger.warning(f"Timer for {name} fired with no handler connected")
            return
        await self._handler(name)


class Reachability(ABC):
    """Point-in-time network reachability query."""

    @abstractmethod
    def is_reachable(self) -> bool:
        """Return True if the network is usable right now."""


class PowerSource(ABC):
    """Point-in-time power supply query."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Return True if the machine is on external power."""


class Observer(ABC):
    """An event source the engine can switch on and off."""

    def __init__(self) -> None:
        self._handler: Optional[Handler] = None
        self._enabled = False

    def connect(self, handler: Handler) -> None:
        """Set the coroutine function called when the event occurs."""
        self._handler = handler

    @property
    def enabled(self) -> bool:
        return self._enabled

    @abstractmethod
    def enable(self) -> None:
        """Start delivering events."""

    @abstractmethod
    def disable(self) -> None:
        """Stop delivering events."""
