"""Parsing of human-written configuration values."""

import re

from tidesync.engine.config_store import DAYS, HOURS, MINUTES, SECONDS, WEEKS
from tidesync.exceptions import InvalidConfig

_TIME_SPAN = re.compile(r"(\d+) +(second|minute|hour|day|week)s?")

_UNITS = {
    "second": SECONDS,
    "minute": MINUTES,
    "hour": HOURS,
    "day": DAYS,
    "week": WEEKS,
}


def parse_time_span(value: str) -> int:
    """Parse a time span such as "5 minutes" or "30000" into milliseconds.

    A bare integer is taken as milliseconds.

    Raises:
        InvalidConfig: If the value is neither form
    """
    text = value.strip()
    match = _TIME_SPAN.fullmatch(text)
    if match:
        return int(match.group(1)) * _UNITS[match.group(2)]
    if text.isdigit():
        return int(text)
    raise InvalidConfig(f"Invalid time span: {value!r}")


def parse_bool(value: str) -> bool:
    """Parse exactly "true" or "false".

    Raises:
        InvalidConfig: For any other spelling
    """
    if value == "true":
        return True
    if value == "false":
        return False
    raise InvalidConfig(f"Invalid boolean: {value!r}")


def format_time_span(value_ms: int) -> str:
    """Render milliseconds in the largest unit that divides them exactly.

    The result parses back with parse_time_span(); "0" for zero.
    """
    if value_ms == 0:
        return "0"
    for unit in ("week", "day", "hour", "minute", "second"):
        size = _UNITS[unit]
        if value_ms % size == 0:
            count = value_ms // size
            return f"{count} {unit}{'s' if count != 1 else ''}"
    return str(value_ms)
