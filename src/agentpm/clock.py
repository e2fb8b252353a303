"""Clock collaborator and ISO-8601 timestamp helpers.

The engine never reads the system clock directly; services are handed a
``Clock`` and every operation accepts an explicit timestamp override.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol

from agentpm.errors import InvalidTimeFormatError


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time in UTC, truncated to whole seconds."""

    def now(self) -> datetime:
        return datetime.now(UTC).replace(microsecond=0)


class FixedClock:
    """Deterministic clock for tests and replay.

    Returns ``start`` on every call, or advances by ``step`` after each call
    when a step is given.
    """

    def __init__(self, start: datetime, step: timedelta | None = None) -> None:
        self._current = _as_utc(start)
        self._step = step

    def now(self) -> datetime:
        value = self._current
        if self._step is not None:
            self._current = self._current + self._step
        return value

    def set(self, value: datetime) -> None:
        self._current = _as_utc(value)


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are taken to be UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Raises InvalidTimeFormatError for anything ``fromisoformat`` rejects.
    """
    text = value.strip()
    if not text:
        raise InvalidTimeFormatError(value)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise InvalidTimeFormatError(value) from None
    return _as_utc(parsed)


def format_timestamp(value: datetime) -> str:
    """Canonical form: ``2025-08-16T15:30:00Z``."""
    return _as_utc(value).isoformat().replace("+00:00", "Z")


def resolve_timestamp(clock: Clock, timestamp: datetime | str | None) -> datetime:
    """Pick the caller-supplied timestamp when present, otherwise ``clock.now()``."""
    if timestamp is None:
        return _as_utc(clock.now())
    if isinstance(timestamp, str):
        return parse_timestamp(timestamp)
    return _as_utc(timestamp)
