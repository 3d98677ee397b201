"""
Injectable time source.

Every timestamp the engine writes (submitted_at, approved_at, settled_at,
reversed_at, row creation) comes from the Clock handed to the orchestrator
or ledger, never from ``datetime.now()`` directly.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware UTC."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """Frozen clock for tests: only ``advance`` and ``set_time`` move it."""

    DEFAULT_START = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __init__(self, start: datetime | None = None):
        self._current = start or self.DEFAULT_START

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = moment

    def advance(self, seconds: float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
