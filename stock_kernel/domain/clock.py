"""
Injectable time source.

Services stamp ``created_at``/``updated_at`` and audit records from a Clock
instead of calling ``datetime.now()``, so tests can pin and move time.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

EPOCH_FOR_TESTS = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """``now()`` returns a timezone-aware UTC datetime."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock that only moves when told to.

    Shared by worker threads in concurrency tests, so reads and moves are
    serialized.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or EPOCH_FOR_TESTS
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def advance(self, seconds: float = 1) -> datetime:
        """Move forward by ``seconds`` and return the new time."""
        with self._lock:
            self._current += timedelta(seconds=seconds)
            return self._current

    def set_time(self, moment: datetime) -> None:
        with self._lock:
            self._current = moment
