"""
Clock -- injectable time source.

Responsibility:
    Run orchestration and report metadata take their timestamps from a
    ``Clock`` passed in by the caller, never from ``datetime.now()``
    directly.

Architecture position:
    Kernel > Domain.  ``SystemClock`` is the one sanctioned I/O boundary
    for time.

Audit relevance:
    Step start/finish times recorded in the run log and the
    ``generated_at`` stamp on reports are all traceable to the injected
    clock, so tests can assert on them exactly.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...


class SystemClock(Clock):
    """Production clock that returns actual system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value on repeated calls until ``advance()``
    or ``set_time()`` is called.  With ``auto_advance_ms`` set, every call
    moves time forward by that many milliseconds, which gives step
    durations a predictable non-zero value.
    """

    def __init__(
        self,
        fixed_time: datetime | None = None,
        auto_advance_ms: int = 0,
    ):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._offset = timedelta(0)
        self._auto_advance = timedelta(milliseconds=auto_advance_ms)

    def now(self) -> datetime:
        current = self._fixed_time + self._offset
        self._offset += self._auto_advance
        return current

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._offset = timedelta(0)

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._offset += timedelta(seconds=seconds)
