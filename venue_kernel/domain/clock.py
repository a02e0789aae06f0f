"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock so that ledger, engine, and service code
    never call ``datetime.now()`` or ``time.monotonic()`` directly.  The
    monotonic reading feeds ``SessionLedger.advance_time``; the wall-clock
    reading stamps ``started_at``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).

Failure modes:
    - None.  DeterministicClock.advance rejects negative steps with
      ValueError so a test clock cannot run backwards.
"""

import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from decimal import Decimal


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need current time receive a Clock instance via
        constructor injection.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
        - ``monotonic()`` never decreases between calls.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current wall-clock time."""
        ...

    @abstractmethod
    def monotonic(self) -> Decimal:
        """Get a monotonic reading in seconds."""
        ...


class SystemClock(Clock):
    """Production clock backed by the system time sources."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> Decimal:
        return Decimal(str(time.monotonic()))


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` and ``monotonic()`` return the same values on repeated
          calls until ``advance()`` is called.
        - Both readings move together.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = Decimal("0")

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=float(self._advance_seconds))

    def monotonic(self) -> Decimal:
        return self._advance_seconds

    def advance(self, seconds: int | Decimal = 1) -> None:
        """Advance the clock by the specified seconds."""
        step = Decimal(str(seconds))
        if step < 0:
            raise ValueError("DeterministicClock cannot move backwards")
        self._advance_seconds += step

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()
