"""Injectable time sources."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Source of the current time, swapped for a frozen clock in tests."""

    def now(self) -> datetime: ...


class SystemClock:
    """Production clock backed by ``datetime.now(UTC)``."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FrozenClock:
    """Clock pinned to a fixed instant that only moves when advanced."""

    def __init__(self, fixed: datetime) -> None:
        if fixed.tzinfo is None:
            fixed = fixed.replace(tzinfo=UTC)
        self._fixed = fixed

    def now(self) -> datetime:
        return self._fixed

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> None:
        """Move the clock forward by ``delta`` or by ``timedelta(**kwargs)``."""
        self._fixed += delta if delta is not None else timedelta(**kwargs)
