"""Token Bucket algorithm implementation."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single consume attempt."""

    allowed: bool
    remaining_tokens: int
    capacity: int
    retry_after_seconds: int
    reset_epoch_seconds: int


class TokenBucket:
    """Mutable token count for one rate limit key.

    Tokens refill continuously, ``capacity`` per ``refill_period``, and are
    kept as a float so partial progress survives between calls. Elapsed time
    is measured as a ``timedelta`` so one full period always earns exactly
    ``capacity`` tokens. Callers must hold ``lock`` around :meth:`try_consume`.
    """

    __slots__ = ("capacity", "refill_period", "tokens", "last_refill", "evicted", "lock")

    def __init__(self, capacity: int, refill_period: timedelta, now: datetime):
        """
        Initialize a full bucket.

        Args:
            capacity: Maximum tokens in bucket
            refill_period: Time to refill from empty to full
            now: Creation time
        """
        self.capacity = capacity
        self.refill_period = refill_period
        self.tokens = float(capacity)
        self.last_refill = now
        self.evicted = False
        self.lock = threading.Lock()

    def refill(self, now: datetime) -> None:
        """Add the tokens earned since the last refill, capped at capacity."""
        elapsed = now - self.last_refill
        if elapsed > timedelta(0):
            # timedelta / timedelta divides whole microseconds, rounded once
            earned = (elapsed * self.capacity) / self.refill_period
            self.tokens = min(float(self.capacity), self.tokens + earned)
            self.last_refill = now

    def try_consume(self, now: datetime) -> RateLimitResult:
        """Refill, then take one token if a whole one is available."""
        self.refill(now)
        epoch = now.timestamp()

        if self.tokens >= 1:
            self.tokens -= 1
            until_full = self._seconds_for(self.capacity - self.tokens)
            return RateLimitResult(
                allowed=True,
                remaining_tokens=math.floor(self.tokens),
                capacity=self.capacity,
                retry_after_seconds=0,
                reset_epoch_seconds=math.ceil(epoch + until_full),
            )

        retry_after = max(1, math.ceil(self._seconds_for(1 - self.tokens)))
        return RateLimitResult(
            allowed=False,
            remaining_tokens=0,
            capacity=self.capacity,
            retry_after_seconds=retry_after,
            reset_epoch_seconds=math.ceil(epoch + retry_after),
        )

    def is_idle(self, now: datetime, max_idle: timedelta) -> bool:
        """Whether the bucket has not been touched for ``max_idle``."""
        return now - self.last_refill >= max_idle

    def _seconds_for(self, tokens: float) -> float:
        return tokens * self.refill_period.total_seconds() / self.capacity
