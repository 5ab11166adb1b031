"""Rate limit engine: one token bucket per caller key."""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

import structlog

from fleetops.clock import Clock, SystemClock
from fleetops.config import get_settings
from fleetops.exceptions import InvalidConfigurationError, InvalidKeyError
from fleetops.ratelimit.token_bucket import RateLimitResult, TokenBucket

logger = structlog.get_logger()


class RateLimitService:
    """Token-bucket admission control keyed by caller identity.

    Each key owns an independent bucket created full on first use. Buckets
    are locked individually; creating a bucket for a new key never blocks
    callers working on other keys.
    """

    def __init__(
        self,
        capacity: int,
        refill_period: timedelta,
        clock: Optional[Clock] = None,
        idle_eviction_periods: Optional[int] = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            capacity: Maximum tokens per bucket
            refill_period: Time for an empty bucket to refill completely
            clock: Time source, defaults to the system clock
            idle_eviction_periods: Refill periods of inactivity after which
                :meth:`evict_idle` drops a bucket; ``None`` keeps buckets forever

        Raises:
            InvalidConfigurationError: if any parameter is not positive
        """
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
            raise InvalidConfigurationError("capacity", capacity)
        if not isinstance(refill_period, timedelta) or refill_period <= timedelta(0):
            raise InvalidConfigurationError("refill_period", refill_period)
        if idle_eviction_periods is not None and idle_eviction_periods <= 0:
            raise InvalidConfigurationError("idle_eviction_periods", idle_eviction_periods)

        self._capacity = capacity
        self._refill_period = refill_period
        self._clock: Clock = clock or SystemClock()
        self._idle_eviction_periods = idle_eviction_periods
        self._buckets: dict[str, TokenBucket] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def refill_period(self) -> timedelta:
        return self._refill_period

    @property
    def bucket_count(self) -> int:
        """Number of keys currently tracked."""
        return len(self._buckets)

    def try_consume(self, key: str) -> RateLimitResult:
        """
        Try to take one token from the bucket for ``key``.

        Returns a denied result when the bucket is empty; throttling is
        never reported as an exception.

        Raises:
            InvalidKeyError: if ``key`` is ``None`` or empty
        """
        if not key or not isinstance(key, str):
            raise InvalidKeyError()

        while True:
            bucket = self._bucket_for(key)
            with bucket.lock:
                if bucket.evicted:
                    # Swept between lookup and lock; retry against the live bucket.
                    continue
                return bucket.try_consume(self._clock.now())

    def evict_idle(self) -> int:
        """
        Drop buckets idle for ``idle_eviction_periods`` refill periods.

        An idle bucket has refilled completely, so a later request for the
        same key gets an identical fresh bucket.

        Returns: number of buckets removed
        """
        if self._idle_eviction_periods is None:
            return 0

        max_idle = self._refill_period * self._idle_eviction_periods
        now = self._clock.now()
        removed = 0

        for key, bucket in list(self._buckets.items()):
            with bucket.lock:
                if bucket.evicted or not bucket.is_idle(now, max_idle):
                    continue
                bucket.evicted = True
                if self._buckets.get(key) is bucket:
                    del self._buckets[key]
                removed += 1

        if removed:
            logger.info("rate_limit_buckets_evicted", removed=removed, remaining=len(self._buckets))
        return removed

    def _bucket_for(self, key: str) -> TokenBucket:
        bucket = self._buckets.get(key)
        if bucket is None:
            # setdefault is atomic: concurrent first requests share one bucket
            bucket = self._buckets.setdefault(
                key, TokenBucket(self._capacity, self._refill_period, self._clock.now())
            )
        return bucket


# Singleton instance
_service: Optional[RateLimitService] = None


def get_rate_limit_service() -> RateLimitService:
    """Get the engine singleton, built from settings on first use."""
    global _service
    if _service is None:
        settings = get_settings()
        _service = RateLimitService(
            capacity=settings.rate_limit_capacity,
            refill_period=timedelta(seconds=settings.rate_limit_refill_period_seconds),
            idle_eviction_periods=settings.rate_limit_idle_eviction_periods,
        )
        logger.info(
            "rate_limiter_configured",
            capacity=settings.rate_limit_capacity,
            refill_period_seconds=settings.rate_limit_refill_period_seconds,
        )
    return _service
