"""Unit tests for the rate limit engine."""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from threading import Barrier
from unittest.mock import MagicMock, patch

import pytest

from fleetops.exceptions import InvalidConfigurationError, InvalidKeyError
from fleetops.ratelimit.service import RateLimitService

CAPACITY = 10
REFILL_PERIOD = timedelta(minutes=1)


class TestBasicRateLimiting:
    """Consume behaviour with the clock standing still."""

    def test_first_request_for_new_key_is_allowed(self, rate_limiter):
        result = rate_limiter.try_consume("user:123")

        assert result.allowed is True
        assert result.remaining_tokens == CAPACITY - 1
        assert result.capacity == CAPACITY
        assert result.retry_after_seconds == 0

    def test_remaining_decrements_by_one_per_request(self, rate_limiter):
        for i in range(CAPACITY):
            result = rate_limiter.try_consume("user:456")
            assert result.allowed is True, f"request {i + 1} should be allowed"
            assert result.remaining_tokens == CAPACITY - i - 1

    def test_denied_when_capacity_exhausted(self, rate_limiter):
        for _ in range(CAPACITY):
            rate_limiter.try_consume("user:789")

        result = rate_limiter.try_consume("user:789")

        assert result.allowed is False
        assert result.remaining_tokens == 0

    def test_retry_after_within_refill_period(self, rate_limiter, clock):
        for _ in range(CAPACITY):
            rate_limiter.try_consume("user:retry")

        result = rate_limiter.try_consume("user:retry")

        assert 0 < result.retry_after_seconds <= REFILL_PERIOD.total_seconds()
        assert result.reset_epoch_seconds == int(clock.now().timestamp()) + result.retry_after_seconds

    def test_denials_do_not_go_negative(self, rate_limiter, clock):
        for _ in range(CAPACITY + 5):
            rate_limiter.try_consume("user:flood")

        clock.advance(seconds=6)

        # One token earned; earlier denials did not borrow against it
        assert rate_limiter.try_consume("user:flood").allowed is True
        assert rate_limiter.try_consume("user:flood").allowed is False


class TestTokenRefill:
    """Refill as the clock advances."""

    def test_full_refill_after_one_period(self, rate_limiter, clock):
        for _ in range(CAPACITY):
            rate_limiter.try_consume("user:refill")
        assert rate_limiter.try_consume("user:refill").allowed is False

        clock.advance(REFILL_PERIOD)

        result = rate_limiter.try_consume("user:refill")
        assert result.allowed is True
        assert result.remaining_tokens == CAPACITY - 1

    def test_full_refill_with_sub_second_period(self, clock):
        limiter = RateLimitService(capacity=1, refill_period=timedelta(milliseconds=100), clock=clock)
        assert limiter.try_consume("user:fast").allowed is True
        assert limiter.try_consume("user:fast").allowed is False

        clock.advance(milliseconds=100)

        result = limiter.try_consume("user:fast")
        assert result.allowed is True
        assert result.remaining_tokens == 0

    def test_partial_refill_at_half_period(self, rate_limiter, clock):
        for _ in range(CAPACITY):
            rate_limiter.try_consume("user:partial")

        clock.advance(REFILL_PERIOD / 2)

        result = rate_limiter.try_consume("user:partial")
        assert result.allowed is True
        assert result.remaining_tokens >= CAPACITY // 2 - 1

    def test_partial_refill_allows_exactly_half(self, rate_limiter, clock):
        for _ in range(CAPACITY):
            rate_limiter.try_consume("user:half")

        clock.advance(REFILL_PERIOD / 2)

        allowed = sum(rate_limiter.try_consume("user:half").allowed for _ in range(CAPACITY))
        assert allowed == CAPACITY // 2

    def test_refill_is_capped_at_capacity(self, rate_limiter, clock):
        rate_limiter.try_consume("user:idle")

        clock.advance(hours=5)

        result = rate_limiter.try_consume("user:idle")
        assert result.remaining_tokens == CAPACITY - 1


class TestKeyIsolation:
    """Buckets are independent per key."""

    def test_exhausting_one_key_leaves_another_untouched(self, rate_limiter):
        for _ in range(CAPACITY + 1):
            rate_limiter.try_consume("user:a")

        result = rate_limiter.try_consume("user:b")

        assert result.allowed is True
        assert result.remaining_tokens == CAPACITY - 1

    def test_bucket_count_tracks_distinct_keys(self, rate_limiter):
        rate_limiter.try_consume("user:a")
        rate_limiter.try_consume("user:a")
        rate_limiter.try_consume("ip:10.0.0.1")

        assert rate_limiter.bucket_count == 2

    def test_end_to_end_scenario(self, rate_limiter):
        for expected_remaining in range(9, -1, -1):
            result = rate_limiter.try_consume("user:alice")
            assert result.allowed is True
            assert result.remaining_tokens == expected_remaining

        denied = rate_limiter.try_consume("user:alice")
        assert denied.allowed is False
        assert denied.remaining_tokens == 0
        assert 0 < denied.retry_after_seconds <= 60

        other = rate_limiter.try_consume("ip:203.0.113.1")
        assert other.allowed is True
        assert other.remaining_tokens == 9


class TestValidation:
    """Construction and key validation."""

    @pytest.mark.parametrize("key", [None, ""])
    def test_invalid_key_rejected(self, rate_limiter, key):
        with pytest.raises(InvalidKeyError):
            rate_limiter.try_consume(key)

    def test_invalid_key_does_not_create_bucket(self, rate_limiter):
        with pytest.raises(InvalidKeyError):
            rate_limiter.try_consume("")

        assert rate_limiter.bucket_count == 0

    @pytest.mark.parametrize("capacity", [0, -1])
    def test_non_positive_capacity_rejected(self, clock, capacity):
        with pytest.raises(InvalidConfigurationError) as exc_info:
            RateLimitService(capacity=capacity, refill_period=REFILL_PERIOD, clock=clock)

        assert exc_info.value.parameter == "capacity"

    @pytest.mark.parametrize("period", [timedelta(0), timedelta(seconds=-1)])
    def test_non_positive_refill_period_rejected(self, clock, period):
        with pytest.raises(InvalidConfigurationError) as exc_info:
            RateLimitService(capacity=CAPACITY, refill_period=period, clock=clock)

        assert exc_info.value.parameter == "refill_period"

    def test_configuration_error_is_value_error(self, clock):
        with pytest.raises(ValueError):
            RateLimitService(capacity=0, refill_period=REFILL_PERIOD, clock=clock)

    def test_non_positive_eviction_periods_rejected(self, clock):
        with pytest.raises(InvalidConfigurationError):
            RateLimitService(
                capacity=CAPACITY, refill_period=REFILL_PERIOD, clock=clock, idle_eviction_periods=0
            )


class TestConcurrency:
    """Many threads hitting one key."""

    def test_concurrent_consumes_never_exceed_capacity(self, rate_limiter):
        workers = CAPACITY * 2
        barrier = Barrier(workers)

        def consume():
            barrier.wait()
            return rate_limiter.try_consume("user:burst")

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda _: consume(), range(workers)))

        allowed = [r for r in results if r.allowed]
        assert len(allowed) == CAPACITY
        assert len(results) - len(allowed) == CAPACITY
        assert sorted(r.remaining_tokens for r in allowed) == list(range(CAPACITY))

    def test_concurrent_new_keys_each_get_full_bucket(self, rate_limiter):
        keys = [f"ip:10.0.0.{i}" for i in range(50)]

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(rate_limiter.try_consume, keys))

        assert all(r.allowed and r.remaining_tokens == CAPACITY - 1 for r in results)
        assert rate_limiter.bucket_count == len(keys)


class TestIdleEviction:
    """Optional sweep of idle buckets."""

    @pytest.fixture
    def evicting_limiter(self, clock):
        return RateLimitService(
            capacity=CAPACITY, refill_period=REFILL_PERIOD, clock=clock, idle_eviction_periods=2
        )

    def test_disabled_by_default(self, rate_limiter, clock):
        rate_limiter.try_consume("user:a")
        clock.advance(days=1)

        assert rate_limiter.evict_idle() == 0
        assert rate_limiter.bucket_count == 1

    def test_evicts_only_idle_buckets(self, evicting_limiter, clock):
        evicting_limiter.try_consume("user:old")
        clock.advance(minutes=1)
        evicting_limiter.try_consume("user:recent")
        clock.advance(minutes=1)

        removed = evicting_limiter.evict_idle()

        assert removed == 1
        assert evicting_limiter.bucket_count == 1

    def test_evicted_key_starts_with_full_bucket(self, evicting_limiter, clock):
        for _ in range(CAPACITY):
            evicting_limiter.try_consume("user:gone")
        clock.advance(minutes=3)
        evicting_limiter.evict_idle()

        result = evicting_limiter.try_consume("user:gone")

        assert result.allowed is True
        assert result.remaining_tokens == CAPACITY - 1

    def test_consume_retries_when_bucket_was_evicted(self, evicting_limiter, clock):
        evicting_limiter.try_consume("user:race")
        stale = evicting_limiter._buckets["user:race"]
        clock.advance(minutes=5)
        evicting_limiter.evict_idle()
        live = evicting_limiter._bucket_for("user:race")

        # A caller that looked the bucket up just before the sweep
        with patch.object(evicting_limiter, "_bucket_for", side_effect=[stale, live]) as lookup:
            result = evicting_limiter.try_consume("user:race")

        assert stale.evicted is True
        assert lookup.call_count == 2
        assert result.remaining_tokens == CAPACITY - 1
        assert live.tokens == CAPACITY - 1


class TestSingleton:
    """Engine built from settings."""

    def test_built_from_settings(self):
        import fleetops.ratelimit.service as service_module

        settings = MagicMock(
            rate_limit_capacity=25,
            rate_limit_refill_period_seconds=30.0,
            rate_limit_idle_eviction_periods=None,
        )
        with patch.object(service_module, "_service", None), patch.object(
            service_module, "get_settings", return_value=settings
        ):
            service = service_module.get_rate_limit_service()
            assert service is service_module.get_rate_limit_service()

        assert service.capacity == 25
        assert service.refill_period == timedelta(seconds=30)

    def test_invalid_settings_fail_fast(self):
        import fleetops.ratelimit.service as service_module

        settings = MagicMock(
            rate_limit_capacity=0,
            rate_limit_refill_period_seconds=60.0,
            rate_limit_idle_eviction_periods=None,
        )
        with patch.object(service_module, "_service", None), patch.object(
            service_module, "get_settings", return_value=settings
        ):
            with pytest.raises(InvalidConfigurationError):
                service_module.get_rate_limit_service()
