"""Property-based tests using Hypothesis for the token bucket engine."""

from datetime import UTC, datetime, timedelta

from hypothesis import given, settings
from hypothesis import strategies as st

from fleetops.clock import FrozenClock
from fleetops.ratelimit.service import RateLimitService

START = datetime(2025, 1, 15, 10, 0, 0, tzinfo=UTC)


def make_service(
    capacity: int, period: timedelta, offset: timedelta = timedelta(0)
) -> tuple[RateLimitService, FrozenClock]:
    clock = FrozenClock(START + offset)
    service = RateLimitService(capacity, period, clock=clock)
    return service, clock


class TestRateLimitingProperties:
    """Property-based tests ensuring rate limiting invariants."""

    @given(
        capacity=st.integers(min_value=1, max_value=100),
        period=st.integers(min_value=1, max_value=3600),
        extra=st.integers(min_value=1, max_value=20),
    )
    @settings(max_examples=50)
    def test_never_exceeds_capacity_without_time_passing(self, capacity, period, extra):
        """
        Property: a fresh key admits exactly ``capacity`` requests at one instant.
        """
        service, _ = make_service(capacity, timedelta(seconds=period))

        results = [service.try_consume("user:p") for _ in range(capacity + extra)]

        assert sum(r.allowed for r in results) == capacity
        assert all(not r.allowed for r in results[capacity:])

    @given(
        capacity=st.integers(min_value=1, max_value=50),
        period_us=st.integers(min_value=1_000, max_value=600_000_000),
        steps_us=st.lists(st.integers(min_value=0, max_value=120_000_000), min_size=1, max_size=60),
    )
    @settings(max_examples=50)
    def test_admissions_bounded_by_refill(self, capacity, period_us, steps_us):
        """
        Property: over elapsed time T, at most capacity + floor(T * capacity / period)
        requests are admitted.
        """
        service, clock = make_service(capacity, timedelta(microseconds=period_us))
        allowed = 0

        for step in steps_us:
            clock.advance(microseconds=step)
            allowed += service.try_consume("user:p").allowed

        elapsed_us = sum(steps_us)
        assert allowed <= capacity + elapsed_us * capacity // period_us

    @given(
        capacity=st.integers(min_value=1, max_value=50),
        period_us=st.integers(min_value=1, max_value=10_000_000),
        offset_us=st.integers(min_value=0, max_value=999_999),
    )
    @settings(max_examples=100)
    def test_full_period_refills_exhausted_bucket(self, capacity, period_us, offset_us):
        """
        Property: after exhaustion, waiting exactly one refill period admits
        exactly ``capacity`` more requests, whatever the period or start instant.
        """
        period = timedelta(microseconds=period_us)
        service, clock = make_service(capacity, period, timedelta(microseconds=offset_us))
        for _ in range(capacity):
            service.try_consume("user:p")

        clock.advance(period)
        results = [service.try_consume("user:p") for _ in range(capacity + 1)]

        assert [r.allowed for r in results] == [True] * capacity + [False]

    @given(
        capacity=st.integers(min_value=1, max_value=50),
        requests=st.integers(min_value=1, max_value=120),
    )
    @settings(max_examples=50)
    def test_result_fields_stay_in_range(self, capacity, requests):
        """
        Property: remaining is within [0, capacity], denials carry a positive
        retry delay and allows carry none.
        """
        service, clock = make_service(capacity, timedelta(seconds=60))

        for i in range(requests):
            clock.advance(seconds=i % 7)
            result = service.try_consume("ip:198.51.100.1")
            assert 0 <= result.remaining_tokens <= capacity
            assert result.capacity == capacity
            assert result.reset_epoch_seconds >= clock.now().timestamp()
            if result.allowed:
                assert result.retry_after_seconds == 0
            else:
                assert result.remaining_tokens == 0
                assert result.retry_after_seconds >= 1

    @given(
        keys=st.lists(
            st.text(alphabet="abcdefghij", min_size=1, max_size=5), min_size=2, max_size=8, unique=True
        ),
        capacity=st.integers(min_value=1, max_value=10),
    )
    @settings(max_examples=50)
    def test_keys_are_isolated(self, keys, capacity):
        """
        Property: exhausting one key never changes another key's first result.
        """
        service, _ = make_service(capacity, timedelta(seconds=60))
        exhausted, *others = keys

        for _ in range(capacity + 1):
            service.try_consume(exhausted)

        for key in others:
            result = service.try_consume(key)
            assert result.allowed
            assert result.remaining_tokens == capacity - 1
