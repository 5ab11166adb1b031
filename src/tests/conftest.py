"""Pytest configuration and fixtures."""

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import fakeredis.aioredis
import pytest
from httpx import ASGITransport, AsyncClient

from fleetops.clock import FrozenClock

START = datetime(2025, 1, 15, 10, 0, 0, tzinfo=UTC)


@pytest.fixture
def clock():
    """Clock frozen at 2025-01-15T10:00:00Z."""
    return FrozenClock(START)


@pytest.fixture
def rate_limiter(clock):
    """Engine with capacity 10 per minute on the frozen clock."""
    from fleetops.ratelimit.service import RateLimitService

    return RateLimitService(capacity=10, refill_period=timedelta(minutes=1), clock=clock)


@pytest.fixture
def mock_redis():
    """Create a fake Redis client for testing."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def repository(mock_redis):
    """Create a repository backed by fake Redis."""
    from fleetops.repository import RedisRepository

    repo = RedisRepository()
    repo._client = mock_redis
    return repo


@pytest.fixture
def user_token():
    from fleetops.security import issue_token

    return issue_token("alice", ["ROLE_USER"])


@pytest.fixture
def admin_token():
    from fleetops.security import issue_token

    return issue_token("root", ["ADMIN"])


@pytest.fixture
def auth_headers(user_token):
    return {"Authorization": f"Bearer {user_token}"}


@pytest.fixture
async def client(repository, rate_limiter):
    """Test client with fake Redis and an isolated rate limiter."""
    from fleetops.app import app
    from fleetops.ratelimit.filter import RateLimitFilter
    from fleetops.service import (
        DriverService,
        InspectionService,
        VehicleService,
        get_driver_service,
        get_inspection_service,
        get_vehicle_service,
    )

    app.dependency_overrides[get_vehicle_service] = lambda: VehicleService(repository)
    app.dependency_overrides[get_driver_service] = lambda: DriverService(repository)
    app.dependency_overrides[get_inspection_service] = lambda: InspectionService(repository)

    rate_limit_filter = RateLimitFilter(rate_limiter)
    with patch("fleetops.app.get_rate_limit_filter", return_value=rate_limit_filter):
        with patch("fleetops.app.get_repository", return_value=repository):
            # ASGITransport does not run the lifespan, so no real Redis is needed
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                yield ac

    app.dependency_overrides.clear()
