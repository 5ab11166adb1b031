"""Token-bucket rate limiting for FleetOps."""

from fleetops.ratelimit.filter import RateLimitFilter
from fleetops.ratelimit.service import RateLimitService
from fleetops.ratelimit.token_bucket import RateLimitResult, TokenBucket

__all__ = ["RateLimitFilter", "RateLimitResult", "RateLimitService", "TokenBucket"]
