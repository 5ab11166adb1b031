"""Request interceptor applying the rate limit engine to HTTP traffic."""

from collections.abc import Awaitable, Callable, Iterable
from typing import Optional

import structlog
from fastapi import Request, Response

from fleetops.config import get_settings
from fleetops.exceptions import error_response
from fleetops.metrics import metrics
from fleetops.ratelimit.service import RateLimitService, get_rate_limit_service
from fleetops.ratelimit.token_bucket import RateLimitResult

logger = structlog.get_logger()

DEFAULT_WHITELIST = ("/actuator/health", "/swagger-ui", "/v3/api-docs", "/metrics")

HEADER_LIMIT = "X-RateLimit-Limit"
HEADER_REMAINING = "X-RateLimit-Remaining"
HEADER_RESET = "X-RateLimit-Reset"
HEADER_RETRY_AFTER = "Retry-After"
HEADER_FORWARDED_FOR = "X-Forwarded-For"

CallNext = Callable[[Request], Awaitable[Response]]


class RateLimitFilter:
    """HTTP middleware that admits or rejects requests per caller.

    Whitelisted paths skip the engine entirely. Other requests are keyed by
    the authenticated principal, else by client IP, and either forwarded
    with rate limit headers or answered with 429 without reaching the route.
    """

    def __init__(
        self,
        service: RateLimitService,
        whitelist: Iterable[str] = DEFAULT_WHITELIST,
    ) -> None:
        self._service = service
        self._whitelist = tuple(prefix.rstrip("/") for prefix in whitelist)

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        path = request.url.path
        if self.is_whitelisted(path):
            return await call_next(request)

        key = self.resolve_key(request)
        try:
            result = self._service.try_consume(key)
        except Exception:
            # Fail open: an engine fault must not block traffic
            logger.exception("rate_limit_engine_failure", key=key, path=path)
            metrics.rate_limit_decisions_total.labels(result="error").inc()
            return await call_next(request)

        metrics.rate_limit_buckets.set(self._service.bucket_count)

        if not result.allowed:
            metrics.rate_limit_decisions_total.labels(result="denied").inc()
            logger.warning(
                "rate_limit_exceeded",
                key=key,
                path=path,
                retry_after=result.retry_after_seconds,
            )
            return self._reject(path, result)

        metrics.rate_limit_decisions_total.labels(result="allowed").inc()
        response = await call_next(request)
        response.headers.update(self._headers(result))
        return response

    def is_whitelisted(self, path: str) -> bool:
        """Whether ``path`` equals a whitelisted prefix or lies beneath one."""
        return any(path == prefix or path.startswith(prefix + "/") for prefix in self._whitelist)

    @staticmethod
    def resolve_key(request: Request) -> str:
        """
        Derive the rate limit key for a request.

        Precedence: authenticated principal, first ``X-Forwarded-For``
        entry, then the socket peer address.
        """
        principal = getattr(request.state, "principal", None)
        if principal is not None and principal.name:
            return f"user:{principal.name}"

        forwarded = request.headers.get(HEADER_FORWARDED_FOR)
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()
            if client_ip:
                return f"ip:{client_ip}"

        host = request.client.host if request.client else None
        return f"ip:{host or 'unknown'}"

    @staticmethod
    def _headers(result: RateLimitResult) -> dict[str, str]:
        return {
            HEADER_LIMIT: str(result.capacity),
            HEADER_REMAINING: str(result.remaining_tokens),
            HEADER_RESET: str(result.reset_epoch_seconds),
        }

    def _reject(self, path: str, result: RateLimitResult) -> Response:
        headers = self._headers(result)
        headers[HEADER_REMAINING] = "0"
        headers[HEADER_RETRY_AFTER] = str(result.retry_after_seconds)
        return error_response(
            status_code=429,
            error="Too Many Requests",
            message=(
                "Too many requests: rate limit exceeded. "
                f"Retry after {result.retry_after_seconds} seconds."
            ),
            path=path,
            headers=headers,
        )


# Singleton instance
_filter: Optional[RateLimitFilter] = None


def get_rate_limit_filter() -> RateLimitFilter:
    """Get the interceptor singleton wired to the engine singleton."""
    global _filter
    if _filter is None:
        _filter = RateLimitFilter(
            get_rate_limit_service(),
            whitelist=get_settings().rate_limit_whitelist,
        )
    return _filter
