"""Run the FleetOps API server with ``python -m fleetops``."""

import structlog
import uvicorn

from fleetops.config import get_settings
from fleetops.logging import setup_logging
from fleetops.ratelimit.service import get_rate_limit_service

logger = structlog.get_logger()


def main() -> None:
    """Validate the configuration, then serve the API with uvicorn."""
    settings = get_settings()
    setup_logging()

    # Fail before binding the port if the rate limit settings are unusable
    rate_limiter = get_rate_limit_service()
    logger.info(
        "fleetops_serving",
        host=settings.host,
        port=settings.port,
        rate_limit_capacity=rate_limiter.capacity,
        rate_limit_refill_period_seconds=rate_limiter.refill_period.total_seconds(),
    )

    uvicorn.run(
        "fleetops.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=False,  # metrics_middleware covers request logging
    )


if __name__ == "__main__":
    main()
