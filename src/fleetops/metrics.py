"""Prometheus metrics for FleetOps."""

from prometheus_client import Counter, Gauge, Histogram, Info

from fleetops import __version__


class FleetOpsMetrics:
    """Metrics collection for FleetOps."""

    def __init__(self) -> None:
        # Application info
        self.info = Info("fleetops", "FleetOps fleet management service")
        self.info.info({"version": __version__, "rate_limit_algorithm": "token_bucket"})

        # HTTP
        self.http_requests_total = Counter(
            "fleetops_http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status"],
        )

        self.http_request_duration = Histogram(
            "fleetops_http_request_duration_seconds",
            "Duration of HTTP requests",
            ["method", "endpoint"],
            buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
        )

        # Rate limiting
        self.rate_limit_decisions_total = Counter(
            "fleetops_rate_limit_decisions_total",
            "Rate limit decisions by outcome",
            ["result"],
        )

        self.rate_limit_buckets = Gauge(
            "fleetops_rate_limit_buckets",
            "Number of rate limit keys currently tracked",
        )

        self.rate_limit_evictions_total = Counter(
            "fleetops_rate_limit_evictions_total",
            "Idle rate limit buckets evicted",
        )

        # Fleet domain
        self.entity_operations_total = Counter(
            "fleetops_entity_operations_total",
            "Create/update/delete operations on fleet entities",
            ["entity", "operation"],
        )

        self.redis_errors_total = Counter(
            "fleetops_redis_errors_total",
            "Redis operations that failed",
            ["operation"],
        )


# Singleton instance
metrics = FleetOpsMetrics()
