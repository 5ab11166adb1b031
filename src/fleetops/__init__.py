"""FleetOps: fleet-management CRUD backend with per-client rate limiting."""

__version__ = "0.1.0"
