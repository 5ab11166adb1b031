"""HTTP routers for fleet resources."""

from fleetops.api.drivers import router as drivers_router
from fleetops.api.inspections import router as inspections_router
from fleetops.api.vehicles import router as vehicles_router

__all__ = ["drivers_router", "inspections_router", "vehicles_router"]
