"""Redis repository for fleet entities."""

from typing import Optional, TypeVar

import redis.asyncio as redis
import structlog
from pydantic import BaseModel

from fleetops.config import get_settings
from fleetops.models import Driver, Inspection, Vehicle

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)

VEHICLE = "vehicle"
DRIVER = "driver"
INSPECTION = "inspection"

# Compare-and-delete so a plate is only released by the vehicle holding it
RELEASE_PLATE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class RedisRepository:
    """Repository for Redis operations.

    Each entity is a JSON document at ``<entity>:<id>``; ids come from an
    ``INCR`` sequence and a sorted set keeps listings in id order.
    """

    def __init__(self) -> None:
        self._client: redis.Redis | None = None

    async def connect(self) -> None:
        """Connect to Redis."""
        settings = get_settings()
        self._client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password or None,
            db=settings.redis_db,
            decode_responses=True,
            max_connections=settings.redis_pool_size,
        )
        # Test connection
        await self._client.ping()
        logger.info("redis_connected", host=settings.redis_host, port=settings.redis_port)

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.aclose()
            logger.info("redis_disconnected")

    async def health_check(self) -> bool:
        """Check if Redis is healthy."""
        try:
            if self._client:
                await self._client.ping()
                return True
        except Exception as e:
            logger.error("redis_health_check_failed", error=str(e))
        return False

    @property
    def client(self) -> redis.Redis:
        if not self._client:
            raise RuntimeError("Redis not connected")
        return self._client

    # === Generic document operations ===

    async def next_id(self, entity: str) -> int:
        return int(await self.client.incr(f"seq:{entity}"))

    async def _save(self, entity: str, document: BaseModel, entity_id: int) -> None:
        pipe = self.client.pipeline(transaction=True)
        pipe.set(f"{entity}:{entity_id}", document.model_dump_json(by_alias=True))
        pipe.zadd(f"{entity}s", {str(entity_id): entity_id})
        await pipe.execute()

    async def _get(self, entity: str, entity_id: int, model: type[ModelT]) -> Optional[ModelT]:
        data = await self.client.get(f"{entity}:{entity_id}")
        return model.model_validate_json(data) if data else None

    async def _list(self, entity: str, model: type[ModelT]) -> list[ModelT]:
        ids = await self.client.zrange(f"{entity}s", 0, -1)
        if not ids:
            return []
        documents = await self.client.mget([f"{entity}:{i}" for i in ids])
        return [model.model_validate_json(d) for d in documents if d]

    async def _delete(self, entity: str, entity_id: int) -> bool:
        pipe = self.client.pipeline(transaction=True)
        pipe.delete(f"{entity}:{entity_id}")
        pipe.zrem(f"{entity}s", str(entity_id))
        deleted, _ = await pipe.execute()
        return bool(deleted)

    # === Vehicles ===

    async def save_vehicle(self, vehicle: Vehicle) -> Vehicle:
        await self._save(VEHICLE, vehicle, vehicle.id)
        return vehicle

    async def get_vehicle(self, vehicle_id: int) -> Optional[Vehicle]:
        return await self._get(VEHICLE, vehicle_id, Vehicle)

    async def get_vehicles(self) -> list[Vehicle]:
        return await self._list(VEHICLE, Vehicle)

    async def delete_vehicle(self, vehicle_id: int) -> bool:
        return await self._delete(VEHICLE, vehicle_id)

    async def claim_license_plate(self, license_plate: str, vehicle_id: int) -> bool:
        """
        Reserve ``license_plate`` for ``vehicle_id``.

        Returns False when another vehicle already holds the plate.
        """
        key = f"vehicle:plate:{license_plate}"
        if await self.client.set(key, str(vehicle_id), nx=True):
            return True
        return await self.client.get(key) == str(vehicle_id)

    async def release_license_plate(self, license_plate: str, vehicle_id: int) -> None:
        await self.client.eval(  # type: ignore[misc]
            RELEASE_PLATE_SCRIPT, 1, f"vehicle:plate:{license_plate}", str(vehicle_id)
        )

    # === Drivers ===

    async def save_driver(self, driver: Driver) -> Driver:
        await self._save(DRIVER, driver, driver.id)
        return driver

    async def get_driver(self, driver_id: int) -> Optional[Driver]:
        return await self._get(DRIVER, driver_id, Driver)

    async def get_drivers(self) -> list[Driver]:
        return await self._list(DRIVER, Driver)

    async def delete_driver(self, driver_id: int) -> bool:
        return await self._delete(DRIVER, driver_id)

    # === Inspections ===

    async def save_inspection(
        self, inspection: Inspection, previous_vehicle_id: Optional[int] = None
    ) -> Inspection:
        """Store an inspection and keep the per-vehicle reference set in sync."""
        await self._save(INSPECTION, inspection, inspection.id)
        if previous_vehicle_id is not None and previous_vehicle_id != inspection.vehicle_id:
            await self.client.srem(  # type: ignore[misc]
                f"vehicle:{previous_vehicle_id}:inspections", str(inspection.id)
            )
        await self.client.sadd(  # type: ignore[misc]
            f"vehicle:{inspection.vehicle_id}:inspections", str(inspection.id)
        )
        return inspection

    async def get_inspection(self, inspection_id: int) -> Optional[Inspection]:
        return await self._get(INSPECTION, inspection_id, Inspection)

    async def get_inspections(self) -> list[Inspection]:
        return await self._list(INSPECTION, Inspection)

    async def delete_inspection(self, inspection: Inspection) -> bool:
        deleted = await self._delete(INSPECTION, inspection.id)
        await self.client.srem(  # type: ignore[misc]
            f"vehicle:{inspection.vehicle_id}:inspections", str(inspection.id)
        )
        return deleted

    async def count_vehicle_inspections(self, vehicle_id: int) -> int:
        return int(await self.client.scard(f"vehicle:{vehicle_id}:inspections"))  # type: ignore[misc]


# Singleton instance
_repository: RedisRepository | None = None


def get_repository() -> RedisRepository:
    """Get the repository singleton."""
    global _repository
    if _repository is None:
        _repository = RedisRepository()
    return _repository
