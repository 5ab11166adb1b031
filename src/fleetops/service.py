"""Fleet services: vehicles, drivers and inspections."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

import structlog
from redis.exceptions import RedisError

from fleetops.exceptions import (
    DriverNotFoundError,
    InspectionNotFoundError,
    LicensePlateAlreadyExistsError,
    ServiceError,
    VehicleInUseError,
    VehicleNotFoundError,
)
from fleetops.metrics import metrics
from fleetops.models import (
    Driver,
    DriverRequest,
    DriverUpdateRequest,
    Inspection,
    InspectionRequest,
    InspectionResponse,
    InspectionUpdateRequest,
    Vehicle,
    VehicleRequest,
    VehicleUpdateRequest,
)
from fleetops.repository import RedisRepository, get_repository

logger = structlog.get_logger()


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Translate Redis failures into :class:`ServiceError`."""
    try:
        yield
    except RedisError as e:
        metrics.redis_errors_total.labels(operation=operation).inc()
        logger.error("storage_operation_failed", operation=operation, error=str(e))
        raise ServiceError() from e


def normalize_license_plate(plate: str) -> str:
    return plate.strip().upper()


def normalize_status(status: str) -> str:
    return status.strip().upper()


class VehicleService:
    """Service for vehicle operations."""

    def __init__(self, repository: Optional[RedisRepository] = None) -> None:
        self._repository = repository or get_repository()

    async def get_all(self) -> list[Vehicle]:
        with storage_errors("list_vehicles"):
            return await self._repository.get_vehicles()

    async def get_by_id(self, vehicle_id: int) -> Vehicle:
        """Find a vehicle or raise :class:`VehicleNotFoundError`."""
        with storage_errors("get_vehicle"):
            vehicle = await self._repository.get_vehicle(vehicle_id)
        if vehicle is None:
            raise VehicleNotFoundError()
        return vehicle

    async def create(self, request: VehicleRequest) -> Vehicle:
        """Register a vehicle; the normalized license plate must be unique."""
        plate = normalize_license_plate(request.license_plate)

        with storage_errors("create_vehicle"):
            vehicle_id = await self._repository.next_id("vehicle")
            if not await self._repository.claim_license_plate(plate, vehicle_id):
                raise LicensePlateAlreadyExistsError(plate)
            vehicle = await self._save_or_release(
                Vehicle(
                    id=vehicle_id,
                    license_plate=plate,
                    make=request.make.strip(),
                    model=request.model.strip(),
                ),
                claimed_plate=plate,
            )

        metrics.entity_operations_total.labels(entity="vehicle", operation="create").inc()
        logger.info("vehicle_created", vehicle_id=vehicle.id, license_plate=plate)
        return vehicle

    async def update(self, vehicle_id: int, patch: VehicleUpdateRequest) -> Vehicle:
        """Apply the fields present in ``patch`` to an existing vehicle."""
        existing = await self.get_by_id(vehicle_id)
        updates: dict[str, str] = {}
        claimed_plate: Optional[str] = None
        released_plate: Optional[str] = None

        with storage_errors("update_vehicle"):
            if patch.license_plate is not None:
                plate = normalize_license_plate(patch.license_plate)
                if plate != existing.license_plate:
                    if not await self._repository.claim_license_plate(plate, vehicle_id):
                        raise LicensePlateAlreadyExistsError(plate)
                    claimed_plate = plate
                    released_plate = existing.license_plate
                updates["license_plate"] = plate
            if patch.make is not None:
                updates["make"] = patch.make.strip()
            if patch.model is not None:
                updates["model"] = patch.model.strip()

            vehicle = await self._save_or_release(
                existing.model_copy(update=updates), claimed_plate=claimed_plate
            )
            if released_plate is not None:
                await self._repository.release_license_plate(released_plate, vehicle_id)

        metrics.entity_operations_total.labels(entity="vehicle", operation="update").inc()
        logger.info("vehicle_updated", vehicle_id=vehicle_id, fields=sorted(updates))
        return vehicle

    async def delete(self, vehicle_id: int) -> None:
        """Delete a vehicle that no inspection references."""
        existing = await self.get_by_id(vehicle_id)

        with storage_errors("delete_vehicle"):
            if await self._repository.count_vehicle_inspections(vehicle_id):
                raise VehicleInUseError(vehicle_id)
            await self._repository.delete_vehicle(vehicle_id)
            await self._repository.release_license_plate(existing.license_plate, vehicle_id)

        metrics.entity_operations_total.labels(entity="vehicle", operation="delete").inc()
        logger.info("vehicle_deleted", vehicle_id=vehicle_id)

    async def _save_or_release(self, vehicle: Vehicle, claimed_plate: Optional[str]) -> Vehicle:
        """Save ``vehicle``; if the write fails, give back the plate just claimed for it."""
        try:
            return await self._repository.save_vehicle(vehicle)
        except RedisError:
            if claimed_plate is not None:
                await self._repository.release_license_plate(claimed_plate, vehicle.id)
            raise


class DriverService:
    """Service for driver operations."""

    def __init__(self, repository: Optional[RedisRepository] = None) -> None:
        self._repository = repository or get_repository()

    async def get_all(self) -> list[Driver]:
        with storage_errors("list_drivers"):
            return await self._repository.get_drivers()

    async def get_by_id(self, driver_id: int) -> Driver:
        with storage_errors("get_driver"):
            driver = await self._repository.get_driver(driver_id)
        if driver is None:
            raise DriverNotFoundError()
        return driver

    async def create(self, request: DriverRequest) -> Driver:
        with storage_errors("create_driver"):
            driver_id = await self._repository.next_id("driver")
            driver = await self._repository.save_driver(
                Driver(
                    id=driver_id,
                    name=request.name.strip(),
                    license_number=request.license_number.strip(),
                )
            )

        metrics.entity_operations_total.labels(entity="driver", operation="create").inc()
        logger.info("driver_created", driver_id=driver.id)
        return driver

    async def update(self, driver_id: int, patch: DriverUpdateRequest) -> Driver:
        existing = await self.get_by_id(driver_id)
        updates = {
            name: value.strip()
            for name, value in (("name", patch.name), ("license_number", patch.license_number))
            if value is not None
        }

        with storage_errors("update_driver"):
            driver = await self._repository.save_driver(existing.model_copy(update=updates))

        metrics.entity_operations_total.labels(entity="driver", operation="update").inc()
        logger.info("driver_updated", driver_id=driver_id, fields=sorted(updates))
        return driver

    async def delete(self, driver_id: int) -> None:
        await self.get_by_id(driver_id)
        with storage_errors("delete_driver"):
            await self._repository.delete_driver(driver_id)

        metrics.entity_operations_total.labels(entity="driver", operation="delete").inc()
        logger.info("driver_deleted", driver_id=driver_id)


class InspectionService:
    """Service for inspection operations.

    Inspections must reference an existing vehicle; statuses are stored
    trimmed and upper-cased (``passed`` becomes ``PASSED``).
    """

    def __init__(self, repository: Optional[RedisRepository] = None) -> None:
        self._repository = repository or get_repository()

    async def get_all(self) -> list[Inspection]:
        with storage_errors("list_inspections"):
            return await self._repository.get_inspections()

    async def get_by_id(self, inspection_id: int) -> Inspection:
        with storage_errors("get_inspection"):
            inspection = await self._repository.get_inspection(inspection_id)
        if inspection is None:
            raise InspectionNotFoundError()
        return inspection

    async def create(self, request: InspectionRequest) -> Inspection:
        await self._require_vehicle(request.vehicle_id)

        with storage_errors("create_inspection"):
            inspection_id = await self._repository.next_id("inspection")
            inspection = await self._repository.save_inspection(
                Inspection(
                    id=inspection_id,
                    inspection_date=request.inspection_date,
                    status=normalize_status(request.status),
                    vehicle_id=request.vehicle_id,
                )
            )

        metrics.entity_operations_total.labels(entity="inspection", operation="create").inc()
        logger.info(
            "inspection_created",
            inspection_id=inspection.id,
            vehicle_id=inspection.vehicle_id,
            status=inspection.status,
        )
        return inspection

    async def update(self, inspection_id: int, patch: InspectionUpdateRequest) -> Inspection:
        """Apply the fields present in ``patch``, preserving the rest."""
        existing = await self.get_by_id(inspection_id)
        updates: dict[str, object] = {}

        if patch.inspection_date is not None:
            updates["inspection_date"] = patch.inspection_date
        if patch.status is not None:
            updates["status"] = normalize_status(patch.status)
        if patch.vehicle_id is not None:
            await self._require_vehicle(patch.vehicle_id)
            updates["vehicle_id"] = patch.vehicle_id

        with storage_errors("update_inspection"):
            inspection = await self._repository.save_inspection(
                existing.model_copy(update=updates),
                previous_vehicle_id=existing.vehicle_id,
            )

        metrics.entity_operations_total.labels(entity="inspection", operation="update").inc()
        logger.info("inspection_updated", inspection_id=inspection_id, fields=sorted(updates))
        return inspection

    async def delete(self, inspection_id: int) -> None:
        existing = await self.get_by_id(inspection_id)
        with storage_errors("delete_inspection"):
            await self._repository.delete_inspection(existing)

        metrics.entity_operations_total.labels(entity="inspection", operation="delete").inc()
        logger.info("inspection_deleted", inspection_id=inspection_id)

    async def to_response(self, inspection: Inspection) -> InspectionResponse:
        """Embed the referenced vehicle, if it still exists."""
        with storage_errors("get_vehicle"):
            vehicle = await self._repository.get_vehicle(inspection.vehicle_id)
        return InspectionResponse(
            id=inspection.id,
            inspection_date=inspection.inspection_date,
            status=inspection.status,
            vehicle=vehicle,
        )

    async def _require_vehicle(self, vehicle_id: int) -> Vehicle:
        with storage_errors("get_vehicle"):
            vehicle = await self._repository.get_vehicle(vehicle_id)
        if vehicle is None:
            raise VehicleNotFoundError(f"Vehicle {vehicle_id} not found")
        return vehicle


# Singleton instances
_vehicle_service: Optional[VehicleService] = None
_driver_service: Optional[DriverService] = None
_inspection_service: Optional[InspectionService] = None


def get_vehicle_service() -> VehicleService:
    """Get the vehicle service singleton."""
    global _vehicle_service
    if _vehicle_service is None:
        _vehicle_service = VehicleService()
    return _vehicle_service


def get_driver_service() -> DriverService:
    """Get the driver service singleton."""
    global _driver_service
    if _driver_service is None:
        _driver_service = DriverService()
    return _driver_service


def get_inspection_service() -> InspectionService:
    """Get the inspection service singleton."""
    global _inspection_service
    if _inspection_service is None:
        _inspection_service = InspectionService()
    return _inspection_service
