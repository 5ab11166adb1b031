"""Vehicle endpoints."""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from fleetops.models import Vehicle, VehicleRequest, VehicleUpdateRequest
from fleetops.security import ROLE_ADMIN, ROLE_USER, require_roles
from fleetops.service import VehicleService, get_vehicle_service

router = APIRouter(
    prefix="/api/vehicles",
    tags=["Vehicles"],
    dependencies=[Depends(require_roles(ROLE_ADMIN, ROLE_USER))],
)


@router.get("", response_model=list[Vehicle])
@router.get("/list", response_model=list[Vehicle])
async def list_vehicles(service: VehicleService = Depends(get_vehicle_service)) -> list[Vehicle]:
    return await service.get_all()


@router.get("/{vehicle_id}", response_model=Vehicle)
async def get_vehicle(
    vehicle_id: int, service: VehicleService = Depends(get_vehicle_service)
) -> Vehicle:
    return await service.get_by_id(vehicle_id)


@router.post("", response_model=Vehicle, status_code=201)
async def create_vehicle(
    request: VehicleRequest, service: VehicleService = Depends(get_vehicle_service)
) -> JSONResponse:
    """Register a vehicle; the license plate is stored upper-cased."""
    vehicle = await service.create(request)
    return JSONResponse(
        status_code=201,
        content=vehicle.model_dump(mode="json", by_alias=True),
        headers={"Location": f"/api/vehicles/{vehicle.id}"},
    )


@router.put("/{vehicle_id}", response_model=Vehicle)
async def update_vehicle(
    vehicle_id: int,
    patch: VehicleUpdateRequest,
    service: VehicleService = Depends(get_vehicle_service),
) -> Vehicle:
    """Partially update a vehicle; omitted fields keep their values."""
    return await service.update(vehicle_id, patch)


@router.delete("/{vehicle_id}", status_code=204)
async def delete_vehicle(
    vehicle_id: int, service: VehicleService = Depends(get_vehicle_service)
) -> Response:
    await service.delete(vehicle_id)
    return Response(status_code=204)
