"""Driver endpoints."""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from fleetops.models import Driver, DriverRequest, DriverUpdateRequest
from fleetops.security import ROLE_ADMIN, ROLE_USER, require_roles
from fleetops.service import DriverService, get_driver_service

router = APIRouter(
    prefix="/api/drivers",
    tags=["Drivers"],
    dependencies=[Depends(require_roles(ROLE_ADMIN, ROLE_USER))],
)


@router.get("", response_model=list[Driver])
@router.get("/list", response_model=list[Driver])
async def list_drivers(service: DriverService = Depends(get_driver_service)) -> list[Driver]:
    return await service.get_all()


@router.get("/{driver_id}", response_model=Driver)
async def get_driver(driver_id: int, service: DriverService = Depends(get_driver_service)) -> Driver:
    return await service.get_by_id(driver_id)


@router.post("", response_model=Driver, status_code=201)
async def create_driver(
    request: DriverRequest, service: DriverService = Depends(get_driver_service)
) -> JSONResponse:
    driver = await service.create(request)
    return JSONResponse(
        status_code=201,
        content=driver.model_dump(mode="json", by_alias=True),
        headers={"Location": f"/api/drivers/{driver.id}"},
    )


@router.put("/{driver_id}", response_model=Driver)
async def update_driver(
    driver_id: int,
    patch: DriverUpdateRequest,
    service: DriverService = Depends(get_driver_service),
) -> Driver:
    return await service.update(driver_id, patch)


@router.delete("/{driver_id}", status_code=204)
async def delete_driver(driver_id: int, service: DriverService = Depends(get_driver_service)) -> Response:
    await service.delete(driver_id)
    return Response(status_code=204)
