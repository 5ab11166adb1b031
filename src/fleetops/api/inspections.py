"""Inspection endpoints."""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from fleetops.models import InspectionRequest, InspectionResponse, InspectionUpdateRequest
from fleetops.security import ROLE_ADMIN, ROLE_USER, require_roles
from fleetops.service import InspectionService, get_inspection_service

router = APIRouter(
    prefix="/api/inspections",
    tags=["Inspections"],
    dependencies=[Depends(require_roles(ROLE_ADMIN, ROLE_USER))],
)


@router.get("", response_model=list[InspectionResponse])
@router.get("/list", response_model=list[InspectionResponse])
async def list_inspections(
    service: InspectionService = Depends(get_inspection_service),
) -> list[InspectionResponse]:
    return [await service.to_response(i) for i in await service.get_all()]


@router.get("/{inspection_id}", response_model=InspectionResponse)
async def get_inspection(
    inspection_id: int, service: InspectionService = Depends(get_inspection_service)
) -> InspectionResponse:
    return await service.to_response(await service.get_by_id(inspection_id))


@router.post("", response_model=InspectionResponse, status_code=201)
async def create_inspection(
    request: InspectionRequest, service: InspectionService = Depends(get_inspection_service)
) -> JSONResponse:
    """Record an inspection for an existing vehicle."""
    inspection = await service.create(request)
    body = await service.to_response(inspection)
    return JSONResponse(
        status_code=201,
        content=body.model_dump(mode="json", by_alias=True),
        headers={"Location": f"/api/inspections/{inspection.id}"},
    )


@router.put("/{inspection_id}", response_model=InspectionResponse)
async def update_inspection(
    inspection_id: int,
    patch: InspectionUpdateRequest,
    service: InspectionService = Depends(get_inspection_service),
) -> InspectionResponse:
    return await service.to_response(await service.update(inspection_id, patch))


@router.delete("/{inspection_id}", status_code=204)
async def delete_inspection(
    inspection_id: int, service: InspectionService = Depends(get_inspection_service)
) -> Response:
    await service.delete(inspection_id)
    return Response(status_code=204)
