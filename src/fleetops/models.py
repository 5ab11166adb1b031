"""Domain models for FleetOps."""

from datetime import date
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CamelModel(BaseModel):
    """Base model accepting both camelCase aliases and field names."""

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)


class PartialUpdate(CamelModel):
    """Update payload where every field is optional but one must be set.

    Subclasses list the fields that count in ``updatable_fields``.
    """

    updatable_fields: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def at_least_one_field(self) -> "PartialUpdate":
        if all(getattr(self, name) is None for name in self.updatable_fields):
            raise ValueError(
                f"At least one of {', '.join(self.updatable_fields)} must be provided"
            )
        return self


# === Vehicles ===


class VehicleRequest(CamelModel):
    """Payload to register a vehicle."""

    license_plate: str = Field(..., alias="licensePlate", min_length=1, max_length=20, pattern=r"\S")
    make: str = Field(..., min_length=1, max_length=50, pattern=r"\S")
    model: str = Field(..., min_length=1, max_length=50, pattern=r"\S")


class VehicleUpdateRequest(PartialUpdate):
    updatable_fields: ClassVar[tuple[str, ...]] = ("license_plate", "make", "model")

    license_plate: Optional[str] = Field(None, alias="licensePlate", max_length=20, pattern=r"\S")
    make: Optional[str] = Field(None, max_length=50, pattern=r"\S")
    model: Optional[str] = Field(None, max_length=50, pattern=r"\S")


class Vehicle(CamelModel):
    id: int
    license_plate: str = Field(..., alias="licensePlate")
    make: str
    model: str


# === Drivers ===


class DriverRequest(CamelModel):
    """Payload to register a driver."""

    name: str = Field(..., min_length=1, max_length=100, pattern=r"\S")
    license_number: str = Field(..., alias="licenseNumber", min_length=1, max_length=50, pattern=r"\S")


class DriverUpdateRequest(PartialUpdate):
    updatable_fields: ClassVar[tuple[str, ...]] = ("name", "license_number")

    name: Optional[str] = Field(None, max_length=100, pattern=r"\S")
    license_number: Optional[str] = Field(None, alias="licenseNumber", max_length=50, pattern=r"\S")


class Driver(CamelModel):
    id: int
    name: str
    license_number: str = Field(..., alias="licenseNumber")


# === Inspections ===


class InspectionRequest(CamelModel):
    """Payload to record an inspection of a vehicle."""

    inspection_date: date = Field(..., alias="inspectionDate")
    status: str = Field(..., min_length=1, pattern=r"\S")
    vehicle_id: int = Field(..., alias="vehicleId", ge=1)


class InspectionUpdateRequest(PartialUpdate):
    updatable_fields: ClassVar[tuple[str, ...]] = ("inspection_date", "status", "vehicle_id")

    inspection_date: Optional[date] = Field(None, alias="inspectionDate")
    status: Optional[str] = Field(None, pattern=r"\S")
    vehicle_id: Optional[int] = Field(None, alias="vehicleId", ge=1)


class Inspection(CamelModel):
    """Stored inspection; references its vehicle by id."""

    id: int
    inspection_date: date = Field(..., alias="inspectionDate")
    status: str
    vehicle_id: int = Field(..., alias="vehicleId")


class InspectionResponse(CamelModel):
    """Inspection as returned by the API, with the vehicle embedded."""

    id: int
    inspection_date: date = Field(..., alias="inspectionDate")
    status: str
    vehicle: Optional[Vehicle] = None
