"""Exceptions and the shared JSON error body for FleetOps."""

from datetime import UTC, datetime
from typing import Any

from fastapi.responses import JSONResponse


class FleetOpsError(Exception):
    """Base class for FleetOps exceptions with an HTTP status code.

    Subclasses set ``status_code`` and ``error`` so the application's
    exception handler can render them without knowing each type.
    """

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(self, message: str = "FleetOps error"):
        self.message = message
        super().__init__(message)


# === Rate limiter ===


class InvalidConfigurationError(FleetOpsError, ValueError):
    """Raised when the rate limiter is built with an unusable parameter."""

    def __init__(self, parameter: str, value: Any):
        self.parameter = parameter
        self.value = value
        super().__init__(f"Invalid rate limit configuration: {parameter}={value!r} must be > 0")


class InvalidKeyError(FleetOpsError, ValueError):
    """Raised when a rate limit key is empty or missing."""

    def __init__(self, message: str = "Rate limit key must be a non-empty string"):
        super().__init__(message)


# === Domain ===


class NotFoundError(FleetOpsError):
    """Base for lookups of entities that do not exist. Maps to 404."""

    status_code = 404
    error = "Not Found"


class VehicleNotFoundError(NotFoundError):
    def __init__(self, message: str = "Vehicle not found"):
        super().__init__(message)


class DriverNotFoundError(NotFoundError):
    def __init__(self, message: str = "Driver not found"):
        super().__init__(message)


class InspectionNotFoundError(NotFoundError):
    def __init__(self, message: str = "Inspection not found"):
        super().__init__(message)


class ConflictError(FleetOpsError):
    """Base for writes that clash with existing data. Maps to 409."""

    status_code = 409
    error = "Conflict"


class LicensePlateAlreadyExistsError(ConflictError):
    def __init__(self, license_plate: str):
        self.license_plate = license_plate
        super().__init__(f"Vehicle with license plate {license_plate} already exists.")


class VehicleInUseError(ConflictError):
    def __init__(self, vehicle_id: int):
        self.vehicle_id = vehicle_id
        super().__init__(f"Vehicle {vehicle_id} is referenced by existing inspections.")


class ServiceError(FleetOpsError):
    """Wraps storage failures. Maps to 500 with a generic message."""

    def __init__(self, message: str = "A service error occurred. Please try again later."):
        super().__init__(message)


# === Security ===


class AuthenticationError(FleetOpsError):
    status_code = 401
    error = "Unauthorized"

    def __init__(self, message: str = "Authentication is required to access this resource."):
        super().__init__(message)


class AccessDeniedError(FleetOpsError):
    status_code = 403
    error = "Forbidden"

    def __init__(self, message: str = "You do not have permission to access this resource."):
        super().__init__(message)


def error_body(status_code: int, error: str, message: str, path: str, **details: Any) -> dict[str, Any]:
    """Build the error payload shared by every non-2xx JSON response."""
    body: dict[str, Any] = {
        "timestamp": datetime.now(UTC).isoformat(),
        "status": status_code,
        "error": error,
        "message": message,
        "path": path,
    }
    body.update({k: v for k, v in details.items() if v})
    return body


def error_response(
    status_code: int,
    error: str,
    message: str,
    path: str,
    headers: dict[str, str] | None = None,
    **details: Any,
) -> JSONResponse:
    """Render :func:`error_body` as a JSON response."""
    return JSONResponse(
        status_code=status_code,
        content=error_body(status_code, error, message, path, **details),
        headers=headers,
    )
