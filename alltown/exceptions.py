"""
Custom Exception Classes for AllTown Dispatch

Every error the service raises on purpose derives from DeliveryPlatformError.
Each carries an HTTP status, a machine-readable ErrorCode and optional details
so the exception handlers can render a consistent JSON body.
"""

from enum import Enum
from typing import Any

from fastapi import status


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in the `error` field."""

    VALIDATION_FAILED = "VALIDATION_FAILED"

    AUTH_FAILED = "AUTH_FAILED"
    AUTH_PERMISSION_DENIED = "AUTH_PERMISSION_DENIED"
    TENANT_MISMATCH = "TENANT_MISMATCH"

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    TENANT_NOT_FOUND = "TENANT_NOT_FOUND"
    DELIVERY_NOT_FOUND = "DELIVERY_NOT_FOUND"
    DRIVER_NOT_FOUND = "DRIVER_NOT_FOUND"

    CONFLICT = "CONFLICT"
    DELIVERY_ALREADY_CLAIMED = "DELIVERY_ALREADY_CLAIMED"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"

    DEPENDENCY_UNAVAILABLE = "DEPENDENCY_UNAVAILABLE"
    GEOCODING_FAILED = "GEOCODING_FAILED"
    TENANT_DIRECTORY_UNAVAILABLE = "TENANT_DIRECTORY_UNAVAILABLE"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class DeliveryPlatformError(Exception):
    """Base exception class for all platform errors"""

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        if error_code is not None:
            self.error_code = error_code
        super().__init__(self.message)

    def response_fields(self) -> dict[str, Any]:
        """Extra top-level fields merged into the error response body."""
        return {}


# ============================================================================
# Validation
# ============================================================================


class ValidationError(DeliveryPlatformError):
    """Raised when input validation fails; details carry per-field messages"""

    error_code = ErrorCode.VALIDATION_FAILED

    def __init__(self, message: str, field: str | None = None, errors: list[dict[str, str]] | None = None):
        details: dict[str, Any] = {}
        if errors:
            details["errors"] = errors
        elif field:
            details["errors"] = [{"field": field, "message": message}]
        super().__init__(message=message, status_code=status.HTTP_400_BAD_REQUEST, details=details)

    @property
    def fields(self) -> list[str]:
        return [error["field"] for error in self.details.get("errors", [])]


# ============================================================================
# Authentication & Authorization
# ============================================================================


class AuthenticationError(DeliveryPlatformError):
    """Raised when the bearer token is missing, invalid or unknown"""

    error_code = ErrorCode.AUTH_FAILED

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message=message, status_code=status.HTTP_401_UNAUTHORIZED)


class AuthorizationError(DeliveryPlatformError):
    """Raised when the caller lacks permission for an action"""

    error_code = ErrorCode.AUTH_PERMISSION_DENIED

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        required_roles: list[str] | None = None,
    ):
        details = {"required_roles": required_roles} if required_roles else {}
        super().__init__(message=message, status_code=status.HTTP_403_FORBIDDEN, details=details)


class TenantMismatchError(AuthorizationError):
    """Raised when an actor touches a resource owned by another tenant"""

    error_code = ErrorCode.TENANT_MISMATCH

    def __init__(self, message: str = "Resource belongs to a different tenant"):
        super().__init__(message=message)


# ============================================================================
# Resource Not Found
# ============================================================================


class NotFoundError(DeliveryPlatformError):
    """Base class for resource not found errors"""

    error_code = ErrorCode.RESOURCE_NOT_FOUND

    def __init__(self, resource_type: str, resource_id: Any | None = None, message: str | None = None):
        if message is None:
            message = f"{resource_type} not found"
            if resource_id is not None:
                message = f"{resource_type} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class TenantNotFoundError(NotFoundError):
    """Raised when a host resolves to no tenant ("no such delivery service")"""

    error_code = ErrorCode.TENANT_NOT_FOUND

    def __init__(self, host: str | None = None):
        super().__init__(
            resource_type="Tenant",
            resource_id=host,
            message="No delivery service is registered for this address",
        )
        self.host = host

    def response_fields(self) -> dict[str, Any]:
        return {"isInvalidSubdomain": True}


class DeliveryNotFoundError(NotFoundError):
    error_code = ErrorCode.DELIVERY_NOT_FOUND

    def __init__(self, delivery_id: Any | None = None):
        super().__init__(resource_type="DeliveryRequest", resource_id=delivery_id)


class DriverNotFoundError(NotFoundError):
    error_code = ErrorCode.DRIVER_NOT_FOUND

    def __init__(self, driver_id: Any | None = None):
        super().__init__(resource_type="Driver", resource_id=driver_id)


# ============================================================================
# Conflicts
# ============================================================================


class ConflictError(DeliveryPlatformError):
    """Raised when the current state no longer allows the request; retry with fresh state"""

    error_code = ErrorCode.CONFLICT

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=status.HTTP_409_CONFLICT, details=details or {})


class DeliveryAlreadyClaimedError(ConflictError):
    error_code = ErrorCode.DELIVERY_ALREADY_CLAIMED

    def __init__(self, delivery_id: Any):
        super().__init__(
            message="Delivery request has already been claimed",
            details={"delivery_id": delivery_id},
        )


class InvalidStatusTransitionError(ConflictError):
    """Raised when an invalid status transition is attempted"""

    error_code = ErrorCode.INVALID_STATUS_TRANSITION

    def __init__(self, current_status: str, target_status: str):
        super().__init__(
            message=f"Cannot transition delivery request from '{current_status}' to '{target_status}'",
            details={"current_status": current_status, "target_status": target_status},
        )


# ============================================================================
# External Dependencies
# ============================================================================


class DependencyError(DeliveryPlatformError):
    """Raised when a collaborator (distance service, tenant store) is unavailable"""

    error_code = ErrorCode.DEPENDENCY_UNAVAILABLE

    def __init__(
        self,
        message: str,
        dependency: str | None = None,
        status_code: int = status.HTTP_502_BAD_GATEWAY,
    ):
        details = {"dependency": dependency} if dependency else {}
        super().__init__(message=message, status_code=status_code, details=details)


class GeocodingError(DependencyError):
    error_code = ErrorCode.GEOCODING_FAILED

    def __init__(self, message: str = "Could not calculate distance between addresses"):
        super().__init__(message=message, dependency="distance_matrix")


class TenantDirectoryUnavailableError(DependencyError):
    """Tenant store failure; an operational alarm, never reported as NotFound"""

    error_code = ErrorCode.TENANT_DIRECTORY_UNAVAILABLE

    def __init__(self, message: str = "Tenant directory is temporarily unavailable"):
        super().__init__(
            message=message,
            dependency="tenant_store",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
