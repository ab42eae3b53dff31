"""
Tests for custom exception classes and their JSON rendering

Tests status codes, error codes, details, and the handler output.
"""

import json

from fastapi import status
from starlette.requests import Request

from alltown.exception_handlers import create_error_response, get_http_error_code, platform_exception_handler
from alltown.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DeliveryAlreadyClaimedError,
    DeliveryNotFoundError,
    DeliveryPlatformError,
    DependencyError,
    ErrorCode,
    GeocodingError,
    InvalidStatusTransitionError,
    NotFoundError,
    TenantDirectoryUnavailableError,
    TenantMismatchError,
    TenantNotFoundError,
    ValidationError,
)


def make_request(path="/deliveries"):
    return Request({"type": "http", "method": "GET", "path": path, "headers": [], "query_string": b""})


class TestDeliveryPlatformError:
    def test_defaults(self):
        exc = DeliveryPlatformError("Test error")
        assert str(exc) == "Test error"
        assert exc.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert exc.error_code == ErrorCode.INTERNAL_ERROR
        assert exc.details == {}
        assert exc.response_fields() == {}

    def test_overrides(self):
        exc = DeliveryPlatformError("x", status_code=418, details={"k": 1}, error_code=ErrorCode.CONFLICT)
        assert exc.status_code == 418
        assert exc.details == {"k": 1}
        assert exc.error_code == ErrorCode.CONFLICT


class TestValidationError:
    def test_single_field(self):
        exc = ValidationError("Phone is required", field="phone")
        assert exc.status_code == status.HTTP_400_BAD_REQUEST
        assert exc.details == {"errors": [{"field": "phone", "message": "Phone is required"}]}
        assert exc.fields == ["phone"]

    def test_error_list_wins(self):
        errors = [{"field": "email", "message": "bad"}, {"field": "phone", "message": "missing"}]
        exc = ValidationError("Invalid", field="ignored", errors=errors)
        assert exc.fields == ["email", "phone"]

    def test_no_fields(self):
        assert ValidationError("nope").fields == []


class TestAuthErrors:
    def test_authentication(self):
        exc = AuthenticationError()
        assert exc.status_code == status.HTTP_401_UNAUTHORIZED
        assert exc.error_code == ErrorCode.AUTH_FAILED

    def test_authorization_carries_roles(self):
        exc = AuthorizationError(required_roles=["admin"])
        assert exc.status_code == status.HTTP_403_FORBIDDEN
        assert exc.details == {"required_roles": ["admin"]}

    def test_tenant_mismatch_is_authorization_error(self):
        exc = TenantMismatchError()
        assert isinstance(exc, AuthorizationError)
        assert exc.status_code == status.HTTP_403_FORBIDDEN
        assert exc.error_code == ErrorCode.TENANT_MISMATCH


class TestNotFoundErrors:
    def test_message_with_id(self):
        exc = NotFoundError("Thing", 7)
        assert exc.message == "Thing with id '7' not found"
        assert exc.status_code == status.HTTP_404_NOT_FOUND

    def test_delivery_not_found(self):
        exc = DeliveryNotFoundError("d-1")
        assert exc.error_code == ErrorCode.DELIVERY_NOT_FOUND
        assert exc.details == {"resource_type": "DeliveryRequest", "resource_id": "d-1"}

    def test_tenant_not_found_flags_invalid_subdomain(self):
        exc = TenantNotFoundError("nobody.alltowndelivery.com")
        assert exc.host == "nobody.alltowndelivery.com"
        assert exc.response_fields() == {"isInvalidSubdomain": True}
        assert exc.message == "No delivery service is registered for this address"


class TestConflictErrors:
    def test_already_claimed(self):
        exc = DeliveryAlreadyClaimedError("d-1")
        assert isinstance(exc, ConflictError)
        assert exc.status_code == status.HTTP_409_CONFLICT
        assert exc.error_code == ErrorCode.DELIVERY_ALREADY_CLAIMED

    def test_invalid_transition(self):
        exc = InvalidStatusTransitionError("completed", "available")
        assert exc.status_code == status.HTTP_409_CONFLICT
        assert "'completed' to 'available'" in exc.message
        assert exc.details == {"current_status": "completed", "target_status": "available"}


class TestDependencyErrors:
    def test_geocoding_is_bad_gateway(self):
        exc = GeocodingError()
        assert isinstance(exc, DependencyError)
        assert exc.status_code == status.HTTP_502_BAD_GATEWAY
        assert exc.details == {"dependency": "distance_matrix"}

    def test_directory_unavailable_is_500(self):
        exc = TenantDirectoryUnavailableError()
        assert exc.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert not isinstance(exc, NotFoundError)


class TestRendering:
    def test_create_error_response(self):
        response = create_error_response(
            404, "gone", ErrorCode.TENANT_NOT_FOUND, path="/tenant", extra={"isInvalidSubdomain": True}
        )
        assert response.status_code == 404
        assert json.loads(response.body) == {
            "error": "TENANT_NOT_FOUND",
            "message": "gone",
            "path": "/tenant",
            "isInvalidSubdomain": True,
        }

    async def test_platform_handler(self):
        response = await platform_exception_handler(make_request("/deliveries/d-1/claim"), DeliveryAlreadyClaimedError("d-1"))
        body = json.loads(response.body)
        assert response.status_code == 409
        assert body["error"] == "DELIVERY_ALREADY_CLAIMED"
        assert body["details"] == {"delivery_id": "d-1"}
        assert body["path"] == "/deliveries/d-1/claim"

    def test_http_error_codes(self):
        assert get_http_error_code(404) == "RESOURCE_NOT_FOUND"
        assert get_http_error_code(503) == "DEPENDENCY_UNAVAILABLE"

    async def test_unknown_route(self, client):
        response = await client.get("/no-such-route")
        assert response.status_code == 404
        assert response.json()["error"] == "RESOURCE_NOT_FOUND"
