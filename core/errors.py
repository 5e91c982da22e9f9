"""
core/errors.py -- Error taxonomy shared by every GeoGuard layer.

Each error carries the HTTP status and machine-readable code it maps to, so
the single exception handler in api/main.py can render the standard error
envelope without a lookup table. Domain code raises these; only the API layer
knows about HTTP.

Credential and token failures are generic ("Invalid email or
password.", "Authentication required.") so a client cannot tell which check
failed. Geofence errors are specific -- they carry no enumeration risk.
"""

from __future__ import annotations


class GeoGuardError(Exception):
    """Base class. Subclasses override status_code, code, and default_message."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(GeoGuardError):
    status_code = 400
    code = "validation_error"
    default_message = "Request validation failed."


class LocationRequired(ValidationError):
    code = "location_required"
    default_message = "Location is required for this account."


class AuthError(GeoGuardError):
    status_code = 401
    code = "unauthorized"
    default_message = "Authentication required."


class InvalidCredentials(AuthError):
    code = "bad_credentials"
    default_message = "Invalid email or password."


class ForbiddenArea(GeoGuardError):
    status_code = 403
    code = "outside_allowed_area"
    default_message = "You are not in the allowed location to access this account."


class OutOfArea(ForbiddenArea):
    pass


class NotFound(GeoGuardError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found."


class Conflict(GeoGuardError):
    status_code = 400
    code = "conflict"
    default_message = "Resource already exists."


class DuplicateAccount(Conflict):
    code = "duplicate_account"
    default_message = "User with this email already exists."


class InternalError(GeoGuardError):
    pass
