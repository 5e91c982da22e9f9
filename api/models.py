"""
API request and response models for GeoGuard REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire format is camelCase (allowedLatitude, isValid) to match the browser and
CLI clients; Python attribute names stay snake_case via an alias generator.

Request fields are Optional on purpose: "missing email" and "missing
coordinates" are domain rules enforced by the authenticator and the geofence
enforcer, which decide the order checks run in (a bad token on
/location/validate is a 401 even when the body is also incomplete).
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/auth/signup.

    latitude/longitude (optional, together) pin the account to an allowed
    area centered there. radius defaults to ALLOWED_RADIUS when omitted.
    """

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=128)
    name: Optional[str] = Field(default=None, max_length=255)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius: Optional[float] = None


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=128)
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class LocationSample(BaseModel):
    """Request body for POST /api/location/validate."""

    latitude: Optional[float] = None
    longitude: Optional[float] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class PublicUser(_CamelModel):
    """The public fields of an account -- never the password hash."""

    id: int
    email: str
    name: str

    @classmethod
    def from_user(cls, user: User) -> "PublicUser":
        return cls(id=user.id, email=user.email, name=user.name)


class UserProfile(PublicUser):
    """Public fields plus the allowed area (all None for unrestricted accounts)."""

    allowed_latitude: Optional[float] = None
    allowed_longitude: Optional[float] = None
    allowed_radius: Optional[float] = None

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            allowed_latitude=user.allowed_latitude,
            allowed_longitude=user.allowed_longitude,
            allowed_radius=user.allowed_radius,
        )


class SignupResponse(_CamelModel):
    user: PublicUser
    token: str


class LoginResponse(_CamelModel):
    user: UserProfile
    token: str


class VerifyResponse(_CamelModel):
    user: UserProfile


class MessageResponse(_CamelModel):
    message: str


class LocationVerdictResponse(_CamelModel):
    """200 body of POST /api/location/validate."""

    is_valid: bool
    message: str


class LocationViolationResponse(_CamelModel):
    """403 body of POST /api/location/validate. Every session of the account is gone."""

    is_valid: bool = False
    error: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
