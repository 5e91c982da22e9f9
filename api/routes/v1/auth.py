"""
api/routes/v1/auth.py -- Signup, login, session verification, and logout.

Routes:
  POST /api/auth/signup   -- create account (+ optional allowed area); 201 + token
  POST /api/auth/login    -- password login, geofenced when the account has an area
  GET  /api/auth/verify   -- current user if the Bearer token has a live session
  POST /api/auth/logout   -- delete the caller's session (idempotent)

Security:
  Signup and login are rate-limited per IP (Settings.login_rate_limit).
  Login errors for unknown email and wrong password are identical
  ("bad_credentials") -- see CredentialAuthenticator.
  Cache-Control: no-store on every response that carries a token.

Domain errors (core.errors) raised by the authenticator propagate to the
handler in api/main.py, which renders the standard error envelope.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PublicUser,
    SignupRequest,
    SignupResponse,
    UserProfile,
    VerifyResponse,
)
from auth.authenticator import CredentialAuthenticator
from auth.dependencies import bearer_token, get_current_user
from auth.models import User
from core.config import get_settings

# Auth policy:
# - POST /api/auth/signup:  public
# - POST /api/auth/login:   public
# - GET  /api/auth/verify:  requires a live session (get_current_user)
# - POST /api/auth/logout:  public -- deleting a session nobody holds is a no-op
router = APIRouter()

_settings = get_settings()


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/signup", response_model=SignupResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Register a new account and return its first session token.

    When latitude/longitude are supplied the account is pinned to a circle
    around that point; every later login and polling check is measured
    against it.
    """
    authenticator: CredentialAuthenticator = request.app.state.authenticator
    result = authenticator.signup(
        body.email,
        body.password,
        body.name,
        latitude=body.latitude,
        longitude=body.longitude,
        radius=body.radius,
    )
    resp = JSONResponse(
        status_code=201,
        content=SignupResponse(user=PublicUser.from_user(result.user), token=result.token).model_dump(by_alias=True),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password (plus location for restricted accounts)."""
    authenticator: CredentialAuthenticator = request.app.state.authenticator
    result = authenticator.login(body.email, body.password, latitude=body.latitude, longitude=body.longitude)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(user=UserProfile.from_user(result.user), token=result.token).model_dump(by_alias=True),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/verify", response_model=VerifyResponse)
def verify(current_user: User = Depends(get_current_user)) -> JSONResponse:
    """Return the current user. 401 once the session is revoked or expired."""
    return JSONResponse(content=VerifyResponse(user=UserProfile.from_user(current_user)).model_dump(by_alias=True))


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> MessageResponse:
    """Delete the session named by the Bearer token. Other devices stay signed in."""
    authenticator: CredentialAuthenticator = request.app.state.authenticator
    authenticator.logout(bearer_token(request))
    return MessageResponse(message="Logged out.")
