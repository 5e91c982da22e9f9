"""
api/routes/v1/location.py -- Periodic geofence check for signed-in clients.

Routes:
  POST /api/location/validate -- Bearer token + {latitude, longitude}

Responses:
  200 {"isValid": true,  "message": ...}   inside the area, or no area configured
  403 {"isValid": false, "error": ...}     outside -- every session of the account
                                           has already been deleted
  400 / 401 / 404                          standard error envelope

Not rate-limited: each signed-in client calls this on a fixed interval.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.models import LocationSample, LocationVerdictResponse, LocationViolationResponse
from auth.dependencies import bearer_token
from auth.geofence import GeofenceEnforcer

router = APIRouter()


@router.post("/location/validate", response_model=LocationVerdictResponse)
def validate_location(request: Request, body: Optional[LocationSample] = None) -> JSONResponse:
    """Check a fresh location sample against the caller's allowed area.

    The body is optional at the HTTP layer so that a bad token is reported
    as 401 before missing coordinates are reported as 400.
    """
    enforcer: GeofenceEnforcer = request.app.state.geofence
    verdict = enforcer.check(
        bearer_token(request),
        body.latitude if body else None,
        body.longitude if body else None,
    )
    if not verdict.is_valid:
        return JSONResponse(
            status_code=403,
            content=LocationViolationResponse(error=verdict.message).model_dump(by_alias=True),
        )
    return JSONResponse(
        status_code=200,
        content=LocationVerdictResponse(is_valid=True, message=verdict.message).model_dump(by_alias=True),
    )
