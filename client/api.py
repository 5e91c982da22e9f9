"""
client/api.py -- Thin HTTP client for the GeoGuard API.

One requests.Session per client for connection pooling. Every call sets an
explicit timeout; redirects are capped because the API never redirects.

Transport failures (DNS, refused connection, timeout) surface as
requests.RequestException -- the poller relies on that to tell "the network
hiccuped" apart from "the server said no". HTTP error statuses do NOT raise;
every method returns an ApiResponse so callers can branch on status_code.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import requests

from core.geo import Coordinate

logger = logging.getLogger("geoguard.client")

DEFAULT_TIMEOUT = 10


@dataclass(frozen=True)
class ApiResponse:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def error_message(self) -> str:
        """Best-effort human message from either response shape.

        The geofence 403 carries {"error": "text"}; every other failure uses
        the envelope {"error": {"code": .., "message": ..}}.
        """
        error = self.body.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error.get("code") or "")
        return str(error or "")


class GeoGuardClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        http: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        if http is None:
            http = requests.Session()
            http.max_redirects = 3
        self.http = http

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def signup(
        self,
        email: str,
        password: str,
        name: str,
        location: Optional[Coordinate] = None,
        radius: Optional[float] = None,
    ) -> ApiResponse:
        body: dict[str, Any] = {"email": email, "password": password, "name": name}
        if location is not None:
            body["latitude"] = location.latitude
            body["longitude"] = location.longitude
        if radius is not None:
            body["radius"] = radius
        return self._post("/api/auth/signup", body)

    def login(self, email: str, password: str, location: Optional[Coordinate] = None) -> ApiResponse:
        body: dict[str, Any] = {"email": email, "password": password}
        if location is not None:
            body["latitude"] = location.latitude
            body["longitude"] = location.longitude
        return self._post("/api/auth/login", body)

    def verify(self, token: str) -> ApiResponse:
        resp = self.http.get(self._url("/api/auth/verify"), headers=_bearer(token), timeout=self.timeout)
        return _to_api_response(resp)

    def validate_location(self, token: str, location: Coordinate) -> ApiResponse:
        return self._post(
            "/api/location/validate",
            {"latitude": location.latitude, "longitude": location.longitude},
            token=token,
        )

    def logout(self, token: str) -> ApiResponse:
        return self._post("/api/auth/logout", None, token=token)

    def close(self) -> None:
        self.http.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _post(self, path: str, body: Optional[dict[str, Any]], token: Optional[str] = None) -> ApiResponse:
        headers = _bearer(token) if token else {}
        resp = self.http.post(self._url(path), json=body, headers=headers, timeout=self.timeout)
        return _to_api_response(resp)


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _to_api_response(resp) -> ApiResponse:
    try:
        body = resp.json()
    except ValueError:
        logger.debug("Non-JSON response body (status %d)", resp.status_code)
        body = {}
    if not isinstance(body, dict):
        body = {}
    return ApiResponse(status_code=resp.status_code, body=body)
