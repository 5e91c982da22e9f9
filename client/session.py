"""
client/session.py -- Local session state held by a signed-in client.

Mirrors what a browser dashboard keeps in its auth store: the bearer token,
the public user fields returned at login, and the most recent location
sample. clear() is the local half of a logout -- it forgets everything so the
next action must go back through the credential flow.

A lock guards the fields because the poller thread clears state while the
foreground (CLI or UI) may be reading it.
"""

from __future__ import annotations

import threading
from typing import Any, Optional

from core.geo import Coordinate


class ClientSession:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._user: Optional[dict[str, Any]] = None
        self._location: Optional[Coordinate] = None

    @property
    def token(self) -> Optional[str]:
        with self._lock:
            return self._token

    @property
    def user(self) -> Optional[dict[str, Any]]:
        with self._lock:
            return self._user

    @property
    def current_location(self) -> Optional[Coordinate]:
        with self._lock:
            return self._location

    @property
    def authenticated(self) -> bool:
        with self._lock:
            return self._user is not None and self._token is not None

    def sign_in(self, user: dict[str, Any], token: str) -> None:
        """Store the result of a successful login or signup."""
        with self._lock:
            self._user = user
            self._token = token

    def set_location(self, location: Optional[Coordinate]) -> None:
        with self._lock:
            self._location = location

    def clear(self) -> None:
        """Forget the token, the user, and the last location."""
        with self._lock:
            self._token = None
            self._user = None
            self._location = None
