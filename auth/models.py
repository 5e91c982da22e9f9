"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container). Stores and services do the work;
these only own the domain shape. The one helper, User.allowed_center, keeps
the "both coordinates or neither" rule in a single place.

Layer rule: no imports from api/ or client/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from core.geo import Coordinate


@dataclass
class User:
    """A registered account.

    allowed_latitude / allowed_longitude / allowed_radius describe the circular
    area the account may be used from. All three are None for unrestricted
    accounts. They are set once at signup and never mutated afterwards.
    """

    email: str
    name: str
    hashed_password: str
    id: int | None = None
    allowed_latitude: float | None = None
    allowed_longitude: float | None = None
    allowed_radius: float | None = None  # meters
    created_at: str | None = None

    @property
    def allowed_center(self) -> Coordinate | None:
        """Return the area center, or None when the account has no restriction."""
        return Coordinate.from_parts(self.allowed_latitude, self.allowed_longitude)


@dataclass
class Session:
    """One live login, keyed by the token it was issued with.

    latitude / longitude record where the login happened (None when the
    client did not send a location). expires_at is absolute; a row whose
    expiry has passed is dead even if it is still in the table.
    """

    token: str
    user_id: int
    expires_at: datetime
    latitude: float | None = None
    longitude: float | None = None
    created_at: str | None = None
