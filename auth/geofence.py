"""
auth/geofence.py -- Re-validates a live session against a fresh location sample.

Called once per client polling tick. The enforcer answers one question:
is this session still allowed to exist, given where the user is right now?

Revocation policy: a single sample outside the allowed area deletes EVERY
session of the account, not just the one that reported it. Any device still
holding a token must re-authenticate from an allowed location. There is no
grace period and no retry budget.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.store import SessionStore, UserStore
from auth.tokens import resolve_session, verify_token
from core.config import Settings, get_settings
from core.errors import AuthError, NotFound, ValidationError
from core.geo import Coordinate, is_within_area

logger = logging.getLogger("geoguard.geofence")

NO_RESTRICTION_MESSAGE = "No location restriction set for this user."
VALID_MESSAGE = "Location is valid."
VIOLATION_MESSAGE = "You have moved outside the allowed area. Please log in again from an allowed location."


@dataclass(frozen=True)
class GeofenceVerdict:
    is_valid: bool
    message: str
    revoked_sessions: int = 0


class GeofenceEnforcer:
    def __init__(self, users: UserStore, sessions: SessionStore, settings: Settings | None = None) -> None:
        self.users = users
        self.sessions = sessions
        self.settings = settings or get_settings()

    def check(self, token: str | None, latitude: float | None, longitude: float | None) -> GeofenceVerdict:
        """Validate token, session, and location; revoke the whole account on a violation.

        Raises AuthError for a missing/invalid token or a dead session,
        ValidationError for missing or out-of-range coordinates, NotFound if
        the session's owner no longer exists. A location outside the area is
        not an exception -- it is an invalid verdict with sessions revoked.
        """
        # A token that fails verification never reaches the session store.
        if not token or verify_token(token) is None:
            raise AuthError("Invalid or expired token.")

        coordinate = Coordinate.from_parts(latitude, longitude)
        if coordinate is None:
            raise ValidationError("Latitude and longitude are required.")
        coordinate.validate()

        session = resolve_session(self.sessions, token)

        user = self.users.get_by_id(session.user_id)
        if user is None:
            raise NotFound("User not found.")

        center = user.allowed_center
        if center is None:
            return GeofenceVerdict(is_valid=True, message=NO_RESTRICTION_MESSAGE)

        radius = user.allowed_radius or self.settings.allowed_radius
        if is_within_area(coordinate.latitude, coordinate.longitude, center.latitude, center.longitude, radius):
            return GeofenceVerdict(is_valid=True, message=VALID_MESSAGE)

        revoked = self.sessions.delete_all_for_user(user.id)
        logger.warning(
            "Geofence violation for user_id=%s (%.0fm from center, radius %.0fm) -- revoked %d session(s)",
            user.id,
            coordinate.distance_to(center),
            radius,
            revoked,
        )
        return GeofenceVerdict(is_valid=False, message=VIOLATION_MESSAGE, revoked_sessions=revoked)
