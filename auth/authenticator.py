"""
auth/authenticator.py -- Login, signup, and logout: the only paths that create sessions.

CredentialAuthenticator is built once at startup with explicit UserStore and
SessionStore handles (no module-level state), so tests can hand it an
isolated in-memory database.

Login is a short state machine, terminal on the first rejection:
  1. email/password present           else ValidationError      (400)
  2. email belongs to an account      else InvalidCredentials   (401)
  3. password matches                 else InvalidCredentials   (401)
  4. account has an allowed area?
       no complete coordinate         -> LocationRequired       (400)
       coordinate out of range        -> ValidationError        (400)
       coordinate outside the circle  -> OutOfArea              (403)
  5. issue token + session row, return AuthResult
     (unrestricted accounts skip step 4; an out-of-range coordinate is
     simply not recorded)

Steps 2 and 3 share one generic error and one bcrypt cost (see
auth.tokens.authenticate_user) so neither the message nor the timing tells
an attacker whether the email exists.

Signup is the write path: it establishes the allowed area rather than
enforcing it, so it issues a session without a location check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.store import SessionStore, UserStore
from auth.tokens import authenticate_user, hash_password, sign_token
from core.config import Settings, get_settings
from core.errors import DuplicateAccount, InvalidCredentials, LocationRequired, OutOfArea, ValidationError
from core.geo import Coordinate, is_within_area

logger = logging.getLogger("geoguard.auth")


@dataclass(frozen=True)
class AuthResult:
    """A freshly issued session: the account and the bearer token that names it."""

    user: User
    token: str


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CredentialAuthenticator:
    def __init__(self, users: UserStore, sessions: SessionStore, settings: Settings | None = None) -> None:
        self.users = users
        self.sessions = sessions
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(
        self,
        email: str | None,
        password: str | None,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> AuthResult:
        """Verify credentials (and the geofence, if the account has one) and open a session.

        Raises ValidationError, InvalidCredentials, LocationRequired, or
        OutOfArea. No session row is written unless every check passes.
        """
        if not email or not password:
            raise ValidationError("Email and password are required.")

        user = authenticate_user(self.users, normalize_email(email), password)
        if user is None:
            raise InvalidCredentials()

        coordinate = Coordinate.from_parts(latitude, longitude)
        center = user.allowed_center
        if center is None:
            # Unrestricted accounts log in from anywhere; an unusable sample
            # is not recorded on the session row.
            if coordinate is not None and not coordinate.in_range:
                coordinate = None
        else:
            if coordinate is None:
                raise LocationRequired()
            coordinate.validate()
            radius = user.allowed_radius or self.settings.allowed_radius
            if not is_within_area(coordinate.latitude, coordinate.longitude, center.latitude, center.longitude, radius):
                logger.info("Login refused outside allowed area for user_id=%s", user.id)
                raise OutOfArea()

        return self._issue(user, coordinate)

    # ------------------------------------------------------------------
    # Signup
    # ------------------------------------------------------------------

    def signup(
        self,
        email: str | None,
        password: str | None,
        name: str | None,
        latitude: float | None = None,
        longitude: float | None = None,
        radius: float | None = None,
    ) -> AuthResult:
        """Create an account, optionally pinned to an allowed area, and open its first session.

        Raises ValidationError for missing fields or a half-specified area,
        DuplicateAccount if the email is already registered.
        """
        if not email or not password or not name:
            raise ValidationError("Email, password, and name are required.")
        if (latitude is None) != (longitude is None):
            raise ValidationError("Latitude and longitude must be provided together.")

        center = Coordinate.from_parts(latitude, longitude)
        allowed_radius: float | None = None
        if center is not None:
            center.validate()
            if radius is not None and radius <= 0:
                raise ValidationError("Radius must be a positive number of meters.")
            allowed_radius = radius if radius is not None else self.settings.allowed_radius

        email = normalize_email(email)
        if self.users.get_by_email(email) is not None:
            raise DuplicateAccount()

        user = User(
            email=email,
            name=name.strip(),
            hashed_password=hash_password(password),
            allowed_latitude=center.latitude if center else None,
            allowed_longitude=center.longitude if center else None,
            allowed_radius=allowed_radius,
        )
        try:
            user.id = self.users.create_user(user)
        except IntegrityError as exc:
            # A concurrent signup won the race on the unique email index.
            raise DuplicateAccount() from exc

        logger.info("Account created user_id=%s restricted=%s", user.id, center is not None)
        return self._issue(user, center)

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    def logout(self, token: str | None) -> bool:
        """Delete the one session named by token. Idempotent; other devices stay signed in."""
        if not token:
            return False
        return self.sessions.delete(token)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue(self, user: User, coordinate: Coordinate | None) -> AuthResult:
        token = sign_token(user.id, user.email, expire_seconds=self.settings.session_ttl_seconds)
        self.sessions.create(user.id, token, coordinate, ttl_seconds=self.settings.session_ttl_seconds)
        return AuthResult(user=user, token=token)
