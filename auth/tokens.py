"""
auth/tokens.py -- Signed identity tokens, password hashing, and session resolution.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       userId, email, iat, exp, and a random jti. The jti makes every token
       unique even when the same user logs in twice in one second -- the
       token doubles as the session table's primary key.

       decode_token() raises one of three TokenError subclasses so logs can
       say *why* a token was rejected (MalformedToken, BadSignature,
       Expired). verify_token() collapses all three to None -- callers only
       ever see "valid payload" or "invalid".

  Passwords: bcrypt used directly (no passlib wrapper). bcrypt.checkpw
       compares in constant time. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered.

  Sessions: a valid signature is necessary but not sufficient. resolve_session()
       also requires a live row in the SessionStore, which is what makes a
       token revocable before its embedded expiry.

SECRET_KEY and token lifetime come from core.config.get_settings().

Layer rule: no imports from api/ or client/.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from core.config import get_settings
from core.errors import AuthError

if TYPE_CHECKING:
    from auth.models import Session, User
    from auth.store import SessionStore, UserStore

logger = logging.getLogger("geoguard.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Token failure taxonomy
# ---------------------------------------------------------------------------


class TokenError(Exception):
    """Base class for reasons a token is rejected. Never escapes verify_token()."""

    reason = "invalid"


class MalformedToken(TokenError):
    reason = "malformed"


class BadSignature(TokenError):
    reason = "bad_signature"


class Expired(TokenError):
    reason = "expired"


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


# bcrypt reads at most 72 bytes; bcrypt>=5 raises on longer input instead of truncating.
_BCRYPT_MAX_BYTES = 72


def _password_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Cost factor comes from Settings.bcrypt_rounds (tests lower it for speed).
    bcrypt only reads the first 72 bytes of a password; _password_bytes
    applies that cut explicitly so bytes 73 and beyond never matter (the API
    accepts up to 128 characters).
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(_password_bytes(plain), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        # Corrupt or non-bcrypt hash in storage -- treat as a mismatch.
        return False


# Timing equalization dummy hash. Computed once at module load so the first
# login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("geoguard_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def sign_token(user_id: int, email: str, expire_seconds: int = 0, issued_at: datetime | None = None) -> str:
    """Encode a signed JWT carrying the user's identity.

    Args:
        user_id:        Numeric user ID stored in the DB.
        email:          The account email at issue time.
        expire_seconds: Lifetime in seconds. If 0 (default), uses
                        Settings.session_ttl_seconds so the token and its
                        session row expire together.
        issued_at:      Override for the issuance instant. Defaults to now.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.session_ttl_seconds
    iat = issued_at or datetime.now(timezone.utc)
    payload = {
        "userId": user_id,
        "email": email,
        "iat": iat,
        "exp": iat + timedelta(seconds=duration),
        "jti": secrets.token_urlsafe(16),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT, raising a TokenError subclass on any failure.

    Structure is checked first (exactly three dot-separated, decodable
    segments), then the signature, then the expiry. python-jose verifies the
    signature before the claims, so a tampered expired token reports
    BadSignature rather than Expired.
    """
    if not token or token.count(".") != 2:
        raise MalformedToken("token must have exactly three segments")
    try:
        jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise MalformedToken(str(exc)) from exc
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise Expired(str(exc)) from exc
    except JWTError as exc:
        raise BadSignature(str(exc)) from exc
    if "userId" not in payload or "email" not in payload:
        raise MalformedToken("payload is missing userId or email")
    return payload


def verify_token(token: str) -> dict | None:
    """Return the payload dict, or None if the token is malformed, tampered, or expired.

    Never raises. The rejection reason is logged at DEBUG for diagnostics but
    is not exposed to the caller.
    """
    try:
        return decode_token(token)
    except TokenError as exc:
        logger.debug("Token rejected (%s): %s", exc.reason, exc)
        return None


# ---------------------------------------------------------------------------
# User authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as a real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Session resolution
# ---------------------------------------------------------------------------


def resolve_session(sessions: SessionStore, token: str | None) -> Session:
    """Return the live Session for a bearer token or raise AuthError.

    A token is accepted only if it verifies (signature, structure, expiry)
    AND its session row still exists. The second check is what lets a
    geofence violation or a logout kill a token that is otherwise valid.
    The session lookup is skipped entirely for tokens that fail to verify.
    """
    if not token:
        raise AuthError("No token provided.")
    payload = verify_token(token)
    if payload is None:
        raise AuthError("Invalid or expired token.")
    session = sessions.find_by_token(token)
    if session is None or session.user_id != payload["userId"]:
        raise AuthError("Session not found or expired.")
    return session
