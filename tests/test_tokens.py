"""Unit tests for auth/tokens.py -- JWT signing/verification, passwords, session resolution.

Covers:
- sign/verify round trip carries userId and email
- verify_token returns None for empty, segment-less, undecodable, tampered, expired tokens
- decode_token keeps the three failure reasons distinguishable
- tokens are unique even for identical payloads issued at the same instant
- authenticate_user is generic about which check failed
- resolve_session requires both a valid token and a live session row
"""

from __future__ import annotations

import base64
import json
from datetime import datetime, timedelta, timezone

import pytest

from auth.models import User
from auth.tokens import (
    BadSignature,
    Expired,
    MalformedToken,
    authenticate_user,
    decode_token,
    hash_password,
    resolve_session,
    sign_token,
    verify_password,
    verify_token,
)
from core.errors import AuthError


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _unb64(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def _tamper(token: str, **changes) -> str:
    """Rewrite payload claims while keeping the original signature."""
    header, payload, signature = token.split(".")
    claims = json.loads(_unb64(payload))
    claims.update(changes)
    return ".".join([header, _b64(json.dumps(claims).encode()), signature])


class TestSignVerify:
    def test_round_trip(self) -> None:
        token = sign_token(123, "test@example.com")
        payload = verify_token(token)
        assert payload is not None
        assert payload["userId"] == 123
        assert payload["email"] == "test@example.com"
        assert payload["exp"] > payload["iat"]

    def test_three_segments(self) -> None:
        assert len(sign_token(1, "a@example.com").split(".")) == 3

    def test_different_payloads_differ(self) -> None:
        assert sign_token(123, "user1@example.com") != sign_token(456, "user2@example.com")

    def test_same_payload_same_instant_still_differs(self) -> None:
        now = datetime.now(timezone.utc)
        assert sign_token(1, "a@example.com", issued_at=now) != sign_token(1, "a@example.com", issued_at=now)

    def test_default_lifetime_is_session_ttl(self) -> None:
        from core.config import get_settings

        payload = verify_token(sign_token(1, "a@example.com"))
        assert payload["exp"] - payload["iat"] == get_settings().session_ttl_seconds


class TestVerifyRejects:
    @pytest.mark.parametrize("token", ["", "not-a-jwt-token", "one.two", "a.b.c.d", "invalid.token.here"])
    def test_malformed(self, token: str) -> None:
        assert verify_token(token) is None
        with pytest.raises(MalformedToken):
            decode_token(token)

    def test_tampered_payload(self) -> None:
        token = _tamper(sign_token(1, "victim@example.com"), userId=2)
        assert verify_token(token) is None
        with pytest.raises(BadSignature):
            decode_token(token)

    def test_truncated_signature(self) -> None:
        token = sign_token(1, "a@example.com")
        assert verify_token(token[:-4]) is None

    def test_expired(self) -> None:
        issued = datetime.now(timezone.utc) - timedelta(days=8)
        token = sign_token(1, "a@example.com", expire_seconds=7 * 24 * 3600, issued_at=issued)
        assert verify_token(token) is None
        with pytest.raises(Expired):
            decode_token(token)

    def test_missing_identity_claims(self) -> None:
        from jose import jwt

        from core.config import get_settings

        token = jwt.encode({"sub": "x"}, get_settings().secret_key, algorithm="HS256")
        assert verify_token(token) is None
        with pytest.raises(MalformedToken):
            decode_token(token)

    def test_wrong_key(self) -> None:
        from jose import jwt

        token = jwt.encode({"userId": 1, "email": "a@example.com"}, "x" * 40, algorithm="HS256")
        with pytest.raises(BadSignature):
            decode_token(token)


class TestPasswords:
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("s3cret")
        assert hashed != "s3cret"
        assert verify_password("s3cret", hashed)
        assert not verify_password("wrong", hashed)

    def test_long_password_round_trips(self) -> None:
        password = "p" * 128
        assert verify_password(password, hash_password(password))

    def test_only_first_72_bytes_count(self) -> None:
        hashed = hash_password("x" * 72 + "tail-one")
        assert verify_password("x" * 72 + "tail-two", hashed)
        assert not verify_password("y" + "x" * 71 + "tail-one", hashed)

    def test_multibyte_password_over_limit(self) -> None:
        password = "\u00e9" * 100  # 200 bytes in UTF-8
        assert verify_password(password, hash_password(password))

    def test_corrupt_hash_is_mismatch(self) -> None:
        assert not verify_password("s3cret", "not-a-bcrypt-hash")


class TestAuthenticateUser:
    def test_success_and_generic_failures(self, stores) -> None:
        users, _ = stores
        users.create_user(User(email="a@example.com", name="A", hashed_password=hash_password("pw")))
        assert authenticate_user(users, "a@example.com", "pw").email == "a@example.com"
        assert authenticate_user(users, "a@example.com", "nope") is None
        assert authenticate_user(users, "missing@example.com", "pw") is None


class TestResolveSession:
    def test_live_session(self, stores) -> None:
        _, sessions = stores
        token = sign_token(7, "a@example.com")
        sessions.create(7, token)
        assert resolve_session(sessions, token).user_id == 7

    def test_valid_token_without_row_is_rejected(self, stores) -> None:
        _, sessions = stores
        with pytest.raises(AuthError):
            resolve_session(sessions, sign_token(7, "a@example.com"))

    def test_missing_token(self, stores) -> None:
        _, sessions = stores
        with pytest.raises(AuthError):
            resolve_session(sessions, None)

    def test_invalid_token_never_touches_store(self, stores) -> None:
        _, sessions = stores
        token = "invalid.token.here"
        sessions.create(7, token)
        with pytest.raises(AuthError):
            resolve_session(sessions, token)
        # The row is still there: rejection happened before any lookup or delete.
        assert sessions.count_for_user(7) == 1
