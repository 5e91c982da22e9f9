"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Tokens arrive only as an `Authorization: Bearer <token>` header. The client
poller and the CLI hold the token in memory; there is no cookie flow.

bearer_token() is the soft variant (returns None when the header is absent).
get_current_session() resolves a live Session or raises AuthError (401).
get_current_user() additionally loads the owning User.

Errors are raised as core.errors types; api/main.py renders them.

Layer rule: no imports from api/ or client/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.models import Session, User
from auth.tokens import resolve_session
from core.errors import AuthError


def bearer_token(request: Request) -> str | None:
    """Return the raw token from the Authorization header, or None."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_current_session(request: Request) -> Session:
    """Require a verified token with a live session row. Raises AuthError otherwise.

    Expired rows are deleted by the store on lookup, so a stale token also
    cleans up after itself here.
    """
    return resolve_session(request.app.state.session_store, bearer_token(request))


def get_current_user(request: Request, session: Session = Depends(get_current_session)) -> User:
    """Require authentication and return the session's owner.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = request.app.state.user_store.get_by_id(session.user_id)
    if user is None:
        raise AuthError("Session not found or expired.")
    return user
