"""
auth/store.py -- SQLAlchemy Core persistence layer for users and sessions.

Pattern: Repository + Data Mapper. UserStore and SessionStore are the
repositories; _row_to_user / _row_to_session are the mappers. Route and
service code never touches SQL directly.

Both stores are explicit handles: the API lifespan builds one of each and
injects them into the authenticator and the geofence enforcer. Tests build
their own against an in-memory database, so no module-level store exists.

Security:
  All queries use bound parameters. No f-strings in SQL.

Concurrency:
  Every method opens its own connection and commits before returning, so no
  transaction spans two requests. delete_all_for_user() is a single DELETE
  statement -- atomic in the backing store. A session created after it
  returns survives; one created concurrently may or may not.

Indexes:
  users.email      UNIQUE -- duplicate signups fail at the DB even under a race.
  sessions.user_id        -- bulk revocation on geofence violation.
  sessions.expires_at     -- expiry sweeps in purge_expired().

Layer rule: no imports from api/ or client/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine

from auth.models import Session, User
from core.config import get_settings
from core.geo import Coordinate

logger = logging.getLogger("geoguard.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("allowed_latitude", Float),  # NULL = no restriction
    Column("allowed_longitude", Float),
    Column("allowed_radius", Float),  # meters
    Column("created_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("token", Text, primary_key=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("latitude", Float),  # where the login happened, if known
    Column("longitude", Float),
    Column("expires_at", String(32), nullable=False, index=True),  # ISO 8601 UTC
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so pollers reading sessions never block a login write.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _make_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _now_iso() -> str:
    return _now().isoformat(timespec="microseconds")


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///geoguard.db")
        uid = store.create_user(User(email="a@example.com", name="A", hashed_password=hash_password("pw")))
        user = store.get_by_email("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = _make_engine(db_url or get_settings().database_url)

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        The authenticator turns that into DuplicateAccount.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    name=user.name,
                    hashed_password=user.hashed_password,
                    allowed_latitude=user.allowed_latitude,
                    allowed_longitude=user.allowed_longitude,
                    allowed_radius=user.allowed_radius,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact (already normalized) email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("User store health check failed")
            return False

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for Session rows -- the revocable layer on top of signed tokens.

    A token is only accepted while its row exists and has not expired. Every
    read path treats an expired row as absent and deletes it on the spot.
    """

    def __init__(self, db_url: str | None = None, ttl_seconds: int | None = None) -> None:
        settings = get_settings()
        self.engine: Engine = _make_engine(db_url or settings.database_url)
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.session_ttl_seconds

    def create(
        self,
        user_id: int,
        token: str,
        coordinate: Coordinate | None = None,
        ttl_seconds: int | None = None,
    ) -> Session:
        """Insert a new session row. Multiple live sessions per user are allowed."""
        now = _now()
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        session = Session(
            token=token,
            user_id=user_id,
            expires_at=now + timedelta(seconds=ttl),
            latitude=coordinate.latitude if coordinate else None,
            longitude=coordinate.longitude if coordinate else None,
            created_at=now.isoformat(timespec="microseconds"),
        )
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    token=session.token,
                    user_id=session.user_id,
                    latitude=session.latitude,
                    longitude=session.longitude,
                    expires_at=session.expires_at.isoformat(timespec="microseconds"),
                    created_at=session.created_at,
                )
            )
            conn.commit()
        return session

    def find_by_token(self, token: str) -> Session | None:
        """Return the live session for token, or None.

        An expired row is deleted before returning None so it cannot be
        observed by any later reader either.
        """
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.token == token)).fetchone()
        if row is None:
            return None
        session = _row_to_session(row)
        if session.expires_at <= _now():
            self.delete(token)
            logger.debug("Deleted expired session for user_id=%s on read", session.user_id)
            return None
        return session

    def delete(self, token: str) -> bool:
        """Remove one session. Idempotent: returns False if it was already gone."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.token == token))
            conn.commit()
        return result.rowcount > 0

    def delete_all_for_user(self, user_id: int) -> int:
        """Remove every session owned by user_id in one statement. Returns the count removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def purge_expired(self) -> int:
        """Delete all rows whose expiry has passed. Returns the count removed.

        ISO 8601 strings written by this store share one UTC offset format,
        so lexical comparison on the indexed column matches time order.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= _now_iso()))
            conn.commit()
        return result.rowcount

    def count_for_user(self, user_id: int) -> int:
        """Return how many session rows (live or not yet swept) belong to user_id."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_sessions).where(_sessions.c.user_id == user_id)
            ).scalar()
        return result or 0

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("Session store health check failed")
            return False

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        allowed_latitude=row.allowed_latitude,
        allowed_longitude=row.allowed_longitude,
        allowed_radius=row.allowed_radius,
        created_at=row.created_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        token=row.token,
        user_id=row.user_id,
        latitude=row.latitude,
        longitude=row.longitude,
        expires_at=datetime.fromisoformat(row.expires_at),
        created_at=row.created_at,
    )
