"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Session manager and route code never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Emails are lower-cased on write and on lookup so "A@b.com" and "a@B.com"
  cannot register as two accounts. UNIQUE(email) backs that up in SQL.

JSON columns (preferences, roles, permissions) are stored as TEXT and decoded
in the mapper -- SQLite has no native JSON column type.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from auth.models import DEFAULT_ROLES, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),  # uuid4 string
    Column("email", String(254), nullable=False, unique=True),
    Column("name", String(100), nullable=False),
    Column("hashed_password", Text),  # NULL = account without a local password
    Column("timezone", String(50), nullable=False, server_default="UTC"),
    Column("preferences", Text, nullable=False, server_default="{}"),  # JSON object
    Column("roles", Text, nullable=False, server_default='["user"]'),  # JSON list
    Column("permissions", Text, nullable=False, server_default="[]"),  # JSON list
    Column("created_at", String(32), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///nutritrack_auth.db")
        created = store.create(User(email="a@b.com", name="A", hashed_password=hash_password("p")))
        user = store.find_by_email("a@b.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == _normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_one(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def create(self, user: User) -> User:
        """Insert a new user and return the stored record (with id and created_at).

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        SessionManager.register() turns that into UserAlreadyExists so a
        concurrent duplicate registration fails the same way as a sequential one.
        """
        user_id = user.id or str(uuid.uuid4())
        roles = list(user.roles) if user.roles is not None else list(DEFAULT_ROLES)
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=_normalize_email(user.email),
                    name=user.name,
                    hashed_password=user.hashed_password,
                    timezone=user.timezone or "UTC",
                    preferences=json.dumps(user.preferences or {}),
                    roles=json.dumps(roles),
                    permissions=json.dumps(list(user.permissions or [])),
                    created_at=_now_iso(),
                    is_active=1 if user.is_active else 0,
                )
            )
            conn.commit()
        created = self.find_one(user_id)
        if created is None:
            raise RuntimeError(f"User {user_id} missing after insert")
        return created

    def delete(self, user_id: str) -> bool:
        """Permanently delete a user record. Returns True if deleted."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(_users.select().limit(1)).fetchall()
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        timezone=row.timezone,
        preferences=json.loads(row.preferences or "{}"),
        roles=json.loads(row.roles),
        permissions=json.loads(row.permissions or "[]"),
        created_at=row.created_at,
        is_active=bool(row.is_active),
    )
