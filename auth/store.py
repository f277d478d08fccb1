"""
auth/store.py -- User repository: the storage adapter behind AuthService.

Pattern: Repository + Data Mapper. UserRepository is the fixed interface the
service depends on; SQLUserStore and MemoryUserStore are interchangeable
implementations. _row_to_user is the mapper. Service and route code never
touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(email) and UNIQUE(provider, provider_id) are enforced by the schema.
  Local accounts have provider_id NULL; SQL treats NULLs as distinct in a
  UNIQUE constraint, so any number of local accounts can coexist.

Both stores translate duplicate inserts into UserExistsError and unknown ids
on update into UserNotFoundError so the service sees one error contract
regardless of backend.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from dataclasses import fields, replace
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, UniqueConstraint, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import UserExistsError, UserNotFoundError
from auth.models import AuthProvider, User
from core.config import Settings

logger = logging.getLogger("authtemplate.auth.store")

# Fields callers may change through update_user(). id and created_at are
# owned by the store.
_MUTABLE_FIELDS = {f.name for f in fields(User)} - {"id", "created_at", "updated_at"}


class UserRepository(Protocol):
    """Interface every storage adapter implements."""

    def find_user_by_id(self, user_id: str) -> User | None: ...

    def find_user_by_email(self, email: str) -> User | None: ...

    def find_user_by_provider_id(self, provider: AuthProvider, provider_id: str) -> User | None: ...

    def find_user_by_reset_token(self, hashed_token: str) -> User | None: ...

    def create_user(self, user: User) -> User: ...

    def update_user(self, user_id: str, **changes) -> User: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _check_fields(changes: dict) -> None:
    unknown = set(changes) - _MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")


# ---------------------------------------------------------------------------
# SQL schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255)),
    Column("hashed_password", Text),  # NULL for OAuth-only users
    Column("role", String(30), nullable=False, server_default="user"),
    Column("provider", String(30), nullable=False, server_default="local"),
    Column("provider_id", String(255)),  # provider's stable user ID
    Column("reset_password_token", String(64), index=True),  # SHA-256 hex
    Column("reset_password_expires", String(32)),  # ISO 8601, UTC
    Column("token_version", Integer, nullable=False, server_default="0"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("provider", "provider_id", name="uq_users_provider_identity"),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_columns(changes: dict) -> dict:
    """Convert domain values (enums, datetimes, bools) to column values."""
    values = dict(changes)
    if "provider" in values:
        values["provider"] = AuthProvider(values["provider"]).value
    for key in ("reset_password_expires", "created_at", "updated_at"):
        if key in values:
            values[key] = _to_iso(values[key])
    if "is_active" in values:
        values["is_active"] = 1 if values["is_active"] else 0
    return values


class SQLUserStore:
    """SQLAlchemy Core implementation of UserRepository.

    Usage:
        store = SQLUserStore("sqlite:///./authtemplate.db")
        user = store.create_user(User(email="a@example.com", hashed_password=hash_password("secret")))
        store.find_user_by_email("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def _find_one(self, clause) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(clause)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_user_by_id(self, user_id: str) -> User | None:
        return self._find_one(_users.c.id == user_id)

    def find_user_by_email(self, email: str) -> User | None:
        return self._find_one(_users.c.email == email)

    def find_user_by_provider_id(self, provider: AuthProvider, provider_id: str) -> User | None:
        return self._find_one(
            (_users.c.provider == AuthProvider(provider).value) & (_users.c.provider_id == provider_id)
        )

    def find_user_by_reset_token(self, hashed_token: str) -> User | None:
        return self._find_one(_users.c.reset_password_token == hashed_token)

    def create_user(self, user: User) -> User:
        """Insert a new user and return the stored record with its assigned id.

        Raises UserExistsError if the email or the provider identity is taken.
        """
        now = _now()
        created = replace(user, id=uuid.uuid4().hex, created_at=now, updated_at=now)
        values = _to_columns({f.name: getattr(created, f.name) for f in fields(User)})
        try:
            with self.engine.connect() as conn:
                conn.execute(_users.insert().values(**values))
                conn.commit()
        except IntegrityError as exc:
            raise UserExistsError() from exc
        return created

    def update_user(self, user_id: str, **changes) -> User:
        """Apply changes to an existing user and return the updated record.

        Raises UserNotFoundError if user_id does not exist and UserExistsError
        if the change collides with another account's email or provider identity.
        """
        _check_fields(changes)
        values = _to_columns({**changes, "updated_at": _now()})
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
                conn.commit()
        except IntegrityError as exc:
            raise UserExistsError() from exc
        if result.rowcount == 0:
            raise UserNotFoundError()
        updated = self.find_user_by_id(user_id)
        if updated is None:
            raise UserNotFoundError()
        return updated

    def close(self) -> None:
        self.engine.dispose()


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        role=row.role,
        provider=AuthProvider(row.provider),
        provider_id=row.provider_id,
        reset_password_token=row.reset_password_token,
        reset_password_expires=_from_iso(row.reset_password_expires),
        token_version=row.token_version,
        is_active=bool(row.is_active),
        created_at=_from_iso(row.created_at),
        updated_at=_from_iso(row.updated_at),
    )


# ---------------------------------------------------------------------------
# In-memory adapter
# ---------------------------------------------------------------------------


class MemoryUserStore:
    """Process-local UserRepository backed by a dict.

    Meant for demos and tests. A lock serialises access because FastAPI runs
    sync route handlers in a thread pool. Records are copied on the way in and
    out so callers can never mutate stored state behind the store's back.
    """

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._lock = threading.Lock()

    def _find(self, predicate) -> User | None:
        with self._lock:
            for user in self._users.values():
                if predicate(user):
                    return copy.deepcopy(user)
        return None

    def find_user_by_id(self, user_id: str) -> User | None:
        with self._lock:
            user = self._users.get(user_id)
            return copy.deepcopy(user) if user is not None else None

    def find_user_by_email(self, email: str) -> User | None:
        return self._find(lambda u: u.email == email)

    def find_user_by_provider_id(self, provider: AuthProvider, provider_id: str) -> User | None:
        provider = AuthProvider(provider)
        return self._find(lambda u: u.provider == provider and u.provider_id == provider_id)

    def find_user_by_reset_token(self, hashed_token: str) -> User | None:
        return self._find(lambda u: u.reset_password_token is not None and u.reset_password_token == hashed_token)

    def _conflicts(self, candidate: User) -> bool:
        for other in self._users.values():
            if other.id == candidate.id:
                continue
            if other.email == candidate.email:
                return True
            if (
                candidate.provider_id is not None
                and other.provider == candidate.provider
                and other.provider_id == candidate.provider_id
            ):
                return True
        return False

    def create_user(self, user: User) -> User:
        now = _now()
        created = replace(
            user,
            id=uuid.uuid4().hex,
            provider=AuthProvider(user.provider),
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            if self._conflicts(created):
                raise UserExistsError()
            self._users[created.id] = copy.deepcopy(created)
        return created

    def update_user(self, user_id: str, **changes) -> User:
        _check_fields(changes)
        if "provider" in changes:
            changes["provider"] = AuthProvider(changes["provider"])
        with self._lock:
            existing = self._users.get(user_id)
            if existing is None:
                raise UserNotFoundError()
            updated = replace(existing, **changes, updated_at=_now())
            if self._conflicts(updated):
                raise UserExistsError()
            self._users[user_id] = updated
            return copy.deepcopy(updated)

    def close(self) -> None:
        with self._lock:
            self._users.clear()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_user_store(settings: Settings) -> UserRepository:
    """Build the storage adapter selected by STORAGE_BACKEND."""
    if settings.storage_backend == "memory":
        logger.info("Using in-memory user store (data is lost on restart)")
        return MemoryUserStore()
    logger.info("Using SQL user store")
    return SQLUserStore(settings.database_url)
