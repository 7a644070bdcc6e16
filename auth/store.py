"""
auth/store.py -- SQLAlchemy Core persistence layer for identities.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route, gate and orchestrator code never touches SQL directly.

The auth core treats this store as an externally synchronized collaborator:
every method issues one statement inside its own connection and commits it.
Nothing here holds a lock across a read and a later write.

Security:
  All queries use bound parameters. No f-strings in SQL.
  find_by_field() accepts only whitelisted column names.

Timestamps are stored as ISO 8601 strings (UTC) and mapped back to aware
datetimes.

Layer rule: no imports from api/ or mail/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from auth.models import Role, User

_DEFAULT_DB_URL = "sqlite:///authgate.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255)),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("password_changed_at", String(32)),
    Column("password_reset_token", String(64), index=True),  # fingerprint, never the raw secret
    Column("password_reset_expires", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
)

# Columns callers may look identities up by.
_LOOKUP_FIELDS: frozenset[str] = frozenset({"email", "password_reset_token"})


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _validate_user(user: User) -> None:
    """Field checks run by save(validate=True) and create_user()."""
    if not user.email or "@" not in user.email:
        raise ValueError("User email is missing or malformed.")
    if not user.hashed_password:
        raise ValueError("User has no password hash.")
    Role(user.role)  # raises ValueError on an unknown role


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        store.create_user(User(email="a@example.com", hashed_password=hash_password("secret")))
        user = store.find_by_field("email", "a@example.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_field(self, field: str, value: str) -> User | None:
        """Look up a user by one of the whitelisted lookup columns.

        Raises ValueError for any other column name rather than building SQL
        from caller input.
        """
        if field not in _LOOKUP_FIELDS:
            raise ValueError(f"Unsupported lookup field: {field!r}")
        column = _users.c[field]
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(column == value)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by email."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers treat that as a duplicate signup.
        """
        _validate_user(user)
        created_at = user.created_at or _now()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    name=user.name,
                    hashed_password=user.hashed_password,
                    role=Role(user.role).value,
                    password_changed_at=_to_iso(user.password_changed_at),
                    password_reset_token=user.password_reset_token,
                    password_reset_expires=_to_iso(user.password_reset_expires),
                    created_at=_to_iso(created_at),
                    is_active=1 if user.is_active else 0,
                )
            )
            conn.commit()
            user_id = result.inserted_primary_key[0]
        user.id = user_id
        user.created_at = created_at
        return user_id

    def save(self, user: User, validate: bool = True, expected_reset_token: str | None = None) -> bool:
        """Write every mutable field of an existing user in one UPDATE.

        validate=False skips the field checks. The reset flow uses it when it
        only touches the reset fingerprint and expiry.

        expected_reset_token makes the write conditional: the row is updated
        only if it still holds that fingerprint, so a reset secret commits at
        most once.

        Returns True if a row was updated, False if the user no longer exists
        or the expected fingerprint is gone.
        """
        if user.id is None:
            raise ValueError("Cannot save a user that was never created.")
        if validate:
            _validate_user(user)
        stmt = _users.update().where(_users.c.id == user.id)
        if expected_reset_token is not None:
            stmt = stmt.where(_users.c.password_reset_token == expected_reset_token)
        with self.engine.connect() as conn:
            result = conn.execute(
                stmt.values(
                    email=user.email,
                    name=user.name,
                    hashed_password=user.hashed_password,
                    role=Role(user.role).value,
                    password_changed_at=_to_iso(user.password_changed_at),
                    password_reset_token=user.password_reset_token,
                    password_reset_expires=_to_iso(user.password_reset_expires),
                    is_active=1 if user.is_active else 0,
                )
            )
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        password_changed_at=_from_iso(row.password_changed_at),
        password_reset_token=row.password_reset_token,
        password_reset_expires=_from_iso(row.password_reset_expires),
        created_at=_from_iso(row.created_at),
        is_active=bool(row.is_active),
    )
