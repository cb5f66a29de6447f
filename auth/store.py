"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper (same as org/store.py).
UserStore is the repository; _row_to_user is the mapper.
Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Listing filters arrive as a core.filters.FilterDescriptor whose field names
  were resolved through an allow-list, never from raw query strings.

Ordering:
  Listings are ordered by created_at DESC with id DESC as the tie-breaker, so
  offset/limit pages are stable even when two accounts share a timestamp.

users_table is public: org/store.py reads department_id from it to count the
users attached to a department. The department_id column is a plain integer
(weak reference), not a foreign key, because departments live in org/.

Layer rule: no imports from api/, org/, or client/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine

from auth.models import User
from core.config import get_settings
from core.filters import MATCH_ALL, FilterDescriptor

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users_table = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),  # stored lower-cased
    Column("username", String(255), unique=True),  # NULL when not set
    Column("hashed_password", Text),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("banned", Integer, nullable=False, server_default="0"),
    Column("ban_reason", Text),
    Column("ban_expires", String(32)),
    Column("department_id", Integer, index=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("last_login", String(32)),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def _register_unicode_lower(dbapi_conn, connection_record) -> None:
    """Replace SQLite's ASCII-only lower() with Python's str.lower.

    Case-insensitive search compiles to lower(column) and lowercases the
    term in Python, so both sides must fold the same way for names like
    "Émile".
    """
    dbapi_conn.create_function("lower", 1, _unicode_lower, deterministic=True)


def make_engine(db_url: str) -> Engine:
    """Create an engine with the SQLite connection settings both stores need."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
        event.listen(engine, "connect", _register_unicode_lower)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def normalize_username(username: str | None) -> str | None:
    value = (username or "").strip()
    return value or None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        store.create_user(User(name="Admin", email="admin@example.com", role="admin"))
        user = store.get_by_login("admin@example.com")
        store.close()
    """

    # Columns update_user() accepts. Anything else is a programming error.
    _MUTABLE_FIELDS: set = {
        "name",
        "role",
        "hashed_password",
        "banned",
        "ban_reason",
        "ban_expires",
        "department_id",
        "is_active",
    }

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Health / first run
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def has_users(self) -> bool:
        """Return True if at least one user record exists.

        Used by the setup guard middleware and POST /setup to detect
        first-run state.
        """
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users_table)).scalar()
        return (result or 0) > 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email or username is
        already taken. Callers map that to 409.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                users_table.insert().values(
                    name=user.name,
                    email=normalize_email(user.email),
                    username=normalize_username(user.username),
                    hashed_password=user.hashed_password,
                    role=user.role,
                    banned=1 if user.banned else 0,
                    ban_reason=user.ban_reason,
                    ban_expires=user.ban_expires,
                    department_id=user.department_id,
                    created_at=now,
                    updated_at=now,
                    is_active=1 if user.is_active else 0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Boolean fields (banned, is_active) are converted to 0/1 for SQLite.
        updated_at is stamped on every successful call.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - self._MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        for flag in ("banned", "is_active"):
            if flag in fields:
                fields[flag] = 1 if fields[flag] else 0
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(users_table.update().where(users_table.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.connect() as conn:
            conn.execute(users_table.update().where(users_table.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users_table.select().where(users_table.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                users_table.select().where(users_table.c.email == normalize_email(email))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users_table.select().where(users_table.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_login(self, identifier: str) -> User | None:
        """Resolve a login identifier: email when it contains '@', else username."""
        identifier = (identifier or "").strip()
        if not identifier:
            return None
        if "@" in identifier:
            return self.get_by_email(identifier)
        return self.get_by_username(identifier)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def find_users(self, where: FilterDescriptor = MATCH_ALL, limit: int = 10, offset: int = 0) -> list[User]:
        """Return one page of users matching `where`, newest first."""
        stmt = users_table.select()
        clause = where.where(users_table)
        if clause is not None:
            stmt = stmt.where(clause)
        stmt = (
            stmt.order_by(users_table.c.created_at.desc(), users_table.c.id.desc())
            .limit(limit)
            .offset(offset)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_users(self, where: FilterDescriptor = MATCH_ALL) -> int:
        """Return the number of users matching `where` (all users by default)."""
        stmt = select(func.count()).select_from(users_table)
        clause = where.where(users_table)
        if clause is not None:
            stmt = stmt.where(clause)
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    def count_active_admins(self) -> int:
        """Return the number of active, unbanned admin users.

        Used to refuse demoting the last admin.
        """
        stmt = (
            select(func.count())
            .select_from(users_table)
            .where(users_table.c.role == "admin")
            .where(users_table.c.is_active == 1)
            .where(users_table.c.banned == 0)
        )
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        username=row.username,
        hashed_password=row.hashed_password,
        role=row.role,
        banned=bool(row.banned),
        ban_reason=row.ban_reason,
        ban_expires=row.ban_expires,
        department_id=row.department_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        is_active=bool(row.is_active),
        last_login=row.last_login,
    )
