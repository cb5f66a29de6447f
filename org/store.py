"""
org/store.py -- SQLAlchemy-backed persistence layer for departments.

Uses SQLAlchemy Core (not ORM) so the dataclasses in org/models.py remain the
authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. DepartmentStore is the repository;
_row_to_department is the mapper. Route handlers never touch SQL directly.

Name uniqueness:
  Routes check for a case-insensitive duplicate before writing so they can
  answer 409 with a precise message. The check alone is racy (two concurrent
  creates can both pass it), so the table also carries a UNIQUE name_key
  column holding the normalised name. The loser of a race gets IntegrityError,
  which the routes map to the same 409.

User counts:
  user_count is derived from auth.store.users_table.department_id, which
  must live in the same database. The store creates that table if it is
  missing so a fresh database works regardless of which store opens first.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = DepartmentStore()                               # SQLite default
    store = DepartmentStore("postgresql://user:pw@host/db") # PostgreSQL
    dept_id = store.create_department(Department(name="Engineering"))
    page = store.list_departments(build_department_filter("eng"), limit=10, offset=0)
    store.close()
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, exists, func, select
from sqlalchemy.engine import Engine

from auth.store import make_engine, users_table
from core.config import get_settings
from core.filters import MATCH_ALL, FilterDescriptor
from org.models import Department

logger = logging.getLogger("orgdesk.org")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

departments_table = Table(
    "departments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("name_key", String(255), nullable=False, unique=True),  # normalised name
    Column("description", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_user_count = func.count(users_table.c.id).label("user_count")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def name_key(name: str) -> str:
    """Normalised form used for case-insensitive uniqueness ("Eng" == " eng ")."""
    return " ".join((name or "").split()).casefold()


def _with_user_counts():
    """SELECT departments.* plus the number of users pointing at each row."""
    return (
        select(departments_table, _user_count)
        .select_from(
            departments_table.outerjoin(users_table, users_table.c.department_id == departments_table.c.id)
        )
        .group_by(departments_table.c.id)
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class DepartmentStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        metadata.create_all(self.engine)
        users_table.create(self.engine, checkfirst=True)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_department(self, department: Department) -> int:
        """Insert a department and return its ID.

        Raises sqlalchemy.exc.IntegrityError when the normalised name is taken.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                departments_table.insert().values(
                    name=department.name.strip(),
                    name_key=name_key(department.name),
                    description=department.description,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            dept_id = result.inserted_primary_key[0]
        logger.info("Department %s created (%r)", dept_id, department.name)
        return dept_id

    def update_department(self, dept_id: int, name: str, description: Optional[str]) -> bool:
        """Rename / redescribe a department. Returns False if dept_id does not exist.

        Raises sqlalchemy.exc.IntegrityError when the new name collides.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                departments_table.update()
                .where(departments_table.c.id == dept_id)
                .values(
                    name=name.strip(),
                    name_key=name_key(name),
                    description=description,
                    updated_at=_now_iso(),
                )
            )
            conn.commit()
        return result.rowcount > 0

    def delete_department(self, dept_id: int) -> bool:
        """Delete a department that has no users attached.

        The emptiness condition is part of the DELETE statement itself, so a
        user assigned between the caller's check and this call still blocks
        the delete. Returns True only if a row was removed.
        """
        has_users = exists().where(users_table.c.department_id == dept_id)
        with self.engine.connect() as conn:
            result = conn.execute(
                departments_table.delete().where(departments_table.c.id == dept_id).where(~has_users)
            )
            conn.commit()
        if result.rowcount:
            logger.info("Department %s deleted", dept_id)
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_department(self, dept_id: int) -> Optional[Department]:
        """Return the department with its user_count, or None."""
        stmt = _with_user_counts().where(departments_table.c.id == dept_id)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_department(row) if row is not None else None

    def find_by_name(self, name: str, exclude_id: Optional[int] = None) -> Optional[Department]:
        """Case-insensitive name lookup, optionally ignoring one department (for renames)."""
        stmt = departments_table.select().where(departments_table.c.name_key == name_key(name))
        if exclude_id is not None:
            stmt = stmt.where(departments_table.c.id != exclude_id)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_department(row) if row is not None else None

    def get_names(self, dept_ids: Iterable[int]) -> dict[int, str]:
        """Map department ids to names in one query. Unknown ids are omitted."""
        ids = {i for i in dept_ids if i is not None}
        if not ids:
            return {}
        stmt = select(departments_table.c.id, departments_table.c.name).where(departments_table.c.id.in_(ids))
        with self.engine.connect() as conn:
            return {row.id: row.name for row in conn.execute(stmt)}

    def count_users(self, dept_id: int) -> int:
        stmt = select(func.count()).select_from(users_table).where(users_table.c.department_id == dept_id)
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_departments(
        self, where: FilterDescriptor = MATCH_ALL, limit: int = 10, offset: int = 0
    ) -> list[Department]:
        """Return one page of departments, newest first, id DESC as tie-breaker."""
        stmt = _with_user_counts()
        clause = where.where(departments_table)
        if clause is not None:
            stmt = stmt.where(clause)
        stmt = (
            stmt.order_by(departments_table.c.created_at.desc(), departments_table.c.id.desc())
            .limit(limit)
            .offset(offset)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_department(r) for r in rows]

    def count_departments(self, where: FilterDescriptor = MATCH_ALL) -> int:
        stmt = select(func.count()).select_from(departments_table)
        clause = where.where(departments_table)
        if clause is not None:
            stmt = stmt.where(clause)
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_department(row) -> Department:
    # Rows from plain selects carry no user_count column.
    return Department(
        id=row.id,
        name=row.name,
        description=row.description,
        created_at=row.created_at,
        updated_at=row.updated_at,
        user_count=getattr(row, "user_count", 0) or 0,
    )
