"""
core/filters.py -- List query builder for the user and department listings.

Turns raw query parameters into a FilterDescriptor: a closed, validated
description of which records a listing should return. The descriptor is
storage-agnostic -- it can be evaluated in Python (matches()) or compiled to a
SQLAlchemy clause (where()) by the stores.

Security:
  Field names reach SQL only through the FieldSpec allow-lists below. A filter
  on an unknown field raises FilterError instead of being passed through, so a
  query string can never name an arbitrary column (e.g. hashed_password).

Composition is always conjunctive: every predicate in all_of must hold, and
when any_of is non-empty at least one of its predicates must hold too.

Layer rule: no imports from api/, auth/, org/, or client/.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.sql.elements import ColumnElement


class FilterError(ValueError):
    """Raised when a filter parameter names an unknown field or a bad value."""


class Operator(str, Enum):
    eq = "eq"
    contains = "contains"


@dataclass(frozen=True)
class Predicate:
    field: str  # column name, already resolved through a FieldSpec
    operator: Operator
    value: Any

    def matches(self, record: Mapping[str, Any]) -> bool:
        actual = record.get(self.field)
        if self.operator is Operator.eq:
            return actual == self.value
        if actual is None:
            return False
        return str(self.value).lower() in str(actual).lower()

    def clause(self, table) -> ColumnElement:
        column = table.c[self.field]
        if self.operator is Operator.eq:
            return column == self.value
        return func.lower(column).contains(str(self.value).lower(), autoescape=True)


@dataclass(frozen=True)
class FilterDescriptor:
    """Conjunction of predicates, optionally AND-ed with one OR group."""

    all_of: tuple[Predicate, ...] = ()
    any_of: tuple[Predicate, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.all_of and not self.any_of

    def and_(self, other: "FilterDescriptor") -> "FilterDescriptor":
        """Return a descriptor matching records that satisfy both self and other.

        Two non-empty OR groups cannot be flattened into one, so the second
        group is rejected rather than silently widened.
        """
        if self.any_of and other.any_of:
            raise FilterError("Cannot combine two any_of groups.")
        return FilterDescriptor(
            all_of=self.all_of + other.all_of,
            any_of=self.any_of or other.any_of,
        )

    def matches(self, record: Mapping[str, Any]) -> bool:
        if not all(p.matches(record) for p in self.all_of):
            return False
        if self.any_of and not any(p.matches(record) for p in self.any_of):
            return False
        return True

    def where(self, table) -> Optional[ColumnElement]:
        """Compile to a SQLAlchemy clause against `table`, or None for match-all."""
        if self.is_empty:
            return None
        clauses = [p.clause(table) for p in self.all_of]
        if self.any_of:
            clauses.append(or_(*(p.clause(table) for p in self.any_of)))
        return and_(*clauses) if len(clauses) > 1 else clauses[0]


MATCH_ALL = FilterDescriptor()


# ---------------------------------------------------------------------------
# Field allow-lists
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldSpec:
    column: str
    kind: type = str  # str | bool | int
    searchable: bool = False

    def coerce(self, raw: str) -> Any:
        """Convert a query-string value to the column's type."""
        if self.kind is bool:
            lowered = raw.strip().lower()
            if lowered in ("true", "1", "yes"):
                return True
            if lowered in ("false", "0", "no"):
                return False
            raise FilterError(f"{self.column} expects true or false, got {raw[:50]!r}.")
        if self.kind is int:
            try:
                return int(raw.strip())
            except ValueError as exc:
                raise FilterError(f"{self.column} expects an integer, got {raw[:50]!r}.") from exc
        return raw


USER_FIELDS: dict[str, FieldSpec] = {
    "name": FieldSpec("name", searchable=True),
    "email": FieldSpec("email", searchable=True),
    "username": FieldSpec("username", searchable=True),
    "role": FieldSpec("role"),
    "banned": FieldSpec("banned", kind=bool),
    "departmentId": FieldSpec("department_id", kind=int),
    "department_id": FieldSpec("department_id", kind=int),
}

DEPARTMENT_SEARCH_COLUMNS: tuple[str, ...] = ("name", "description")


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def build_user_filter(
    search_value: Optional[str] = None,
    search_field: Optional[str] = None,
    filter_field: Optional[str] = None,
    filter_value: Optional[str] = None,
    filter_operator: Optional[str] = None,
) -> FilterDescriptor:
    """Build the descriptor behind GET /users.

    search_* -- applied only when both are given. An unknown search_field is
                ignored: the search box only offers allow-listed fields, so an
                unexpected value means "no search", not an attack.
    filter_* -- applied only when field and value are given. Unknown fields,
                unknown operators, `contains` on a non-text field, and values
                that do not coerce to the field type raise FilterError.
    """
    predicates: list[Predicate] = []

    if search_value and search_field:
        spec = USER_FIELDS.get(search_field)
        if spec is not None and spec.searchable:
            predicates.append(Predicate(spec.column, Operator.contains, search_value))

    if filter_field and filter_value is not None and filter_value != "":
        spec = USER_FIELDS.get(filter_field)
        if spec is None:
            raise FilterError(f"Unknown filter field {filter_field[:50]!r}.")
        try:
            operator = Operator(filter_operator or Operator.eq.value)
        except ValueError as exc:
            raise FilterError(f"Unknown filter operator {str(filter_operator)[:20]!r}.") from exc
        if operator is Operator.contains and spec.kind is not str:
            raise FilterError(f"Operator 'contains' is not supported on {filter_field!r}.")
        predicates.append(Predicate(spec.column, operator, spec.coerce(filter_value)))

    return FilterDescriptor(all_of=tuple(predicates))


def build_department_filter(search: Optional[str] = None) -> FilterDescriptor:
    """Free-text search over department name OR description."""
    term = (search or "").strip()
    if not term:
        return MATCH_ALL
    return FilterDescriptor(any_of=tuple(Predicate(col, Operator.contains, term) for col in DEPARTMENT_SEARCH_COLUMNS))
