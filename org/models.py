"""
org/models.py -- Domain dataclasses for the organisation directory.

Pure data containers with zero logic. Uniqueness and referential rules
(case-insensitive names, no delete while users are attached) live in
org/store.py and the department routes.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Department:
    """A named group users can be attached to.

    name is unique case-insensitively ("Eng" and "eng" collide).
    user_count is derived on read from users.department_id; it is never stored.

    id is None before the record is written to the database.
    """

    name: str
    description: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""
    user_count: int = 0
