"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in org/models.py -- dataclasses own domain shape; stores and routes do the work.

Layer rule: no imports from api/, org/, or client/.
"""

from __future__ import annotations

from dataclasses import dataclass

ROLES: tuple[str, ...] = ("user", "admin")


@dataclass
class User:
    """An account managed by the admin dashboard.

    email is the unique login identity; username is an optional second login
    handle (unique when set). hashed_password is the bcrypt hash and is never
    serialized by the API layer.

    Ban state:
      banned=False                  -> Active
      banned=True, ban_reason set   -> Banned; ban_expires is stored for
                                       display but never applied automatically.

    department_id is a weak reference to org.models.Department -- a lookup
    only. Deleting a department is refused while users still point at it.
    """

    name: str
    email: str
    role: str = "user"  # "user" | "admin"
    username: str | None = None
    id: int | None = None
    hashed_password: str | None = None
    banned: bool = False
    ban_reason: str | None = None
    ban_expires: str | None = None  # ISO 8601
    department_id: int | None = None
    department_name: str | None = None  # populated by listing queries only
    created_at: str | None = None
    updated_at: str | None = None
    is_active: bool = True
    last_login: str | None = None

    def as_record(self) -> dict:
        """Flat mapping used by FilterDescriptor.matches()."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "username": self.username,
            "role": self.role,
            "banned": self.banned,
            "department_id": self.department_id,
        }
