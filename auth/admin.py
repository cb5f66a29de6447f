"""
auth/admin.py -- Account management operations used by the admin routes.

createUser, banUser, unbanUser, setRole, setUserPassword: each call performs
exactly one state change through UserStore and returns the refreshed User, or
None when the target account does not exist. Input validation (reason
required, password length, role enum) happens in the API models before these
functions are reached; the functions only enforce what must hold regardless
of caller.

Ban state machine:
  Active --ban_user(reason, expires_in?)--> Banned(reason, expires?)
  Banned --unban_user()-------------------> Active
  ban_expires is recorded but no code path flips an expired ban back to
  Active; unban_user() is the only way out.

Layer rule: no imports from api/, org/, or client/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from auth.models import ROLES, User
from auth.store import UserStore
from auth.tokens import hash_password

logger = logging.getLogger("orgdesk.auth.admin")


def create_user(
    store: UserStore,
    *,
    name: str,
    email: str,
    password: str,
    role: str = "user",
    username: str | None = None,
    department_id: int | None = None,
) -> User:
    """Create an account with a hashed password.

    Raises sqlalchemy.exc.IntegrityError if the email or username is taken,
    ValueError for an unknown role.
    """
    if role not in ROLES:
        raise ValueError(f"Unknown role {role!r}")
    user_id = store.create_user(
        User(
            name=name,
            email=email,
            username=username,
            role=role,
            hashed_password=hash_password(password),
            department_id=department_id,
        )
    )
    logger.info("User %s created (role=%s)", user_id, role)
    return store.get_by_id(user_id)


def ban_user(store: UserStore, user_id: int, reason: str, expires_in: int | None = None) -> User | None:
    """Move an account to Banned. expires_in is seconds from now, stored only."""
    ban_expires = None
    if expires_in:
        ban_expires = (datetime.now(timezone.utc) + timedelta(seconds=expires_in)).isoformat()
    if not store.update_user(user_id, banned=True, ban_reason=reason, ban_expires=ban_expires):
        return None
    logger.info("User %s banned (expires=%s)", user_id, ban_expires or "never")
    return store.get_by_id(user_id)


def unban_user(store: UserStore, user_id: int) -> User | None:
    """Move an account back to Active and clear the ban details."""
    if not store.update_user(user_id, banned=False, ban_reason=None, ban_expires=None):
        return None
    logger.info("User %s unbanned", user_id)
    return store.get_by_id(user_id)


def set_role(store: UserStore, user_id: int, role: str) -> User | None:
    if role not in ROLES:
        raise ValueError(f"Unknown role {role!r}")
    if not store.update_user(user_id, role=role):
        return None
    logger.info("User %s role set to %s", user_id, role)
    return store.get_by_id(user_id)


def set_user_password(store: UserStore, user_id: int, new_password: str) -> User | None:
    if not store.update_user(user_id, hashed_password=hash_password(new_password)):
        return None
    logger.info("User %s password reset", user_id)
    return store.get_by_id(user_id)


def set_department(store: UserStore, user_id: int, department_id: int | None) -> User | None:
    """Attach the account to a department, or detach it with None.

    The caller verifies the department exists; users.department_id is a weak
    reference with no foreign key behind it.
    """
    if not store.update_user(user_id, department_id=department_id):
        return None
    logger.info("User %s department set to %s", user_id, department_id)
    return store.get_by_id(user_id)
