"""
API request and response models for OrgDesk REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
org/models.py, which own the internal domain representation. Route handlers
map between the two with the from_* factory methods below.

JSON field names are camelCase (banReason, userCount, departmentId) via an
alias generator; Python attribute names stay snake_case. Request bodies accept
either spelling.

Separation of concerns: domain models = domain truth; api/ models = API contract.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import User
from core.config import get_settings
from org.models import Department

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_PASSWORD_MIN = get_settings().password_min_length
_PASSWORD_MAX = 128
_PASSWORD_MAX_BYTES = 72  # bcrypt refuses longer input
_BAN_EXPIRES_MAX = 10 * 365 * 24 * 60 * 60


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > _PASSWORD_MAX_BYTES:
        raise ValueError(f"password must be at most {_PASSWORD_MAX_BYTES} bytes when UTF-8 encoded")
    return value


class _ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class _ApiResponse(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    user = "user"
    admin = "admin"


# ---------------------------------------------------------------------------
# Errors / health
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response.

    error -- human-readable message, safe to show in the UI as-is
    code  -- machine-readable code (unauthorized, forbidden, conflict, ...)
    """

    model_config = ConfigDict(frozen=True)

    error: str
    code: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(_ApiModel):
    """Request body for POST /api/v1/auth/login. username accepts an email too."""

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class MeResponse(_ApiResponse):
    id: int
    name: str
    email: str
    username: Optional[str]
    role: str

    @classmethod
    def from_user(cls, user: User) -> "MeResponse":
        return cls(id=user.id, name=user.name, email=user.email, username=user.username, role=user.role)


class LoginResponse(_ApiResponse):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: MeResponse


class SetupRequest(_ApiModel):
    """Request body for POST /api/v1/setup -- the first administrator."""

    name: str = Field(default="Administrator", min_length=1, max_length=255)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    username: Optional[str] = Field(default=None, max_length=255)
    password: str = Field(min_length=_PASSWORD_MIN, max_length=_PASSWORD_MAX)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------


class DepartmentWrite(_ApiModel):
    """Request body for POST /departments and PUT /departments/{id}."""

    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)


class DepartmentResponse(_ApiResponse):
    id: int
    name: str
    description: Optional[str]
    created_at: str
    updated_at: str
    user_count: int

    @classmethod
    def from_department(cls, dept: Department) -> "DepartmentResponse":
        return cls(
            id=dept.id,
            name=dept.name,
            description=dept.description,
            created_at=dept.created_at,
            updated_at=dept.updated_at,
            user_count=dept.user_count,
        )


class DepartmentRef(_ApiResponse):
    id: int
    name: str


class _Page(_ApiResponse):
    """Shared listing envelope. records is the [offset, offset + limit) slice."""

    total: int
    limit: int
    offset: int
    page: int
    total_pages: int


class DepartmentPage(_Page):
    records: list[DepartmentResponse]


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserResponse(_ApiResponse):
    id: int
    name: str
    email: str
    username: Optional[str]
    role: str
    banned: bool
    ban_reason: Optional[str]
    ban_expires: Optional[str]
    department_id: Optional[int]
    department: Optional[DepartmentRef] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        department = None
        if user.department_id is not None and user.department_name is not None:
            department = DepartmentRef(id=user.department_id, name=user.department_name)
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            username=user.username,
            role=user.role,
            banned=user.banned,
            ban_reason=user.ban_reason,
            ban_expires=user.ban_expires,
            department_id=user.department_id,
            department=department,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


class UserPage(_Page):
    records: list[UserResponse]


class UserCountResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int


class UserCreate(_ApiModel):
    """Request body for POST /api/v1/users."""

    name: str = Field(min_length=1, max_length=255)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=_PASSWORD_MIN, max_length=_PASSWORD_MAX)
    username: Optional[str] = Field(default=None, max_length=255)
    role: RoleEnum = RoleEnum.user
    department_id: Optional[int] = None

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        """bcrypt rejects input over 72 bytes, which multi-byte characters reach early."""
        return _check_password_bytes(value)


class BanRequest(_ApiModel):
    """Request body for POST /api/v1/users/{id}/ban.

    ban_expires_in is a duration in seconds. It is stored as an absolute
    banExpires timestamp and shown to admins; it does not lift the ban.
    """

    ban_reason: str = Field(min_length=1, max_length=500)
    ban_expires_in: Optional[int] = Field(default=None, ge=1, le=_BAN_EXPIRES_MAX)


class RoleUpdate(_ApiModel):
    role: RoleEnum


class PasswordUpdate(_ApiModel):
    new_password: str = Field(min_length=_PASSWORD_MIN, max_length=_PASSWORD_MAX)

    @field_validator("new_password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class DepartmentAssign(_ApiModel):
    """Request body for PUT /api/v1/users/{id}/department. null detaches."""

    department_id: Optional[int] = None
