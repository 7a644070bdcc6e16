"""
API request and response models for AuthGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Field names follow the wire contract (camelCase where clients send camelCase,
e.g. passwordConfirm). Aliases map them onto snake_case attributes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from auth.models import Role, User

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# bcrypt ignores everything past 72 bytes.
_MAX_PASSWORD_BYTES = 72


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > _MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {_MAX_PASSWORD_BYTES} bytes.")
    return value


# New passwords: at least 8 characters, at most 72 bytes once encoded.
_NewPassword = Annotated[
    str,
    Field(min_length=8, max_length=_MAX_PASSWORD_BYTES),
    AfterValidator(_check_password_bytes),
]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class _EmailBody(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()


class LoginRequest(_EmailBody):
    """Request body for POST /api/v1/users/login."""

    password: str = Field(min_length=1, max_length=255)


class SignupRequest(_EmailBody):
    """Request body for POST /api/v1/users/signup."""

    name: Optional[str] = Field(default=None, max_length=255)
    password: _NewPassword
    password_confirm: str = Field(alias="passwordConfirm", min_length=1, max_length=255)


class ForgotPasswordRequest(_EmailBody):
    """Request body for POST /api/v1/users/forgotPassword."""


class ResetPasswordRequest(BaseModel):
    """Request body for PATCH /api/v1/users/resetPassword/{token}."""

    model_config = ConfigDict(populate_by_name=True)

    password: _NewPassword
    password_confirm: str = Field(alias="passwordConfirm", min_length=1, max_length=255)


class UpdatePasswordRequest(BaseModel):
    """Request body for PATCH /api/v1/users/updatePassword."""

    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(alias="currentPassword", min_length=1, max_length=255)
    password: _NewPassword
    password_confirm: str = Field(alias="passwordConfirm", min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of an identity. Never carries hash or reset fields."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: Optional[str] = None
    role: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Factory Method -- the mapping lives next to the output model."""
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=Role(user.role).value,
            created_at=user.created_at,
        )


class UserData(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: Optional[UserResponse] = None


class UserListData(BaseModel):
    model_config = ConfigDict(frozen=True)

    users: list[UserResponse]


class SuccessResponse(BaseModel):
    """Success envelope: {status: "success", token?, data?, message?}."""

    model_config = ConfigDict(frozen=True)

    status: Literal["success"] = "success"
    token: Optional[str] = None
    message: Optional[str] = None
    data: Optional[UserData | UserListData] = None


class ErrorResponse(BaseModel):
    """Failure envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    status: Literal["fail", "error"]
    code: str
    message: str
    detail: Optional[str] = None

    @classmethod
    def for_status(cls, status_code: int, code: str, message: str, detail: str | None = None) -> "ErrorResponse":
        return cls(
            status="error" if status_code >= 500 else "fail",
            code=code,
            message=message,
            detail=detail,
        )


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
