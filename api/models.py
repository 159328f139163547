"""
API request and response models for NutriTrack auth endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Field rules mirror the web client's form validation: emails are trimmed and
lower-cased before the format check, names are restricted to letters and
common punctuation, and registration passwords must mix character classes.
"""

import re
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from auth.models import AuthResult, UserView

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128
MAX_EMAIL_LENGTH = 254

NAME_PATTERN = r"^[a-zA-Z\s\-'.]+$"
_PASSWORD_STRENGTH_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]")


def _normalize_email(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip().lower()
        if len(value) > MAX_EMAIL_LENGTH:
            raise ValueError(f"Email must not exceed {MAX_EMAIL_LENGTH} characters")
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: EmailStr
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return _normalize_email(value)


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    timezone is optional; when given it must be a valid IANA identifier
    (e.g. "Europe/Paris"). The account defaults to UTC otherwise.
    """

    email: EmailStr
    name: str = Field(min_length=2, max_length=100, pattern=NAME_PATTERN)
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)
    timezone: Optional[str] = Field(default=None, max_length=50)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return _normalize_email(value)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def check_strength(cls, value: str) -> str:
        """Require lower, upper, digit and one of @$!%*?&."""
        if not _PASSWORD_STRENGTH_RE.match(value):
            raise ValueError(
                "Password must contain at least one uppercase letter, one lowercase letter, "
                "one number, and one special character (@$!%*?&)"
            )
        return value

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError("Please provide a valid timezone identifier") from exc
        return value


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh."""

    model_config = ConfigDict(str_strip_whitespace=True)

    refresh_token: str = Field(min_length=1, max_length=256)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserProfile(BaseModel):
    """Public user profile. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    timezone: str
    preferences: dict[str, Any] = Field(default_factory=dict)
    roles: list[str] = Field(default_factory=lambda: ["user"])
    permissions: list[str] = Field(default_factory=list)

    @classmethod
    def from_view(cls, view: UserView) -> "UserProfile":
        return cls(**view.to_dict())


class AuthResponse(BaseModel):
    """Response for login, register and refresh.

    access_token -- signed JWT, valid for ACCESS_TOKEN_TTL (15 minutes default).
    refresh_token -- opaque bearer value, valid for REFRESH_TOKEN_TTL (7 days
        default), single use: every refresh returns a replacement.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserProfile

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthResponse":
        return cls(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            user=UserProfile.from_view(result.user),
        )


class LogoutResponse(BaseModel):
    """Response for POST /api/v1/auth/logout."""

    model_config = ConfigDict(frozen=True)

    message: str = "Logout successful"


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
