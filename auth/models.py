"""
auth/models.py -- Domain dataclasses for authentication and session entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
session manager do the work; these only own domain shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

DEFAULT_ROLES: tuple[str, ...] = ("user",)


@dataclass
class User:
    """A registered NutriTrack account as persisted by UserStore.

    hashed_password is the only secret on the record. It must never leave the
    auth package -- everything handed to callers goes through UserView.
    """

    email: str
    name: str
    id: str | None = None
    hashed_password: str | None = None
    timezone: str = "UTC"
    preferences: dict[str, Any] = field(default_factory=dict)
    roles: list[str] = field(default_factory=lambda: list(DEFAULT_ROLES))
    permissions: list[str] = field(default_factory=list)
    created_at: str | None = None
    is_active: bool = True


@dataclass
class UserView:
    """The user record with its secret stripped -- the only shape callers see.

    Carries list and dict fields, so instances are mutable and unhashable.
    """

    id: str
    email: str
    name: str
    timezone: str
    preferences: dict[str, Any]
    roles: list[str]
    permissions: list[str]

    @classmethod
    def from_user(cls, user: User) -> "UserView":
        """Project a stored User onto the public view, applying role defaults."""
        return cls(
            id=user.id or "",
            email=user.email,
            name=user.name,
            timezone=user.timezone,
            preferences=dict(user.preferences or {}),
            roles=list(user.roles) if user.roles is not None else list(DEFAULT_ROLES),
            permissions=list(user.permissions or []),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "timezone": self.timezone,
            "preferences": dict(self.preferences),
            "roles": list(self.roles),
            "permissions": list(self.permissions),
        }


@dataclass(frozen=True)
class SessionRecord:
    """Server-side state binding a refresh token to a user and its expiry.

    token_key is HMAC-SHA256(SECRET_KEY, raw_refresh_token); the raw value is
    never stored. Frozen: rotation always creates a new record.
    """

    token_key: str
    user_id: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now


@dataclass(frozen=True)
class IssuedTokens:
    """Output of TokenIssuer.issue(): the raw token pair plus its session expiry."""

    access_token: str
    refresh_token: str
    refresh_expires_at: datetime


@dataclass
class AuthResult:
    """What login / register / refresh hand back to the transport layer."""

    access_token: str
    refresh_token: str
    user: UserView


@dataclass
class Principal:
    """Identity decoded from a verified access token by request middleware."""

    user_id: str
    email: str
    roles: list[str]
    permissions: list[str]
    token_type: str = "access"
