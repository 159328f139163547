"""
auth/manager.py -- Credential validation and the session lifecycle state machine.

SessionManager is the only auth component route handlers talk to. Its four
operations (login, register, refresh, logout) are synchronous and fail fast
with a typed SessionError; none retries.

Session states for a (user, refresh token) pair:
  Active -> Rotated  (refresh, or a new login/register for the same user)
  Active -> Revoked  (logout)
  Active -> Expired  (refresh after expires_at, or the background sweep)
All three are terminal: the record leaves the store. The same user may later
hold a new Active session under a different token value.

Security:
  [C1] CredentialValidator runs bcrypt even when the email is unknown, and
       returns None for every failure mode, so neither timing nor error shape
       reveals which emails are registered.
  Replay: refresh() consumes the presented token through
       RefreshTokenStore.rotate(), which succeeds at most once per token.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from auth.errors import InvalidCredentials, InvalidRefreshToken, RefreshTokenExpired, UserAlreadyExists
from auth.models import AuthResult, User, UserView
from auth.sessions import RefreshTokenStore
from auth.store import UserStore
from auth.tokens import PasswordHasher, TokenIssuer
from core.config import Settings, get_settings

logger = logging.getLogger("nutritrack.auth")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Credential validation (constant-time) [C1]
# ---------------------------------------------------------------------------


class CredentialValidator:
    """Checks an email/password pair. Read-only; never raises for a bad login."""

    def __init__(self, user_store: UserStore, hasher: PasswordHasher | None = None) -> None:
        self._users = user_store
        self._hasher = hasher or PasswordHasher()

    def validate(self, email: str, password: str) -> UserView | None:
        """Return the matching user's public view, or None on any failure.

        Unknown email and missing stored hash still pay one bcrypt round
        against the dummy hash -- do NOT return early before hashing [C1].
        """
        user = self._users.find_by_email(email)
        if user is None or not user.hashed_password:
            self._hasher.burn(password)
            return None
        if not self._hasher.verify(password, user.hashed_password):
            return None
        if not user.is_active:
            return None
        return UserView.from_user(user)


# ---------------------------------------------------------------------------
# Session manager
# ---------------------------------------------------------------------------


class SessionManager:
    """Orchestrates login, register, refresh and logout over the shared stores.

    Usage:
        manager = SessionManager(user_store, RefreshTokenStore(settings.secret_key))
        result = manager.login("a@b.com", "S3cret!pass")
        result = manager.refresh(result.refresh_token)
        manager.logout(result.user.id)
    """

    def __init__(
        self,
        user_store: UserStore,
        session_store: RefreshTokenStore,
        *,
        settings: Settings | None = None,
        hasher: PasswordHasher | None = None,
        issuer: TokenIssuer | None = None,
        validator: CredentialValidator | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._users = user_store
        self._sessions = session_store
        self._hasher = hasher or PasswordHasher()
        self._issuer = issuer or TokenIssuer(self._settings)
        self._validator = validator or CredentialValidator(user_store, self._hasher)

    @property
    def sessions(self) -> RefreshTokenStore:
        return self._sessions

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> AuthResult:
        """Authenticate and start a session, superseding any existing one."""
        user = self._validator.validate(email, password)
        if user is None:
            logger.info("Login rejected")
            raise InvalidCredentials()
        result = self._start_session(user)
        logger.info("Login succeeded for user %s", user.id)
        return result

    def register(self, email: str, name: str, password: str, timezone: str | None = None) -> AuthResult:
        """Create an account and start its first session.

        UserStore.create() is never reached for an email that already exists.
        A duplicate that slips past the check (concurrent registration) is
        caught at the UNIQUE constraint and reported the same way.
        """
        if self._users.find_by_email(email) is not None:
            raise UserAlreadyExists()

        hashed = self._hasher.hash(password, self._settings.bcrypt_rounds)
        candidate = User(email=email, name=name, hashed_password=hashed, timezone=timezone or "UTC")
        try:
            created = self._users.create(candidate)
        except IntegrityError as exc:
            raise UserAlreadyExists() from exc

        result = self._start_session(UserView.from_user(created))
        logger.info("Registered user %s", created.id)
        return result

    def refresh(self, refresh_token: str) -> AuthResult:
        """Exchange a live refresh token for a new token pair (rotation).

        The presented token is unusable afterwards. If a concurrent refresh
        consumed it first, this call fails with InvalidRefreshToken.
        """
        record = self._sessions.get(refresh_token)
        if record is None:
            raise InvalidRefreshToken()

        now = _utcnow()
        if record.is_expired(now):
            self._sessions.delete(refresh_token)
            logger.info("Expired refresh token presented for user %s", record.user_id)
            raise RefreshTokenExpired()

        user = self._users.find_one(record.user_id)
        if user is None or not user.is_active:
            self._sessions.delete(refresh_token)
            raise InvalidRefreshToken()

        view = UserView.from_user(user)
        tokens = self._issuer.issue(view.id, view.email, view.roles, view.permissions, now=now)
        if self._sessions.rotate(refresh_token, tokens.refresh_token, tokens.refresh_expires_at) is None:
            logger.warning("Refresh token for user %s was consumed concurrently", record.user_id)
            raise InvalidRefreshToken()

        logger.info("Rotated refresh session for user %s", view.id)
        return AuthResult(access_token=tokens.access_token, refresh_token=tokens.refresh_token, user=view)

    def logout(self, user_id: str) -> bool:
        """Revoke the user's current session. Idempotent.

        Returns True if a session was revoked, False if there was none.
        """
        revoked = self._sessions.revoke_user(user_id)
        if revoked:
            logger.info("Revoked refresh session for user %s", user_id)
        return revoked

    def get_profile(self, user_id: str) -> UserView | None:
        """Return the public view of a user, or None if the account is gone or deactivated."""
        user = self._users.find_one(user_id)
        if user is None or not user.is_active:
            return None
        return UserView.from_user(user)

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Purge expired sessions. Called from the background sweep task."""
        return self._sessions.sweep_expired(now)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _start_session(self, user: UserView) -> AuthResult:
        tokens = self._issuer.issue(user.id, user.email, user.roles, user.permissions)
        self._sessions.put(tokens.refresh_token, user.id, tokens.refresh_expires_at)
        return AuthResult(access_token=tokens.access_token, refresh_token=tokens.refresh_token, user=user)
