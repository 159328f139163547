"""
auth/errors.py -- Typed failures raised by the session lifecycle.

Every error carries a stable machine-readable code and the HTTP status the
transport layer should use. The auth package raises these and never catches
them; api/main.py owns the single handler that renders them.

Wrong-email and wrong-password are deliberately the same error
(InvalidCredentials) so the response shape cannot be used to enumerate users.
"""

from __future__ import annotations


class SessionError(Exception):
    """Base class for all session lifecycle failures."""

    code: str = "session_error"
    status_code: int = 400
    default_message: str = "Session operation failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(SessionError):
    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid credentials."


class UserAlreadyExists(SessionError):
    code = "user_exists"
    status_code = 409
    default_message = "User with this email already exists."


class InvalidRefreshToken(SessionError):
    code = "invalid_refresh_token"
    status_code = 403
    default_message = "Invalid refresh token."


class RefreshTokenExpired(SessionError):
    code = "refresh_token_expired"
    status_code = 403
    default_message = "Refresh token expired."
