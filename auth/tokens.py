"""
auth/tokens.py -- Password hashing, JWT signing, and refresh token primitives.

Security design decisions:
  JWT: python-jose with HS256. Access tokens carry sub, email, roles,
       permissions and type="access" and live for ACCESS_TOKEN_TTL (15m by
       default). Verification returns None on any failure -- the dependency
       layer turns that into a 401.

  Passwords: bcrypt directly (no passlib wrapper). The cost factor comes from
       Settings.bcrypt_rounds. The _DUMMY_HASH constant enables timing
       equalization in CredentialValidator so response time does not reveal
       whether an email is registered [C1].

  Refresh tokens: secrets.token_hex(32) gives 256 bits of entropy. They are
       capability tokens, not JWTs -- no payload, no signature. The session
       store keeps HMAC-SHA256(SECRET_KEY, raw_token) only, so a dump of the
       store cannot be replayed. bcrypt's slowness is unnecessary here.

  SECRET_KEY: sourced from core.config.get_settings(). Settings refuses to
       start without one outside debug mode [M7].

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt

from auth.models import DEFAULT_ROLES, IssuedTokens
from core.config import Settings, get_settings, parse_duration

logger = logging.getLogger("nutritrack.auth")

_ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_BYTES = 32

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


_BCRYPT_MAX_BYTES = 72


def _password_bytes(plain: str) -> bytes:
    # bcrypt only looks at the first 72 bytes; newer releases raise instead of
    # truncating, so truncate here for both hash and verify.
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(_password_bytes(plain), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash -- treat as a failed match.
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load, at the configured cost, so an unknown-email
# login pays the same bcrypt work as a wrong-password one.
_DUMMY_HASH: str = hash_password("nutritrack_timing_dummy", rounds=get_settings().bcrypt_rounds)


class PasswordHasher:
    """bcrypt-backed hasher with the hash(plain, cost) / verify(plain, hash) contract."""

    def hash(self, plain: str, cost: int) -> str:
        return hash_password(plain, rounds=cost)

    def verify(self, plain: str, hashed: str) -> bool:
        return verify_password(plain, hashed)

    def burn(self, plain: str) -> None:
        """Run one verification against the dummy hash and discard the result [C1]."""
        verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


class TokenSigner:
    """HS256 signer with the sign(claims, secret, ttl) contract."""

    algorithm = _ALGORITHM

    def sign(self, claims: dict[str, Any], secret: str, ttl: str | timedelta) -> str:
        """Encode claims as a compact JWT that expires ttl from now.

        ttl accepts a timedelta or a duration string such as "15m".
        """
        lifetime = ttl if isinstance(ttl, timedelta) else parse_duration(ttl)
        now = datetime.now(timezone.utc)
        payload = dict(claims)
        payload["iat"] = now
        payload["exp"] = now + lifetime
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def verify(self, token: str, secret: str) -> dict[str, Any] | None:
        """Decode and verify a JWT. Returns the payload dict or None on any failure."""
        try:
            return jwt.decode(token, secret, algorithms=[self.algorithm])
        except JWTError:
            return None


def decode_access_token(token: str, settings: Settings | None = None) -> dict[str, Any] | None:
    """Verify an access token and return its claims, or None.

    Rejects tokens whose type claim is not "access" and tokens missing sub,
    so a token minted for another purpose cannot authenticate a request.
    """
    settings = settings or get_settings()
    payload = TokenSigner().verify(token, settings.secret_key)
    if payload is None:
        return None
    if payload.get("type") != ACCESS_TOKEN_TYPE or not payload.get("sub"):
        return None
    return payload


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------


def generate_refresh_token() -> str:
    """Return 32 random bytes as 64 hex characters. Opaque; carries no payload."""
    return secrets.token_hex(REFRESH_TOKEN_BYTES)


def refresh_token_key(raw_token: str, secret: str) -> str:
    """Return HMAC-SHA256(secret, raw_token) as hex -- the at-rest session key.

    Deterministic so the store can do an O(1) lookup by key.
    """
    return hmac.new(secret.encode("utf-8"), raw_token.encode("utf-8"), hashlib.sha256).hexdigest()


# ---------------------------------------------------------------------------
# Token issuance
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Builds access-token claims, signs them, and mints a fresh refresh token.

    Does not touch the session store -- SessionManager persists the result.

    Usage:
        issuer = TokenIssuer()
        tokens = issuer.issue(user.id, user.email, user.roles, user.permissions)
    """

    def __init__(self, settings: Settings | None = None, signer: TokenSigner | None = None) -> None:
        self._settings = settings or get_settings()
        self._signer = signer or TokenSigner()

    @property
    def refresh_lifetime(self) -> timedelta:
        return self._settings.refresh_token_lifetime

    def build_claims(
        self,
        user_id: str,
        email: str,
        roles: list[str] | None = None,
        permissions: list[str] | None = None,
    ) -> dict[str, Any]:
        return {
            "sub": user_id,
            "email": email,
            "roles": list(roles) if roles is not None else list(DEFAULT_ROLES),
            "permissions": list(permissions or []),
            "type": ACCESS_TOKEN_TYPE,
        }

    def issue(
        self,
        user_id: str,
        email: str,
        roles: list[str] | None = None,
        permissions: list[str] | None = None,
        now: datetime | None = None,
    ) -> IssuedTokens:
        """Return a signed access token, a new refresh token, and its expiry."""
        claims = self.build_claims(user_id, email, roles, permissions)
        access_token = self._signer.sign(claims, self._settings.secret_key, self._settings.access_token_ttl)
        issued_at = now or datetime.now(timezone.utc)
        return IssuedTokens(
            access_token=access_token,
            refresh_token=generate_refresh_token(),
            refresh_expires_at=issued_at + self.refresh_lifetime,
        )
