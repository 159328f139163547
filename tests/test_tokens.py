"""Unit tests for auth/tokens.py -- password hashing, JWT signing, token issuance.

Covers:
- bcrypt hash/verify round trip and malformed-hash handling
- Access token claim shape {sub, email, roles, permissions, type} and 15m expiry
- Default roles ["user"] and permissions [] when none are supplied; [] stays []
- Refresh tokens: 64 hex chars, unique, expiry = now + 7 days
- decode_access_token() rejects wrong secret, wrong type, and garbage
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.tokens import (
    PasswordHasher,
    TokenIssuer,
    TokenSigner,
    decode_access_token,
    generate_refresh_token,
    hash_password,
    refresh_token_key,
    verify_password,
)


class TestPasswordHashing:
    def test_round_trip(self) -> None:
        hashed = hash_password("Str0ng!pass", rounds=10)
        assert hashed != "Str0ng!pass"
        assert verify_password("Str0ng!pass", hashed)
        assert not verify_password("wrong", hashed)

    def test_malformed_hash_is_a_mismatch(self) -> None:
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_hasher_uses_requested_cost(self) -> None:
        hashed = PasswordHasher().hash("Str0ng!pass", 11)
        assert hashed.startswith("$2b$11$")

    def test_long_password_verifies(self) -> None:
        long_pw = "Aa1!" * 32  # 128 chars, over bcrypt's 72-byte window
        hashed = hash_password(long_pw, rounds=10)
        assert verify_password(long_pw, hashed)


class TestTokenIssuer:
    def test_access_claims_shape(self, settings) -> None:
        tokens = TokenIssuer(settings).issue("u-1", "a@b.com", ["admin"], ["meals:write"])
        claims = jwt.decode(tokens.access_token, settings.secret_key, algorithms=["HS256"])
        assert claims["sub"] == "u-1"
        assert claims["email"] == "a@b.com"
        assert claims["roles"] == ["admin"]
        assert claims["permissions"] == ["meals:write"]
        assert claims["type"] == "access"

    def test_default_roles_and_permissions(self, settings) -> None:
        tokens = TokenIssuer(settings).issue("u-1", "a@b.com")
        claims = jwt.decode(tokens.access_token, settings.secret_key, algorithms=["HS256"])
        assert claims["roles"] == ["user"]
        assert claims["permissions"] == []

    def test_explicit_empty_roles_are_not_defaulted(self, settings) -> None:
        tokens = TokenIssuer(settings).issue("u-1", "a@b.com", roles=[])
        claims = jwt.decode(tokens.access_token, settings.secret_key, algorithms=["HS256"])
        assert claims["roles"] == []

    def test_access_token_lifetime_is_fifteen_minutes(self, settings) -> None:
        tokens = TokenIssuer(settings).issue("u-1", "a@b.com")
        claims = jwt.decode(tokens.access_token, settings.secret_key, algorithms=["HS256"])
        assert claims["exp"] - claims["iat"] == 15 * 60

    def test_refresh_token_is_opaque_hex(self, settings) -> None:
        tokens = TokenIssuer(settings).issue("u-1", "a@b.com")
        assert len(tokens.refresh_token) == 64
        int(tokens.refresh_token, 16)  # raises if not hex
        assert tokens.refresh_token.count(".") == 0  # not a JWT

    def test_refresh_expiry_is_seven_days(self, settings) -> None:
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        tokens = TokenIssuer(settings).issue("u-1", "a@b.com", now=now)
        assert tokens.refresh_expires_at == now + timedelta(days=7)

    def test_each_issue_mints_a_new_refresh_token(self, settings) -> None:
        issuer = TokenIssuer(settings)
        assert issuer.issue("u-1", "a@b.com").refresh_token != issuer.issue("u-1", "a@b.com").refresh_token


class TestRefreshTokenPrimitives:
    def test_generate_is_unique(self) -> None:
        assert len({generate_refresh_token() for _ in range(100)}) == 100

    def test_key_is_deterministic_and_secret_bound(self) -> None:
        raw = generate_refresh_token()
        assert refresh_token_key(raw, "s" * 32) == refresh_token_key(raw, "s" * 32)
        assert refresh_token_key(raw, "s" * 32) != refresh_token_key(raw, "t" * 32)
        assert refresh_token_key(raw, "s" * 32) != raw


class TestDecodeAccessToken:
    def test_valid_token(self, settings) -> None:
        tokens = TokenIssuer(settings).issue("u-1", "a@b.com")
        payload = decode_access_token(tokens.access_token, settings)
        assert payload is not None
        assert payload["sub"] == "u-1"

    def test_wrong_secret(self, settings) -> None:
        token = TokenSigner().sign({"sub": "u-1", "type": "access"}, "x" * 32, "15m")
        assert decode_access_token(token, settings) is None

    def test_wrong_type(self, settings) -> None:
        token = TokenSigner().sign({"sub": "u-1", "type": "refresh"}, settings.secret_key, "15m")
        assert decode_access_token(token, settings) is None

    def test_expired(self, settings) -> None:
        token = jwt.encode(
            {"sub": "u-1", "type": "access", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
            settings.secret_key,
            algorithm="HS256",
        )
        assert decode_access_token(token, settings) is None

    @pytest.mark.parametrize("garbage", ["", "abc", "a.b.c"])
    def test_garbage(self, settings, garbage) -> None:
        assert decode_access_token(garbage, settings) is None
