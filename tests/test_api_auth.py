"""
tests/test_api_auth.py -- Integration tests for the /api/v1/auth routes.

Covers:
  - POST /auth/register: 201 with token pair + profile, 409 on duplicate, 422 on bad input
  - POST /auth/login: 200 on success, identical 401 for wrong email and wrong password
  - POST /auth/refresh: rotation, 403 invalid_refresh_token on replay
  - POST /auth/logout: requires Bearer, revokes the refresh session, idempotent
  - GET /auth/me: current profile, 401 without a token, 404 once deactivated
  - Cache-Control: no-store on token-bearing responses [M5]
  - Password hash never appears in any response body
  - 422 details name the field but never echo the submitted value
"""

from __future__ import annotations

from sqlalchemy import text

PASSWORD = "Str0ng!pass"
EMAIL = "alice@nutritrack.io"


def _register(client, email: str = EMAIL, password: str = PASSWORD, **extra):
    body = {"email": email, "name": "Alice Example", "password": password, **extra}
    return client.post("/api/v1/auth/register", json=body)


def _login(client, email: str = EMAIL, password: str = PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestRegister:
    def test_register_returns_201_with_tokens(self, api_client):
        resp = _register(api_client, timezone="Europe/Paris")
        assert resp.status_code == 201
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["access_token"]
        assert len(data["refresh_token"]) == 64
        assert data["user"]["email"] == EMAIL
        assert data["user"]["timezone"] == "Europe/Paris"
        assert data["user"]["roles"] == ["user"]
        assert resp.headers["Cache-Control"] == "no-store"

    def test_email_is_normalized(self, api_client):
        resp = _register(api_client, email="  Alice@NutriTrack.io ")
        assert resp.status_code == 201
        assert resp.json()["user"]["email"] == EMAIL

    def test_duplicate_email_returns_409(self, api_client):
        assert _register(api_client).status_code == 201
        resp = _register(api_client)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "user_exists"

    def test_weak_password_returns_422(self, api_client):
        resp = _register(api_client, password="alllowercase")
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_validation_error_names_field_without_echoing_value(self, api_client):
        resp = _register(api_client, password="weakpassword1")
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["message"] == "Invalid request body."
        assert "password" in error["detail"]
        assert "weakpassword1" not in resp.text

    def test_bad_timezone_returns_422(self, api_client):
        assert _register(api_client, timezone="Mars/Olympus").status_code == 422

    def test_bad_name_returns_422(self, api_client):
        body = {"email": EMAIL, "name": "R2-D2 <script>", "password": PASSWORD}
        assert api_client.post("/api/v1/auth/register", json=body).status_code == 422

    def test_password_hash_not_in_response(self, api_client):
        body = _register(api_client).text
        assert "hashed_password" not in body
        assert "$2b$" not in body
        assert PASSWORD not in body


class TestLogin:
    def test_login_success(self, api_client):
        _register(api_client)
        resp = _login(api_client)
        assert resp.status_code == 200
        assert resp.json()["user"]["email"] == EMAIL
        assert resp.headers["Cache-Control"] == "no-store"

    def test_wrong_password_and_unknown_email_look_identical(self, api_client):
        _register(api_client)
        wrong_pw = _login(api_client, password="Wr0ng!pass")
        unknown = _login(api_client, email="nobody@nutritrack.io")
        assert wrong_pw.status_code == unknown.status_code == 401
        assert wrong_pw.json() == unknown.json()
        assert wrong_pw.json()["error"]["code"] == "invalid_credentials"

    def test_malformed_email_returns_422(self, api_client):
        assert _login(api_client, email="not-an-email").status_code == 422

    def test_second_login_invalidates_first_refresh_token(self, api_client):
        _register(api_client)
        first = _login(api_client).json()["refresh_token"]
        _login(api_client)
        resp = api_client.post("/api/v1/auth/refresh", json={"refresh_token": first})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "invalid_refresh_token"


class TestRefresh:
    def test_refresh_rotates_and_rejects_replay(self, api_client):
        t0 = _register(api_client).json()["refresh_token"]

        resp = api_client.post("/api/v1/auth/refresh", json={"refresh_token": t0})
        assert resp.status_code == 200
        t1 = resp.json()["refresh_token"]
        assert t1 != t0
        assert resp.headers["Cache-Control"] == "no-store"

        replay = api_client.post("/api/v1/auth/refresh", json={"refresh_token": t0})
        assert replay.status_code == 403
        assert replay.json()["error"]["code"] == "invalid_refresh_token"

        assert api_client.post("/api/v1/auth/refresh", json={"refresh_token": t1}).status_code == 200

    def test_unknown_token(self, api_client):
        resp = api_client.post("/api/v1/auth/refresh", json={"refresh_token": "f" * 64})
        assert resp.status_code == 403

    def test_empty_token_returns_422(self, api_client):
        assert api_client.post("/api/v1/auth/refresh", json={"refresh_token": "  "}).status_code == 422


class TestLogoutAndMe:
    def test_me_returns_profile(self, api_client):
        access = _register(api_client).json()["access_token"]
        resp = api_client.get("/api/v1/auth/me", headers=_bearer(access))
        assert resp.status_code == 200
        assert resp.json()["email"] == EMAIL
        assert "hashed_password" not in resp.json()

    def test_me_for_deactivated_user_returns_404(self, api_client, user_store):
        data = _register(api_client).json()
        with user_store.engine.connect() as conn:
            conn.execute(text("UPDATE users SET is_active = 0 WHERE id = :id"), {"id": data["user"]["id"]})
            conn.commit()
        resp = api_client.get("/api/v1/auth/me", headers=_bearer(data["access_token"]))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"

    def test_me_requires_token(self, api_client):
        resp = api_client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_me_rejects_refresh_token_as_bearer(self, api_client):
        refresh = _register(api_client).json()["refresh_token"]
        assert api_client.get("/api/v1/auth/me", headers=_bearer(refresh)).status_code == 401

    def test_logout_revokes_refresh_session(self, api_client):
        data = _register(api_client).json()
        resp = api_client.post("/api/v1/auth/logout", headers=_bearer(data["access_token"]))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Logout successful"

        refreshed = api_client.post("/api/v1/auth/refresh", json={"refresh_token": data["refresh_token"]})
        assert refreshed.status_code == 403

    def test_logout_is_idempotent(self, api_client):
        access = _register(api_client).json()["access_token"]
        for _ in range(2):
            assert api_client.post("/api/v1/auth/logout", headers=_bearer(access)).status_code == 200

    def test_logout_requires_token(self, api_client):
        assert api_client.post("/api/v1/auth/logout").status_code == 401
