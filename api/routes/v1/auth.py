"""
api/routes/v1/auth.py -- Session lifecycle REST endpoints.

Routes:
  POST /api/v1/auth/register  -- create account; returns token pair + profile (201)
  POST /api/v1/auth/login     -- password login; returns token pair + profile
  POST /api/v1/auth/refresh   -- exchange refresh token for a new pair (rotation)
  POST /api/v1/auth/logout    -- revoke the caller's refresh session (requires auth)
  GET  /api/v1/auth/me        -- current user profile (requires auth)

Security:
  [H2] POST /login and POST /register are rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] Wrong email and wrong password return the same 401 "invalid_credentials".
  [M5] Cache-Control: no-store on every response that carries tokens.

Handlers are plain def (not async def): SessionManager does blocking bcrypt
and SQLAlchemy work, so FastAPI runs them in its threadpool. SessionError
subclasses propagate to the handler registered in api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import AuthResponse, LoginRequest, LogoutResponse, RefreshRequest, RegisterRequest, UserProfile
from auth.dependencies import get_current_principal, get_session_manager
from auth.manager import SessionManager
from auth.models import AuthResult, Principal
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/register: public -- rate limited
# - POST /api/v1/auth/login:    public -- rate limited
# - POST /api/v1/auth/refresh:  public -- the refresh token is the credential
# - POST /api/v1/auth/logout:   requires auth (get_current_principal)
# - GET  /api/v1/auth/me:       requires auth (get_current_principal)
router = APIRouter()


def _auth_rate_limit() -> str:
    return get_settings().login_rate_limit


def _token_response(result: AuthResult, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse.from_result(result).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_auth_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(
    request: Request,
    body: RegisterRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> JSONResponse:
    """Create an account and start its first session.

    409 user_exists if the email is already registered.
    """
    result = manager.register(body.email, body.name, body.password, body.timezone)
    return _token_response(result, status_code=201)


@limiter.limit(_auth_rate_limit)  # [H2]
@router.post("/auth/login", response_model=AuthResponse)
def login(
    request: Request,
    body: LoginRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> JSONResponse:
    """Authenticate with email and password.

    Any earlier refresh token held by the same user stops working.
    """
    result = manager.login(body.email, body.password)
    return _token_response(result)


@router.post("/auth/refresh", response_model=AuthResponse)
def refresh(
    body: RefreshRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> JSONResponse:
    """Rotate a refresh token. The presented token is single-use.

    403 invalid_refresh_token for unknown, rotated or revoked tokens;
    403 refresh_token_expired for expired ones.
    """
    result = manager.refresh(body.refresh_token)
    return _token_response(result)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(
    principal: Principal = Depends(get_current_principal),
    manager: SessionManager = Depends(get_session_manager),
) -> LogoutResponse:
    """Revoke the caller's refresh session. Succeeds even if none is active.

    The access token itself stays valid until it expires (15 minutes by
    default); clients discard it on logout.
    """
    manager.logout(principal.user_id)
    return LogoutResponse()


@router.get("/auth/me", response_model=UserProfile)
def me(
    principal: Principal = Depends(get_current_principal),
    manager: SessionManager = Depends(get_session_manager),
) -> UserProfile:
    """Return the profile of the currently authenticated user."""
    view = manager.get_profile(principal.user_id)
    if view is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )
    return UserProfile.from_view(view)
