"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Requests authenticate with an access token in the Authorization: Bearer
header. Verification is stateless: the JWT signature, expiry and type claim
are checked, and the claims become a Principal. Refresh tokens are never
accepted here -- they are opaque and only SessionManager.refresh() reads them.

try_get_current_principal() is the soft variant (returns None on failure).
get_current_principal() wraps it and raises HTTP 401 if unauthenticated.
require_roles() / require_permissions() build dependencies that raise
HTTP 403 when the principal holds none of the listed roles / permissions.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Depends/HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, HTTPException, Request

from auth.manager import SessionManager
from auth.models import DEFAULT_ROLES, Principal
from auth.tokens import decode_access_token


def get_session_manager(request: Request) -> SessionManager:
    """Return the SessionManager created in the application lifespan."""
    return request.app.state.session_manager


def try_get_current_principal(request: Request) -> Principal | None:
    """Attempt to authenticate the request via its Bearer access token.

    Returns a Principal on success, None on any failure. Never raises.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    payload = decode_access_token(auth_header[7:].strip())
    if payload is None:
        return None
    roles = payload.get("roles")
    return Principal(
        user_id=str(payload["sub"]),
        email=payload.get("email", ""),
        roles=list(roles) if roles is not None else list(DEFAULT_ROLES),
        permissions=list(payload.get("permissions") or []),
        token_type=payload.get("type", "access"),
    )


def get_current_principal(request: Request) -> Principal:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(principal: Principal = Depends(get_current_principal)): ...
    """
    principal = try_get_current_principal(request)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return principal


def require_roles(*roles: str) -> Callable[..., Principal]:
    """Build a dependency that admits principals holding any of the given roles."""

    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if roles and not set(roles) & set(principal.roles):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "Insufficient role."},
            )
        return principal

    return dependency


def require_permissions(*permissions: str) -> Callable[..., Principal]:
    """Build a dependency that admits principals holding any of the given permissions."""

    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if permissions and not set(permissions) & set(principal.permissions):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "Insufficient permissions."},
            )
        return principal

    return dependency
