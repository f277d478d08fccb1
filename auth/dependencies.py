"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The access token is read from, in priority order:
  1. Authorization: Bearer <token> header -- API clients and SPAs.
  2. "access_token" cookie -- set by the login/refresh/OAuth responses.

get_current_user() validates the token through AuthService, then loads the
account so deactivation and password resets take effect immediately for
requests that carry an older token.

require_roles() wraps get_current_user() and raises 403 if the user's role
is not in the allowed set.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
because this module is part of the FastAPI dependency injection system.
It does not import from api/.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.errors import ForbiddenError, UnauthorizedError
from auth.models import User
from auth.service import AuthService
from auth.tokens import ACCESS_COOKIE


def get_bearer_token(request: Request) -> str | None:
    """Return the access token from the Authorization header or cookie, if any."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(ACCESS_COOKIE) or None


def get_current_user(request: Request) -> User:
    """Require authentication. Raises UnauthorizedError (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    token = get_bearer_token(request)
    if token is None:
        raise UnauthorizedError("No token provided")

    auth_service: AuthService = request.app.state.auth_service
    payload = auth_service.validate_token(token)

    user = auth_service.get_user(payload.user_id)
    if user is None or not user.is_active or user.token_version != payload.token_version:
        raise UnauthorizedError("User not authenticated")
    return user


def require_roles(*roles: str):
    """Build a dependency that admits only users whose role is in roles.

    Use as a FastAPI dependency:
        @router.get("/admin-only")
        async def route(user: User = Depends(require_roles("admin"))): ...
    """
    allowed = frozenset(roles)

    def _check_role(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise ForbiddenError("Insufficient permissions")
        return user

    return _check_role
