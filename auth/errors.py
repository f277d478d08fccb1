"""
auth/errors.py -- Exception hierarchy for authentication failures.

Every error carries an HTTP status and a machine-readable code. The service
raises these; api/main.py registers one handler that turns any AuthError
into the shared {"error": {"code", "message"}} envelope, so route handlers
never build error responses by hand.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all authentication related errors."""

    status_code: int = 400
    code: str = "auth_error"
    default_message: str = "Authentication error"

    def __init__(self, message: str | None = None, status_code: int | None = None, code: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code


class InvalidCredentialsError(AuthError):
    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid email or password"


class UnauthorizedError(AuthError):
    status_code = 401
    code = "unauthorized"
    default_message = "Unauthorized access"


class ForbiddenError(AuthError):
    status_code = 403
    code = "forbidden"
    default_message = "Forbidden access"


class UserNotFoundError(AuthError):
    status_code = 404
    code = "user_not_found"
    default_message = "User not found"


class UserExistsError(AuthError):
    status_code = 409
    code = "user_exists"
    default_message = "User already exists"


class ValidationError(AuthError):
    status_code = 400
    code = "validation_error"
    default_message = "Validation error"


class TokenError(AuthError):
    status_code = 401
    code = "invalid_token"
    default_message = "Invalid or expired token"


class OAuthError(AuthError):
    status_code = 401
    code = "oauth_failed"
    default_message = "OAuth authentication failed"
