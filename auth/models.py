"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the
service do the work; api/models.py owns the HTTP representation.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class AuthProvider(str, Enum):
    LOCAL = "local"
    GITHUB = "github"
    GOOGLE = "google"
    FACEBOOK = "facebook"


@dataclass
class User:
    """Represents an account in the user repository.

    hashed_password is None for OAuth-only users (they have no local password).
    provider / provider_id identify the external account once linked; a local
    account that later signs in with OAuth is re-pointed at that provider.

    reset_password_token holds the SHA-256 hex digest of the raw reset token
    that was emailed out -- the raw value is never persisted.

    token_version is embedded in every issued token. Bumping it (on password
    reset) invalidates all outstanding refresh tokens for the account.
    """

    email: str
    role: str = "user"
    id: str | None = None
    name: str | None = None
    hashed_password: str | None = None  # None = OAuth-only user
    provider: AuthProvider = AuthProvider.LOCAL
    provider_id: str | None = None  # provider's stable user ID
    reset_password_token: str | None = None
    reset_password_expires: datetime | None = None
    token_version: int = 0
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class TokenPayload:
    """Verified claims of an access token."""

    user_id: str
    email: str
    role: str
    token_version: int
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class AuthResult:
    """Outcome of every successful sign-in path: the account plus fresh tokens."""

    user: User
    tokens: TokenPair


@dataclass(frozen=True)
class OAuthProfile:
    """Provider-neutral identity extracted from an OAuth token response."""

    provider: AuthProvider
    provider_id: str
    email: str
    name: str | None = None
