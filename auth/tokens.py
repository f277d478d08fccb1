"""
auth/tokens.py -- Password hashing, JWT and reset-token utilities.

Security design decisions:
  JWT: python-jose with HS256. Access and refresh tokens are signed with two
       different keys and carry a "type" claim, so a refresh token can never
       be replayed as an access token (and vice versa) even if the keys were
       configured identically. Verification returns None on any failure --
       the service turns that into TokenError / 401.

  Token version: every token carries "ver" (User.token_version). A password
       reset bumps the version, which retires all outstanding refresh tokens
       without a server-side revocation list.

  Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
       enables timing equalization in AuthService.login() so response time
       does not reveal whether an email is registered.

  Reset tokens: secrets.token_hex(32) gives 256 bits of entropy. Only the
       SHA-256 digest is stored; bcrypt's slowness is unnecessary for a
       high-entropy, short-lived, single-use value and a deterministic digest
       allows direct lookup.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import TokenPair, User

logger = logging.getLogger("authtemplate.auth.tokens")

_settings = get_settings()

_ALGORITHM = "HS256"

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes; the API layer caps password
    length at 128 characters.
    """
    salt = bcrypt.gensalt(rounds=rounds or _settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed or non-bcrypt hash in the store
        return False


# Computed once at module load with the configured cost so an unknown-email
# login spends the same bcrypt time as a wrong-password login.
_DUMMY_HASH: str = hash_password("authtemplate_timing_dummy")


def verify_dummy_password(plain: str) -> None:
    """Burn one bcrypt check. Call when there is no real hash to compare against."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user: User, secret: str, expires_in: int) -> str:
    """Encode a signed access token with the user's identity and role."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "email": user.email,
        "role": user.role,
        "ver": user.token_version,
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def create_refresh_token(user: User, secret: str, expires_in: int) -> str:
    """Encode a signed refresh token.

    Carries only the subject and version. The random jti keeps two tokens
    issued for the same user within the same second distinct, so a rotated
    token is never byte-identical to its predecessor.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "ver": user.token_version,
        "type": REFRESH_TOKEN_TYPE,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def decode_token(token: str, secret: str, token_type: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure.

    Rejects tokens whose "type" claim does not match token_type and tokens
    without a subject.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != token_type or not payload.get("sub"):
        return None
    return payload


# ---------------------------------------------------------------------------
# Password reset tokens
# ---------------------------------------------------------------------------


def hash_reset_token(raw_token: str) -> str:
    """Return the SHA-256 hex digest stored in place of the raw reset token."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def generate_reset_token() -> tuple[str, str]:
    """Return (raw_token, hashed_token). Only the hash may be persisted."""
    raw = secrets.token_hex(32)
    return raw, hash_reset_token(raw)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookies(response, tokens: TokenPair, access_max_age: int, refresh_max_age: int) -> None:
    """Write both tokens as httpOnly cookies on the response.

    httponly=True: JS cannot read the cookies (XSS mitigation).
    samesite="strict": never sent on cross-site requests (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches each token's lifetime so cookie and token expire together.
    """
    response.set_cookie(
        ACCESS_COOKIE,
        value=tokens.access_token,
        httponly=True,
        samesite="strict",
        secure=_settings.secure_cookies,
        max_age=access_max_age,
    )
    response.set_cookie(
        REFRESH_COOKIE,
        value=tokens.refresh_token,
        httponly=True,
        samesite="strict",
        secure=_settings.secure_cookies,
        max_age=refresh_max_age,
    )


def clear_auth_cookies(response) -> None:
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE)
