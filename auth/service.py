"""
auth/service.py -- AuthService: credential checks, token issuance, OAuth
account linking and the password reset lifecycle.

Every sign-in path (register, login, OAuth, refresh) ends in _issue(), which
returns an AuthResult carrying the stored user and a fresh access/refresh
pair. Failures raise AuthError subclasses; the API layer maps them to HTTP.

Security notes:
  [C1] login() always runs bcrypt, even for unknown emails, so response time
       does not reveal whether an account exists.
  [C2] request_password_reset() answers True for unknown emails -- the caller
       must not be able to enumerate accounts through it.
  [C3] Reset tokens are single use: the stored digest is cleared on success
       and on expiry. A successful reset bumps token_version so every refresh
       token issued before the reset stops working.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from auth.email import EmailService
from auth.errors import (
    AuthError,
    ForbiddenError,
    InvalidCredentialsError,
    OAuthError,
    TokenError,
    UserExistsError,
    ValidationError,
)
from auth.models import AuthProvider, AuthResult, TokenPair, TokenPayload, User
from auth.store import UserRepository
from auth.tokens import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_reset_token,
    hash_password,
    hash_reset_token,
    verify_dummy_password,
    verify_password,
)
from core.config import Settings

logger = logging.getLogger("authtemplate.auth.service")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """Authentication use cases over a UserRepository.

    Usage:
        service = AuthService(MemoryUserStore(), get_settings())
        result = service.register("ada@example.com", "correct horse")
        payload = service.validate_token(result.tokens.access_token)
    """

    def __init__(
        self,
        store: UserRepository,
        settings: Settings,
        email_service: EmailService | None = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.email_service = email_service

    # ------------------------------------------------------------------
    # Local accounts
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, name: str | None = None) -> AuthResult:
        """Create a local account and sign it in."""
        email = normalize_email(email)
        if not email or not password:
            raise ValidationError("Email and password are required")
        if self.store.find_user_by_email(email) is not None:
            raise UserExistsError()

        user = self.store.create_user(
            User(
                email=email,
                name=name,
                hashed_password=hash_password(password, self.settings.bcrypt_rounds),
                role="user",
                provider=AuthProvider.LOCAL,
            )
        )
        logger.info("Registered user %s", user.id)
        return self._issue(user)

    def login(self, email: str, password: str) -> AuthResult:
        """Verify email/password and sign the user in [C1]."""
        user = self.store.find_user_by_email(normalize_email(email))
        if user is None:
            verify_dummy_password(password)
            raise InvalidCredentialsError("Invalid credentials")
        if user.hashed_password is None:
            verify_dummy_password(password)
            raise AuthError("Account exists with different login method", 401, code="oauth_account")
        if not verify_password(password, user.hashed_password):
            raise InvalidCredentialsError("Invalid credentials")
        if not user.is_active:
            raise ForbiddenError("Account is disabled")
        return self._issue(user)

    def get_user(self, user_id: str) -> User | None:
        return self.store.find_user_by_id(user_id)

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def handle_oauth_user(
        self,
        email: str,
        name: str | None,
        provider: AuthProvider,
        provider_id: str,
    ) -> AuthResult:
        """Find, link or create the local account for a verified external identity.

        Lookup order:
          1. (provider, provider_id) -- returning user, already linked.
          2. email -- existing account; re-point it at this provider.
          3. neither -- create a new password-less account.
        """
        provider = AuthProvider(provider)
        if not provider_id:
            raise OAuthError("OAuth provider did not return an account id")
        email = normalize_email(email or "")
        if not email:
            raise OAuthError("OAuth provider did not return an email address")

        user = self.store.find_user_by_provider_id(provider, provider_id)
        if user is None:
            existing = self.store.find_user_by_email(email)
            if existing is not None:
                # A disabled account must not pick up a new identity.
                if not existing.is_active:
                    raise ForbiddenError("Account is disabled")
                user = self.store.update_user(existing.id, provider=provider, provider_id=provider_id)
                logger.info("Linked %s identity to user %s", provider.value, user.id)
            else:
                user = self.store.create_user(
                    User(
                        email=email,
                        name=name,
                        role="user",
                        provider=provider,
                        provider_id=provider_id,
                    )
                )
                logger.info("Created user %s from %s login", user.id, provider.value)

        if not user.is_active:
            raise ForbiddenError("Account is disabled")
        return self._issue(user)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def validate_token(self, token: str) -> TokenPayload:
        """Verify an access token and return its claims. Raises TokenError."""
        payload = decode_token(token, self.settings.jwt_secret, ACCESS_TOKEN_TYPE)
        if payload is None:
            raise TokenError()
        try:
            return TokenPayload(
                user_id=payload["sub"],
                email=payload["email"],
                role=payload["role"],
                token_version=int(payload.get("ver", 0)),
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenError() from exc

    def refresh_token(self, refresh_token: str) -> AuthResult:
        """Exchange a valid refresh token for a brand-new token pair.

        The presented token must carry the user's current token_version, so a
        token issued before a password reset is rejected.
        """
        payload = decode_token(refresh_token, self.settings.refresh_secret, REFRESH_TOKEN_TYPE)
        user = self.store.find_user_by_id(payload["sub"]) if payload is not None else None
        if (
            user is None
            or not user.is_active
            or payload.get("ver", 0) != user.token_version
        ):
            raise AuthError("Invalid refresh token", 401, code="invalid_refresh_token")
        return self._issue(user)

    def _issue(self, user: User) -> AuthResult:
        tokens = TokenPair(
            access_token=create_access_token(user, self.settings.jwt_secret, self.settings.jwt_expires_in),
            refresh_token=create_refresh_token(user, self.settings.refresh_secret, self.settings.refresh_expires_in),
        )
        return AuthResult(user=user, tokens=tokens)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def request_password_reset(self, email: str, reset_url: str) -> bool:
        """Store a fresh reset token for the account and email the link [C2].

        Returns the email delivery result, or True when the email is unknown
        or no email service is configured.
        """
        user = self.store.find_user_by_email(normalize_email(email))
        if user is None:
            return True

        raw_token, hashed_token = generate_reset_token()
        expires = datetime.now(timezone.utc) + timedelta(seconds=self.settings.password_reset_expire_seconds)
        self.store.update_user(user.id, reset_password_token=hashed_token, reset_password_expires=expires)

        if self.email_service is None:
            logger.info("Password reset requested for user %s - no email service configured", user.id)
            return True
        return self.email_service.send_password_reset_email(user.email, f"{reset_url}?token={raw_token}")

    def reset_password(self, token: str, new_password: str) -> bool:
        """Redeem a reset token and set a new password [C3]."""
        if not token or not new_password:
            raise ValidationError("Token and new password are required")
        user = self.store.find_user_by_reset_token(hash_reset_token(token))
        if user is None:
            raise AuthError("Invalid or expired token", 400, code="invalid_reset_token")

        if user.reset_password_expires is None or user.reset_password_expires < datetime.now(timezone.utc):
            self.store.update_user(user.id, reset_password_token=None, reset_password_expires=None)
            raise AuthError("Reset token has expired", 400, code="reset_token_expired")

        self.store.update_user(
            user.id,
            hashed_password=hash_password(new_password, self.settings.bcrypt_rounds),
            reset_password_token=None,
            reset_password_expires=None,
            token_version=user.token_version + 1,
        )
        logger.info("Password reset completed for user %s", user.id)

        if self.email_service is not None:
            self.email_service.send_password_changed_email(user.email)
        return True
