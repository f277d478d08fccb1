"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes (mounted under API_PREFIX, default /api/v1):
  POST /auth/register              -- create local account; sets cookies; 201
  POST /auth/login                 -- email/password login; sets cookies
  POST /auth/refresh-token         -- rotate the token pair (cookie or body)
  POST /auth/logout                -- clears cookies
  GET  /auth/me                    -- current user (requires auth)
  POST /auth/forgot-password       -- email a reset link; always 200
  POST /auth/reset-password        -- redeem reset token, set new password
  GET  /auth/providers             -- list enabled OAuth providers (public)
  GET  /auth/{provider}            -- redirect to the OAuth provider
  GET  /auth/{provider}/callback   -- OAuth code exchange; sets cookies

Security:
  [H2] login is rate-limited per IP with LOGIN_RATE_LIMIT; register and the
       password reset endpoints share AUTH_RATE_LIMIT.
  [C2] forgot-password answers identically whether or not the email exists,
       and also when sending fails.
  [M5] Cache-Control: no-store on every response that carries tokens.
  Errors are raised as AuthError subclasses and rendered by the handler in
  api/main.py -- handlers here never build error bodies themselves.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from authlib.integrations.starlette_client import OAuthError as ProviderOAuthError
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MeResponse,
    MessageResponse,
    OAuthProviderInfo,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
)
from auth.dependencies import get_current_user
from auth.errors import OAuthError, ValidationError
from auth.models import AuthProvider, AuthResult, User
from auth.oauth import callback_url, get_enabled_providers, get_oauth_profile, provider_label
from auth.service import AuthService
from auth.tokens import REFRESH_COOKIE, clear_auth_cookies, set_auth_cookies
from core.config import get_settings

logger = logging.getLogger("authtemplate.api.auth")

_settings = get_settings()

_RESET_REQUESTED_MESSAGE = "If the email exists, a password reset link will be sent"

# Auth policy:
# - POST /auth/register, /auth/login, /auth/refresh-token, /auth/logout:   public
# - POST /auth/forgot-password, /auth/reset-password:                      public
# - GET  /auth/providers, /auth/{provider}, /auth/{provider}/callback:     public
# - GET  /auth/me:                                  requires auth (get_current_user)
router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _auth_response(result: AuthResult, status_code: int = 200, message: str | None = None) -> JSONResponse:
    """Serialize an AuthResult and set both token cookies on the response."""
    body = AuthResponse(
        user=UserResponse.from_user(result.user),
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
        expires_in=_settings.jwt_expires_in,
        message=message,
    )
    resp = JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))
    set_auth_cookies(resp, result.tokens, _settings.jwt_expires_in, _settings.refresh_expires_in)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _enabled_provider(provider: str) -> AuthProvider:
    """Map a path segment to an enabled AuthProvider or raise 404.

    Validating against the enabled list keeps a spoofed provider name from
    reaching the authlib registry.
    """
    enabled = {p["name"] for p in get_enabled_providers(_settings)}
    if provider not in enabled:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Unknown or disabled OAuth provider."},
        )
    return AuthProvider(provider)


def _oauth_client(request: Request, provider: AuthProvider):
    client = request.app.state.oauth.create_client(provider.value)
    if client is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Unknown or disabled OAuth provider."},
        )
    return client


# ---------------------------------------------------------------------------
# Local accounts
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
@limiter.limit(_settings.auth_rate_limit)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a local account and sign it in. 409 if the email is taken."""
    result = _service(request).register(body.email, body.password, body.name)
    return _auth_response(result, status_code=201)


@router.post("/auth/login", response_model=AuthResponse)
@limiter.limit(_settings.login_rate_limit)  # [H2] brute-force mitigation
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set token cookies.

    Wrong email and wrong password produce the same "invalid_credentials"
    error so the response does not leak which emails are registered.
    """
    result = _service(request).login(body.email, body.password)
    return _auth_response(result)


@router.post("/auth/refresh-token", response_model=AuthResponse)
def refresh_token(request: Request, body: Optional[RefreshRequest] = None) -> JSONResponse:
    """Exchange a refresh token for a new token pair.

    The refresh_token cookie wins over the request body. Both cookies are
    rewritten with the new pair.
    """
    token = request.cookies.get(REFRESH_COOKIE) or (body.refresh_token if body else None)
    if not token:
        raise ValidationError("Refresh token is required", code="missing_refresh_token")
    result = _service(request).refresh_token(token)
    return _auth_response(result)


@router.post("/auth/logout", response_model=MessageResponse)
async def logout() -> JSONResponse:
    """Clear both token cookies.

    Tokens are stateless: an access token copied elsewhere stays valid until
    it expires.
    """
    resp = JSONResponse(content=MessageResponse(message="Logged out successfully").model_dump())
    clear_auth_cookies(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
async def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return the currently authenticated user."""
    return MeResponse(user=UserResponse.from_user(current_user))


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.post("/auth/forgot-password", response_model=MessageResponse)
@limiter.limit(_settings.auth_rate_limit)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
    """Email a password reset link if the account exists [C2].

    The link points at PASSWORD_RESET_URL, or at /auth/reset-password on the
    host that received this request when no URL is configured.
    """
    reset_url = _settings.password_reset_url or f"{str(request.base_url).rstrip('/')}/auth/reset-password"
    try:
        _service(request).request_password_reset(body.email, reset_url)
    except Exception:
        # Same answer on failure -- an error response would reveal that the email exists.
        logger.exception("Password reset request failed")
    return MessageResponse(message=_RESET_REQUESTED_MESSAGE)


@router.post("/auth/reset-password", response_model=MessageResponse)
@limiter.limit(_settings.auth_rate_limit)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    """Set a new password using the token from the reset email."""
    _service(request).reset_password(body.token, body.new_password)
    return MessageResponse(message="Password has been reset successfully")


# ---------------------------------------------------------------------------
# OAuth
#
# /auth/providers and every fixed /auth/* GET route must be registered before
# /auth/{provider}, otherwise FastAPI would treat "me" or "providers" as a
# provider name.
# ---------------------------------------------------------------------------


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers() -> list[OAuthProviderInfo]:
    """Return the configured OAuth providers. Empty list if none are enabled."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers(_settings)]


@router.get("/auth/{provider}", name="oauth_login")
async def oauth_login(request: Request, provider: str):
    """Redirect the browser to the provider's authorization page."""
    auth_provider = _enabled_provider(provider)
    client = _oauth_client(request, auth_provider)
    redirect_uri = callback_url(_settings, auth_provider) or str(
        request.url_for("oauth_callback", provider=auth_provider.value)
    )
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/auth/{provider}/callback", name="oauth_callback", response_model=AuthResponse)
async def oauth_callback(request: Request, provider: str) -> JSONResponse:
    """Handle the provider callback and sign the user in.

    Flow:
      1. Exchange the authorization code (authlib checks state via the session).
      2. Extract a verified email and stable account id [H1].
      3. Find, link or create the local account.
      4. Issue tokens, set cookies.
    """
    auth_provider = _enabled_provider(provider)
    client = _oauth_client(request, auth_provider)

    try:
        token = await client.authorize_access_token(request)
    except ProviderOAuthError as exc:
        logger.warning("OAuth token exchange failed for provider %r: %s", provider, exc)
        raise OAuthError() from exc

    try:
        profile = await get_oauth_profile(client, auth_provider, token)
    except httpx.HTTPError as exc:
        logger.warning("OAuth profile request failed for provider %r: %s", provider, exc)
        raise OAuthError() from exc

    result = _service(request).handle_oauth_user(
        profile.email,
        profile.name,
        profile.provider,
        profile.provider_id,
    )
    return _auth_response(result, message=f"{provider_label(auth_provider)} login successful")
