"""
auth/oauth.py -- Authlib OAuth provider configuration and profile extraction.

build_oauth_registry() decides which providers are active. A provider is
registered only when its ENABLE_<PROVIDER> toggle is on AND both client ID
and secret are configured -- the /providers endpoint and the login buttons
are driven by get_enabled_providers() with the same rule.

Security notes:
  [H1] Email verification is mandatory. get_oauth_profile() raises OAuthError
       if the provider does not confirm the email is verified. An unverified
       email could belong to an attacker who added a victim's address to
       their provider account -- linking by email would then hand them the
       victim's local account.

  OAuth state parameter (CSRF protection) is handled by authlib automatically
  via Starlette SessionMiddleware.

Supported providers:
  github   -- Authorization code flow; static endpoints.
  google   -- Authorization code flow; OIDC discovery.
  facebook -- Authorization code flow; Graph API endpoints.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from auth.errors import OAuthError
from auth.models import AuthProvider, OAuthProfile
from core.config import Settings

logger = logging.getLogger("authtemplate.auth.oauth")

_GRAPH_API = "https://graph.facebook.com/v19.0/"

_LABELS = {
    AuthProvider.GITHUB: "GitHub",
    AuthProvider.GOOGLE: "Google",
    AuthProvider.FACEBOOK: "Facebook",
}


def _is_enabled(settings: Settings, provider: AuthProvider) -> bool:
    name = provider.value
    return bool(
        getattr(settings, f"enable_{name}")
        and getattr(settings, f"{name}_client_id")
        and getattr(settings, f"{name}_client_secret")
    )


def provider_label(provider: AuthProvider) -> str:
    return _LABELS[AuthProvider(provider)]


def callback_url(settings: Settings, provider: AuthProvider) -> str:
    """Configured callback URL for the provider, or "" to derive it from the request."""
    return getattr(settings, f"{AuthProvider(provider).value}_callback_url")


# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------


def build_oauth_registry(settings: Settings) -> OAuth:
    """Return an authlib registry with every enabled provider registered."""
    oauth = OAuth()

    if _is_enabled(settings, AuthProvider.GITHUB):
        oauth.register(
            name="github",
            client_id=settings.github_client_id,
            client_secret=settings.github_client_secret,
            access_token_url="https://github.com/login/oauth/access_token",  # noqa: S106 -- URL, not a password
            authorize_url="https://github.com/login/oauth/authorize",
            api_base_url="https://api.github.com/",
            client_kwargs={"scope": "read:user user:email"},
        )
        logger.info("GitHub OAuth provider registered")

    if _is_enabled(settings, AuthProvider.GOOGLE):
        oauth.register(
            name="google",
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
            client_kwargs={"scope": "openid email profile"},
        )
        logger.info("Google OAuth provider registered")

    if _is_enabled(settings, AuthProvider.FACEBOOK):
        oauth.register(
            name="facebook",
            client_id=settings.facebook_client_id,
            client_secret=settings.facebook_client_secret,
            access_token_url=f"{_GRAPH_API}oauth/access_token",  # noqa: S106 -- URL, not a password
            authorize_url="https://www.facebook.com/v19.0/dialog/oauth",
            api_base_url=_GRAPH_API,
            client_kwargs={"scope": "email public_profile"},
        )
        logger.info("Facebook OAuth provider registered")

    return oauth


def get_enabled_providers(settings: Settings) -> list[dict]:
    """Return [{"name": ..., "label": ...}] for every enabled provider, in a fixed order."""
    return [
        {"name": provider.value, "label": _LABELS[provider]}
        for provider in (AuthProvider.GITHUB, AuthProvider.GOOGLE, AuthProvider.FACEBOOK)
        if _is_enabled(settings, provider)
    ]


# ---------------------------------------------------------------------------
# Profile extraction -- provider-specific normalization [H1]
# ---------------------------------------------------------------------------


async def get_oauth_profile(client, provider: AuthProvider, token: dict) -> OAuthProfile:
    """Extract a verified OAuthProfile from a provider token response.

    Args:
        client:   The authlib OAuth client for this provider.
        provider: AuthProvider.GITHUB, GOOGLE or FACEBOOK.
        token:    The token dict returned by authlib after code exchange.

    Raises:
        OAuthError: If a verified email or a stable account id cannot be obtained.
    """
    provider = AuthProvider(provider)
    if provider == AuthProvider.GITHUB:
        return await _get_github_profile(client, token)
    if provider == AuthProvider.GOOGLE:
        return _get_google_profile(token)
    if provider == AuthProvider.FACEBOOK:
        return await _get_facebook_profile(client, token)
    raise OAuthError(f"Unsupported OAuth provider: {provider.value!r}")


async def _get_github_profile(client, token: dict) -> OAuthProfile:
    """GitHub does not put the email in the token. Two API calls are required:
      1. GET /user -- numeric user ID (stable subject) and display name.
      2. GET /user/emails -- the primary verified email.
    """
    resp = await client.get("user", token=token)
    resp.raise_for_status()
    profile = resp.json()

    emails_resp = await client.get("user/emails", token=token)
    emails_resp.raise_for_status()

    email: str | None = None
    for entry in emails_resp.json():
        if entry.get("primary") and entry.get("verified"):
            email = entry["email"]
            break

    if not email:
        raise OAuthError(
            "GitHub OAuth: no primary verified email found. "
            "Verify your email address on GitHub before logging in."
        )
    if profile.get("id") is None:
        raise OAuthError("GitHub OAuth: profile has no id")

    return OAuthProfile(
        provider=AuthProvider.GITHUB,
        provider_id=str(profile["id"]),
        email=email,
        name=profile.get("name") or profile.get("login"),
    )


def _get_google_profile(token: dict) -> OAuthProfile:
    """Google returns an id_token whose claims include email, email_verified and sub.

    A missing email_verified claim is treated as unverified.
    """
    userinfo = token.get("userinfo")
    if not userinfo:
        raise OAuthError("Google OAuth: no userinfo in token response")
    if not userinfo.get("email_verified", False):
        raise OAuthError("Google OAuth: email is not verified")

    email = userinfo.get("email")
    subject_id = userinfo.get("sub")
    if not email or not subject_id:
        raise OAuthError("Google OAuth: missing email or sub claim in userinfo")

    return OAuthProfile(
        provider=AuthProvider.GOOGLE,
        provider_id=str(subject_id),
        email=email,
        name=userinfo.get("name"),
    )


async def _get_facebook_profile(client, token: dict) -> OAuthProfile:
    """Facebook only exposes an email the user has confirmed; no email means
    the account has none (phone sign-up) or the user declined the scope.
    """
    resp = await client.get("me", params={"fields": "id,name,email"}, token=token)
    resp.raise_for_status()
    profile = resp.json()

    email = profile.get("email")
    if not email:
        raise OAuthError("Facebook OAuth: no confirmed email shared by the account")
    if not profile.get("id"):
        raise OAuthError("Facebook OAuth: profile has no id")

    return OAuthProfile(
        provider=AuthProvider.FACEBOOK,
        provider_id=str(profile["id"]),
        email=email,
        name=profile.get("name"),
    )
