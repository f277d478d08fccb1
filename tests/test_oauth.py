"""
tests/test_oauth.py -- Provider registry and profile extraction.

Profile extraction is tested against small fake clients that mimic the
authlib AsyncOAuth2Client.get() surface; no network access is needed.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from auth.errors import OAuthError
from auth.models import AuthProvider
from auth.oauth import build_oauth_registry, callback_url, get_enabled_providers, get_oauth_profile
from core.config import Settings


def _settings(**overrides) -> Settings:
    values = dict(
        debug=True,
        enable_github=False,
        enable_google=False,
        enable_facebook=False,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeResponse:
    def __init__(self, data, status_code: int = 200):
        self._data = data
        self.status_code = status_code

    def json(self):
        return self._data

    def raise_for_status(self):
        if self.status_code >= 400:
            request = httpx.Request("GET", "https://api.example.com/")
            raise httpx.HTTPStatusError(
                "provider error",
                request=request,
                response=httpx.Response(self.status_code, request=request),
            )


class FakeClient:
    """Returns canned responses keyed by API path and records every call."""

    def __init__(self, responses: dict):
        self.responses = responses
        self.calls: list[tuple[str, dict | None]] = []

    async def get(self, path, token=None, params=None, **kwargs):
        self.calls.append((path, params))
        return self.responses[path]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestEnabledProviders:
    def test_none_enabled(self):
        assert get_enabled_providers(_settings()) == []

    def test_toggle_without_credentials_is_disabled(self):
        assert get_enabled_providers(_settings(enable_google=True)) == []

    def test_enabled_in_fixed_order(self):
        settings = _settings(
            enable_facebook=True,
            facebook_client_id="fb",
            facebook_client_secret="fb-secret",
            enable_github=True,
            github_client_id="gh",
            github_client_secret="gh-secret",
        )
        assert get_enabled_providers(settings) == [
            {"name": "github", "label": "GitHub"},
            {"name": "facebook", "label": "Facebook"},
        ]

    def test_registry_only_has_enabled_clients(self):
        settings = _settings(enable_github=True, github_client_id="gh", github_client_secret="gh-secret")
        registry = build_oauth_registry(settings)
        assert registry.create_client("github") is not None
        assert registry.create_client("google") is None
        assert registry.create_client("facebook") is None

    def test_callback_url(self):
        settings = _settings(google_callback_url="https://app.example.com/cb")
        assert callback_url(settings, AuthProvider.GOOGLE) == "https://app.example.com/cb"
        assert callback_url(settings, AuthProvider.GITHUB) == ""


# ---------------------------------------------------------------------------
# Profile extraction
# ---------------------------------------------------------------------------


class TestGitHubProfile:
    def _client(self, emails, profile=None):
        return FakeClient(
            {
                "user": FakeResponse(profile or {"id": 42, "login": "octocat", "name": None}),
                "user/emails": FakeResponse(emails),
            }
        )

    def test_primary_verified_email(self):
        client = self._client(
            [
                {"email": "old@example.com", "primary": False, "verified": True},
                {"email": "octo@example.com", "primary": True, "verified": True},
            ]
        )
        profile = asyncio.run(get_oauth_profile(client, AuthProvider.GITHUB, {"access_token": "t"}))
        assert profile.provider == AuthProvider.GITHUB
        assert profile.provider_id == "42"
        assert profile.email == "octo@example.com"
        assert profile.name == "octocat"

    def test_unverified_primary_rejected(self):
        client = self._client([{"email": "octo@example.com", "primary": True, "verified": False}])
        with pytest.raises(OAuthError):
            asyncio.run(get_oauth_profile(client, AuthProvider.GITHUB, {"access_token": "t"}))

    def test_http_error_propagates(self):
        client = FakeClient({"user": FakeResponse({}, status_code=401)})
        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(get_oauth_profile(client, AuthProvider.GITHUB, {"access_token": "t"}))


class TestGoogleProfile:
    def test_verified_userinfo(self):
        token = {"userinfo": {"sub": "g-1", "email": "ada@example.com", "email_verified": True, "name": "Ada"}}
        profile = asyncio.run(get_oauth_profile(None, AuthProvider.GOOGLE, token))
        assert profile.provider_id == "g-1"
        assert profile.email == "ada@example.com"
        assert profile.name == "Ada"

    @pytest.mark.parametrize(
        "userinfo",
        [
            None,
            {"sub": "g-1", "email": "ada@example.com"},
            {"sub": "g-1", "email": "ada@example.com", "email_verified": False},
            {"email": "ada@example.com", "email_verified": True},
        ],
    )
    def test_rejected(self, userinfo):
        with pytest.raises(OAuthError):
            asyncio.run(get_oauth_profile(None, AuthProvider.GOOGLE, {"userinfo": userinfo}))


class TestFacebookProfile:
    def test_profile_with_email(self):
        client = FakeClient({"me": FakeResponse({"id": "fb-9", "name": "Ada", "email": "ada@example.com"})})
        profile = asyncio.run(get_oauth_profile(client, AuthProvider.FACEBOOK, {"access_token": "t"}))
        assert profile.provider_id == "fb-9"
        assert profile.email == "ada@example.com"
        assert client.calls == [("me", {"fields": "id,name,email"})]

    def test_no_email_rejected(self):
        client = FakeClient({"me": FakeResponse({"id": "fb-9", "name": "Ada"})})
        with pytest.raises(OAuthError):
            asyncio.run(get_oauth_profile(client, AuthProvider.FACEBOOK, {"access_token": "t"}))
