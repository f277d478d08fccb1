"""
tests/conftest.py -- Shared test fixtures for the auth template.

This module provides:
  - RecordingEmailService: stands in for SMTP and keeps every message sent
  - store / outbox / auth_service: function-scoped unit-test building blocks
  - _patch_lifespan(): wires test objects into app.state, bypassing real startup
  - api_client: TestClient with a pre-created user for API integration tests

Environment variables must be set before any auth/core import: Settings is
read once (lru_cache) and several modules capture it at import time.
  DEBUG=true            -- lets Settings run without production secrets
  BCRYPT_ROUNDS=4       -- keeps hashing fast
  RATE_LIMIT_ENABLED    -- off, so repeated logins across modules never hit 429
  ENABLE_GITHUB + creds -- GitHub is the one enabled provider in tests
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from unittest.mock import MagicMock

# CRITICAL: Set env before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("JWT_SECRET", "test-access-secret-0123456789abcdef0123456789")
os.environ.setdefault("REFRESH_SECRET", "test-refresh-secret-0123456789abcdef012345678")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("EMAIL_HOST", "")
os.environ.setdefault("ENABLE_GITHUB", "true")
os.environ.setdefault("GITHUB_CLIENT_ID", "test-github-client")
os.environ.setdefault("GITHUB_CLIENT_SECRET", "test-github-secret")
os.environ.setdefault("ENABLE_GOOGLE", "false")
os.environ.setdefault("ENABLE_FACEBOOK", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.service import AuthService
from auth.store import MemoryUserStore
from core.config import get_settings

TEST_EMAIL = "testuser@example.com"
TEST_PASSWORD = "testpass123"


# ---------------------------------------------------------------------------
# Email double
# ---------------------------------------------------------------------------


@dataclass
class SentEmail:
    kind: str
    to: str
    link: str | None = None


@dataclass
class RecordingEmailService:
    """Drop-in for EmailService that records instead of sending.

    deliver=False makes every send report failure, like an unreachable relay.
    """

    deliver: bool = True
    sent: list[SentEmail] = field(default_factory=list)

    def send_password_reset_email(self, to: str, reset_link: str) -> bool:
        self.sent.append(SentEmail("reset", to, reset_link))
        return self.deliver

    def send_password_changed_email(self, to: str) -> bool:
        self.sent.append(SentEmail("changed", to))
        return self.deliver

    def last_reset_token(self) -> str:
        resets = [m for m in self.sent if m.kind == "reset"]
        assert resets, "no reset email was sent"
        return resets[-1].link.split("token=", 1)[1]


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> MemoryUserStore:
    return MemoryUserStore()


@pytest.fixture
def outbox() -> RecordingEmailService:
    return RecordingEmailService()


@pytest.fixture
def auth_service(store: MemoryUserStore, outbox: RecordingEmailService) -> AuthService:
    return AuthService(store, get_settings(), outbox)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built service into app.state so TestClient routes see an
    isolated in-memory store. The OAuth registry is a MagicMock; tests that
    exercise OAuth routes swap in their own fake.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = service.store
        app.state.auth_service = service
        app.state.oauth = MagicMock()
        yield

    return test_lifespan


@dataclass
class ApiContext:
    client: TestClient
    service: AuthService
    outbox: RecordingEmailService
    user_id: str


@pytest.fixture(scope="module")
def api_client() -> Generator[ApiContext, None, None]:
    """Yield an ApiContext with a TestClient and one registered local user.

    The user is TEST_EMAIL / TEST_PASSWORD. One client per test module for
    speed; tests must clear cookies they do not want to carry over.
    """
    store = MemoryUserStore()
    outbox = RecordingEmailService()
    service = AuthService(store, get_settings(), outbox)
    result = service.register(TEST_EMAIL, TEST_PASSWORD, "Test User")

    app.router.lifespan_context = _patch_lifespan(service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client=client, service=service, outbox=outbox, user_id=result.user.id)

    store.close()
