"""
tests/test_lifespan.py -- The real application lifespan.

Every other API test swaps the lifespan out (see _patch_lifespan in
conftest.py). Here the production one runs against STORAGE_BACKEND=memory
with a fake email service injected through create_email_service.
"""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

import api.main as api_main
from auth.service import AuthService
from auth.store import MemoryUserStore


class _FakeEmailService:
    def __init__(self):
        self.verified = False
        self.ran_on_event_loop = None

    def verify_connection(self) -> bool:
        try:
            asyncio.get_running_loop()
            self.ran_on_event_loop = True
        except RuntimeError:
            self.ran_on_event_loop = False
        self.verified = True
        return True


@pytest.fixture
def real_lifespan(monkeypatch):
    monkeypatch.setattr(api_main.app.router, "lifespan_context", api_main.lifespan)


def test_startup_wires_state(real_lifespan, monkeypatch):
    monkeypatch.setattr(api_main, "create_email_service", lambda settings: None)
    with TestClient(api_main.app) as client:
        state = client.app.state
        assert isinstance(state.user_store, MemoryUserStore)
        assert isinstance(state.auth_service, AuthService)
        assert state.auth_service.email_service is None
        assert state.oauth.create_client("github") is not None
        assert client.get("/api/v1/health").status_code == 200


def test_smtp_check_runs_off_the_event_loop(real_lifespan, monkeypatch):
    fake = _FakeEmailService()
    monkeypatch.setattr(api_main, "create_email_service", lambda settings: fake)
    with TestClient(api_main.app) as client:
        assert client.app.state.auth_service.email_service is fake
    assert fake.verified is True
    assert fake.ran_on_event_loop is False
