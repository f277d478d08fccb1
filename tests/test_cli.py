"""
tests/test_cli.py -- The create-user bootstrap command.

get_settings is patched in the main module so each test points the command
at its own SQLite file under tmp_path.
"""

from __future__ import annotations

import pytest

import main as cli
from auth.store import SQLUserStore
from auth.tokens import verify_password
from core.config import get_settings


@pytest.fixture
def sql_settings(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path / 'users.db'}"
    settings = get_settings().model_copy(update={"storage_backend": "sql", "database_url": db_url})
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    return settings


def test_create_admin(sql_settings, capsys):
    code = cli.main(
        ["create-user", "--email", "Root@Example.com", "--password", "admin-pass-123", "--role", "admin"]
    )
    assert code == 0
    assert "Created admin root@example.com" in capsys.readouterr().out

    store = SQLUserStore(sql_settings.database_url)
    try:
        user = store.find_user_by_email("root@example.com")
        assert user is not None
        assert user.role == "admin"
        assert verify_password("admin-pass-123", user.hashed_password)
    finally:
        store.close()


def test_duplicate_email(sql_settings, capsys):
    args = ["create-user", "--email", "root@example.com", "--password", "admin-pass-123"]
    assert cli.main(args) == 0
    assert cli.main(args) == 1
    assert "already exists" in capsys.readouterr().out


def test_short_password(sql_settings, capsys):
    assert cli.main(["create-user", "--email", "root@example.com", "--password", "short"]) == 1
    assert "at least 8 characters" in capsys.readouterr().out


def test_memory_backend_refused(monkeypatch, capsys):
    settings = get_settings().model_copy(update={"storage_backend": "memory"})
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    assert cli.main(["create-user", "--email", "root@example.com", "--password", "admin-pass-123"]) == 1
    assert "STORAGE_BACKEND=memory" in capsys.readouterr().out


def test_password_prompt(sql_settings, monkeypatch):
    monkeypatch.setattr(cli.getpass, "getpass", lambda prompt: "prompted-pass-1")
    assert cli.main(["create-user", "--email", "prompt@example.com"]) == 0


def test_command_required():
    with pytest.raises(SystemExit):
        cli.main([])
