"""
tests/test_config.py -- Settings validation and duration parsing.

Settings are built directly (not via get_settings) with _env_file=None so a
developer's local .env cannot leak into the assertions. Explicit keyword
arguments take precedence over the environment variables set in conftest.py.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings, parse_duration

GOOD_ACCESS = "a" * 32
GOOD_REFRESH = "r" * 32


def _settings(**overrides) -> Settings:
    values = dict(debug=False, jwt_secret=GOOD_ACCESS, refresh_secret=GOOD_REFRESH)
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestParseDuration:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (3600, 3600),
            ("3600", 3600),
            ("45s", 45),
            ("15m", 900),
            ("1h", 3600),
            ("7d", 604800),
            (" 2H ", 7200),
        ],
    )
    def test_valid(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "1w", "h", "-5m", "1.5h", 0, -1, "0s", True])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)


class TestSettings:
    def test_durations_parsed_from_strings(self):
        settings = _settings(jwt_expires_in="15m", refresh_expires_in="30d", password_reset_expire_seconds="2h")
        assert settings.jwt_expires_in == 900
        assert settings.refresh_expires_in == 30 * 86400
        assert settings.password_reset_expire_seconds == 7200

    def test_defaults(self):
        settings = _settings()
        assert settings.jwt_expires_in == 3600
        assert settings.refresh_expires_in == 604800
        assert settings.api_prefix == "/api/v1"

    def test_missing_secret_fails_in_production(self):
        with pytest.raises(ValidationError, match="JWT_SECRET is required"):
            _settings(jwt_secret="")

    def test_missing_secrets_generated_in_debug(self):
        settings = _settings(debug=True, jwt_secret="", refresh_secret="")
        assert len(settings.jwt_secret) >= 32
        assert len(settings.refresh_secret) >= 32
        assert settings.jwt_secret != settings.refresh_secret

    def test_short_secret_rejected_even_in_debug(self):
        with pytest.raises(ValidationError, match="at least 32 characters"):
            _settings(debug=True, refresh_secret="too-short")

    @pytest.mark.parametrize("rounds", [3, 32])
    def test_bcrypt_rounds_range(self, rounds):
        with pytest.raises(ValidationError):
            _settings(bcrypt_rounds=rounds)

    def test_bad_duration_rejected(self):
        with pytest.raises(ValidationError):
            _settings(jwt_expires_in="forever")

    def test_storage_backend_is_restricted(self):
        with pytest.raises(ValidationError):
            _settings(storage_backend="mongodb")
