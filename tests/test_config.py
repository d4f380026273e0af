"""Tests for configuration helpers."""

from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

from discord_gateway import config  # noqa: E402
from discord_gateway.errors import ConfigurationError  # noqa: E402


def _seed_env(monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "bot-token")
    monkeypatch.setenv("APP_ENV", "Development")
    monkeypatch.setenv("ADMIN_IP_ALLOWLIST", "10.0.0.1, 192.168.0.0/24 ,::1")
    monkeypatch.setenv("ENDPOINT_RATE_LIMITS", '{"/api/webhook/send": {"window": 30, "max": 3}}')
    monkeypatch.setenv("LOG_LEVEL", "warning")
    monkeypatch.setenv("ENABLE_ROLE_MANAGEMENT", "false")
    config.get_settings.cache_clear()


def test_get_settings_parses_expected_fields(monkeypatch):
    _seed_env(monkeypatch)

    settings = config.get_settings()

    assert settings.discord_token == "bot-token"
    assert settings.environment == "development"
    assert settings.admin_ip_allowlist == ["10.0.0.1", "192.168.0.0/24", "::1"]
    assert settings.endpoint_rate_limits["/api/webhook/send"].window == 30
    assert settings.endpoint_rate_limits["/api/webhook/send"].max == 3
    assert settings.log_level == "WARNING"
    assert settings.enable_role_management is False
    assert settings.enable_channel_management is True

    config.get_settings.cache_clear()


def test_defaults_apply_when_optional_values_are_absent(monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "bot-token")
    for var in ("APP_ENV", "ADMIN_IP_ALLOWLIST", "ENDPOINT_RATE_LIMITS", "LOG_LEVEL", "PORT", "HOST"):
        monkeypatch.delenv(var, raising=False)
    config.get_settings.cache_clear()

    settings = config.get_settings()

    assert settings.environment == "production"
    assert settings.admin_ip_allowlist == ["127.0.0.1", "::1"]
    assert settings.endpoint_rate_limits == {}
    assert settings.port == 3000
    assert settings.max_webhook_payload_size == 1_048_576

    config.get_settings.cache_clear()


def test_missing_environment_variables_raise_configuration_error(monkeypatch):
    monkeypatch.delenv("DISCORD_TOKEN", raising=False)
    config.get_settings.cache_clear()

    with pytest.raises(ConfigurationError) as err:
        config.get_settings()

    assert "DISCORD_TOKEN" in str(err.value)

    config.get_settings.cache_clear()


def test_invalid_rate_limit_override_is_reported(monkeypatch):
    _seed_env(monkeypatch)
    monkeypatch.setenv("ENDPOINT_RATE_LIMITS", "not-json")
    config.get_settings.cache_clear()

    with pytest.raises(ConfigurationError) as err:
        config.get_settings()

    assert "ENDPOINT_RATE_LIMITS" in str(err.value)

    config.get_settings.cache_clear()


def test_unknown_environment_is_rejected(monkeypatch):
    _seed_env(monkeypatch)
    monkeypatch.setenv("APP_ENV", "staging")
    config.get_settings.cache_clear()

    with pytest.raises(ConfigurationError) as err:
        config.get_settings()

    assert "APP_ENV" in str(err.value)

    config.get_settings.cache_clear()
