"""Tests for security profile selection and startup validation."""

from datetime import timedelta

import pytest

from discord_gateway.config import AppSettings
from discord_gateway.errors import ConfigurationError
from discord_gateway.policy import (
    HSTS_HEADER,
    PROFILES,
    resolve_profile,
    response_headers,
    select_profile,
    validate_security_requirements,
)


def _settings(**overrides) -> AppSettings:
    values = {
        "DISCORD_TOKEN": "bot-token",
        "APP_ENV": "development",
        "API_KEY": "k" * 16,
        "WEBHOOK_SECRET": "s" * 32,
        "ENCRYPTION_KEY": "e" * 32,
        "LOG_LEVEL": "INFO",
    }
    values.update(overrides)
    return AppSettings.model_validate(values)


def test_select_profile_returns_registered_profiles():
    assert select_profile("test").rate_limit_max == 1000
    assert select_profile("development").rate_limit_window == timedelta(minutes=5)
    production = select_profile("production")
    assert production.rate_limit_max == 50
    assert production.max_payload_bytes == 1024 * 1024
    assert production.allowed_origins == frozenset()


def test_select_profile_rejects_unknown_environment():
    with pytest.raises(ConfigurationError):
        select_profile("staging")


def test_test_profile_relaxes_credentials():
    profile = PROFILES["test"]

    assert profile.api_key_required is False
    assert profile.webhook_signature_required is False
    assert profile.allows_origin("https://anything.example") is True


def test_development_profile_allows_only_local_origins():
    profile = PROFILES["development"]

    assert profile.allows_origin("http://localhost:3000") is True
    assert profile.allows_origin("https://evil.example") is False
    assert profile.allows_origin(None) is False


def test_valid_secrets_pass_validation():
    settings = _settings()

    profile = resolve_profile(settings)

    assert profile.name == "development"


def test_short_api_key_is_rejected():
    settings = _settings(API_KEY="short")

    with pytest.raises(ConfigurationError) as err:
        validate_security_requirements(settings, PROFILES["development"])

    assert "API key" in str(err.value)


def test_all_problems_are_reported_together():
    settings = _settings(API_KEY="", WEBHOOK_SECRET="tiny", ENCRYPTION_KEY="abc")

    with pytest.raises(ConfigurationError) as err:
        validate_security_requirements(settings, PROFILES["development"])

    problems = err.value.fields["problems"]
    assert len(problems) == 3


def test_test_profile_does_not_require_api_key_or_secret():
    settings = _settings(APP_ENV="test", API_KEY="", WEBHOOK_SECRET="")

    assert resolve_profile(settings).name == "test"


def test_production_rejects_wildcard_host_and_debug_logging():
    settings = _settings(APP_ENV="production", HOST="0.0.0.0", LOG_LEVEL="DEBUG")

    with pytest.raises(ConfigurationError) as err:
        resolve_profile(settings)

    message = str(err.value)
    assert "0.0.0.0" in message
    assert "Debug logging" in message


def test_production_headers_include_hsts():
    assert response_headers(PROFILES["production"])["Strict-Transport-Security"] == HSTS_HEADER
    assert "Strict-Transport-Security" not in response_headers(PROFILES["development"])
    assert response_headers(PROFILES["test"])["X-Frame-Options"] == "DENY"
