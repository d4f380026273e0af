"""Environment-keyed security profiles and startup validation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, FrozenSet, List, Mapping

from .config import AppSettings
from .errors import ConfigurationError

MIN_API_KEY_LENGTH = 16
MIN_WEBHOOK_SECRET_LENGTH = 32
ENCRYPTION_KEY_LENGTH = 32


@dataclass(frozen=True)
class SecurityProfile:
    """Admission settings selected once per process."""

    name: str
    rate_limit_window: timedelta
    rate_limit_max: int
    max_payload_bytes: int
    allowed_origins: FrozenSet[str]
    api_key_required: bool
    webhook_signature_required: bool
    token_expiration: timedelta
    log_sensitive_data: bool = False

    @property
    def cors_enabled(self) -> bool:
        return bool(self.allowed_origins)

    def allows_origin(self, origin: str | None) -> bool:
        if not origin:
            return False
        return "*" in self.allowed_origins or origin in self.allowed_origins

    def describe(self) -> Dict[str, object]:
        """Return a log-friendly summary of the profile."""

        return {
            "profile": self.name,
            "window_seconds": int(self.rate_limit_window.total_seconds()),
            "rate_limit_max": self.rate_limit_max,
            "max_payload_bytes": self.max_payload_bytes,
            "allowed_origins": sorted(self.allowed_origins),
            "requires_api_key": self.api_key_required,
            "requires_signature": self.webhook_signature_required,
        }


PROFILES: Mapping[str, SecurityProfile] = {
    "test": SecurityProfile(
        name="test",
        rate_limit_window=timedelta(minutes=1),
        rate_limit_max=1000,
        max_payload_bytes=10 * 1024 * 1024,
        allowed_origins=frozenset({"*"}),
        api_key_required=False,
        webhook_signature_required=False,
        token_expiration=timedelta(hours=24),
        log_sensitive_data=True,
    ),
    "development": SecurityProfile(
        name="development",
        rate_limit_window=timedelta(minutes=5),
        rate_limit_max=500,
        max_payload_bytes=5 * 1024 * 1024,
        allowed_origins=frozenset({"http://localhost:3000", "http://localhost:8080"}),
        api_key_required=True,
        webhook_signature_required=True,
        token_expiration=timedelta(hours=12),
    ),
    "production": SecurityProfile(
        name="production",
        rate_limit_window=timedelta(minutes=30),
        rate_limit_max=50,
        max_payload_bytes=1024 * 1024,
        allowed_origins=frozenset(),
        api_key_required=True,
        webhook_signature_required=True,
        token_expiration=timedelta(hours=3),
    ),
}

SECURITY_HEADERS: Mapping[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=(), payment=(), usb=()",
    "Content-Security-Policy": (
        "default-src 'self'; script-src 'self'; style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data: https:; connect-src 'self'; font-src 'self'; "
        "object-src 'none'; media-src 'self'; frame-src 'none';"
    ),
}
HSTS_HEADER = "max-age=31536000; includeSubDomains"


def select_profile(environment: str) -> SecurityProfile:
    """Return the profile registered for *environment*."""

    try:
        return PROFILES[environment]
    except KeyError as exc:
        known = ", ".join(sorted(PROFILES))
        raise ConfigurationError(f"Unknown environment '{environment}'; expected one of: {known}") from exc


def response_headers(profile: SecurityProfile) -> Dict[str, str]:
    headers = dict(SECURITY_HEADERS)
    if profile.name == "production":
        headers["Strict-Transport-Security"] = HSTS_HEADER
    return headers


def validate_security_requirements(settings: AppSettings, profile: SecurityProfile) -> None:
    """Abort startup when secrets required by *profile* are absent or malformed."""

    errors: List[str] = []

    if profile.api_key_required and len(settings.api_key) < MIN_API_KEY_LENGTH:
        errors.append(f"API key is required and must be at least {MIN_API_KEY_LENGTH} characters")

    if profile.webhook_signature_required and len(settings.webhook_secret) < MIN_WEBHOOK_SECRET_LENGTH:
        errors.append(f"Webhook secret is required and must be at least {MIN_WEBHOOK_SECRET_LENGTH} characters")

    if len(settings.encryption_key) != ENCRYPTION_KEY_LENGTH:
        errors.append(f"Encryption key is required and must be exactly {ENCRYPTION_KEY_LENGTH} characters")

    if not settings.discord_token.strip():
        errors.append("Discord token is required")

    if profile.name == "production":
        if settings.host == "0.0.0.0":
            errors.append("In production, avoid binding to 0.0.0.0")
        if settings.log_level == "DEBUG":
            errors.append("Debug logging should be disabled in production")

    if errors:
        raise ConfigurationError("Security validation failed: " + "; ".join(errors), problems=errors)


def resolve_profile(settings: AppSettings) -> SecurityProfile:
    """Select and validate the profile for the configured environment."""

    profile = select_profile(settings.environment)
    validate_security_requirements(settings, profile)
    return profile
