"""Pydantic-based configuration helpers for the Discord admin gateway."""

from __future__ import annotations

import json
import os
from functools import lru_cache
from typing import Dict, Iterable, List, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError

DEFAULT_ADMIN_IPS = ["127.0.0.1", "::1"]


class EndpointLimit(BaseModel):
    """Sliding-window override for a single endpoint path."""

    window: float = Field(..., gt=0, description="Window length in seconds")
    max: int = Field(..., gt=0)


class AppSettings(BaseModel):
    """Settings required to initialise the gateway and its Discord client."""

    discord_token: str = Field(..., alias="DISCORD_TOKEN")
    application_id: str | None = Field(None, alias="DISCORD_APPLICATION_ID")
    environment: Literal["development", "test", "production"] = Field("production", alias="APP_ENV")
    host: str = Field("127.0.0.1", alias="HOST")
    port: int = Field(3000, alias="PORT")
    webhook_secret: str = Field("", alias="WEBHOOK_SECRET")
    api_key: str = Field("", alias="API_KEY")
    encryption_key: str = Field("", alias="ENCRYPTION_KEY")
    admin_ip_allowlist: List[str] = Field(default_factory=lambda: list(DEFAULT_ADMIN_IPS), alias="ADMIN_IP_ALLOWLIST")
    endpoint_rate_limits: Dict[str, EndpointLimit] = Field(default_factory=dict, alias="ENDPOINT_RATE_LIMITS")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    platform_timeout_seconds: float = Field(10.0, gt=0, alias="PLATFORM_TIMEOUT_SECONDS")
    max_webhook_payload_size: int = Field(1_048_576, gt=0, alias="MAX_WEBHOOK_PAYLOAD_SIZE")
    enable_channel_management: bool = Field(True, alias="ENABLE_CHANNEL_MANAGEMENT")
    enable_role_management: bool = Field(True, alias="ENABLE_ROLE_MANAGEMENT")
    enable_webhook_system: bool = Field(True, alias="ENABLE_WEBHOOK_SYSTEM")
    enable_server_config: bool = Field(True, alias="ENABLE_SERVER_CONFIG")
    enable_components_v2: bool = Field(True, alias="ENABLE_COMPONENTS_V2")

    @field_validator("environment", mode="before")
    @classmethod
    def _normalise_environment(cls, value: str) -> str:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("admin_ip_allowlist", mode="before")
    @classmethod
    def _split_addresses(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, list):
            return [item.strip() for item in value if item.strip()]
        return [item.strip() for item in value.split(",") if item.strip()]

    @field_validator("endpoint_rate_limits", mode="before")
    @classmethod
    def _parse_overrides(cls, value):
        if isinstance(value, str):
            if not value.strip():
                return {}
            try:
                return json.loads(value)
            except json.JSONDecodeError as exc:
                raise ValueError("ENDPOINT_RATE_LIMITS must be a JSON object") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def _validate_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
            raise ValueError(f"Unsupported log level '{value}'")
        return level


def _format_missing(fields: Iterable[str]) -> str:
    """Return a human-friendly comma-separated list of offending env vars."""

    unique: List[str] = []
    for field in fields:
        if field not in unique:
            unique.append(field)
    return ", ".join(unique)


@lru_cache()
def get_settings() -> AppSettings:
    """Fetch and cache settings from environment variables."""

    try:
        return AppSettings.model_validate(os.environ)
    except ValidationError as exc:
        invalid = [str(error["loc"][0]) for error in exc.errors()]
        message = (
            "Missing or invalid environment variables: "
            f"{_format_missing(invalid)}"
        )
        raise ConfigurationError(message) from exc
