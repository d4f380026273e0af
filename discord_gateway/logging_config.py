"""Structlog configuration helpers for structured logging."""

from __future__ import annotations

import logging
from typing import Any, MutableMapping

import structlog

LOG_LEVEL = logging.INFO
SENSITIVE_KEYS = ("token", "password", "secret", "key", "auth", "signature")
_SAFE_KEYS = {"event", "level", "timestamp", "logger"}


def _is_sensitive(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def mask_value(value: Any) -> Any:
    """Return *value* with sensitive entries replaced, recursing into mappings."""

    if isinstance(value, dict):
        masked = {}
        for key, item in value.items():
            if _is_sensitive(str(key)):
                masked[key] = "*" * min(len(item), 8) if isinstance(item, str) else "[REDACTED]"
            else:
                masked[key] = mask_value(item)
        return masked
    if isinstance(value, (list, tuple)):
        return [mask_value(item) for item in value]
    return value


def mask_sensitive_fields(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Structlog processor hiding secrets before anything is rendered."""

    for key in list(event_dict.keys()):
        if key in _SAFE_KEYS:
            continue
        if _is_sensitive(key):
            value = event_dict[key]
            event_dict[key] = "*" * min(len(value), 8) if isinstance(value, str) else "[REDACTED]"
        else:
            event_dict[key] = mask_value(event_dict[key])
    return event_dict


def configure_logging(level: str | int = LOG_LEVEL) -> None:
    """Configure structlog to emit JSON-formatted logs."""

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    timestamper = structlog.processors.TimeStamper(fmt="iso")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            timestamper,
            mask_sensitive_fields,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level)


def log_security_event(reason: str, *, identity: str, **fields: Any) -> None:
    """Record an admission failure for external monitoring."""

    structlog.get_logger("discord_gateway.security").warning(
        "security_event", reason=reason, identity=identity, **fields
    )
