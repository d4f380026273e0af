"""Discord admin gateway package initialisation."""

from .background import run_async  # noqa: F401
from .config import AppSettings, get_settings  # noqa: F401
from .errors import GatewayError  # noqa: F401
from .logging_config import configure_logging  # noqa: F401
from .platform_client import DiscordClient  # noqa: F401
from .policy import SecurityProfile, resolve_profile  # noqa: F401

__all__ = [
    "AppSettings",
    "get_settings",
    "run_async",
    "GatewayError",
    "configure_logging",
    "DiscordClient",
    "SecurityProfile",
    "resolve_profile",
]
