"""Generate secrets that satisfy the gateway's startup security checks.

Usage:
    python scripts/generate_secrets.py >> .env

Each line is a ``NAME=value`` pair ready for an env file. Keep the output
out of version control.
"""

from __future__ import annotations

import secrets
from typing import Dict

from discord_gateway.policy import (
    ENCRYPTION_KEY_LENGTH,
    MIN_API_KEY_LENGTH,
    MIN_WEBHOOK_SECRET_LENGTH,
)


def generate_secrets() -> Dict[str, str]:
    # token_hex(n) yields 2n characters.
    return {
        "WEBHOOK_SECRET": secrets.token_hex(MIN_WEBHOOK_SECRET_LENGTH),
        "API_KEY": secrets.token_hex(MIN_API_KEY_LENGTH),
        "ENCRYPTION_KEY": secrets.token_hex(ENCRYPTION_KEY_LENGTH // 2),
    }


def main() -> None:
    for name, value in generate_secrets().items():
        print(f"{name}={value}")


if __name__ == "__main__":
    main()
