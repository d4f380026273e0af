"""Request authentication and input hygiene helpers."""

from __future__ import annotations

import hmac
import re
from hashlib import sha256

from markupsafe import escape

from .errors import AuthenticationError, AuthenticationFailure
from .logging_config import log_security_event

API_KEY_HEADER = "X-API-Key"
SIGNATURE_HEADER = "X-Webhook-Signature"
BEARER_PREFIX = "Bearer "

_SNOWFLAKE_RE = re.compile(r"^\d{17,19}$")
_WEBHOOK_URL_RE = re.compile(r"^https://discord\.com/api/webhooks/\d+/[\w-]+$")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def _as_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def constant_time_equals(expected: str | bytes, supplied: str | bytes) -> bool:
    """Compare two secrets without leaking where they differ.

    Inputs of different length never match.
    """

    return hmac.compare_digest(_as_bytes(expected), _as_bytes(supplied))


def compute_signature(secret: str, body: bytes) -> str:
    """Return the hex HMAC-SHA256 of the raw request body."""

    return hmac.new(_as_bytes(secret), body, sha256).hexdigest()


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """Validate a caller-supplied hex signature against *body*."""

    if not signature:
        return False
    expected = compute_signature(secret, body)
    return constant_time_equals(expected, signature.strip().lower())


class RequestAuthenticator:
    """API key and payload signature checks, composable per route."""

    def __init__(self, *, api_key: str, webhook_secret: str) -> None:
        self._api_key = api_key
        self._webhook_secret = webhook_secret

    def check_api_key(self, supplied: str | None, *, identity: str) -> None:
        if not supplied:
            self._fail(AuthenticationFailure.MISSING_KEY, identity)
        if not constant_time_equals(self._api_key, supplied):
            self._fail(AuthenticationFailure.INVALID_KEY, identity)

    def check_signature(self, body: bytes, supplied: str | None, *, identity: str) -> None:
        if not supplied:
            self._fail(AuthenticationFailure.MISSING_SIGNATURE, identity)
        if not verify_signature(body, supplied, self._webhook_secret):
            self._fail(AuthenticationFailure.INVALID_SIGNATURE, identity)

    @staticmethod
    def _fail(kind: AuthenticationFailure, identity: str) -> None:
        log_security_event(kind.value, identity=identity)
        raise AuthenticationError(kind)


def extract_api_key(headers) -> str | None:
    """Read the API key from ``X-API-Key`` or a bearer Authorization header."""

    supplied = headers.get(API_KEY_HEADER)
    if supplied:
        return supplied
    authorization = headers.get("Authorization", "")
    if authorization.startswith(BEARER_PREFIX):
        return authorization[len(BEARER_PREFIX):].strip() or None
    return None


def sanitize_text(value: str) -> str:
    """Neutralise markup in user-supplied text."""

    cleaned = _CONTROL_CHARS_RE.sub("", value)
    return str(escape(cleaned)).strip()


def is_valid_snowflake(value: str | None) -> bool:
    return bool(value) and bool(_SNOWFLAKE_RE.match(str(value)))


def is_valid_webhook_url(url: str | None) -> bool:
    return bool(url) and bool(_WEBHOOK_URL_RE.match(url))
