"""Error taxonomy shared by the admission layer, builders and route handlers."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict


class GatewayError(Exception):
    """Base class for errors that map onto a structured JSON response."""

    code = "gateway_error"
    status_code = 500
    default_message = "The request could not be processed."

    def __init__(self, message: str | None = None, **fields: Any) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.fields = fields

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": self.code,
            "message": self.message,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        body.update(self.fields)
        return body


class ConfigurationError(GatewayError):
    """Raised at startup when settings or secrets are missing or malformed."""

    code = "configuration_error"
    default_message = "Invalid configuration."


class AuthenticationFailure(str, Enum):
    MISSING_KEY = "missing_key"
    INVALID_KEY = "invalid_key"
    MISSING_SIGNATURE = "missing_signature"
    INVALID_SIGNATURE = "invalid_signature"


_AUTH_MESSAGES = {
    AuthenticationFailure.MISSING_KEY: "API key required",
    AuthenticationFailure.INVALID_KEY: "Invalid API key",
    AuthenticationFailure.MISSING_SIGNATURE: "Missing webhook signature",
    AuthenticationFailure.INVALID_SIGNATURE: "Invalid webhook signature",
}


class AuthenticationError(GatewayError):
    code = "authentication_failed"
    status_code = 401

    def __init__(self, kind: AuthenticationFailure) -> None:
        super().__init__(_AUTH_MESSAGES[kind], reason=kind.value)
        self.kind = kind


class RateLimitExceeded(GatewayError):
    code = "rate_limited"
    status_code = 429
    default_message = "Too many requests, please try again later."

    def __init__(self, *, retry_after: int, remaining: int = 0, limit: int | None = None, scope: str = "global") -> None:
        super().__init__(retry_after=retry_after, scope=scope)
        self.retry_after = retry_after
        self.remaining = remaining
        self.limit = limit
        self.scope = scope


class PayloadTooLarge(GatewayError):
    code = "payload_too_large"
    status_code = 413
    default_message = "Request entity too large"

    def __init__(self, *, size: int, limit: int) -> None:
        super().__init__(limit=limit)
        self.size = size
        self.limit = limit


class UnauthorizedOrigin(GatewayError):
    code = "unauthorized_origin"
    status_code = 403
    default_message = "Access denied from this IP address"


class FeatureDisabled(GatewayError):
    code = "feature_disabled"
    status_code = 403

    def __init__(self, feature: str) -> None:
        super().__init__(f"{feature} is disabled", feature=feature)


class InvalidRequest(GatewayError):
    code = "invalid_request"
    status_code = 400
    default_message = "Malformed request."


class ResourceNotFound(GatewayError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found."


class StructuralFailure(str, Enum):
    TOO_MANY_NODES = "too_many_nodes"
    TEXT_BUDGET_EXCEEDED = "text_budget_exceeded"
    GALLERY_BUDGET_EXCEEDED = "gallery_budget_exceeded"
    ILLEGAL_CONTAINMENT = "illegal_containment"
    MISSING_ACCESSORY = "missing_accessory"
    UNREGISTERED_ATTACHMENT = "unregistered_attachment"
    MULTIPLE_VIEWS = "multiple_views"
    INVALID_NODE = "invalid_node"


class StructuralValidationError(GatewayError):
    """Raised when a component tree violates a structural rule or budget."""

    code = "structural_validation_failed"
    status_code = 400

    def __init__(self, reason: StructuralFailure, path: str, detail: str) -> None:
        super().__init__(f"{path}: {detail}", reason=reason.value, path=path)
        self.reason = reason
        self.path = path
        self.detail = detail


class DoubleAcknowledgement(GatewayError):
    code = "double_acknowledgement"
    default_message = "Interaction has already been acknowledged."


class AcknowledgementTimeout(GatewayError):
    code = "acknowledgement_timeout"
    default_message = "Interaction acknowledgement deadline has passed."


class PlatformUnavailable(GatewayError):
    code = "platform_unavailable"
    status_code = 503
    default_message = "Discord is currently unreachable."


class PlatformRejected(GatewayError):
    code = "platform_rejected"
    status_code = 502
    default_message = "Discord rejected the request."

    def __init__(self, message: str | None = None, *, status: int | None = None, platform_code: int | None = None) -> None:
        super().__init__(message, platform_status=status, platform_code=platform_code)
        self.status = status
        self.platform_code = platform_code
