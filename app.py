"""Application entry point for the Discord admin gateway."""

from __future__ import annotations

import base64
import binascii
import json
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Tuple
from uuid import uuid4

from flask import Flask, current_app, g, jsonify, request
import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars
from werkzeug.exceptions import HTTPException

from discord_gateway.allowlist import IPAllowlistGuard
from discord_gateway.components import build_component_tree, build_modal
from discord_gateway.config import AppSettings, get_settings
from discord_gateway.errors import (
    FeatureDisabled,
    GatewayError,
    InvalidRequest,
    PayloadTooLarge,
    PlatformRejected,
    PlatformUnavailable,
    RateLimitExceeded,
    ResourceNotFound,
)
from discord_gateway.interactions import InteractionDispatcher, InteractionRegistry
from discord_gateway.logging_config import configure_logging, log_security_event
from discord_gateway.platform_client import (
    DiscordClient,
    resolve_channel_type,
    resolve_role_color,
)
from discord_gateway.policy import SecurityProfile, resolve_profile, response_headers
from discord_gateway.ratelimit import DEFAULT_ENDPOINT_LIMITS, RateLimitDecision, RateLimitPolicy
from discord_gateway.security import (
    API_KEY_HEADER,
    SIGNATURE_HEADER,
    RequestAuthenticator,
    extract_api_key,
    is_valid_snowflake,
    is_valid_webhook_url,
    sanitize_text,
)

EXTENSION_KEY = "discord_gateway"
INTERACTIONS_PATH = "/interactions"
PUBLIC_PATHS = frozenset({"/health", "/api/status", "/api/webhook/test", "/api/components/v2/examples"})
MAX_BULK_ROLES = 10
SERVER_CONFIG_ACTIONS = ("get_info", "get_channels", "get_roles")
SWEEP_INTERVAL_SECONDS = 60.0
CORS_ALLOWED_HEADERS = ", ".join(("Content-Type", "Authorization", API_KEY_HEADER, SIGNATURE_HEADER))
CORS_ALLOWED_METHODS = "GET, POST, DELETE, OPTIONS"

_LOGGING_CONFIGURED = False
_STARTED_AT = time.monotonic()


@dataclass
class GatewayState:
    """Collaborators shared by every request of one application instance."""

    settings: AppSettings
    profile: SecurityProfile
    limiter: RateLimitPolicy
    admin_guard: IPAllowlistGuard
    authenticator: RequestAuthenticator
    platform: DiscordClient
    dispatcher: InteractionDispatcher
    timer: Callable[[], float] = time.monotonic
    last_sweep: float = field(default=0.0)

    def maybe_sweep(self) -> None:
        now = self.timer()
        if now - self.last_sweep < SWEEP_INTERVAL_SECONDS:
            return
        self.last_sweep = now
        removed = self.limiter.sweep()
        if removed:
            structlog.get_logger().debug("rate_limit_records_swept", removed=removed)


def _state() -> GatewayState:
    return current_app.extensions[EXTENSION_KEY]


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


def _load_version() -> str:
    version_file = Path(__file__).resolve().parent / "VERSION"
    if version_file.exists():
        return version_file.read_text(encoding="utf-8").strip()
    return "unknown"


def _endpoint_limits(settings: AppSettings) -> Dict[str, Tuple[timedelta, int]]:
    limits = dict(DEFAULT_ENDPOINT_LIMITS)
    for path, override in settings.endpoint_rate_limits.items():
        limits[path] = (timedelta(seconds=override.window), override.max)
    return limits


def admin_only(view: Callable[..., Any]) -> Callable[..., Any]:
    """Mark *view* as reachable only from the admin allow-list."""

    view.admin_only = True
    return view


def requires_feature(flag: str, feature: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Reject calls to the wrapped view while the *flag* setting is off."""

    def decorator(view: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view)
        def wrapper(*args: Any, **kwargs: Any):
            if not getattr(_state().settings, flag):
                raise FeatureDisabled(feature)
            return view(*args, **kwargs)

        return wrapper

    return decorator


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise InvalidRequest("Request body must be a JSON object.")
    return payload


def _require(payload: Mapping[str, Any], *names: str) -> None:
    if any(not payload.get(name) for name in names):
        raise InvalidRequest(f"{' and '.join(names)} {'is' if len(names) == 1 else 'are'} required")


def _require_snowflake(value: Any, name: str) -> str:
    if not is_valid_snowflake(value):
        raise InvalidRequest(f"{name} must be a Discord snowflake id")
    return str(value)


def _optional_text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return sanitize_text(str(value))


def _decode_attachments(raw: Any) -> List[Tuple[str, bytes]]:
    """Decode ``[{"filename", "data"}]`` uploads carried as base64."""

    if raw is None:
        return []
    if not isinstance(raw, list):
        raise InvalidRequest("attachments must be a list")

    files: List[Tuple[str, bytes]] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict) or not item.get("filename") or not item.get("data"):
            raise InvalidRequest(f"attachments[{index}] needs a filename and base64 data")
        name = Path(str(item["filename"])).name
        try:
            content = base64.b64decode(item["data"], validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidRequest(f"attachments[{index}] is not valid base64") from exc
        files.append((name, content))
    return files


def _channel_summary(channel: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": channel.get("id"),
        "name": channel.get("name", "Unknown"),
        "type": channel.get("type"),
        "guildId": channel.get("guild_id"),
        "parentId": channel.get("parent_id"),
    }


def _role_summary(role: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": role.get("id"),
        "name": role.get("name"),
        "color": role.get("color"),
        "permissions": str(role.get("permissions")),
        "mentionable": role.get("mentionable", False),
        "hoist": role.get("hoist", False),
    }


def _create_role(platform: DiscordClient, guild_id: str, definition: Mapping[str, Any]) -> Dict[str, Any]:
    permissions = definition.get("permissions")
    if permissions is not None and not str(permissions).isdigit():
        raise InvalidRequest("permissions must be a non-negative integer bitfield")
    return platform.create_role(
        guild_id,
        name=sanitize_text(str(definition["name"])),
        color=resolve_role_color(definition.get("color")),
        permissions=permissions or None,
        mentionable=bool(definition.get("mentionable", False)),
        hoist=bool(definition.get("hoist", False)),
    )


def _create_channel(platform: DiscordClient, guild_id: str, definition: Mapping[str, Any]) -> Dict[str, Any]:
    parent_id = definition.get("parentId")
    if parent_id is not None:
        parent_id = _require_snowflake(parent_id, "parentId")
    return platform.create_channel(
        guild_id,
        name=sanitize_text(str(definition["name"])),
        channel_type=resolve_channel_type(definition.get("type")),
        parent_id=parent_id,
        topic=_optional_text(definition.get("topic")),
        permission_overwrites=definition.get("permissionOverwrites"),
    )


def _register_error_handlers(flask_app: Flask) -> None:
    """Register JSON error handlers that attach a trace identifier."""

    @flask_app.errorhandler(GatewayError)
    def handle_gateway_error(error: GatewayError):
        log = structlog.get_logger().bind(path=request.path, error=error.code)
        if error.status_code >= 500:
            log.error("request_failed", message=error.message)
        else:
            log.info("request_rejected", status_code=error.status_code)

        response = jsonify(error.to_response())
        response.status_code = error.status_code
        if isinstance(error, RateLimitExceeded):
            response.headers["Retry-After"] = str(error.retry_after)
            response.headers["X-RateLimit-Remaining"] = str(error.remaining)
            if error.limit is not None:
                response.headers["X-RateLimit-Limit"] = str(error.limit)
        return response

    @flask_app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        response = jsonify(
            {
                "error": (error.name or "error").lower().replace(" ", "_"),
                "message": error.description,
                "timestamp": _timestamp(),
            }
        )
        response.status_code = error.code or 500
        return response

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[override]
        trace_id = g.get("trace_id") or str(uuid4())
        structlog.get_logger().exception("unhandled_application_error", trace_id=trace_id, path=request.path)
        response = jsonify({"error": "internal_server_error", "trace_id": trace_id, "timestamp": _timestamp()})
        response.status_code = 500
        return response


def _register_admission(flask_app: Flask) -> None:
    """Run every request through size, rate, origin and credential checks, in that order."""

    @flask_app.before_request
    def admit_request():
        g.trace_id = str(uuid4())
        bind_contextvars(trace_id=g.trace_id)

        state = _state()
        profile = state.profile
        identity = request.remote_addr or "unknown"
        path = request.path

        size = request.content_length
        if size is None:
            size = len(request.get_data(cache=True))
        if size > profile.max_payload_bytes:
            log_security_event("payload_too_large", identity=identity, path=path, size=size)
            raise PayloadTooLarge(size=size, limit=profile.max_payload_bytes)

        state.maybe_sweep()
        # Interaction callbacks skip rate limiting; the signature check below still applies.
        if path != INTERACTIONS_PATH:
            try:
                g.rate_limit = state.limiter.check(identity, path)
            except RateLimitExceeded as exc:
                log_security_event("rate_limited", identity=identity, path=path, scope=exc.scope)
                raise

        view = flask_app.view_functions.get(request.endpoint) if request.endpoint else None
        if view is not None and getattr(view, "admin_only", False):
            state.admin_guard.enforce(identity, path=path)

        if view is None or request.method == "OPTIONS" or path in PUBLIC_PATHS:
            return None

        if path == INTERACTIONS_PATH:
            if profile.webhook_signature_required or state.settings.webhook_secret:
                state.authenticator.check_signature(
                    request.get_data(cache=True), request.headers.get(SIGNATURE_HEADER), identity=identity
                )
            return None

        if profile.api_key_required:
            state.authenticator.check_api_key(extract_api_key(request.headers), identity=identity)
        if profile.webhook_signature_required:
            state.authenticator.check_signature(
                request.get_data(cache=True), request.headers.get(SIGNATURE_HEADER), identity=identity
            )
        return None

    @flask_app.after_request
    def decorate_response(response):
        state = _state()
        response.headers.update(response_headers(state.profile))

        decision: RateLimitDecision | None = g.get("rate_limit")
        if decision is not None:
            response.headers["X-RateLimit-Limit"] = str(decision.limit)
            response.headers["X-RateLimit-Remaining"] = str(decision.remaining)

        origin = request.headers.get("Origin")
        if state.profile.allows_origin(origin):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Methods"] = CORS_ALLOWED_METHODS
            response.headers["Access-Control-Allow-Headers"] = CORS_ALLOWED_HEADERS
            response.headers.add("Vary", "Origin")

        structlog.get_logger().info(
            "request_completed",
            method=request.method,
            path=request.path,
            status_code=response.status_code,
        )
        return response

    @flask_app.teardown_request
    def clear_request_context(_error=None):
        unbind_contextvars("trace_id")


def _register_status_routes(flask_app: Flask) -> None:
    @flask_app.route("/health", methods=["GET"])
    def health():
        state = _state()
        return jsonify(
            {
                "status": "healthy",
                "timestamp": _timestamp(),
                "uptime": round(time.monotonic() - _STARTED_AT, 3),
                "version": flask_app.config.get("APP_VERSION", "unknown"),
                "environment": state.settings.environment,
                "security": {
                    "level": state.profile.name,
                    "rateLimiting": True,
                    "cors": state.profile.cors_enabled,
                    "apiKeyRequired": state.profile.api_key_required,
                },
            }
        )

    @flask_app.route("/api/status", methods=["GET"])
    def api_status():
        state = _state()
        settings = state.settings

        def flag(enabled: bool) -> str:
            return "enabled" if enabled else "disabled"

        return jsonify(
            {
                "status": "operational",
                "timestamp": _timestamp(),
                "services": {
                    "discord": "configured" if settings.discord_token else "missing_token",
                    "webhook": flag(settings.enable_webhook_system),
                    "channels": flag(settings.enable_channel_management),
                    "roles": flag(settings.enable_role_management),
                    "serverConfig": flag(settings.enable_server_config),
                    "componentsV2": flag(settings.enable_components_v2),
                },
                "security": {
                    "level": state.profile.name,
                    "rateLimiting": True,
                    "cors": state.profile.cors_enabled,
                },
            }
        )


def _register_webhook_routes(flask_app: Flask) -> None:
    @flask_app.route("/api/webhook/send", methods=["POST"])
    @requires_feature("enable_webhook_system", "Webhook system")
    def webhook_send():
        state = _state()
        payload = _json_body()
        _require(payload, "webhookUrl", "message")

        webhook_url = payload["webhookUrl"]
        message = payload["message"]
        if not is_valid_webhook_url(webhook_url):
            raise InvalidRequest("Invalid webhook URL format")
        if not isinstance(message, dict):
            raise InvalidRequest("message must be an object")

        sanitized = dict(message)
        for key in ("content", "username"):
            cleaned = _optional_text(message.get(key))
            if cleaned is None:
                sanitized.pop(key, None)
            else:
                sanitized[key] = cleaned

        size = len(json.dumps(sanitized).encode("utf-8"))
        if size > state.settings.max_webhook_payload_size:
            raise PayloadTooLarge(size=size, limit=state.settings.max_webhook_payload_size)

        state.platform.execute_webhook(webhook_url, sanitized)
        structlog.get_logger().info("webhook_message_sent", size=size)
        return jsonify({"success": True, "message": "Webhook sent successfully"})

    @flask_app.route("/api/webhook/create", methods=["POST"])
    @requires_feature("enable_webhook_system", "Webhook system")
    def webhook_create():
        state = _state()
        payload = _json_body()
        _require(payload, "channelId", "name")
        channel_id = _require_snowflake(payload["channelId"], "channelId")

        webhook = state.platform.create_webhook(
            channel_id, name=sanitize_text(str(payload["name"])), avatar=payload.get("avatar")
        )
        url = webhook.get("url")
        if not url and webhook.get("token"):
            url = f"https://discord.com/api/webhooks/{webhook['id']}/{webhook['token']}"

        structlog.get_logger().info("webhook_created", channel_id=channel_id, webhook_id=webhook.get("id"))
        return jsonify(
            {
                "success": True,
                "webhook": {
                    "id": webhook.get("id"),
                    "name": webhook.get("name"),
                    "url": url,
                    "channelId": webhook.get("channel_id", channel_id),
                },
            }
        )

    @flask_app.route("/api/webhook/test", methods=["GET"])
    def webhook_test():
        return jsonify(
            {
                "success": True,
                "message": "Webhook system is operational",
                "timestamp": _timestamp(),
                "version": flask_app.config.get("APP_VERSION", "unknown"),
            }
        )


def _register_channel_routes(flask_app: Flask) -> None:
    @flask_app.route("/api/channels/create", methods=["POST"])
    @requires_feature("enable_channel_management", "Channel management")
    def channel_create():
        payload = _json_body()
        _require(payload, "guildId", "name")
        guild_id = _require_snowflake(payload["guildId"], "guildId")

        channel = _create_channel(_state().platform, guild_id, payload)
        structlog.get_logger().info("channel_created", guild_id=guild_id, channel_id=channel.get("id"))
        return jsonify({"success": True, "channel": _channel_summary(channel)})

    @flask_app.route("/api/channels/category/create", methods=["POST"])
    @requires_feature("enable_channel_management", "Channel management")
    def category_create():
        payload = _json_body()
        _require(payload, "guildId", "name")
        guild_id = _require_snowflake(payload["guildId"], "guildId")

        category = _state().platform.create_category(
            guild_id,
            name=sanitize_text(str(payload["name"])),
            permission_overwrites=payload.get("permissionOverwrites"),
        )
        structlog.get_logger().info("category_created", guild_id=guild_id, channel_id=category.get("id"))
        return jsonify({"success": True, "category": _channel_summary(category)})

    @flask_app.route("/api/channels/<channel_id>", methods=["DELETE"])
    @admin_only
    @requires_feature("enable_channel_management", "Channel management")
    def channel_delete(channel_id: str):
        channel_id = _require_snowflake(channel_id, "channelId")
        _state().platform.delete_channel(channel_id)
        structlog.get_logger().info("channel_deleted", channel_id=channel_id)
        return jsonify({"success": True, "message": "Channel deleted successfully"})

    @flask_app.route("/api/channels/guild/<guild_id>", methods=["GET"])
    def guild_channels(guild_id: str):
        guild_id = _require_snowflake(guild_id, "guildId")
        channels = _state().platform.list_channels(guild_id)
        return jsonify(
            {"success": True, "channels": [_channel_summary(channel) for channel in channels], "count": len(channels)}
        )

    @flask_app.route("/api/channels/<channel_id>", methods=["GET"])
    def channel_get(channel_id: str):
        channel_id = _require_snowflake(channel_id, "channelId")
        try:
            channel = _state().platform.get_channel(channel_id)
        except PlatformRejected as exc:
            if exc.status == 404:
                raise ResourceNotFound("Channel not found") from exc
            raise
        return jsonify({"success": True, "channel": _channel_summary(channel) | {"topic": channel.get("topic")}})


def _register_role_routes(flask_app: Flask) -> None:
    @flask_app.route("/api/roles/create", methods=["POST"])
    @requires_feature("enable_role_management", "Role management")
    def role_create():
        payload = _json_body()
        _require(payload, "guildId", "name")
        guild_id = _require_snowflake(payload["guildId"], "guildId")

        role = _create_role(_state().platform, guild_id, payload)
        structlog.get_logger().info("role_created", guild_id=guild_id, role_id=role.get("id"))
        return jsonify({"success": True, "role": _role_summary(role) | {"guildId": guild_id}})

    @flask_app.route("/api/roles/<role_id>", methods=["DELETE"])
    @admin_only
    @requires_feature("enable_role_management", "Role management")
    def role_delete(role_id: str):
        payload = request.get_json(silent=True) or {}
        guild_id = payload.get("guildId") if isinstance(payload, dict) else None
        guild_id = guild_id or request.args.get("guildId")
        if not guild_id:
            raise InvalidRequest("roleId and guildId are required")
        guild_id = _require_snowflake(guild_id, "guildId")
        role_id = _require_snowflake(role_id, "roleId")

        _state().platform.delete_role(guild_id, role_id)
        structlog.get_logger().info("role_deleted", guild_id=guild_id, role_id=role_id)
        return jsonify({"success": True, "message": "Role deleted successfully"})

    @flask_app.route("/api/roles/guild/<guild_id>", methods=["GET"])
    def guild_roles(guild_id: str):
        guild_id = _require_snowflake(guild_id, "guildId")
        roles = _state().platform.list_roles(guild_id)
        return jsonify({"success": True, "roles": [_role_summary(role) for role in roles], "count": len(roles)})

    @flask_app.route("/api/roles/bulk-create", methods=["POST"])
    @admin_only
    @requires_feature("enable_role_management", "Role management")
    def roles_bulk_create():
        payload = _json_body()
        roles = payload.get("roles")
        if not payload.get("guildId") or not isinstance(roles, list) or not roles:
            raise InvalidRequest("guildId and roles array are required")
        if len(roles) > MAX_BULK_ROLES:
            raise InvalidRequest(f"Maximum {MAX_BULK_ROLES} roles can be created at once")
        guild_id = _require_snowflake(payload["guildId"], "guildId")

        log = structlog.get_logger().bind(guild_id=guild_id)
        created: List[Dict[str, Any]] = []
        failed: List[Dict[str, Any]] = []
        for index, definition in enumerate(roles):
            if not isinstance(definition, dict) or not definition.get("name"):
                log.warning("bulk_role_skipped", index=index, reason="name_required")
                failed.append({"index": index, "error": "name is required"})
                continue
            try:
                created.append(_role_summary(_create_role(_state().platform, guild_id, definition)))
            except (PlatformRejected, PlatformUnavailable, InvalidRequest) as exc:
                log.warning("bulk_role_failed", index=index, error=exc.code)
                failed.append({"index": index, "error": exc.message})

        return jsonify(
            {"success": True, "message": f"Created {len(created)} roles", "roles": created, "failed": failed}
        )


def _register_server_routes(flask_app: Flask) -> None:
    @flask_app.route("/api/server/info/<guild_id>", methods=["GET"])
    @requires_feature("enable_server_config", "Server configuration")
    def server_info(guild_id: str):
        guild_id = _require_snowflake(guild_id, "guildId")
        return jsonify({"success": True, "guild": _state().platform.get_guild_info(guild_id)})

    @flask_app.route("/api/server/setup", methods=["POST"])
    @admin_only
    @requires_feature("enable_server_config", "Server configuration")
    def server_setup():
        payload = _json_body()
        _require(payload, "guildId", "config")
        guild_id = _require_snowflake(payload["guildId"], "guildId")
        setup = payload["config"]
        if not isinstance(setup, dict):
            raise InvalidRequest("config must be an object")

        platform = _state().platform
        log = structlog.get_logger().bind(guild_id=guild_id)
        steps: List[Tuple[str, str, Callable[[Mapping[str, Any]], Dict[str, Any]]]] = [
            ("role", "roles", lambda definition: _create_role(platform, guild_id, definition)),
            (
                "category",
                "categories",
                lambda definition: platform.create_category(
                    guild_id,
                    name=sanitize_text(str(definition["name"])),
                    permission_overwrites=definition.get("permissionOverwrites"),
                ),
            ),
            ("channel", "channels", lambda definition: _create_channel(platform, guild_id, definition)),
        ]

        results: List[Dict[str, Any]] = []
        for kind, key, create in steps:
            for definition in setup.get(key) or []:
                if not isinstance(definition, dict) or not definition.get("name"):
                    results.append({"type": kind, "success": False, "error": "name is required"})
                    continue
                try:
                    created = create(definition)
                except (PlatformRejected, PlatformUnavailable, InvalidRequest) as exc:
                    log.warning("server_setup_step_failed", type=kind, error=exc.code)
                    results.append({"type": kind, "success": False, "error": exc.message})
                    continue
                log.info("server_setup_step_completed", type=kind, id=created.get("id"))
                results.append(
                    {"type": kind, "success": True, "data": {"id": created.get("id"), "name": created.get("name")}}
                )

        successful = sum(1 for result in results if result["success"])
        return jsonify(
            {
                "success": True,
                "message": f"Server setup completed: {successful}/{len(results)} items created",
                "results": results,
                "summary": {"total": len(results), "successful": successful, "failed": len(results) - successful},
            }
        )

    @flask_app.route("/api/server/config", methods=["POST"])
    @admin_only
    @requires_feature("enable_server_config", "Server configuration")
    def server_config():
        payload = _json_body()
        _require(payload, "guildId", "action")
        action = payload["action"]
        if action not in SERVER_CONFIG_ACTIONS:
            raise InvalidRequest("Invalid action specified", allowed=list(SERVER_CONFIG_ACTIONS))
        guild_id = _require_snowflake(payload["guildId"], "guildId")

        info = _state().platform.get_guild_info(guild_id)
        if action == "get_channels":
            result = {"channels": info["channels"]}
        elif action == "get_roles":
            result = {"roles": info["roles"]}
        else:
            result = info
        return jsonify({"success": True, "action": action, "result": result})


EXAMPLE_MESSAGES: Dict[str, Any] = {
    "container": {
        "type": "container",
        "accentColor": "#5865F2",
        "children": [
            {"type": "text_display", "content": "## Welcome to Components v2!"},
            {"type": "separator", "divider": True, "spacing": "small"},
            {
                "type": "action_row",
                "children": [
                    {"type": "button", "label": "Click me!", "style": "primary", "customId": "example_button"},
                    {"type": "button", "label": "Docs", "style": "link", "url": "https://discord.com/developers/docs"},
                ],
            },
        ],
    },
    "section": {
        "type": "section",
        "children": [{"type": "text_display", "content": "A section pairs text with one accessory."}],
        "accessory": {"type": "thumbnail", "url": "https://example.com/image.png", "description": "Example image"},
    },
    "gallery": {
        "type": "media_gallery",
        "items": [{"url": "https://example.com/image.png", "description": "Example image"}],
    },
    "select": {
        "type": "action_row",
        "children": [
            {
                "type": "select",
                "customId": "example_select",
                "placeholder": "Choose an option...",
                "minValues": 1,
                "maxValues": 1,
                "options": [
                    {"label": "Option 1", "value": "option_1", "description": "First option"},
                    {"label": "Option 2", "value": "option_2", "description": "Second option"},
                ],
            }
        ],
    },
    "modal": {
        "title": "Example Modal",
        "customId": "example_modal",
        "components": [
            {
                "type": "text_input",
                "customId": "name_input",
                "label": "Your Name",
                "style": "short",
                "required": True,
                "placeholder": "Enter your name...",
            },
            {
                "type": "text_input",
                "customId": "description_input",
                "label": "Description",
                "style": "paragraph",
                "required": False,
                "placeholder": "Enter a description...",
            },
        ],
    },
}


MESSAGE_NODE_KEYS = ("components", "containers", "children")


def _message_data(payload: Mapping[str, Any]) -> Dict[str, Any]:
    data = payload.get("messageData", payload)
    if not isinstance(data, dict):
        raise InvalidRequest("messageData must be an object")
    return data


def _message_nodes(data: Mapping[str, Any]) -> List[Any]:
    """Return the top-level node list, accepting any of the documented keys."""

    for key in MESSAGE_NODE_KEYS:
        if key in data and data[key] is not None:
            nodes = data[key]
            if not isinstance(nodes, list):
                raise InvalidRequest(f"{key} must be a list")
            return nodes
    return []


def _attachment_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise InvalidRequest("attachments must be a list")
    return value


def _register_component_routes(flask_app: Flask) -> None:
    @flask_app.route("/api/components/v2/message", methods=["POST"])
    @requires_feature("enable_components_v2", "Components v2")
    def components_message():
        payload = _json_body()
        _require(payload, "channelId", "messageData")
        channel_id = _require_snowflake(payload["channelId"], "channelId")
        data = _message_data(payload)

        files = _decode_attachments(data.get("attachments"))
        tree = build_component_tree(
            _message_nodes(data),
            content=data.get("content"),
            attachments=[name for name, _ in files],
        )
        message = _state().platform.send_message(channel_id, tree.to_message_payload(), files=files)

        structlog.get_logger().info("components_message_sent", channel_id=channel_id, **tree.stats())
        return jsonify(
            {
                "success": True,
                "message": {
                    "id": message.get("id"),
                    "channelId": message.get("channel_id", channel_id),
                    "timestamp": message.get("timestamp"),
                },
                "stats": tree.stats(),
            }
        )

    @flask_app.route("/api/components/v2/validate", methods=["POST"])
    @requires_feature("enable_components_v2", "Components v2")
    def components_validate():
        data = _message_data(_json_body())
        tree = build_component_tree(
            _message_nodes(data),
            content=data.get("content"),
            attachments=_attachment_list(data.get("attachments")),
        )
        return jsonify({"success": True, "valid": True, "stats": tree.stats(), "payload": tree.to_message_payload()})

    @flask_app.route("/api/components/v2/modal", methods=["POST"])
    @requires_feature("enable_components_v2", "Components v2")
    def components_modal():
        payload = _json_body()
        _require(payload, "modalData")
        return jsonify({"success": True, "modal": build_modal(payload["modalData"])})

    @flask_app.route("/api/components/v2/examples", methods=["GET"])
    def components_examples():
        return jsonify({"success": True, "examples": EXAMPLE_MESSAGES})


def _register_interaction_routes(flask_app: Flask) -> None:
    @flask_app.route(INTERACTIONS_PATH, methods=["POST"])
    def interactions():
        payload = _json_body()
        return jsonify(_state().dispatcher.handle(payload))


def create_app(
    settings: AppSettings | None = None,
    *,
    platform_client: DiscordClient | None = None,
    registry: InteractionRegistry | None = None,
    timer: Callable[[], float] | None = None,
) -> Flask:
    """Create and configure the Flask application.

    Raises ``ConfigurationError`` before serving anything when the selected
    security profile's requirements are not met.
    """

    global _LOGGING_CONFIGURED

    settings = settings or get_settings()

    if not _LOGGING_CONFIGURED:
        configure_logging(settings.log_level)
        _LOGGING_CONFIGURED = True

    profile = resolve_profile(settings)
    clock = timer or time.monotonic
    platform = platform_client or DiscordClient(
        token=settings.discord_token, timeout=settings.platform_timeout_seconds
    )

    state = GatewayState(
        settings=settings,
        profile=profile,
        limiter=RateLimitPolicy(
            window=profile.rate_limit_window,
            max_requests=profile.rate_limit_max,
            endpoint_limits=_endpoint_limits(settings),
            timer=clock,
        ),
        admin_guard=IPAllowlistGuard(settings.admin_ip_allowlist),
        authenticator=RequestAuthenticator(api_key=settings.api_key, webhook_secret=settings.webhook_secret),
        platform=platform,
        dispatcher=InteractionDispatcher(registry, platform=platform),
        timer=clock,
        last_sweep=clock(),
    )

    flask_app = Flask(__name__)
    flask_app.config["APP_VERSION"] = _load_version()
    flask_app.config["MAX_CONTENT_LENGTH"] = profile.max_payload_bytes
    flask_app.extensions[EXTENSION_KEY] = state

    _register_error_handlers(flask_app)
    _register_admission(flask_app)
    _register_status_routes(flask_app)
    _register_webhook_routes(flask_app)
    _register_channel_routes(flask_app)
    _register_role_routes(flask_app)
    _register_server_routes(flask_app)
    _register_component_routes(flask_app)
    _register_interaction_routes(flask_app)

    structlog.get_logger().info("gateway_configured", **profile.describe())
    return flask_app


if __name__ == "__main__":
    application = create_app()
    active = application.extensions[EXTENSION_KEY].settings
    application.run(host=active.host, port=active.port)
