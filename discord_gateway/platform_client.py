"""Thin wrapper utilities around the Discord REST API."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Sequence, Tuple

import httpx
import structlog

from .errors import PlatformRejected, PlatformUnavailable

API_BASE_URL = "https://discord.com/api/v10"
USER_AGENT = "DiscordBot (discord-admin-gateway, 1.0.0)"

CHANNEL_TYPES = {
    "text": 0,
    "voice": 2,
    "category": 4,
    "announcement": 5,
    "stage": 13,
    "forum": 15,
}
DEFAULT_ROLE_COLOR = 0x5865F2
VIEW_CHANNEL_PERMISSION = 1 << 10

ROLE_COLORS = {
    "blurple": DEFAULT_ROLE_COLOR,
    "red": 0xED4245,
    "green": 0x57F287,
    "yellow": 0xFEE75C,
    "fuchsia": 0xEB459E,
    "blue": 0x3498DB,
    "orange": 0xE67E22,
    "purple": 0x9B59B6,
    "grey": 0x95A5A6,
    "white": 0xFFFFFF,
}


def resolve_role_color(value: Any) -> int:
    """Accept ``#rrggbb``, a colour name or an integer; fall back to blurple."""

    if isinstance(value, bool):
        return DEFAULT_ROLE_COLOR
    if isinstance(value, int) and 0 <= value <= 0xFFFFFF:
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("#"):
            try:
                return int(text[1:], 16)
            except ValueError:
                return DEFAULT_ROLE_COLOR
        return ROLE_COLORS.get(text.lower(), DEFAULT_ROLE_COLOR)
    return DEFAULT_ROLE_COLOR


def resolve_channel_type(value: Any) -> int:
    """Return the numeric channel type, defaulting to a text channel."""

    if isinstance(value, int) and value in CHANNEL_TYPES.values():
        return value
    if isinstance(value, str) and value.strip().lower() in CHANNEL_TYPES:
        return CHANNEL_TYPES[value.strip().lower()]
    return CHANNEL_TYPES["text"]


class DiscordClient:
    """Encapsulate Discord REST interactions for easier testing."""

    def __init__(
        self,
        *,
        token: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
        base_url: str = API_BASE_URL,
    ) -> None:
        if client is None and token is None:
            raise ValueError("Either an instantiated client or a bot token must be provided.")

        self._client = client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bot {token}", "User-Agent": USER_AGENT},
        )
        self._log = structlog.get_logger(__name__)

    @property
    def client(self) -> httpx.Client:
        """Expose the underlying httpx client for advanced use cases."""

        return self._client

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, url: str, *, strip_auth: bool = False, **kwargs: Any) -> Any:
        request = self._client.build_request(method, url, **kwargs)
        if strip_auth:
            request.headers.pop("Authorization", None)
        try:
            response = self._client.send(request)
        except httpx.TimeoutException as exc:
            self._log.warning("platform_timeout", method=method, host=request.url.host)
            raise PlatformUnavailable("Discord did not respond in time.") from exc
        except httpx.TransportError as exc:
            self._log.warning("platform_unreachable", method=method, host=request.url.host, error=str(exc))
            raise PlatformUnavailable() from exc

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            message = body.get("message") if isinstance(body, dict) else None
            code = body.get("code") if isinstance(body, dict) else None
            self._log.warning(
                "platform_rejected",
                method=method,
                host=request.url.host,
                status_code=response.status_code,
                platform_code=code,
            )
            raise PlatformRejected(message, status=response.status_code, platform_code=code)

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    # messages ------------------------------------------------------------------

    def send_message(
        self,
        channel_id: str,
        payload: Mapping[str, Any],
        *,
        files: Sequence[Tuple[str, bytes]] = (),
    ) -> Dict[str, Any]:
        """Post a message, uploading *files* as ``attachment://`` targets."""

        url = f"/channels/{channel_id}/messages"
        if not files:
            return self._request("POST", url, json=dict(payload))

        body = dict(payload)
        body["attachments"] = [{"id": index, "filename": name} for index, (name, _) in enumerate(files)]
        multipart: List[Tuple[str, Any]] = [
            ("payload_json", (None, json.dumps(body), "application/json")),
        ]
        for index, (name, content) in enumerate(files):
            multipart.append((f"files[{index}]", (name, content, "application/octet-stream")))
        return self._request("POST", url, files=multipart)

    def execute_webhook(self, webhook_url: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Deliver *payload* through an incoming webhook URL (no bot auth)."""

        return self._request(
            "POST",
            webhook_url,
            params={"wait": "true"},
            json=dict(payload),
            strip_auth=True,
        )

    # channels ------------------------------------------------------------------

    def get_channel(self, channel_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/channels/{channel_id}")

    def delete_channel(self, channel_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/channels/{channel_id}")

    def list_channels(self, guild_id: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/guilds/{guild_id}/channels")

    def create_channel(
        self,
        guild_id: str,
        *,
        name: str,
        channel_type: int = 0,
        parent_id: str | None = None,
        topic: str | None = None,
        permission_overwrites: Sequence[Mapping[str, Any]] | None = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "name": name,
            "type": channel_type,
            "permission_overwrites": list(permission_overwrites or []),
        }
        if parent_id:
            body["parent_id"] = parent_id
        if topic:
            body["topic"] = topic
        return self._request("POST", f"/guilds/{guild_id}/channels", json=body)

    def create_category(
        self, guild_id: str, *, name: str, permission_overwrites: Sequence[Mapping[str, Any]] | None = None
    ) -> Dict[str, Any]:
        return self.create_channel(
            guild_id,
            name=name,
            channel_type=CHANNEL_TYPES["category"],
            permission_overwrites=permission_overwrites,
        )

    # roles ---------------------------------------------------------------------

    def list_roles(self, guild_id: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/guilds/{guild_id}/roles")

    def create_role(
        self,
        guild_id: str,
        *,
        name: str,
        color: int | None = None,
        permissions: int | str | None = None,
        mentionable: bool = False,
        hoist: bool = False,
    ) -> Dict[str, Any]:
        body = {
            "name": name,
            "color": DEFAULT_ROLE_COLOR if color is None else color,
            "permissions": str(VIEW_CHANNEL_PERMISSION if permissions is None else permissions),
            "mentionable": mentionable,
            "hoist": hoist,
        }
        return self._request("POST", f"/guilds/{guild_id}/roles", json=body)

    def delete_role(self, guild_id: str, role_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/guilds/{guild_id}/roles/{role_id}")

    # guilds --------------------------------------------------------------------

    def get_guild(self, guild_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/guilds/{guild_id}", params={"with_counts": "true"})

    def get_guild_info(self, guild_id: str) -> Dict[str, Any]:
        """Summarise a guild with its channels and roles."""

        guild = self.get_guild(guild_id)
        channels = self.list_channels(guild_id)
        roles = self.list_roles(guild_id)
        return {
            "id": guild.get("id"),
            "name": guild.get("name"),
            "description": guild.get("description"),
            "memberCount": guild.get("approximate_member_count"),
            "ownerId": guild.get("owner_id"),
            "channels": [
                {"id": channel.get("id"), "name": channel.get("name"), "type": channel.get("type")}
                for channel in channels
            ],
            "roles": [
                {
                    "id": role.get("id"),
                    "name": role.get("name"),
                    "color": role.get("color"),
                    "permissions": str(role.get("permissions")),
                }
                for role in roles
            ],
        }

    # webhooks & interactions -----------------------------------------------------

    def create_webhook(self, channel_id: str, *, name: str, avatar: str | None = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"name": name}
        if avatar:
            body["avatar"] = avatar
        return self._request("POST", f"/channels/{channel_id}/webhooks", json=body)

    def edit_original_response(self, application_id: str, token: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return self._request("PATCH", f"/webhooks/{application_id}/{token}/messages/@original", json=dict(payload))

    def create_followup(self, application_id: str, token: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/webhooks/{application_id}/{token}", json=dict(payload))
