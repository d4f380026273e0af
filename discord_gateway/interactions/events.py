"""Parsing of inbound Discord interaction callbacks."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Mapping, Tuple

from discord_gateway.errors import InvalidRequest

PING = 1
MESSAGE_COMPONENT = 3
MODAL_SUBMIT = 5
EPHEMERAL_FLAG = 1 << 6


class CallbackType(IntEnum):
    PONG = 1
    CHANNEL_MESSAGE = 4
    DEFERRED_CHANNEL_MESSAGE = 5
    DEFERRED_UPDATE_MESSAGE = 6
    UPDATE_MESSAGE = 7
    MODAL = 9


class InteractionKind(str, Enum):
    BUTTON = "button"
    SELECT_MENU = "select_menu"
    MODAL_SUBMIT = "modal_submit"


class SelectVariant(str, Enum):
    STRING = "string"
    USER = "user"
    ROLE = "role"
    MENTIONABLE = "mentionable"
    CHANNEL = "channel"


_COMPONENT_KINDS: Dict[int, Tuple[InteractionKind, SelectVariant | None]] = {
    2: (InteractionKind.BUTTON, None),
    3: (InteractionKind.SELECT_MENU, SelectVariant.STRING),
    5: (InteractionKind.SELECT_MENU, SelectVariant.USER),
    6: (InteractionKind.SELECT_MENU, SelectVariant.ROLE),
    7: (InteractionKind.SELECT_MENU, SelectVariant.MENTIONABLE),
    8: (InteractionKind.SELECT_MENU, SelectVariant.CHANNEL),
}


@dataclass(frozen=True)
class InteractionEvent:
    """A user's action on a previously sent component."""

    id: str
    token: str
    application_id: str
    kind: InteractionKind
    custom_id: str
    arrived_at: float
    select_variant: SelectVariant | None = None
    values: Tuple[str, ...] = ()
    fields: Mapping[str, str] = field(default_factory=dict)
    user_id: str | None = None
    channel_id: str | None = None
    guild_id: str | None = None


def is_ping(payload: Mapping[str, Any]) -> bool:
    return isinstance(payload, Mapping) and payload.get("type") == PING


def _submitted_fields(rows: Any) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for row in rows or []:
        if not isinstance(row, Mapping):
            continue
        children = row.get("components")
        if children is None:
            # labelled modal layouts nest a single component instead of a row
            children = [row["component"]] if isinstance(row.get("component"), Mapping) else [row]
        for component in children:
            if isinstance(component, Mapping) and component.get("custom_id"):
                fields[str(component["custom_id"])] = str(component.get("value") or "")
    return fields


def parse_interaction(payload: Any, *, arrived_at: float) -> InteractionEvent:
    """Convert a raw callback into an ``InteractionEvent``."""

    if not isinstance(payload, Mapping):
        raise InvalidRequest("Interaction payload must be a JSON object.")

    interaction_type = payload.get("type")
    data = payload.get("data")
    if not isinstance(data, Mapping) or not data.get("custom_id"):
        raise InvalidRequest("Interaction payload is missing component data.")

    for required in ("id", "token", "application_id"):
        if not payload.get(required):
            raise InvalidRequest(f"Interaction payload is missing '{required}'.")

    select_variant = None
    values: Tuple[str, ...] = ()
    fields: Dict[str, str] = {}
    if interaction_type == MESSAGE_COMPONENT:
        mapped = _COMPONENT_KINDS.get(data.get("component_type"))
        if mapped is None:
            raise InvalidRequest("Unsupported component type in interaction.")
        kind, select_variant = mapped
        values = tuple(str(value) for value in data.get("values") or ())
    elif interaction_type == MODAL_SUBMIT:
        kind = InteractionKind.MODAL_SUBMIT
        fields = _submitted_fields(data.get("components"))
    else:
        raise InvalidRequest(f"Unsupported interaction type {interaction_type!r}.")

    member = payload.get("member") or {}
    user = member.get("user") or payload.get("user") or {}

    return InteractionEvent(
        id=str(payload["id"]),
        token=str(payload["token"]),
        application_id=str(payload["application_id"]),
        kind=kind,
        custom_id=str(data["custom_id"]),
        arrived_at=arrived_at,
        select_variant=select_variant,
        values=values,
        fields=fields,
        user_id=user.get("id"),
        channel_id=payload.get("channel_id"),
        guild_id=payload.get("guild_id"),
    )
