"""Interaction callback parsing and dispatch."""

from .dispatcher import (
    ACK_DEADLINE,
    SAFETY_MARGIN,
    Acknowledgement,
    AckState,
    Followup,
    InteractionDispatcher,
    InteractionRegistry,
    default_handler,
)
from .events import (
    EPHEMERAL_FLAG,
    CallbackType,
    InteractionEvent,
    InteractionKind,
    SelectVariant,
    is_ping,
    parse_interaction,
)

__all__ = [
    "ACK_DEADLINE",
    "EPHEMERAL_FLAG",
    "SAFETY_MARGIN",
    "AckState",
    "Acknowledgement",
    "CallbackType",
    "Followup",
    "InteractionDispatcher",
    "InteractionEvent",
    "InteractionKind",
    "InteractionRegistry",
    "SelectVariant",
    "default_handler",
    "is_ping",
    "parse_interaction",
]
