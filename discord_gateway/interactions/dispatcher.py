"""Route interactions to handlers while honouring the acknowledgement deadline."""

from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Pattern

import structlog

from discord_gateway.background import run_async
from discord_gateway.errors import (
    AcknowledgementTimeout,
    DoubleAcknowledgement,
    PlatformRejected,
    PlatformUnavailable,
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

ACK_DEADLINE = timedelta(seconds=3)
SAFETY_MARGIN = timedelta(milliseconds=500)
HANDLER_ERROR_TEXT = "Something went wrong while handling that interaction."

Timer = Callable[[], float]
Handler = Callable[..., Any]


class AckState(str, Enum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"


class Acknowledgement:
    """Single-use acknowledgement for one interaction.

    Moves from pending to acknowledged exactly once. A second attempt raises
    ``DoubleAcknowledgement``; an attempt after the deadline raises
    ``AcknowledgementTimeout``. In both cases nothing is recorded.
    """

    def __init__(
        self,
        event: InteractionEvent,
        *,
        deadline: timedelta = ACK_DEADLINE,
        timer: Timer = time.monotonic,
    ) -> None:
        self.event = event
        self._deadline = deadline.total_seconds()
        self._timer = timer
        self._lock = threading.Lock()
        self._sent = threading.Event()
        self._state = AckState.PENDING
        self._payload: Dict[str, Any] | None = None

    @property
    def state(self) -> AckState:
        return self._state

    @property
    def is_acknowledged(self) -> bool:
        return self._state is AckState.ACKNOWLEDGED

    @property
    def payload(self) -> Dict[str, Any] | None:
        return self._payload

    @property
    def deferred(self) -> bool:
        return self._payload is not None and self._payload.get("type") in (
            CallbackType.DEFERRED_CHANNEL_MESSAGE,
            CallbackType.DEFERRED_UPDATE_MESSAGE,
        )

    def remaining(self) -> float:
        return self._deadline - (self._timer() - self.event.arrived_at)

    def wait(self, timeout: float | None = None) -> bool:
        return self._sent.wait(timeout)

    def acknowledge(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        with self._lock:
            if self._state is AckState.ACKNOWLEDGED:
                raise DoubleAcknowledgement()
            if self.remaining() <= 0:
                raise AcknowledgementTimeout()
            self._payload = dict(payload)
            self._state = AckState.ACKNOWLEDGED
        self._sent.set()
        return self._payload

    __call__ = acknowledge

    def reply(
        self,
        content: str | None = None,
        *,
        ephemeral: bool = False,
        components: List[Mapping[str, Any]] | None = None,
        flags: int = 0,
    ) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if content is not None:
            data["content"] = content
        if components is not None:
            data["components"] = list(components)
        if ephemeral:
            flags |= EPHEMERAL_FLAG
        if flags:
            data["flags"] = flags
        return self.acknowledge({"type": CallbackType.CHANNEL_MESSAGE, "data": data})

    def update_message(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        return self.acknowledge({"type": CallbackType.UPDATE_MESSAGE, "data": dict(data)})

    def defer(self, *, ephemeral: bool = False, update: bool = False) -> Dict[str, Any]:
        if update:
            return self.acknowledge({"type": CallbackType.DEFERRED_UPDATE_MESSAGE})
        payload: Dict[str, Any] = {"type": CallbackType.DEFERRED_CHANNEL_MESSAGE}
        if ephemeral:
            payload["data"] = {"flags": EPHEMERAL_FLAG}
        return self.acknowledge(payload)

    def open_modal(self, modal: Mapping[str, Any]) -> Dict[str, Any]:
        return self.acknowledge({"type": CallbackType.MODAL, "data": dict(modal)})


class Followup:
    """Post-acknowledgement messaging through the interaction webhook."""

    def __init__(self, platform: Any, event: InteractionEvent) -> None:
        self._platform = platform
        self._event = event

    def _require_platform(self) -> Any:
        if self._platform is None:
            raise PlatformUnavailable("No Discord client is configured for follow-up messages.")
        return self._platform

    def edit_original(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        platform = self._require_platform()
        return platform.edit_original_response(self._event.application_id, self._event.token, payload)

    def send(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        platform = self._require_platform()
        return platform.create_followup(self._event.application_id, self._event.token, payload)


@dataclass(frozen=True)
class HandlerRoute:
    kind: InteractionKind
    pattern: str | Pattern[str]
    handler: Handler
    variant: SelectVariant | None = None
    defer: bool = False
    ephemeral: bool = False

    def matches(self, event: InteractionEvent) -> bool:
        if event.kind is not self.kind:
            return False
        if self.variant is not None and event.select_variant is not self.variant:
            return False
        if isinstance(self.pattern, str):
            return event.custom_id == self.pattern
        return self.pattern.fullmatch(event.custom_id) is not None


class InteractionRegistry:
    """Handlers keyed by interaction kind and custom id."""

    def __init__(self) -> None:
        self._routes: List[HandlerRoute] = []

    def __len__(self) -> int:
        return len(self._routes)

    def register(
        self,
        kind: InteractionKind,
        pattern: str | Pattern[str],
        handler: Handler,
        *,
        variant: SelectVariant | None = None,
        defer: bool = False,
        ephemeral: bool = False,
    ) -> Handler:
        if isinstance(pattern, str) and pattern.startswith("^"):
            pattern = re.compile(pattern)
        self._routes.append(
            HandlerRoute(kind=kind, pattern=pattern, handler=handler, variant=variant, defer=defer, ephemeral=ephemeral)
        )
        return handler

    def _decorator(self, kind: InteractionKind, pattern, **options: Any) -> Callable[[Handler], Handler]:
        def decorator(func: Handler) -> Handler:
            return self.register(kind, pattern, func, **options)

        return decorator

    def button(self, pattern: str | Pattern[str], *, defer: bool = False, ephemeral: bool = False):
        return self._decorator(InteractionKind.BUTTON, pattern, defer=defer, ephemeral=ephemeral)

    def select(
        self,
        pattern: str | Pattern[str],
        *,
        variant: SelectVariant | None = None,
        defer: bool = False,
        ephemeral: bool = False,
    ):
        return self._decorator(
            InteractionKind.SELECT_MENU, pattern, variant=variant, defer=defer, ephemeral=ephemeral
        )

    def modal(self, pattern: str | Pattern[str], *, defer: bool = False, ephemeral: bool = False):
        return self._decorator(InteractionKind.MODAL_SUBMIT, pattern, defer=defer, ephemeral=ephemeral)

    def lookup(self, event: InteractionEvent) -> HandlerRoute | None:
        for route in self._routes:
            if route.matches(event):
                return route
        return None


_MENTION_FORMATS = {
    SelectVariant.USER: "<@{}>",
    SelectVariant.ROLE: "<@&{}>",
    SelectVariant.CHANNEL: "<#{}>",
}


def default_handler(*, ack: Acknowledgement, event: InteractionEvent, **_: Any) -> None:
    """Echo the interaction back to the user privately."""

    if event.kind is InteractionKind.BUTTON:
        ack.reply(f"Button clicked: {event.custom_id}", ephemeral=True)
    elif event.kind is InteractionKind.SELECT_MENU:
        template = _MENTION_FORMATS.get(event.select_variant, "{}")
        selected = ", ".join(template.format(value) for value in event.values) or "nothing"
        ack.reply(f"Selected: {selected}", ephemeral=True)
    else:
        lines = [f"{key}: {value}" for key, value in event.fields.items()]
        ack.reply("Modal submitted:\n" + "\n".join(lines), ephemeral=True)


class InteractionDispatcher:
    """Run handlers off the request thread and guarantee a timely acknowledgement.

    When a handler has not acknowledged by ``deadline - safety_margin`` the
    dispatcher sends a deferred acknowledgement itself; the handler may then
    finish through ``Followup``.
    """

    def __init__(
        self,
        registry: InteractionRegistry | None = None,
        *,
        platform: Any = None,
        deadline: timedelta = ACK_DEADLINE,
        safety_margin: timedelta = SAFETY_MARGIN,
        timer: Timer = time.monotonic,
        fallback: Handler = default_handler,
    ) -> None:
        if safety_margin >= deadline:
            raise ValueError("safety_margin must be shorter than the acknowledgement deadline")
        self.registry = registry or InteractionRegistry()
        self._platform = platform
        self._deadline = deadline
        self._margin = safety_margin.total_seconds()
        self._timer = timer
        self._fallback = fallback
        self._log = structlog.get_logger(__name__)

    def now(self) -> float:
        return self._timer()

    def handle(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Answer a raw callback body: pings directly, everything else via ``dispatch``."""

        if is_ping(payload):
            return {"type": CallbackType.PONG}
        event = parse_interaction(payload, arrived_at=self.now())
        return self.dispatch(event)

    def dispatch(self, event: InteractionEvent) -> Dict[str, Any]:
        ack = Acknowledgement(event, deadline=self._deadline, timer=self._timer)
        route = self.registry.lookup(event)
        handler = route.handler if route else self._fallback
        ephemeral = route.ephemeral if route else True
        log = self._log.bind(interaction_id=event.id, kind=event.kind.value, custom_id=event.custom_id)
        followup = Followup(self._platform, event)

        if route is not None and route.defer:
            ack.defer(ephemeral=ephemeral)
            log.info("interaction_deferred", reason="handler_requested")
            run_async(self._run_handler, handler, ack, event, followup, log)
            return ack.payload

        run_async(self._run_handler, handler, ack, event, followup, log)

        budget = max(0.0, ack.remaining() - self._margin)
        if ack.wait(budget):
            log.info("interaction_acknowledged", callback_type=int(ack.payload["type"]))
            return ack.payload

        try:
            ack.defer(ephemeral=ephemeral)
        except DoubleAcknowledgement:
            # handler acknowledged between the wait and the defer
            return ack.payload
        log.warning("interaction_deferred", reason="deadline_approaching", budget=budget)
        return ack.payload

    def _run_handler(
        self,
        handler: Handler,
        ack: Acknowledgement,
        event: InteractionEvent,
        followup: Followup,
        log: Any,
    ) -> None:
        try:
            result = handler(ack=ack, event=event, followup=followup, logger=log)
            if result is not None and not ack.is_acknowledged:
                ack.acknowledge(result)
        except (DoubleAcknowledgement, AcknowledgementTimeout) as exc:
            log.warning("interaction_ack_dropped", error=exc.code)
            return
        except Exception:
            log.exception("interaction_handler_failed")
            self._report_failure(ack, followup, log)
            return

        if not ack.is_acknowledged:
            log.warning("interaction_handler_returned_without_ack")
            try:
                ack.defer(update=True)
            except (DoubleAcknowledgement, AcknowledgementTimeout) as exc:
                log.warning("interaction_ack_dropped", error=exc.code)

    def _report_failure(self, ack: Acknowledgement, followup: Followup, log: Any) -> None:
        if not ack.is_acknowledged:
            try:
                ack.reply(HANDLER_ERROR_TEXT, ephemeral=True)
            except (DoubleAcknowledgement, AcknowledgementTimeout) as exc:
                log.warning("interaction_ack_dropped", error=exc.code)
            return

        if ack.deferred and self._platform is not None:
            try:
                followup.edit_original({"content": HANDLER_ERROR_TEXT})
            except (PlatformUnavailable, PlatformRejected):
                log.exception("interaction_followup_failed")
