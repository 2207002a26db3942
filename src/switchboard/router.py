"""
Inbound event routing.

Raw (name, data) pairs from the event channel are parsed into the closed
``InboundEvent`` union and dispatched by type. ``validate()`` refuses a router
that leaves any event kind without a handler.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from switchboard.errors import SwitchboardError
from switchboard.models.events import EVENT_PAYLOADS, INBOUND_EVENT_TYPES, InboundEvent

Handler = Callable[[Any], Union[None, Awaitable[None]]]

logger = logging.getLogger(__name__)


def parse_event(name: str, data: Any) -> Optional[InboundEvent]:
    """Parse one wire event. Returns None for unknown names or malformed payloads."""
    entry = EVENT_PAYLOADS.get(name)
    if entry is None:
        logger.debug("Ignoring unknown event %r", name)
        return None
    model, prepare = entry
    try:
        return model.model_validate(prepare(data))  # type: ignore[return-value]
    except ValidationError as e:
        logger.warning("Dropping malformed %r event: %s", name, e.errors()[:3])
        return None


class EventRouter:
    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = {kind: [] for kind in INBOUND_EVENT_TYPES}

    def register(self, kind: type, handler: Handler) -> Callable[[], None]:
        if kind not in self._handlers:
            raise ValueError(f"{kind.__name__} is not an inbound event type")
        self._handlers[kind].append(handler)

        def remove() -> None:
            try:
                self._handlers[kind].remove(handler)
            except ValueError:
                pass
        return remove

    def unrouted(self) -> list[str]:
        return [kind.__name__ for kind, handlers in self._handlers.items() if not handlers]

    def validate(self) -> None:
        missing = self.unrouted()
        if missing:
            raise SwitchboardError(
                "unrouted_event",
                f"No handler registered for: {', '.join(missing)}",
                {"missing": missing},
            )

    async def dispatch(self, event: InboundEvent) -> None:
        for handler in list(self._handlers[type(event)]):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Handler failed for %s", type(event).__name__)

    async def route(self, name: str, data: Any) -> Optional[InboundEvent]:
        """Channel handler: parse and dispatch. Usable directly with add_event_handler()."""
        event = parse_event(name, data)
        if event is not None:
            await self.dispatch(event)
        return event
