from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger("opsdesk.events.bus")


@dataclass(frozen=True, slots=True)
class DomainEvent:
    name: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def correlation_id(self) -> str | None:
        value = self.payload.get("correlation_id")
        return value if isinstance(value, str) else None


DomainEventHandler = Callable[[DomainEvent], None]


class DomainEventBus:
    """Synchronous fan-out of workflow events to in-process listeners.

    Listeners observe state that is already committed, so a failing listener is logged and the
    remaining listeners still run.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[DomainEventHandler]] = defaultdict(list)

    def subscribe(self, handler: DomainEventHandler, *event_names: str) -> None:
        for event_name in event_names:
            handlers = self._handlers[event_name]
            if handler not in handlers:
                handlers.append(handler)

    def handlers_for(self, event_name: str) -> tuple[DomainEventHandler, ...]:
        return tuple(self._handlers.get(event_name, ()))

    def publish(self, event_name: str, payload: dict[str, Any]) -> int:
        event = DomainEvent(name=event_name, payload=payload)
        delivered = 0
        for handler in self.handlers_for(event_name):
            try:
                handler(event)
            except Exception as exc:
                logger.warning("event.handler_failed", exc_info=True, extra={"step": event_name, "error": str(exc)})
                continue
            delivered += 1
        return delivered


event_bus = DomainEventBus()
