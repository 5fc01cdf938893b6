from __future__ import annotations

from typing import Any

from opsdesk.context import get_correlation_id
from opsdesk.core.events import event_bus

published_events: list[dict[str, Any]] = []


def publish(envelope: dict[str, Any]) -> None:
    """Stamp the envelope with the request correlation id and hand it to the in-process bus."""
    if envelope.get("correlation_id") is None:
        envelope["correlation_id"] = get_correlation_id()

    published_events.append(envelope)
    event_type = envelope.get("event_type")
    if isinstance(event_type, str) and event_type:
        event_bus.publish(event_type, envelope)
