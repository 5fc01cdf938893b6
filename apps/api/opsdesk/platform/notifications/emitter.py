from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from opsdesk.metrics import observe_notification_event
from opsdesk.platform.notifications.models import NotificationEvent
from opsdesk.platform.side_effects import SideEffectRunner, side_effects


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationEventEmitter:
    def __init__(self, runner: SideEffectRunner = side_effects, clock: Callable[[], datetime] = utcnow) -> None:
        self.runner = runner
        self.clock = clock

    def stage(
        self,
        session: Session,
        *,
        event_type: str,
        title: str,
        body: str,
        actor_id: str,
        recipients: list[str],
        entity_type: str,
        entity_id: Any,
        meta: dict[str, Any] | None = None,
        broadcast: bool = False,
    ) -> NotificationEvent | None:
        """Add a notification row to the session without committing; skipped when nobody would receive it."""
        if not broadcast and not recipients:
            observe_notification_event(event_type, written=False)
            return None

        event = NotificationEvent(
            type=event_type,
            title=title,
            body=body,
            actor_id=actor_id,
            recipients=list(recipients),
            broadcast=broadcast,
            entity_type=entity_type,
            entity_id=str(entity_id),
            meta=dict(meta or {}),
            created_at=self.clock(),
        )
        session.add(event)
        session.flush()
        observe_notification_event(event_type, written=True)
        return event

    def emit(self, session: Session, **fields: Any) -> NotificationEvent | None:
        """Write a notification as its own best-effort commit; failures are logged and dropped."""
        event_type = str(fields.get("event_type", "notification"))
        return self.runner.run(session, f"notification.{event_type}", lambda s: self.stage(s, **fields))


notification_emitter = NotificationEventEmitter()
