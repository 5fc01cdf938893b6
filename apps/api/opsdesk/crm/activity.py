from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Literal

from sqlalchemy import select
from sqlalchemy.orm import Session

from opsdesk.crm.models import ActivityEntry, Lead, Project
from opsdesk.platform.side_effects import SideEffectRunner, side_effects

logger = logging.getLogger("opsdesk.activity")

ActivityEntityType = Literal["lead", "project"]

_ENTITY_MODELS: dict[str, type[Lead] | type[Project]] = {
    "lead": Lead,
    "project": Project,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_uuid(value: Any) -> uuid.UUID | None:
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return uuid.UUID(value.strip())
        except ValueError:
            return None
    return None


class ActivityLogAppender:
    """Appends notes to the activity log of a lead or project.

    Activity notes are observability rather than business state, so a missing or dangling
    entity reference skips the note instead of failing the caller.
    """

    def __init__(self, runner: SideEffectRunner = side_effects, clock: Callable[[], datetime] = utcnow) -> None:
        self.runner = runner
        self.clock = clock

    def stage(
        self,
        session: Session,
        *,
        entity_type: ActivityEntityType,
        entity_id: Any,
        note: str,
        actor_id: str,
        activity_type: str = "note",
    ) -> ActivityEntry | None:
        model = _ENTITY_MODELS.get(entity_type)
        resolved_id = _coerce_uuid(entity_id)
        if model is None or resolved_id is None:
            return None
        if session.get(model, resolved_id) is None:
            logger.info(
                "activity.skipped_missing_entity",
                extra={"entity_type": entity_type, "entity_id": str(resolved_id)},
            )
            return None

        entry = ActivityEntry(
            entity_type=entity_type,
            entity_id=resolved_id,
            type=activity_type,
            note=note,
            occurred_at=self.clock(),
            created_by=actor_id,
        )
        session.add(entry)
        session.flush()
        return entry

    def append(
        self,
        session: Session,
        *,
        entity_type: ActivityEntityType,
        entity_id: Any,
        note: str,
        actor_id: str,
        activity_type: str = "note",
    ) -> ActivityEntry | None:
        if entity_id is None:
            return None
        return self.runner.run(
            session,
            f"activity.{entity_type}",
            lambda s: self.stage(
                s,
                entity_type=entity_type,
                entity_id=entity_id,
                note=note,
                actor_id=actor_id,
                activity_type=activity_type,
            ),
        )

    def list_for(self, session: Session, entity_type: ActivityEntityType, entity_id: uuid.UUID) -> list[ActivityEntry]:
        stmt = (
            select(ActivityEntry)
            .where(ActivityEntry.entity_type == entity_type, ActivityEntry.entity_id == entity_id)
            .order_by(ActivityEntry.occurred_at.asc(), ActivityEntry.id.asc())
        )
        return list(session.scalars(stmt))


activity_log = ActivityLogAppender()
