from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.orm import Session

from opsdesk.metrics import observe_side_effect_failure
from opsdesk.otel import workflow_span

logger = logging.getLogger("opsdesk.side_effects")

T = TypeVar("T")

SideEffectStep = Callable[[Session], T]


class SideEffectRunner:
    """Attempt a secondary write after the primary change is committed.

    Each step stages its rows on the session and is committed on its own. A failing step is
    rolled back, logged and counted, and ``None`` is returned so later steps still run.
    """

    def run(self, session: Session, step_name: str, step: SideEffectStep[T]) -> T | None:
        try:
            with workflow_span(f"side_effect.{step_name}", step=step_name):
                result = step(session)
                session.commit()
        except Exception as exc:
            session.rollback()
            observe_side_effect_failure(step_name)
            logger.warning("side_effect.failed", exc_info=True, extra={"step": step_name, "error": str(exc)})
            return None
        return result


side_effects = SideEffectRunner()
