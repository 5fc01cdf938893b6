from __future__ import annotations

import logging
import math
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from opsdesk import events
from opsdesk.crm.activity import ActivityLogAppender, activity_log
from opsdesk.metrics import observe_timer_session
from opsdesk.platform.notifications import NotificationEventEmitter, build_recipient_list, notification_emitter
from opsdesk.platform.security import AuthContext
from opsdesk.tasks.models import Task
from opsdesk.tasks.service import can_track_task

logger = logging.getLogger("opsdesk.tasks.timer")

TIMER_DENIED = "You do not have permission to track time on this task."
TIMER_START_UNREADABLE = "Unable to read the timer start time."


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_duration(total_seconds: float | int | None) -> str:
    if total_seconds is None or not math.isfinite(total_seconds) or total_seconds <= 0:
        return "0s"
    seconds = int(total_seconds)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def parse_timer_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def elapsed_seconds(started_at: datetime, now: datetime) -> int:
    return max(0, math.floor((now - started_at).total_seconds()))


def live_tracked_seconds(task: Task, now: datetime) -> int:
    """Accumulated seconds plus the running session, if any. Never persisted."""
    total = task.total_tracked_seconds or 0
    started_at = parse_timer_timestamp(task.timer_started_at)
    if started_at is None:
        return total
    return total + elapsed_seconds(started_at, now)


@dataclass(slots=True)
class TimeTrackingStateMachine:
    """Idle/Running timer per task.

    A task is Running while ``timer_started_at`` is set. Concurrent starts are last-writer-wins;
    there is no version check on the task row.
    """

    emitter: NotificationEventEmitter = notification_emitter
    activity: ActivityLogAppender = activity_log
    clock: Callable[[], datetime] = utcnow

    def start(self, session: Session, ctx: AuthContext, task_id: uuid.UUID) -> Task:
        task = self._get_trackable_task(session, ctx, task_id)
        if task.timer_started_at:
            return task

        now = self.clock()
        task.timer_started_at = now.isoformat()
        task.start_date = now.date()
        if task.status == "todo":
            task.status = "in-progress"
        task.updated_at = now
        session.add(task)
        session.commit()
        session.refresh(task)

        self.emitter.emit(
            session,
            event_type="task.timer_started",
            title="Task Timer Started",
            body=f"{ctx.display_name} started the timer for {task.title}.",
            actor_id=ctx.user_id,
            recipients=self._recipients(task, ctx),
            entity_type="task",
            entity_id=task.id,
            meta={"timerStartedAt": task.timer_started_at},
        )
        self._append_notes(session, ctx, task, f"Task started: {task.title}.")
        events.publish({"event_type": "task.timer_started", "task_id": str(task.id)})
        return task

    def stop(self, session: Session, ctx: AuthContext, task_id: uuid.UUID) -> Task:
        task = self._get_trackable_task(session, ctx, task_id)
        if not task.timer_started_at:
            return task

        started_at = parse_timer_timestamp(task.timer_started_at)
        if started_at is None:
            logger.warning("task.timer_unreadable", extra={"task_id": str(task.id)})
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=TIMER_START_UNREADABLE)

        now = self.clock()
        duration = elapsed_seconds(started_at, now)
        total = (task.total_tracked_seconds or 0) + duration
        task.timer_started_at = None
        task.last_timer_stopped_at = now
        task.last_timer_duration_seconds = duration
        task.total_tracked_seconds = total
        task.end_date = now.date()
        task.updated_at = now
        session.add(task)
        session.commit()
        session.refresh(task)
        observe_timer_session(duration)

        self.emitter.emit(
            session,
            event_type="task.timer_stopped",
            title="Task Timer Stopped",
            body=(
                f"{ctx.display_name} stopped the timer for {task.title}. "
                f"Duration {format_duration(duration)}."
            ),
            actor_id=ctx.user_id,
            recipients=self._recipients(task, ctx),
            entity_type="task",
            entity_id=task.id,
            meta={"durationSeconds": duration, "totalSeconds": total},
        )
        self._append_notes(
            session,
            ctx,
            task,
            f"Task timer stopped: {task.title}. Duration {format_duration(duration)}. Total {format_duration(total)}.",
        )
        events.publish(
            {
                "event_type": "task.timer_stopped",
                "task_id": str(task.id),
                "duration_seconds": duration,
                "total_seconds": total,
            }
        )
        return task

    def _recipients(self, task: Task, ctx: AuthContext) -> list[str]:
        return build_recipient_list(task.created_by, [task.assigned_to, *(task.assigned_users or [])], ctx.user_id)

    def _append_notes(self, session: Session, ctx: AuthContext, task: Task, note: str) -> None:
        project_id = task.project_id
        lead_id = task.lead_id
        if project_id is not None:
            self.activity.append(session, entity_type="project", entity_id=project_id, note=note, actor_id=ctx.user_id)
        if lead_id is not None:
            self.activity.append(session, entity_type="lead", entity_id=lead_id, note=note, actor_id=ctx.user_id)

    def _get_trackable_task(self, session: Session, ctx: AuthContext, task_id: uuid.UUID) -> Task:
        task = session.get(Task, task_id)
        if task is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found.")
        if not can_track_task(ctx, task):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=TIMER_DENIED)
        return task


task_timer = TimeTrackingStateMachine()
