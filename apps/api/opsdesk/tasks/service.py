from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from opsdesk import events
from opsdesk.crm.activity import ActivityLogAppender, activity_log
from opsdesk.crm.models import QuotationRequestTask
from opsdesk.platform.notifications import (
    NotificationEventEmitter,
    build_recipient_list,
    notification_emitter,
    same_recipient_sets,
)
from opsdesk.platform.security import AuthContext, MissingCapabilityError, PermissionKey, ensure_any_capability
from opsdesk.platform.side_effects import SideEffectRunner, side_effects
from opsdesk.tasks.models import Task
from opsdesk.tasks.schemas import TaskCreate, TaskUpdate

logger = logging.getLogger("opsdesk.tasks")

TASK_EDIT_DENIED = "You do not have permission to edit tasks."
TASK_NOT_ASSIGNED = "You can only edit tasks assigned to you."
TASK_REASSIGN_DENIED = "Only admins can reassign tasks after assignment."
TASK_TITLE_REQUIRED = "Task title is required."


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def status_label(value: str) -> str:
    return value.replace("-", " ").replace("_", " ")


def is_task_assignee(task: Task, user_id: str) -> bool:
    return task.assigned_to == user_id or user_id in (task.assigned_users or [])


def can_track_task(ctx: AuthContext, task: Task) -> bool:
    if not ctx.capabilities.intersects_or_admin([PermissionKey.TASK_EDIT]):
        return False
    return ctx.is_admin or is_task_assignee(task, ctx.user_id)


def _dedupe(values: list[str]) -> list[str]:
    seen: list[str] = []
    for value in values:
        cleaned = value.strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


@dataclass(frozen=True, slots=True)
class TaskSnapshot:
    title: str
    status: str
    priority: str
    due_date: date | None
    reference_model_number: str | None
    assigned_to: str | None
    assigned_users: tuple[str, ...]

    @classmethod
    def of(cls, task: Task) -> TaskSnapshot:
        return cls(
            title=task.title,
            status=task.status,
            priority=task.priority,
            due_date=task.due_date,
            reference_model_number=task.reference_model_number,
            assigned_to=task.assigned_to,
            assigned_users=tuple(task.assigned_users or []),
        )


def describe_task_changes(before: TaskSnapshot, after: TaskSnapshot) -> list[str]:
    changes: list[str] = []
    if before.title != after.title:
        changes.append(f"Title updated to {after.title}.")
    if before.status != after.status:
        sentence = f"Status updated to {status_label(after.status)}."
        if after.status == "done":
            sentence += " Task completed."
        changes.append(sentence)
    if before.priority != after.priority:
        changes.append(f"Priority updated to {after.priority}.")
    if before.due_date != after.due_date:
        changes.append(f"Due date updated to {after.due_date.isoformat() if after.due_date else 'None'}.")
    if before.reference_model_number != after.reference_model_number:
        changes.append(f"Reference Model Number updated to {after.reference_model_number or 'None'}.")
    return changes


@dataclass(slots=True)
class WorkflowStatusCoordinator:
    """Applies task edits and status changes, then propagates their consequences.

    The task row is the authoritative write and is committed first. Notifications, activity
    notes and the RFQ completion cascade each run afterwards as independent best-effort steps.
    """

    emitter: NotificationEventEmitter = notification_emitter
    activity: ActivityLogAppender = activity_log
    runner: SideEffectRunner = side_effects
    clock: Callable[[], datetime] = utcnow

    def get_task(self, session: Session, ctx: AuthContext, task_id: uuid.UUID) -> Task:
        task = self._get_task(session, task_id)
        view_all = ctx.capabilities.intersects_or_admin([PermissionKey.TASK_VIEW_ALL])
        can_view = ctx.capabilities.intersects_or_admin([PermissionKey.TASK_VIEW, PermissionKey.TASK_VIEW_ALL])
        if not can_view or (not view_all and not is_task_assignee(task, ctx.user_id) and task.created_by != ctx.user_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found.")
        return task

    def create_task(self, session: Session, ctx: AuthContext, payload: TaskCreate) -> Task:
        title = payload.title.strip()
        if not title:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=TASK_TITLE_REQUIRED)
        assigned_to = payload.assigned_to.strip()
        try:
            ensure_any_capability(ctx, [PermissionKey.TASK_CREATE], "You do not have permission to create tasks.")
            if assigned_to != ctx.user_id:
                ensure_any_capability(ctx, [PermissionKey.TASK_ASSIGN], "You do not have permission to assign tasks.")
        except MissingCapabilityError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))

        now = self.clock()
        assigned_users = _dedupe(payload.assigned_users) if payload.assigned_users else [assigned_to]
        task = Task(
            title=title,
            description=payload.description.strip(),
            status=payload.status,
            priority=payload.priority,
            assigned_to=assigned_to,
            assigned_users=assigned_users,
            due_date=payload.due_date,
            reference_model_number=(payload.reference_model_number or "").strip() or None,
            project_id=payload.project_id,
            lead_id=payload.lead_id,
            total_tracked_seconds=0,
            created_by=ctx.user_id,
            created_at=now,
            updated_at=now,
        )
        if task.status == "done":
            task.end_date = now.date()
        session.add(task)
        session.commit()
        session.refresh(task)

        self.emitter.emit(
            session,
            event_type="task.assigned",
            title="New Task",
            body=f"{ctx.display_name} assigned: {task.title}.",
            actor_id=ctx.user_id,
            recipients=build_recipient_list(task.assigned_to, task.assigned_users, ctx.user_id),
            entity_type="task",
            entity_id=task.id,
            meta={"assignedTo": task.assigned_to},
        )
        if task.project_id is not None:
            self.activity.append(
                session,
                entity_type="project",
                entity_id=task.project_id,
                note=f"Task created: {task.title}.",
                actor_id=ctx.user_id,
            )

        events.publish({"event_type": "task.created", "task_id": str(task.id), "status": task.status})
        return task

    def update_task(self, session: Session, ctx: AuthContext, task_id: uuid.UUID, payload: TaskUpdate) -> Task:
        task = self._get_task(session, task_id)
        provided = payload.model_dump(exclude_unset=True)

        if "title" in provided and not (provided["title"] or "").strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=TASK_TITLE_REQUIRED)
        self._authorize_edit(ctx, task)

        before = TaskSnapshot.of(task)
        next_assigned_to = before.assigned_to
        if "assigned_to" in provided:
            next_assigned_to = (provided["assigned_to"] or "").strip() or None
        if provided.get("assigned_users") is not None:
            next_assigned_users = _dedupe(provided["assigned_users"])
        elif next_assigned_to != before.assigned_to:
            next_assigned_users = [next_assigned_to] if next_assigned_to else []
        else:
            next_assigned_users = list(before.assigned_users)

        reassigned = next_assigned_to != before.assigned_to or set(next_assigned_users) != set(before.assigned_users)
        if reassigned and not ctx.is_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=TASK_REASSIGN_DENIED)

        now = self.clock()
        if "title" in provided:
            task.title = provided["title"].strip()
        if provided.get("description") is not None:
            task.description = provided["description"].strip()
        if provided.get("priority") is not None:
            task.priority = provided["priority"]
        if "due_date" in provided:
            task.due_date = provided["due_date"]
        if "reference_model_number" in provided:
            task.reference_model_number = (provided["reference_model_number"] or "").strip() or None
        if provided.get("status") is not None:
            task.status = provided["status"]
            if task.status == "done" and before.status != "done":
                task.end_date = now.date()
        task.assigned_to = next_assigned_to
        task.assigned_users = next_assigned_users
        task.updated_at = now
        session.add(task)
        session.commit()
        session.refresh(task)

        after = TaskSnapshot.of(task)
        self._propagate(session, ctx, task, before, after)
        return task

    def change_status(self, session: Session, ctx: AuthContext, task_id: uuid.UUID, new_status: str) -> Task:
        task = self._get_task(session, task_id)
        self._authorize_edit(ctx, task)
        if task.status == new_status:
            return task

        before = TaskSnapshot.of(task)
        now = self.clock()
        task.status = new_status
        if new_status == "done":
            task.end_date = now.date()
        task.updated_at = now
        session.add(task)
        session.commit()
        session.refresh(task)

        self._propagate(session, ctx, task, before, TaskSnapshot.of(task))
        return task

    def _propagate(self, session: Session, ctx: AuthContext, task: Task, before: TaskSnapshot, after: TaskSnapshot) -> None:
        previous_recipients = build_recipient_list(before.assigned_to, list(before.assigned_users), ctx.user_id)
        next_recipients = build_recipient_list(after.assigned_to, list(after.assigned_users), ctx.user_id)
        if not same_recipient_sets(previous_recipients, next_recipients):
            self.emitter.emit(
                session,
                event_type="task.assigned",
                title="New Task Assignment",
                body=f"{ctx.display_name} assigned: {after.title}.",
                actor_id=ctx.user_id,
                recipients=next_recipients,
                entity_type="task",
                entity_id=task.id,
                meta={"assignedTo": after.assigned_to},
            )

        if before.status != after.status:
            self.emitter.emit(
                session,
                event_type="task.status_changed",
                title="Task Status Updated",
                body=f"{ctx.display_name} changed {after.title} to {status_label(after.status)}.",
                actor_id=ctx.user_id,
                recipients=build_recipient_list(
                    task.created_by,
                    [before.assigned_to, *before.assigned_users, after.assigned_to, *after.assigned_users],
                    ctx.user_id,
                ),
                entity_type="task",
                entity_id=task.id,
                meta={"status": after.status},
            )

        changes = describe_task_changes(before, after)
        if task.project_id is not None and changes:
            self.activity.append(
                session,
                entity_type="project",
                entity_id=task.project_id,
                note=f"Task updated: {after.title}. " + " ".join(changes),
                actor_id=ctx.user_id,
            )

        if before.status != "done" and after.status == "done":
            self.cascade_rfq_completion(session, ctx, task)

        events.publish(
            {
                "event_type": "task.updated",
                "task_id": str(task.id),
                "status": after.status,
                "previous_status": before.status,
            }
        )

    def cascade_rfq_completion(self, session: Session, ctx: AuthContext, task: Task) -> bool:
        """Mirror a task completion onto its linked RFQ task and note it on the lead.

        Only tasks carrying the full RFQ linkage cascade. Returns whether the cascade was attempted.
        """
        quotation_request_id = task.quotation_request_id
        quotation_request_task_id = task.quotation_request_task_id
        lead_id = task.lead_id
        rfq_tag = (task.rfq_tag or "").strip()
        if quotation_request_id is None or quotation_request_task_id is None or lead_id is None or not rfq_tag:
            return False

        self.runner.run(
            session,
            "rfq_task.complete",
            lambda s: self._complete_rfq_task(s, quotation_request_id, quotation_request_task_id),
        )
        self.activity.append(
            session,
            entity_type="lead",
            entity_id=lead_id,
            note=f"RFQ task completed: {rfq_tag}.",
            actor_id=ctx.user_id,
        )
        return True

    def _complete_rfq_task(
        self,
        session: Session,
        quotation_request_id: uuid.UUID,
        quotation_request_task_id: uuid.UUID,
    ) -> QuotationRequestTask | None:
        rfq_task = session.scalar(
            select(QuotationRequestTask).where(
                QuotationRequestTask.id == quotation_request_task_id,
                QuotationRequestTask.quotation_request_id == quotation_request_id,
            )
        )
        if rfq_task is None:
            logger.info("rfq_task.missing", extra={"entity_id": str(quotation_request_task_id)})
            return None
        rfq_task.status = "done"
        rfq_task.updated_at = self.clock()
        session.add(rfq_task)
        return rfq_task

    def _authorize_edit(self, ctx: AuthContext, task: Task) -> None:
        try:
            ensure_any_capability(ctx, [PermissionKey.TASK_EDIT], TASK_EDIT_DENIED)
        except MissingCapabilityError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
        if not ctx.is_admin and not is_task_assignee(task, ctx.user_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=TASK_NOT_ASSIGNED)

    def _get_task(self, session: Session, task_id: uuid.UUID) -> Task:
        task = session.get(Task, task_id)
        if task is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found.")
        return task


workflow_coordinator = WorkflowStatusCoordinator()
