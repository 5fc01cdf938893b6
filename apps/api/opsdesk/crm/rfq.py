from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from opsdesk import events
from opsdesk.authz.models import User
from opsdesk.crm.activity import ActivityLogAppender, activity_log
from opsdesk.crm.models import Lead, QuotationRequest, QuotationRequestTask
from opsdesk.platform.notifications import NotificationEventEmitter, build_recipient_list, notification_emitter
from opsdesk.platform.security import AuthContext, MissingCapabilityError, PermissionKey, ensure_any_capability
from opsdesk.tasks.models import Task

ASSIGN_DENIED = "You do not have permission to assign RFQ tasks."


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class RFQTaskAssignmentService:
    """Assigns an RFQ task to a user and keeps its mirrored task in step."""

    emitter: NotificationEventEmitter = notification_emitter
    activity: ActivityLogAppender = activity_log
    clock: Callable[[], datetime] = utcnow

    def assign(
        self,
        session: Session,
        ctx: AuthContext,
        quotation_request_id: uuid.UUID,
        rfq_task_id: uuid.UUID,
        assignee_id: str,
    ) -> QuotationRequestTask:
        try:
            ensure_any_capability(ctx, [PermissionKey.QUOTATION_REQUEST_EDIT], ASSIGN_DENIED)
            ensure_any_capability(ctx, [PermissionKey.QUOTATION_REQUEST_ASSIGN], ASSIGN_DENIED)
        except MissingCapabilityError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))

        quotation_request = session.get(QuotationRequest, quotation_request_id)
        if quotation_request is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Quotation request not found.")
        rfq_task = session.scalar(
            select(QuotationRequestTask).where(
                QuotationRequestTask.id == rfq_task_id,
                QuotationRequestTask.quotation_request_id == quotation_request.id,
            )
        )
        if rfq_task is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="RFQ task not found.")
        assignee = session.get(User, assignee_id.strip())
        if assignee is None or not assignee.active:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignee not found.")

        lead = session.get(Lead, quotation_request.lead_id) if quotation_request.lead_id is not None else None
        lead_name = (lead.name if lead else "") or quotation_request.lead_name
        lead_company = (lead.company if lead else "") or quotation_request.lead_company
        previous_name = rfq_task.assigned_name if rfq_task.assigned_to and rfq_task.assigned_to != assignee.id else None

        now = self.clock()
        task = session.get(Task, rfq_task.task_id) if rfq_task.task_id is not None else None
        if task is None:
            task = Task(
                title=f"{rfq_task.tag} · {lead_company}",
                description=f"RFQ task for {lead_name}",
                status="todo",
                priority="medium",
                assigned_to=assignee.id,
                assigned_users=[assignee.id],
                lead_id=quotation_request.lead_id,
                quotation_request_id=quotation_request.id,
                quotation_request_task_id=rfq_task.id,
                rfq_tag=rfq_task.tag,
                total_tracked_seconds=0,
                created_by=ctx.user_id,
                created_at=now,
                updated_at=now,
            )
            session.add(task)
            session.flush()
        else:
            task.assigned_to = assignee.id
            task.assigned_users = [assignee.id]
            task.updated_at = now
            session.add(task)

        rfq_task.assigned_to = assignee.id
        rfq_task.assigned_name = assignee.full_name
        rfq_task.task_id = task.id
        rfq_task.status = "assigned"
        rfq_task.updated_at = now
        session.add(rfq_task)
        session.commit()
        session.refresh(rfq_task)

        if previous_name:
            note = f"RFQ task reassigned: {rfq_task.tag} from {previous_name} to {assignee.full_name}."
        else:
            note = f"RFQ task assigned: {rfq_task.tag} to {assignee.full_name}."
        self.activity.append(
            session,
            entity_type="lead",
            entity_id=quotation_request.lead_id,
            note=note,
            actor_id=ctx.user_id,
        )
        self.emitter.emit(
            session,
            event_type="quotation_request.task_assigned",
            title="RFQ Task Assigned",
            body=f"{ctx.display_name} assigned {rfq_task.tag} for {lead_company or 'a lead'}.",
            actor_id=ctx.user_id,
            recipients=build_recipient_list(quotation_request.requested_by, [assignee.id], ctx.user_id),
            entity_type="quotationRequest",
            entity_id=quotation_request.id,
            meta={
                "leadId": str(quotation_request.lead_id) if quotation_request.lead_id else "",
                "taskTag": rfq_task.tag,
                "assigneeId": assignee.id,
            },
        )
        events.publish(
            {
                "event_type": "quotation_request.task_assigned",
                "quotation_request_id": str(quotation_request.id),
                "rfq_task_id": str(rfq_task.id),
                "task_id": str(rfq_task.task_id),
                "assignee_id": assignee.id,
            }
        )
        return rfq_task


rfq_assignment_service = RFQTaskAssignmentService()
