from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from opsdesk import events
from opsdesk.core.config import get_settings
from opsdesk.crm.activity import ActivityLogAppender, activity_log
from opsdesk.metrics import observe_approval_decision
from opsdesk.platform.notifications import NotificationEventEmitter, build_recipient_list, notification_emitter
from opsdesk.platform.security import AuthContext, MissingCapabilityError, PermissionKey, ensure_any_capability
from opsdesk.procurement.models import (
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    APPROVAL_REJECTED,
    ApprovableRequestMixin,
    PurchaseOrderRequest,
    SalesOrderRequest,
)

_APPROVE_FIELDS = ("approvedBy", "approvedByName", "approvedAt")
_REJECT_FIELDS = ("rejectedBy", "rejectedByName", "rejectedAt", "rejectionReason")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class ApprovalPolicy:
    """Per-entity wording and capability rules for the approve/reject flow."""

    entity_type: str
    model: type[ApprovableRequestMixin]
    label: str
    approver_label: str
    notification_label: str
    approve_permissions: tuple[str, ...]
    denied_message: str
    not_found_message: str


PO_REQUEST_APPROVAL = ApprovalPolicy(
    entity_type="purchaseOrderRequest",
    model=PurchaseOrderRequest,
    label="PO request",
    approver_label="Accounts",
    notification_label="PO Request",
    approve_permissions=(PermissionKey.PO_REQUEST_APPROVE.value,),
    denied_message="You do not have permission to approve PO requests.",
    not_found_message="PO request not found.",
)

SALES_ORDER_REQUEST_APPROVAL = ApprovalPolicy(
    entity_type="salesOrderRequest",
    model=SalesOrderRequest,
    label="Sales Order Req",
    approver_label="Sales Order",
    notification_label="Sales Order Req",
    approve_permissions=(
        PermissionKey.SALES_ORDER_REQUEST_APPROVE.value,
        PermissionKey.PO_REQUEST_APPROVE.value,
    ),
    denied_message="You do not have permission to approve Sales Order Reqs.",
    not_found_message="Sales Order Req not found.",
)


@dataclass(slots=True)
class ApprovalStateMachine:
    """pending_approval -> approved | rejected. Both outcomes are terminal."""

    emitter: NotificationEventEmitter = notification_emitter
    activity: ActivityLogAppender = activity_log
    clock: Callable[[], datetime] = utcnow

    def approve(
        self,
        session: Session,
        ctx: AuthContext,
        policy: ApprovalPolicy,
        request_id: uuid.UUID,
    ) -> ApprovableRequestMixin:
        entity = self._load_pending(session, ctx, policy, request_id)

        now = self.clock()
        approval = dict(entity.approval or {})
        approval.update(
            {
                "approvedBy": ctx.user_id,
                "approvedByName": ctx.display_name,
                "approvedAt": now.isoformat(),
            }
        )
        for key in _REJECT_FIELDS:
            approval[key] = ""
        entity.approval = approval
        entity.status = APPROVAL_APPROVED
        entity.updated_at = now
        session.add(entity)
        session.commit()
        session.refresh(entity)

        self._after_decision(
            session,
            ctx,
            policy,
            entity,
            note=f"{policy.label} {entity.request_no} approved by {policy.approver_label}.",
            body=f"{ctx.display_name} approved {entity.request_no} for {entity.project_name or 'a project'}.",
            rejection_reason="",
        )
        return entity

    def reject(
        self,
        session: Session,
        ctx: AuthContext,
        policy: ApprovalPolicy,
        request_id: uuid.UUID,
        reason: str | None,
    ) -> ApprovableRequestMixin:
        entity = self._load_pending(session, ctx, policy, request_id)
        trimmed_reason = (reason or "").strip()
        if not trimmed_reason:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Rejection reason is required.")

        now = self.clock()
        approval = dict(entity.approval or {})
        approval.update(
            {
                "rejectedBy": ctx.user_id,
                "rejectedByName": ctx.display_name,
                "rejectedAt": now.isoformat(),
                "rejectionReason": trimmed_reason,
            }
        )
        # Approve fields are left as they were unless the symmetric reset is switched on.
        if get_settings().approval_reject_clears_approve_fields:
            for key in _APPROVE_FIELDS:
                approval[key] = ""
        entity.approval = approval
        entity.status = APPROVAL_REJECTED
        entity.updated_at = now
        session.add(entity)
        session.commit()
        session.refresh(entity)

        self._after_decision(
            session,
            ctx,
            policy,
            entity,
            note=(
                f"{policy.label} {entity.request_no} rejected by {policy.approver_label}. "
                f"Reason: {trimmed_reason}."
            ),
            body=(
                f"{ctx.display_name} rejected {entity.request_no} for {entity.project_name or 'a project'}. "
                f"Reason: {trimmed_reason}"
            ),
            rejection_reason=trimmed_reason,
        )
        return entity

    def _after_decision(
        self,
        session: Session,
        ctx: AuthContext,
        policy: ApprovalPolicy,
        entity: ApprovableRequestMixin,
        *,
        note: str,
        body: str,
        rejection_reason: str,
    ) -> None:
        decision = entity.status
        request_no = entity.request_no
        project_id = entity.project_id
        requested_by = entity.requested_by
        observe_approval_decision(policy.entity_type, decision)

        self.activity.append(session, entity_type="project", entity_id=project_id, note=note, actor_id=ctx.user_id)
        recipients = build_recipient_list(requested_by, [], ctx.user_id)
        if recipients:
            self.emitter.emit(
                session,
                event_type=f"po_request.{decision}",
                title=f"{policy.notification_label} {'Approved' if decision == APPROVAL_APPROVED else 'Rejected'}",
                body=body,
                actor_id=ctx.user_id,
                recipients=recipients,
                entity_type=policy.entity_type,
                entity_id=entity.id,
                meta={
                    "requestNo": request_no,
                    "projectId": str(project_id),
                    "status": decision,
                    "rejectionReason": rejection_reason,
                },
            )

        events.publish(
            {
                "event_type": "approval.decided",
                "entity_type": policy.entity_type,
                "request_id": str(entity.id),
                "request_no": request_no,
                "decision": decision,
            }
        )

    def _load_pending(
        self,
        session: Session,
        ctx: AuthContext,
        policy: ApprovalPolicy,
        request_id: uuid.UUID,
    ) -> ApprovableRequestMixin:
        try:
            ensure_any_capability(ctx, policy.approve_permissions, policy.denied_message)
        except MissingCapabilityError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))

        entity = session.get(policy.model, request_id)
        if entity is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=policy.not_found_message)
        if entity.status != APPROVAL_PENDING:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{policy.label} {entity.request_no} is already {entity.status}.",
            )
        return entity


approval_state_machine = ApprovalStateMachine()
