from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from opsdesk import events
from opsdesk.core.config import get_settings
from opsdesk.crm.activity import ActivityLogAppender, activity_log
from opsdesk.crm.models import Project
from opsdesk.otel import workflow_span
from opsdesk.platform.notifications import NotificationEventEmitter, notification_emitter
from opsdesk.platform.security import (
    AuthContext,
    MissingCapabilityError,
    PermissionKey,
    PermissionResolver,
    ensure_any_capability,
    permission_resolver,
    role_cache_for,
)
from opsdesk.procurement.models import APPROVAL_PENDING, PurchaseOrderRequest, SalesOrderRequest
from opsdesk.procurement.pricing import (
    LineItemError,
    format_amount,
    price_line_items,
    round_money,
    to_finite_number,
    within_amount_limit,
)

logger = logging.getLogger("opsdesk.procurement")

PROJECT_NOT_FOUND = "Project not found."
PROJECT_NOT_OWNED = "You can only request PO for your assigned projects."


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_request_no(request_id: uuid.UUID, now: datetime) -> str:
    return f"POR-{now:%Y%m%d}-{str(request_id)[:6].upper()}"


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


@dataclass(slots=True)
class ProcurementRequestService:
    """Creates PO and sales-order requests.

    The request row, its project activity note and the approver notification are written in a
    single commit, so a failure leaves nothing behind.
    """

    resolver: PermissionResolver = permission_resolver
    emitter: NotificationEventEmitter = notification_emitter
    activity: ActivityLogAppender = activity_log
    clock: Callable[[], datetime] = utcnow

    def create_po_request(self, session: Session, ctx: AuthContext, payload: Any) -> PurchaseOrderRequest:
        self._require(
            ctx,
            [PermissionKey.PO_REQUEST_CREATE],
            "You do not have permission to create PO requests.",
        )
        body = payload if isinstance(payload, dict) else {}

        project_id = _text(body.get("projectId"))
        vendor_name = _text(body.get("vendorName"))
        raw_line_items = body.get("lineItems")
        if not project_id:
            raise _bad_request("Project id is required.")
        if not vendor_name:
            raise _bad_request("Vendor name is required.")
        if not isinstance(raw_line_items, list) or not raw_line_items:
            raise _bad_request("At least one line item is required.")
        try:
            line_items, totals = price_line_items(raw_line_items)
        except LineItemError as exc:
            raise _bad_request(str(exc))

        project = self._load_requestable_project(session, ctx, project_id)
        currency = (_text(body.get("currency")) or get_settings().default_po_currency).upper()

        now = self.clock()
        request_id = uuid.uuid4()
        po_request = PurchaseOrderRequest(
            id=request_id,
            request_no=build_request_no(request_id, now),
            project_id=project.id,
            project_name=project.name or "Project",
            customer_id=project.customer_id or "",
            customer_name=project.customer_name or "",
            requested_by=ctx.user_id,
            requested_by_name=ctx.display_name,
            vendor_id=_text(body.get("vendorId")),
            vendor_name=vendor_name,
            currency=currency,
            line_items=[item.to_document() for item in line_items],
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            total=totals.total,
            notes=_text(body.get("notes")),
            due_date=_text(body.get("dueDate")),
            status=APPROVAL_PENDING,
            approval={},
            accounts_entry_id="",
            created_at=now,
            updated_at=now,
        )
        approvers = self.resolver.find_users_with_any(
            session,
            [PermissionKey.PO_REQUEST_APPROVE],
            role_cache_for(ctx),
            exclude_user_id=ctx.user_id,
        )

        def stage_batch() -> None:
            session.add(po_request)
            session.flush()
            self.activity.stage(
                session,
                entity_type="project",
                entity_id=project.id,
                note=(
                    f"PO request {po_request.request_no} submitted for approval "
                    f"({currency} {format_amount(totals.total)})."
                ),
                actor_id=ctx.user_id,
            )
            if approvers:
                self.emitter.stage(
                    session,
                    event_type="po_request.submitted",
                    title="New PO Request",
                    body=f"{ctx.display_name} submitted {po_request.request_no} for {project.name or 'a project'}.",
                    actor_id=ctx.user_id,
                    recipients=approvers,
                    entity_type="purchaseOrderRequest",
                    entity_id=request_id,
                    meta={
                        "requestNo": po_request.request_no,
                        "projectId": str(project.id),
                        "total": totals.total,
                        "currency": currency,
                    },
                )

        self._commit_batch(session, stage_batch, failure_detail="Unable to create PO request.")
        events.publish(
            {
                "event_type": "po_request.created",
                "request_id": str(request_id),
                "request_no": po_request.request_no,
                "project_id": str(project.id),
                "total": totals.total,
            }
        )
        return po_request

    def create_sales_order_request(self, session: Session, ctx: AuthContext, payload: Any) -> SalesOrderRequest:
        self._require(
            ctx,
            [PermissionKey.SALES_ORDER_REQUEST_CREATE, PermissionKey.PO_REQUEST_CREATE],
            "You do not have permission to create Sales Order Reqs.",
        )
        body = payload if isinstance(payload, dict) else {}

        project_id = _text(body.get("projectId"))
        estimate_number = _text(body.get("estimateNumber"))
        po_number = _text(body.get("poNumber"))
        po_date = _text(body.get("poDate"))
        estimate_amount = to_finite_number(body.get("estimateAmount"))
        po_amount = to_finite_number(body.get("poAmount"))
        if not project_id:
            raise _bad_request("Project id is required.")
        if not estimate_number:
            raise _bad_request("Estimate number is required.")
        if estimate_amount is None or estimate_amount <= 0:
            raise _bad_request("Estimate amount must be greater than 0.")
        if not within_amount_limit(estimate_amount):
            raise _bad_request("Estimate amount is too large.")
        if not po_number:
            raise _bad_request("PO number is required.")
        if po_amount is None or po_amount <= 0:
            raise _bad_request("PO amount must be greater than 0.")
        if not within_amount_limit(po_amount):
            raise _bad_request("PO amount is too large.")
        if not po_date:
            raise _bad_request("Date of the PO is required.")

        project = self._load_requestable_project(session, ctx, project_id)

        now = self.clock()
        request_id = uuid.uuid4()
        so_request = SalesOrderRequest(
            id=request_id,
            request_no=build_request_no(request_id, now),
            project_id=project.id,
            project_name=project.name or "Project",
            customer_id=project.customer_id or "",
            customer_name=project.customer_name or "",
            requested_by=ctx.user_id,
            requested_by_name=ctx.display_name,
            estimate_number=estimate_number,
            estimate_amount=round_money(estimate_amount),
            po_number=po_number,
            po_amount=round_money(po_amount),
            po_date=po_date,
            status=APPROVAL_PENDING,
            approval={},
            sales_order_entry_id="",
            created_at=now,
            updated_at=now,
        )
        approvers = self.resolver.find_users_with_any(
            session,
            [PermissionKey.SALES_ORDER_REQUEST_APPROVE, PermissionKey.PO_REQUEST_APPROVE],
            role_cache_for(ctx),
            exclude_user_id=ctx.user_id,
        )

        def stage_batch() -> None:
            session.add(so_request)
            session.flush()
            self.activity.stage(
                session,
                entity_type="project",
                entity_id=project.id,
                note=(
                    f"Sales Order Req {so_request.request_no} submitted for approval "
                    f"(PO {format_amount(so_request.po_amount)})."
                ),
                actor_id=ctx.user_id,
            )
            if approvers:
                self.emitter.stage(
                    session,
                    event_type="po_request.submitted",
                    title="New Sales Order Req",
                    body=f"{ctx.display_name} submitted {so_request.request_no} for {project.name or 'a project'}.",
                    actor_id=ctx.user_id,
                    recipients=approvers,
                    entity_type="purchaseOrderRequest",
                    entity_id=request_id,
                    meta={
                        "requestNo": so_request.request_no,
                        "projectId": str(project.id),
                        "estimateNumber": estimate_number,
                        "estimateAmount": so_request.estimate_amount,
                        "poNumber": po_number,
                        "poAmount": so_request.po_amount,
                        "poDate": po_date,
                    },
                )

        self._commit_batch(session, stage_batch, failure_detail="Unable to create Sales Order Req.")
        events.publish(
            {
                "event_type": "sales_order_request.created",
                "request_id": str(request_id),
                "request_no": so_request.request_no,
                "project_id": str(project.id),
            }
        )
        return so_request

    def _load_requestable_project(self, session: Session, ctx: AuthContext, raw_project_id: str) -> Project:
        try:
            project = session.get(Project, uuid.UUID(raw_project_id))
        except ValueError:
            project = None
        if project is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=PROJECT_NOT_FOUND)

        can_view_all = ctx.capabilities.intersects_or_admin([PermissionKey.PROJECT_VIEW_ALL])
        if not can_view_all and (project.assigned_to or "") != ctx.user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=PROJECT_NOT_OWNED)
        return project

    def _commit_batch(self, session: Session, stage: Callable[[], None], *, failure_detail: str) -> None:
        try:
            with workflow_span("procurement.create_batch"):
                stage()
                session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("procurement.batch_failed", extra={"error": str(exc)})
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=failure_detail)

    def _require(self, ctx: AuthContext, required: list[PermissionKey], message: str) -> None:
        try:
            ensure_any_capability(ctx, required, message)
        except MissingCapabilityError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))


procurement_service = ProcurementRequestService()
