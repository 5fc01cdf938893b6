from __future__ import annotations

import uuid
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from opsdesk.authz.dependencies import get_auth_context
from opsdesk.core.database import get_db
from opsdesk.crm.activity import activity_log
from opsdesk.crm.schemas import ActivityEntryRead, QuotationRequestTaskRead, RFQTaskAssign
from opsdesk.crm.rfq import rfq_assignment_service
from opsdesk.platform.security import AuthContext, PermissionKey


router = APIRouter(prefix="/api/sales", tags=["sales"])
leads_router = APIRouter(prefix="/api/crm/leads", tags=["crm"])

_ACTIVITY_VIEW_PERMISSIONS: dict[str, list[str]] = {
    "lead": [PermissionKey.LEAD_VIEW, PermissionKey.LEAD_VIEW_ALL],
    "project": [PermissionKey.PROJECT_VIEW, PermissionKey.PROJECT_VIEW_ALL],
}


@router.post(
    "/quotation-requests/{quotation_request_id}/tasks/{rfq_task_id}/assign",
    response_model=QuotationRequestTaskRead,
)
def assign_rfq_task(
    quotation_request_id: uuid.UUID,
    rfq_task_id: uuid.UUID,
    payload: RFQTaskAssign,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> QuotationRequestTaskRead:
    rfq_task = rfq_assignment_service.assign(db, ctx, quotation_request_id, rfq_task_id, payload.user_id)
    return QuotationRequestTaskRead.model_validate(rfq_task)


def _list_activities(
    db: Session,
    ctx: AuthContext,
    entity_type: Literal["lead", "project"],
    entity_id: uuid.UUID,
) -> list[ActivityEntryRead]:
    if not ctx.capabilities.intersects_or_admin(_ACTIVITY_VIEW_PERMISSIONS[entity_type]):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Missing permission: {entity_type}_view")
    return [ActivityEntryRead.model_validate(entry) for entry in activity_log.list_for(db, entity_type, entity_id)]


@router.get("/projects/{project_id}/activities", response_model=list[ActivityEntryRead])
def list_project_activities(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[ActivityEntryRead]:
    return _list_activities(db, ctx, "project", project_id)


@leads_router.get("/{lead_id}/activities", response_model=list[ActivityEntryRead])
def list_lead_activities(
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[ActivityEntryRead]:
    return _list_activities(db, ctx, "lead", lead_id)
