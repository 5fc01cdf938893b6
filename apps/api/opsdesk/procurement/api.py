from __future__ import annotations

import json
import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from opsdesk.authz.dependencies import get_auth_context, resolve_request_auth_context
from opsdesk.core.database import get_db
from opsdesk.platform.security import AuthContext
from opsdesk.procurement.approvals import (
    PO_REQUEST_APPROVAL,
    SALES_ORDER_REQUEST_APPROVAL,
    approval_state_machine,
)
from opsdesk.procurement.schemas import ApprovalDecisionRequest, PurchaseOrderRequestRead, SalesOrderRequestRead
from opsdesk.procurement.service import procurement_service


po_requests_router = APIRouter(prefix="/api/accounts/po-requests", tags=["procurement"])
sales_order_requests_router = APIRouter(prefix="/api/sales-order/sales-order-requests", tags=["procurement"])


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _read_json_body(request: Request) -> Any:
    raw = await request.body()
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload.")


def _document(read_model: PurchaseOrderRequestRead | SalesOrderRequestRead) -> dict[str, Any]:
    return read_model.model_dump(mode="json", by_alias=True)


def _submit_po_request(request: Request, db: Session, payload: Any) -> dict[str, Any]:
    ctx = resolve_request_auth_context(request, db)
    po_request = procurement_service.create_po_request(db, ctx, payload)
    return _document(PurchaseOrderRequestRead.model_validate(po_request))


def _submit_sales_order_request(request: Request, db: Session, payload: Any) -> dict[str, Any]:
    ctx = resolve_request_auth_context(request, db)
    so_request = procurement_service.create_sales_order_request(db, ctx, payload)
    return _document(SalesOrderRequestRead.model_validate(so_request))


@po_requests_router.post("", status_code=status.HTTP_201_CREATED)
async def create_po_request(request: Request, db: Session = Depends(get_db)) -> JSONResponse:
    try:
        payload = await _read_json_body(request)
        document = await run_in_threadpool(_submit_po_request, request, db, payload)
    except HTTPException as exc:
        return error_response(exc.status_code, str(exc.detail))
    return JSONResponse(status_code=status.HTTP_201_CREATED, content=document)


@po_requests_router.post("/{request_id}/approve", response_model=PurchaseOrderRequestRead)
def approve_po_request(
    request_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> PurchaseOrderRequestRead:
    entity = approval_state_machine.approve(db, ctx, PO_REQUEST_APPROVAL, request_id)
    return PurchaseOrderRequestRead.model_validate(entity)


@po_requests_router.post("/{request_id}/reject", response_model=PurchaseOrderRequestRead)
def reject_po_request(
    request_id: uuid.UUID,
    payload: ApprovalDecisionRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> PurchaseOrderRequestRead:
    entity = approval_state_machine.reject(db, ctx, PO_REQUEST_APPROVAL, request_id, payload.reason)
    return PurchaseOrderRequestRead.model_validate(entity)


@sales_order_requests_router.post("", status_code=status.HTTP_201_CREATED)
async def create_sales_order_request(request: Request, db: Session = Depends(get_db)) -> JSONResponse:
    try:
        payload = await _read_json_body(request)
        document = await run_in_threadpool(_submit_sales_order_request, request, db, payload)
    except HTTPException as exc:
        return error_response(exc.status_code, str(exc.detail))
    return JSONResponse(status_code=status.HTTP_201_CREATED, content=document)


@sales_order_requests_router.post(
    "/{request_id}/approve",
    response_model=SalesOrderRequestRead,
)
def approve_sales_order_request(
    request_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> SalesOrderRequestRead:
    entity = approval_state_machine.approve(db, ctx, SALES_ORDER_REQUEST_APPROVAL, request_id)
    return SalesOrderRequestRead.model_validate(entity)


@sales_order_requests_router.post(
    "/{request_id}/reject",
    response_model=SalesOrderRequestRead,
)
def reject_sales_order_request(
    request_id: uuid.UUID,
    payload: ApprovalDecisionRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> SalesOrderRequestRead:
    entity = approval_state_machine.reject(db, ctx, SALES_ORDER_REQUEST_APPROVAL, request_id, payload.reason)
    return SalesOrderRequestRead.model_validate(entity)
