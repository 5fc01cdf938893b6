from __future__ import annotations

import uuid
from collections.abc import Generator
from datetime import datetime, timezone

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from opsdesk import events
from opsdesk.core.config import get_settings
from opsdesk.core.database import Base
from opsdesk.crm import ActivityEntry, ActivityLogAppender, Project
from opsdesk.platform.notifications import NotificationEvent, NotificationEventEmitter
from opsdesk.platform.security import AuthContext, CapabilitySet, PermissionKey
from opsdesk.procurement.approvals import (
    PO_REQUEST_APPROVAL,
    SALES_ORDER_REQUEST_APPROVAL,
    ApprovalStateMachine,
)
from opsdesk.procurement.models import PurchaseOrderRequest, SalesOrderRequest

DECIDED_AT = datetime(2026, 10, 17, 11, 0, tzinfo=timezone.utc)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    events.published_events.clear()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def machine() -> ApprovalStateMachine:
    clock = lambda: DECIDED_AT  # noqa: E731
    return ApprovalStateMachine(
        emitter=NotificationEventEmitter(clock=clock),
        activity=ActivityLogAppender(clock=clock),
        clock=clock,
    )


@pytest.fixture()
def reset_settings() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _accounts(user_id: str = "acc-1") -> AuthContext:
    return AuthContext(
        user_id=user_id,
        full_name="Accounts Lead",
        capabilities=CapabilitySet.of([PermissionKey.PO_REQUEST_APPROVE]),
    )


def _seed_po_request(session: Session, *, approval: dict | None = None, status: str = "pending_approval") -> PurchaseOrderRequest:
    project = Project(name="Harbor Fitout", assigned_to="alex")
    session.add(project)
    session.flush()
    request = PurchaseOrderRequest(
        request_no="POR-20261017-ABC123",
        project_id=project.id,
        project_name=project.name,
        requested_by="alex",
        requested_by_name="Alex",
        vendor_name="Gulf Supplies",
        currency="AED",
        line_items=[],
        subtotal=400.0,
        tax_amount=20.0,
        total=420.0,
        status=status,
        approval=approval or {},
    )
    session.add(request)
    session.commit()
    return request


def test_approve_records_approver_and_clears_rejection(db_session: Session, machine: ApprovalStateMachine) -> None:
    request = _seed_po_request(
        db_session,
        approval={"rejectedBy": "old", "rejectedByName": "Old", "rejectedAt": "x", "rejectionReason": "stale"},
    )

    approved = machine.approve(db_session, _accounts(), PO_REQUEST_APPROVAL, request.id)

    assert approved.status == "approved"
    assert approved.approval["approvedBy"] == "acc-1"
    assert approved.approval["approvedByName"] == "Accounts Lead"
    assert approved.approval["approvedAt"] == DECIDED_AT.isoformat()
    assert approved.approval["rejectedBy"] == ""
    assert approved.approval["rejectionReason"] == ""

    [note] = db_session.scalars(select(ActivityEntry)).all()
    assert note.note == "PO request POR-20261017-ABC123 approved by Accounts."
    [notification] = db_session.scalars(select(NotificationEvent)).all()
    assert notification.type == "po_request.approved"
    assert notification.title == "PO Request Approved"
    assert notification.recipients == ["alex"]
    assert events.published_events[-1]["decision"] == "approved"


def test_reject_stores_reason_and_keeps_stale_approval_fields(
    db_session: Session,
    machine: ApprovalStateMachine,
    reset_settings: None,
) -> None:
    request = _seed_po_request(db_session, approval={"approvedBy": "old", "approvedByName": "Old", "approvedAt": "x"})

    rejected = machine.reject(db_session, _accounts(), PO_REQUEST_APPROVAL, request.id, "  Price too high ")

    assert rejected.status == "rejected"
    assert rejected.approval["rejectedBy"] == "acc-1"
    assert rejected.approval["rejectionReason"] == "Price too high"
    assert rejected.approval["approvedBy"] == "old"

    [note] = db_session.scalars(select(ActivityEntry)).all()
    assert note.note == "PO request POR-20261017-ABC123 rejected by Accounts. Reason: Price too high."
    [notification] = db_session.scalars(select(NotificationEvent)).all()
    assert notification.type == "po_request.rejected"
    assert notification.meta["rejectionReason"] == "Price too high"


def test_reject_can_clear_approval_fields_when_configured(
    db_session: Session,
    machine: ApprovalStateMachine,
    reset_settings: None,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APPROVAL_REJECT_CLEARS_APPROVE_FIELDS", "true")
    get_settings.cache_clear()
    request = _seed_po_request(db_session, approval={"approvedBy": "old", "approvedByName": "Old", "approvedAt": "x"})

    rejected = machine.reject(db_session, _accounts(), PO_REQUEST_APPROVAL, request.id, "Duplicate")

    assert rejected.approval["approvedBy"] == ""
    assert rejected.approval["approvedAt"] == ""
    assert rejected.approval["rejectedBy"] == "acc-1"


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_reject_requires_reason(db_session: Session, machine: ApprovalStateMachine, reason: str | None) -> None:
    request = _seed_po_request(db_session)

    with pytest.raises(HTTPException) as exc_info:
        machine.reject(db_session, _accounts(), PO_REQUEST_APPROVAL, request.id, reason)

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "Rejection reason is required."
    db_session.expire_all()
    assert db_session.get(PurchaseOrderRequest, request.id).status == "pending_approval"


def test_decided_requests_are_terminal(db_session: Session, machine: ApprovalStateMachine) -> None:
    request = _seed_po_request(db_session, status="approved")

    with pytest.raises(HTTPException) as exc_info:
        machine.reject(db_session, _accounts(), PO_REQUEST_APPROVAL, request.id, "Too late")

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail == "PO request POR-20261017-ABC123 is already approved."


def test_approval_requires_permission(db_session: Session, machine: ApprovalStateMachine) -> None:
    request = _seed_po_request(db_session)
    viewer = AuthContext(user_id="kim", capabilities=CapabilitySet.of([PermissionKey.PO_REQUEST_VIEW]))

    with pytest.raises(HTTPException) as exc_info:
        machine.approve(db_session, viewer, PO_REQUEST_APPROVAL, request.id)

    assert exc_info.value.status_code == 403
    assert exc_info.value.detail == "You do not have permission to approve PO requests."


def test_unknown_request_is_not_found(db_session: Session, machine: ApprovalStateMachine) -> None:
    with pytest.raises(HTTPException) as exc_info:
        machine.approve(db_session, _accounts(), PO_REQUEST_APPROVAL, uuid.uuid4())

    assert exc_info.value.status_code == 404


def test_self_approval_sends_no_notification(db_session: Session, machine: ApprovalStateMachine) -> None:
    request = _seed_po_request(db_session)
    requester = AuthContext(user_id="alex", capabilities=CapabilitySet.of([PermissionKey.ADMIN]))

    machine.approve(db_session, requester, PO_REQUEST_APPROVAL, request.id)

    assert db_session.scalars(select(NotificationEvent)).all() == []
    assert len(db_session.scalars(select(ActivityEntry)).all()) == 1


def test_sales_order_request_accepts_either_approval_permission(
    db_session: Session, machine: ApprovalStateMachine
) -> None:
    project = Project(name="Harbor Fitout")
    db_session.add(project)
    db_session.flush()
    request = SalesOrderRequest(
        request_no="POR-20261017-DEF456",
        project_id=project.id,
        requested_by="alex",
        estimate_number="EST-9",
        estimate_amount=1000.0,
        po_number="PO-77",
        po_amount=950.0,
        po_date="2026-10-15",
    )
    db_session.add(request)
    db_session.commit()

    approved = machine.approve(db_session, _accounts(), SALES_ORDER_REQUEST_APPROVAL, request.id)

    assert approved.status == "approved"
    [note] = db_session.scalars(select(ActivityEntry)).all()
    assert note.note == "Sales Order Req POR-20261017-DEF456 approved by Sales Order."
