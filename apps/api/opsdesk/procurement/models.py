from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from opsdesk.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


APPROVAL_PENDING = "pending_approval"
APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"


class ApprovableRequestMixin:
    """Columns shared by every request that goes through the approve/reject flow."""

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    request_no: Mapped[str] = mapped_column(String(64), nullable=False)
    project_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    project_name: Mapped[str] = mapped_column(String(255), nullable=False, default="Project")
    customer_id: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    requested_by: Mapped[str] = mapped_column(String(128), nullable=False)
    requested_by_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=APPROVAL_PENDING)
    approval: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class PurchaseOrderRequest(ApprovableRequestMixin, Base):
    __tablename__ = "accounts_po_request"

    vendor_id: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    vendor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    currency: Mapped[str] = mapped_column(String(16), nullable=False)
    line_items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    subtotal: Mapped[float] = mapped_column(Numeric(18, 2, asdecimal=False), nullable=False)
    tax_amount: Mapped[float] = mapped_column(Numeric(18, 2, asdecimal=False), nullable=False)
    total: Mapped[float] = mapped_column(Numeric(18, 2, asdecimal=False), nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    due_date: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    accounts_entry_id: Mapped[str] = mapped_column(String(128), nullable=False, default="")

    __table_args__ = (
        Index("ix_accounts_po_request_project", "project_id"),
        Index("ix_accounts_po_request_status", "status"),
    )


class SalesOrderRequest(ApprovableRequestMixin, Base):
    __tablename__ = "sales_order_request"

    estimate_number: Mapped[str] = mapped_column(String(64), nullable=False)
    estimate_amount: Mapped[float] = mapped_column(Numeric(18, 2, asdecimal=False), nullable=False)
    po_number: Mapped[str] = mapped_column(String(64), nullable=False)
    po_amount: Mapped[float] = mapped_column(Numeric(18, 2, asdecimal=False), nullable=False)
    po_date: Mapped[str] = mapped_column(String(32), nullable=False)
    sales_order_entry_id: Mapped[str] = mapped_column(String(128), nullable=False, default="")

    __table_args__ = (
        Index("ix_sales_order_request_project", "project_id"),
        Index("ix_sales_order_request_status", "status"),
    )
