from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _DocumentModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class ApprovalDecisionRequest(BaseModel):
    reason: str = ""


class PurchaseOrderRequestRead(_DocumentModel):
    id: UUID
    request_no: str
    project_id: UUID
    project_name: str
    customer_id: str
    customer_name: str
    requested_by: str
    requested_by_name: str
    vendor_id: str
    vendor_name: str
    currency: str
    line_items: list[dict[str, Any]]
    subtotal: float
    tax_amount: float
    total: float
    notes: str
    due_date: str
    status: str
    approval: dict[str, Any] = Field(default_factory=dict)
    accounts_entry_id: str
    created_at: datetime
    updated_at: datetime


class SalesOrderRequestRead(_DocumentModel):
    id: UUID
    request_no: str
    project_id: UUID
    project_name: str
    customer_id: str
    customer_name: str
    requested_by: str
    requested_by_name: str
    estimate_number: str
    estimate_amount: float
    po_number: str
    po_amount: float
    po_date: str
    status: str
    approval: dict[str, Any] = Field(default_factory=dict)
    sales_order_entry_id: str
    created_at: datetime
    updated_at: datetime
