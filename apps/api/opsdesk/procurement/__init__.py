from opsdesk.procurement.approvals import (
    PO_REQUEST_APPROVAL,
    SALES_ORDER_REQUEST_APPROVAL,
    ApprovalPolicy,
    ApprovalStateMachine,
    approval_state_machine,
)
from opsdesk.procurement.models import PurchaseOrderRequest, SalesOrderRequest
from opsdesk.procurement.pricing import price_line_item, price_line_items, round_money
from opsdesk.procurement.service import ProcurementRequestService, procurement_service

__all__ = [
    "PurchaseOrderRequest",
    "SalesOrderRequest",
    "ApprovalPolicy",
    "ApprovalStateMachine",
    "approval_state_machine",
    "PO_REQUEST_APPROVAL",
    "SALES_ORDER_REQUEST_APPROVAL",
    "price_line_item",
    "price_line_items",
    "round_money",
    "ProcurementRequestService",
    "procurement_service",
]
