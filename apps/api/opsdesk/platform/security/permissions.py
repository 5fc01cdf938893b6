from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import StrEnum


class PermissionKey(StrEnum):
    ADMIN = "admin"
    LEAD_CREATE = "lead_create"
    LEAD_VIEW = "lead_view"
    LEAD_VIEW_ALL = "lead_view_all"
    LEAD_EDIT = "lead_edit"
    LEAD_DELETE = "lead_delete"
    LEAD_SOURCE_MANAGE = "lead_source_manage"
    PROFILE_VIEW_SELF = "profile_view_self"
    PROFILE_EDIT_NAME = "profile_edit_name"
    PROFILE_EDIT_EMAIL = "profile_edit_email"
    PROFILE_EDIT_PHONE = "profile_edit_phone"
    PROFILE_EDIT_AVATAR = "profile_edit_avatar"
    PROFILE_EDIT_ROLE = "profile_edit_role"
    PROFILE_PASSWORD_RESET = "profile_password_reset"
    CALENDAR_CREATE = "calendar_create"
    CALENDAR_VIEW = "calendar_view"
    CALENDAR_VIEW_ALL = "calendar_view_all"
    CALENDAR_EDIT = "calendar_edit"
    CALENDAR_DELETE = "calendar_delete"
    CALENDAR_ASSIGN = "calendar_assign"
    REPORTS_VIEW = "reports_view"
    DASHBOARD = "dashboard"
    CRM = "crm"
    TASKS = "tasks"
    TASK_CREATE = "task_create"
    TASK_VIEW = "task_view"
    TASK_VIEW_ALL = "task_view_all"
    TASK_EDIT = "task_edit"
    TASK_DELETE = "task_delete"
    TASK_ASSIGN = "task_assign"
    CUSTOMER_CREATE = "customer_create"
    CUSTOMER_VIEW = "customer_view"
    CUSTOMER_VIEW_ALL = "customer_view_all"
    CUSTOMER_EDIT = "customer_edit"
    CUSTOMER_DELETE = "customer_delete"
    CUSTOMER_ASSIGN = "customer_assign"
    PROJECT_CREATE = "project_create"
    PROJECT_VIEW = "project_view"
    PROJECT_VIEW_ALL = "project_view_all"
    PROJECT_EDIT = "project_edit"
    PROJECT_DELETE = "project_delete"
    PROJECT_ASSIGN = "project_assign"
    QUOTATION_CREATE = "quotation_create"
    QUOTATION_VIEW = "quotation_view"
    QUOTATION_VIEW_ALL = "quotation_view_all"
    QUOTATION_EDIT = "quotation_edit"
    QUOTATION_DELETE = "quotation_delete"
    QUOTATION_ASSIGN = "quotation_assign"
    QUOTATION_REQUEST_CREATE = "quotation_request_create"
    QUOTATION_REQUEST_VIEW = "quotation_request_view"
    QUOTATION_REQUEST_VIEW_ALL = "quotation_request_view_all"
    QUOTATION_REQUEST_EDIT = "quotation_request_edit"
    QUOTATION_REQUEST_DELETE = "quotation_request_delete"
    QUOTATION_REQUEST_ASSIGN = "quotation_request_assign"
    SALES_ORDER_REQUEST_CREATE = "sales_order_request_create"
    SALES_ORDER_REQUEST_VIEW = "sales_order_request_view"
    SALES_ORDER_REQUEST_APPROVE = "sales_order_request_approve"
    PO_REQUEST_CREATE = "po_request_create"
    PO_REQUEST_VIEW = "po_request_view"
    PO_REQUEST_APPROVE = "po_request_approve"
    INVOICES_VIEW = "invoices_view"
    SALES = "sales"
    OPERATIONS = "operations"
    SALES_ORDER = "sales_order"
    STORE = "store"
    PROCUREMENT = "procurement"
    LOGISTICS = "logistics"
    MARKETING = "marketing"
    FLEET = "fleet"
    COMPLIANCE = "compliance"
    SETTINGS = "settings"


ALL_PERMISSIONS: frozenset[str] = frozenset(item.value for item in PermissionKey)


@dataclass(frozen=True, slots=True)
class CapabilitySet:
    """Effective permissions of one user; ``admin`` implies every other permission."""

    keys: frozenset[str] = frozenset()

    @classmethod
    def of(cls, values: Iterable[str] | None) -> CapabilitySet:
        """Build a set from stored permission strings, dropping anything outside the known universe."""
        if not values:
            return cls()
        return cls(frozenset(str(value) for value in values if str(value) in ALL_PERMISSIONS))

    @classmethod
    def everything(cls) -> CapabilitySet:
        return cls(ALL_PERMISSIONS)

    @property
    def is_admin(self) -> bool:
        return PermissionKey.ADMIN.value in self.keys

    def intersects_or_admin(self, required: Iterable[str]) -> bool:
        required_keys = {str(item) for item in required}
        if not required_keys:
            return True
        if self.is_admin:
            return True
        return not self.keys.isdisjoint(required_keys)

    def __contains__(self, item: object) -> bool:
        return str(item) in self.keys

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.keys))

    def __len__(self) -> int:
        return len(self.keys)


def has_permission(permissions: CapabilitySet | Iterable[str], required_any_of: Iterable[str]) -> bool:
    capabilities = permissions if isinstance(permissions, CapabilitySet) else CapabilitySet.of(permissions)
    return capabilities.intersects_or_admin(required_any_of)
