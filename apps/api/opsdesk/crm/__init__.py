from opsdesk.crm.activity import ActivityLogAppender, activity_log
from opsdesk.crm.models import ActivityEntry, Lead, Project, QuotationRequest, QuotationRequestTask

__all__ = [
    "ActivityEntry",
    "Lead",
    "Project",
    "QuotationRequest",
    "QuotationRequestTask",
    "ActivityLogAppender",
    "activity_log",
]
