from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class RFQTaskAssign(BaseModel):
    user_id: str = Field(min_length=1)


class QuotationRequestTaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    quotation_request_id: UUID
    tag: str
    status: str
    assigned_to: str | None
    assigned_name: str | None
    task_id: UUID | None
    updated_at: datetime


class ActivityEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    entity_type: str
    entity_id: UUID
    type: str
    note: str
    occurred_at: datetime
    created_by: str
