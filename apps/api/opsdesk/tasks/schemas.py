from __future__ import annotations

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


TaskStatus = Literal["todo", "in-progress", "review", "done"]
TaskPriority = Literal["low", "medium", "high", "urgent"]


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    status: TaskStatus = "todo"
    priority: TaskPriority = "medium"
    assigned_to: str = Field(min_length=1)
    assigned_users: list[str] | None = None
    due_date: date | None = None
    reference_model_number: str | None = None
    project_id: UUID | None = None
    lead_id: UUID | None = None


class TaskUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    assigned_to: str | None = None
    assigned_users: list[str] | None = None
    due_date: date | None = None
    reference_model_number: str | None = None


class TaskStatusChange(BaseModel):
    status: TaskStatus


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str
    status: str
    priority: str
    assigned_to: str | None
    assigned_users: list[str]
    start_date: date | None
    end_date: date | None
    due_date: date | None
    reference_model_number: str | None
    project_id: UUID | None
    lead_id: UUID | None
    quotation_request_id: UUID | None
    quotation_request_task_id: UUID | None
    rfq_tag: str | None
    timer_started_at: str | None
    total_tracked_seconds: int
    last_timer_stopped_at: datetime | None
    last_timer_duration_seconds: int | None
    created_by: str
    created_at: datetime
    updated_at: datetime
    live_tracked_seconds: int = 0
