from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import JSON, Date, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from opsdesk.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


TASK_STATUSES = ("todo", "in-progress", "review", "done")
TASK_PRIORITIES = ("low", "medium", "high", "urgent")


class Task(Base):
    __tablename__ = "tasks_task"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="todo", server_default="todo")
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="medium", server_default="medium")
    assigned_to: Mapped[str | None] = mapped_column(String(128), nullable=True)
    assigned_users: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    reference_model_number: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Weak references: plain ids with lookup-or-skip semantics, no foreign keys.
    project_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    lead_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    quotation_request_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    quotation_request_task_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    rfq_tag: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # ISO-8601 text as written by clients; may be unparseable.
    timer_started_at: Mapped[str | None] = mapped_column(String(64), nullable=True)
    total_tracked_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_timer_stopped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_timer_duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_tasks_task_assigned_to", "assigned_to"),
        Index("ix_tasks_task_project", "project_id"),
        Index("ix_tasks_task_quotation_request_task", "quotation_request_task_id"),
    )
