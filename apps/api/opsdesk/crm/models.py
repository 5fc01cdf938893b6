from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from opsdesk.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Lead(Base):
    __tablename__ = "crm_lead"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    company: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    owner_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="new", server_default="new")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("ix_crm_lead_owner", "owner_id"),)


class Project(Base):
    __tablename__ = "sales_project"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="Project")
    customer_id: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    assigned_to: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active", server_default="active")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("ix_sales_project_assigned_to", "assigned_to"),)


class ActivityEntry(Base):
    """Append-only activity log row attached to a lead or a project."""

    __tablename__ = "activity_entry"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="note", server_default="note")
    note: Mapped[str] = mapped_column(Text, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)

    __table_args__ = (Index("ix_activity_entry_entity", "entity_type", "entity_id", "occurred_at"),)


class QuotationRequest(Base):
    __tablename__ = "sales_quotation_request"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    lead_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    lead_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    lead_company: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    requested_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="new", server_default="new")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    tasks: Mapped[list[QuotationRequestTask]] = relationship(
        "opsdesk.crm.models.QuotationRequestTask",
        back_populates="quotation_request",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class QuotationRequestTask(Base):
    """RFQ task: a unit of work on a quotation request, optionally mirrored by a standalone task."""

    __tablename__ = "sales_quotation_request_task"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    quotation_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("sales_quotation_request.id", ondelete="CASCADE"),
        nullable=False,
    )
    tag: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending", server_default="pending")
    assigned_to: Mapped[str | None] = mapped_column(String(128), nullable=True)
    assigned_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Weak reference; the task may have been deleted.
    task_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    quotation_request: Mapped[QuotationRequest] = relationship(
        "opsdesk.crm.models.QuotationRequest",
        back_populates="tasks",
    )

    __table_args__ = (Index("ix_sales_quotation_request_task_request", "quotation_request_id"),)
