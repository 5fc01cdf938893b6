"""create opsdesk schema

Revision ID: 202610170001
Revises:
Create Date: 2026-10-17 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610170001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _approvable_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("request_no", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("project_name", sa.String(length=255), nullable=False),
        sa.Column("customer_id", sa.String(length=128), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=False),
        sa.Column("requested_by", sa.String(length=128), nullable=False),
        sa.Column("requested_by_name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("approval", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "authz_role",
        sa.Column("id", sa.String(length=128), nullable=False),
        sa.Column("key", sa.String(length=128), nullable=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("permissions", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_authz_role_key", "authz_role", ["key"], unique=False)

    op.create_table(
        "identity_user",
        sa.Column("id", sa.String(length=128), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=128), nullable=False, server_default=""),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_identity_user_active", "identity_user", ["active"], unique=False)

    op.create_table(
        "crm_lead",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("company", sa.String(length=255), nullable=False),
        sa.Column("owner_id", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="new"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_lead_owner", "crm_lead", ["owner_id"], unique=False)

    op.create_table(
        "sales_project",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("customer_id", sa.String(length=128), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=False),
        sa.Column("assigned_to", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sales_project_assigned_to", "sales_project", ["assigned_to"], unique=False)

    op.create_table(
        "activity_entry",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False, server_default="note"),
        sa.Column("note", sa.Text(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_activity_entry_entity",
        "activity_entry",
        ["entity_type", "entity_id", "occurred_at"],
        unique=False,
    )

    op.create_table(
        "sales_quotation_request",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("lead_id", sa.Uuid(), nullable=True),
        sa.Column("lead_name", sa.String(length=255), nullable=False),
        sa.Column("lead_company", sa.String(length=255), nullable=False),
        sa.Column("requested_by", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="new"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "sales_quotation_request_task",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("quotation_request_id", sa.Uuid(), nullable=False),
        sa.Column("tag", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("assigned_to", sa.String(length=128), nullable=True),
        sa.Column("assigned_name", sa.String(length=255), nullable=True),
        sa.Column("task_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["quotation_request_id"], ["sales_quotation_request.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_sales_quotation_request_task_request",
        "sales_quotation_request_task",
        ["quotation_request_id"],
        unique=False,
    )

    op.create_table(
        "tasks_task",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="todo"),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default="medium"),
        sa.Column("assigned_to", sa.String(length=128), nullable=True),
        sa.Column("assigned_users", sa.JSON(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("reference_model_number", sa.String(length=128), nullable=True),
        sa.Column("project_id", sa.Uuid(), nullable=True),
        sa.Column("lead_id", sa.Uuid(), nullable=True),
        sa.Column("quotation_request_id", sa.Uuid(), nullable=True),
        sa.Column("quotation_request_task_id", sa.Uuid(), nullable=True),
        sa.Column("rfq_tag", sa.String(length=64), nullable=True),
        sa.Column("timer_started_at", sa.String(length=64), nullable=True),
        sa.Column("total_tracked_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_timer_stopped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_timer_duration_seconds", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tasks_task_assigned_to", "tasks_task", ["assigned_to"], unique=False)
    op.create_index("ix_tasks_task_project", "tasks_task", ["project_id"], unique=False)
    op.create_index(
        "ix_tasks_task_quotation_request_task",
        "tasks_task",
        ["quotation_request_task_id"],
        unique=False,
    )

    op.create_table(
        "accounts_po_request",
        *_approvable_columns(),
        sa.Column("vendor_id", sa.String(length=128), nullable=False),
        sa.Column("vendor_name", sa.String(length=255), nullable=False),
        sa.Column("currency", sa.String(length=16), nullable=False),
        sa.Column("line_items", sa.JSON(), nullable=False),
        sa.Column("subtotal", sa.Numeric(18, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("total", sa.Numeric(18, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False),
        sa.Column("due_date", sa.String(length=32), nullable=False),
        sa.Column("accounts_entry_id", sa.String(length=128), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_accounts_po_request_project", "accounts_po_request", ["project_id"], unique=False)
    op.create_index("ix_accounts_po_request_status", "accounts_po_request", ["status"], unique=False)

    op.create_table(
        "sales_order_request",
        *_approvable_columns(),
        sa.Column("estimate_number", sa.String(length=64), nullable=False),
        sa.Column("estimate_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("po_number", sa.String(length=64), nullable=False),
        sa.Column("po_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("po_date", sa.String(length=32), nullable=False),
        sa.Column("sales_order_entry_id", sa.String(length=128), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sales_order_request_project", "sales_order_request", ["project_id"], unique=False)
    op.create_index("ix_sales_order_request_status", "sales_order_request", ["status"], unique=False)

    op.create_table(
        "notification_event",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("actor_id", sa.String(length=128), nullable=False),
        sa.Column("recipients", sa.JSON(), nullable=False),
        sa.Column("broadcast", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_notification_event_entity",
        "notification_event",
        ["entity_type", "entity_id"],
        unique=False,
    )
    op.create_index("ix_notification_event_created_at", "notification_event", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_notification_event_created_at", table_name="notification_event")
    op.drop_index("ix_notification_event_entity", table_name="notification_event")
    op.drop_table("notification_event")
    op.drop_index("ix_sales_order_request_status", table_name="sales_order_request")
    op.drop_index("ix_sales_order_request_project", table_name="sales_order_request")
    op.drop_table("sales_order_request")
    op.drop_index("ix_accounts_po_request_status", table_name="accounts_po_request")
    op.drop_index("ix_accounts_po_request_project", table_name="accounts_po_request")
    op.drop_table("accounts_po_request")
    op.drop_index("ix_tasks_task_quotation_request_task", table_name="tasks_task")
    op.drop_index("ix_tasks_task_project", table_name="tasks_task")
    op.drop_index("ix_tasks_task_assigned_to", table_name="tasks_task")
    op.drop_table("tasks_task")
    op.drop_index("ix_sales_quotation_request_task_request", table_name="sales_quotation_request_task")
    op.drop_table("sales_quotation_request_task")
    op.drop_table("sales_quotation_request")
    op.drop_index("ix_activity_entry_entity", table_name="activity_entry")
    op.drop_table("activity_entry")
    op.drop_index("ix_sales_project_assigned_to", table_name="sales_project")
    op.drop_table("sales_project")
    op.drop_index("ix_crm_lead_owner", table_name="crm_lead")
    op.drop_table("crm_lead")
    op.drop_index("ix_identity_user_active", table_name="identity_user")
    op.drop_table("identity_user")
    op.drop_index("ix_authz_role_key", table_name="authz_role")
    op.drop_table("authz_role")
