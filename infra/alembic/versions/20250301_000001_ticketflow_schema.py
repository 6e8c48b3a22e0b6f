"""Ticketflow schema: users, tickets, history, automation rules, notifications, SLA configs."""

from __future__ import annotations

from datetime import datetime, timezone

import sqlalchemy as sa
from alembic import op

revision = "20250301_000001"
down_revision = None
branch_labels = None
depends_on = None

# Development users behind the static bearer tokens.
_SEED_USERS = (
    ("00000000-0000-0000-0000-000000000001", "admin@ticketflow.local", "Admin", "ADMIN"),
    ("00000000-0000-0000-0000-000000000002", "supervisor@ticketflow.local", "Supervisor", "SUPERVISOR"),
    ("00000000-0000-0000-0000-000000000003", "agent@ticketflow.local", "Agent", "AGENT"),
    ("00000000-0000-0000-0000-000000000004", "customer@ticketflow.local", "Customer", "CUSTOMER"),
)


def upgrade() -> None:
    users = op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True, unique=True),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=50), nullable=False, index=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        "tickets",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("ticket_number", sa.String(length=32), nullable=False, unique=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("status", sa.String(length=50), nullable=False, index=True),
        sa.Column("priority", sa.String(length=50), nullable=False),
        sa.Column("issue_type", sa.String(length=50), nullable=False),
        sa.Column(
            "assigned_to_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column(
            "customer_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column("tags", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("sla_deadline", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("sla_breached", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        "ticket_history",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "ticket_id",
            sa.String(length=36),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("actor_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("field", sa.String(length=100), nullable=False),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        "automation_rules",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("trigger", sa.String(length=50), nullable=False, index=True),
        sa.Column("conditions", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("actions", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_by_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        "automation_executions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "rule_id",
            sa.String(length=36),
            sa.ForeignKey("automation_rules.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("ticket_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("executed_at", sa.TIMESTAMP(timezone=True), nullable=False, index=True),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("kind", sa.String(length=50), nullable=False),
        sa.Column("ticket_id", sa.String(length=36), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        "sla_configs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("priority", sa.String(length=50), nullable=False),
        sa.Column("issue_type", sa.String(length=50), nullable=True),
        sa.Column("first_response_minutes", sa.Integer(), nullable=False),
        sa.Column("resolution_minutes", sa.Integer(), nullable=False),
        sa.UniqueConstraint("priority", "issue_type", name="uq_sla_configs_priority_issue_type"),
    )

    now = datetime.now(timezone.utc)
    op.bulk_insert(
        users,
        [
            {"id": user_id, "email": email, "display_name": name, "role": role, "is_active": True, "created_at": now}
            for user_id, email, name, role in _SEED_USERS
        ],
    )


def downgrade() -> None:
    op.drop_table("sla_configs")
    op.drop_table("notifications")
    op.drop_table("automation_executions")
    op.drop_table("automation_rules")
    op.drop_table("ticket_history")
    op.drop_table("tickets")
    op.drop_table("users")
