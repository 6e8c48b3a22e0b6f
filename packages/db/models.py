"""SQLModel table definitions for the ticketflow data layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    """Generate a random UUID string."""

    return str(uuid.uuid4())


class UserTable(SQLModel, table=True):
    """Customers and staff members. Staff roles are AGENT, SUPERVISOR and ADMIN."""

    __tablename__ = "users"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    email: str | None = Field(default=None, sa_column=Column(String(255), nullable=True, unique=True))
    display_name: str = Field(sa_column=Column(String(255), nullable=False))
    role: str = Field(sa_column=Column(String(50), nullable=False, index=True))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketTable(SQLModel, table=True):
    """Support tickets."""

    __tablename__ = "tickets"

    id: str = Field(primary_key=True, index=True)
    ticket_number: str = Field(sa_column=Column(String(32), nullable=False, unique=True))
    title: str = Field(sa_column=Column(String(255), nullable=False))
    description: str = Field(default="", sa_column=Column(Text, nullable=False))
    status: str = Field(sa_column=Column(String(50), nullable=False, index=True))
    priority: str = Field(sa_column=Column(String(50), nullable=False))
    issue_type: str = Field(sa_column=Column(String(50), nullable=False))
    assigned_to_id: str | None = Field(
        default=None,
        sa_column=Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    customer_id: str | None = Field(
        default=None,
        sa_column=Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    sla_deadline: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    sla_breached: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketHistoryTable(SQLModel, table=True):
    """Append-only field change history, one row per changed field."""

    __tablename__ = "ticket_history"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    actor_id: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    action: str = Field(sa_column=Column(String(50), nullable=False))
    field: str = Field(sa_column=Column(String(100), nullable=False))
    old_value: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    new_value: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    metadata_: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column("metadata", JSON, nullable=False)
    )
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class AutomationRuleTable(SQLModel, table=True):
    """Staff-authored automation rules. Conditions and actions are stored as JSON descriptors."""

    __tablename__ = "automation_rules"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    trigger: str = Field(sa_column=Column(String(50), nullable=False, index=True))
    conditions: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    actions: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    priority: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    created_by_id: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class AutomationExecutionTable(SQLModel, table=True):
    """Audit trail with one row per rule evaluated per trigger firing."""

    __tablename__ = "automation_executions"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    rule_id: str = Field(
        sa_column=Column(String(36), ForeignKey("automation_rules.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    ticket_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    success: bool = Field(sa_column=Column(Boolean, nullable=False))
    error: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    executed_at: datetime = Field(
        default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )


class NotificationTable(SQLModel, table=True):
    """In-app notifications addressed to a single user."""

    __tablename__ = "notifications"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    user_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    kind: str = Field(sa_column=Column(String(50), nullable=False))
    ticket_id: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    payload: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    is_read: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class SlaConfigTable(SQLModel, table=True):
    """SLA target overrides per priority, optionally narrowed to an issue type."""

    __tablename__ = "sla_configs"
    __table_args__ = (UniqueConstraint("priority", "issue_type", name="uq_sla_configs_priority_issue_type"),)

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    priority: str = Field(sa_column=Column(String(50), nullable=False))
    issue_type: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    first_response_minutes: int = Field(sa_column=Column(Integer, nullable=False))
    resolution_minutes: int = Field(sa_column=Column(Integer, nullable=False))
