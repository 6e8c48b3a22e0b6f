from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Sequence


class Role(str, Enum):
    """Roles a platform user can hold."""

    CUSTOMER = "CUSTOMER"
    AGENT = "AGENT"
    SUPERVISOR = "SUPERVISOR"
    ADMIN = "ADMIN"


STAFF_ROLES: frozenset[Role] = frozenset({Role.AGENT, Role.SUPERVISOR, Role.ADMIN})


class TicketStatus(str, Enum):
    """Lifecycle states of a support ticket."""

    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    WAITING_CUSTOMER = "WAITING_CUSTOMER"
    ESCALATED = "ESCALATED"
    REOPENED = "REOPENED"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


# Statuses that no longer count towards an agent's workload or SLA monitoring.
TERMINAL_STATUSES: frozenset[TicketStatus] = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})


class TicketPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class IssueType(str, Enum):
    TECHNICAL = "TECHNICAL"
    DELIVERY = "DELIVERY"
    BILLING = "BILLING"
    OTHER = "OTHER"


class HistoryAction(str, Enum):
    """Kinds of entries written to the ticket history."""

    CREATED = "CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    PRIORITY_CHANGED = "PRIORITY_CHANGED"
    ASSIGNED = "ASSIGNED"
    UPDATED = "UPDATED"


@dataclass(slots=True)
class Ticket:
    """Primary ticket record."""

    id: str
    ticket_number: str
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    issue_type: IssueType
    assigned_to_id: str | None
    customer_id: str | None
    sla_deadline: datetime | None
    sla_breached: bool
    created_at: datetime
    updated_at: datetime
    tags: Sequence[str] = field(default_factory=tuple)


@dataclass(slots=True)
class TicketHistoryEntry:
    """A single field change. ``actor_id`` is ``None`` for system-originated changes."""

    id: str
    ticket_id: str
    actor_id: str | None
    action: HistoryAction
    field: str
    old_value: str | None
    new_value: str | None
    created_at: datetime
    metadata: Mapping[str, Any] = field(default_factory=dict)


class _Unset:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


# Distinguishes "leave the assignee untouched" from an explicit unassignment (``None``).
UNSET: Any = _Unset()


@dataclass(slots=True)
class TicketUpdate:
    """Partial update request. Fields left as ``None`` (or ``UNSET``) are not touched."""

    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    assigned_to_id: Any = UNSET
    title: str | None = None
    description: str | None = None
    tags: Sequence[str] | None = None

    def touches_assignment(self) -> bool:
        return self.assigned_to_id is not UNSET

    def is_empty(self) -> bool:
        return (
            self.status is None
            and self.priority is None
            and not self.touches_assignment()
            and self.title is None
            and self.description is None
            and self.tags is None
        )

    def changes_against(self, ticket: Ticket) -> dict[str, Any]:
        """Return ``{attribute: new_value}`` for every provided field that differs from ``ticket``."""

        changes: dict[str, Any] = {}
        if self.status is not None and self.status != ticket.status:
            changes["status"] = self.status
        if self.priority is not None and self.priority != ticket.priority:
            changes["priority"] = self.priority
        if self.touches_assignment() and self.assigned_to_id != ticket.assigned_to_id:
            changes["assigned_to_id"] = self.assigned_to_id
        if self.title is not None and self.title != ticket.title:
            changes["title"] = self.title
        if self.description is not None and self.description != ticket.description:
            changes["description"] = self.description
        if self.tags is not None and list(self.tags) != list(ticket.tags):
            changes["tags"] = list(self.tags)
        return changes
