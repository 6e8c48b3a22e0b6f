"""Ticket status policy, update authorization and history generation."""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping

from .errors import TicketConflictError, TicketForbiddenError
from .models import (
    STAFF_ROLES,
    HistoryAction,
    Role,
    Ticket,
    TicketHistoryEntry,
    TicketStatus,
    TicketUpdate,
)

# attribute name -> (history field name, history action)
_HISTORY_FIELDS: Mapping[str, tuple[str, HistoryAction]] = {
    "status": ("status", HistoryAction.STATUS_CHANGED),
    "priority": ("priority", HistoryAction.PRIORITY_CHANGED),
    "assigned_to_id": ("assignedToId", HistoryAction.ASSIGNED),
    "title": ("title", HistoryAction.UPDATED),
    "description": ("description", HistoryAction.UPDATED),
    "tags": ("tags", HistoryAction.UPDATED),
    "sla_breached": ("slaBreached", HistoryAction.UPDATED),
    "sla_deadline": ("slaDeadline", HistoryAction.UPDATED),
}


def history_value(value: Any) -> str | None:
    """Render a ticket attribute the way it is stored in history rows."""

    if value is None:
        return None
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value))
    return str(value)


class TicketStateMachine:
    """Status transition policy and role-based write authorization.

    Without an explicit transition map every status may follow every other one; staff
    tooling is trusted to pick sensible targets. Deployments that want a stricter
    lifecycle pass their own ``transitions`` mapping.
    """

    def __init__(self, transitions: Mapping[TicketStatus, Iterable[TicketStatus]] | None = None) -> None:
        self._transitions = (
            None
            if transitions is None
            else {status: frozenset(targets) for status, targets in transitions.items()}
        )

    @staticmethod
    def initial_state() -> TicketStatus:
        return TicketStatus.OPEN

    def can_transition(self, current: TicketStatus, target: TicketStatus) -> bool:
        if current == target or self._transitions is None:
            return True
        return target in self._transitions.get(current, frozenset())

    def assert_transition(self, current: TicketStatus, target: TicketStatus) -> None:
        if not self.can_transition(current, target):
            raise TicketConflictError(f"Invalid status transition: {current.value} -> {target.value}")

    @staticmethod
    def authorize_update(ticket: Ticket, update: TicketUpdate, *, actor_id: str, actor_role: Role) -> None:
        """Reject updates the actor's role does not permit.

        Staff may change any field. Customers may only reopen tickets they own.
        """

        if actor_role in STAFF_ROLES:
            return
        if actor_role != Role.CUSTOMER:
            raise TicketForbiddenError("Insufficient permissions")
        if ticket.customer_id != actor_id:
            raise TicketForbiddenError("You cannot modify this ticket")
        if update.status is not None and update.status != TicketStatus.REOPENED:
            raise TicketForbiddenError("Customers may only reopen a ticket")
        if (
            update.priority is not None
            or update.touches_assignment()
            or update.title is not None
            or update.description is not None
            or update.tags is not None
        ):
            raise TicketForbiddenError("Modification not allowed")

    @staticmethod
    def history_for(
        ticket: Ticket,
        changes: Mapping[str, Any],
        *,
        actor_id: str | None,
        at: datetime,
        metadata: Mapping[str, Any] | None = None,
    ) -> list[TicketHistoryEntry]:
        """Build one history entry per changed attribute, in a stable field order."""

        entries: list[TicketHistoryEntry] = []
        for attribute, (field_name, action) in _HISTORY_FIELDS.items():
            if attribute not in changes:
                continue
            entries.append(
                TicketHistoryEntry(
                    id=str(uuid.uuid4()),
                    ticket_id=ticket.id,
                    actor_id=actor_id,
                    action=action,
                    field=field_name,
                    old_value=history_value(getattr(ticket, attribute)),
                    new_value=history_value(changes[attribute]),
                    created_at=at,
                    metadata=dict(metadata or {}),
                )
            )
        unknown = set(changes) - set(_HISTORY_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported ticket fields: {', '.join(sorted(unknown))}")
        return entries
