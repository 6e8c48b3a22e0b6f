from __future__ import annotations

from typing import Mapping

from .models import AutomationTrigger

EVENT_TRIGGERS: Mapping[str, AutomationTrigger] = {
    "ticket.created": AutomationTrigger.TICKET_CREATED,
    "ticket.updated": AutomationTrigger.TICKET_UPDATED,
    "ticket.status_changed": AutomationTrigger.TICKET_STATUS_CHANGED,
    "ticket.resolved": AutomationTrigger.TICKET_RESOLVED,
    "ticket.closed": AutomationTrigger.TICKET_CLOSED,
    "sla.warning": AutomationTrigger.SLA_WARNING,
    "sla.breach": AutomationTrigger.SLA_BREACH,
}


def trigger_from_event(event: str) -> AutomationTrigger | None:
    """Map a lifecycle event name to its trigger; unknown events map to ``None``."""

    return EVENT_TRIGGERS.get(event)
