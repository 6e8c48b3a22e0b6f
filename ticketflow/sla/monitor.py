"""Periodic SLA checks: warn before a deadline passes and flag tickets once it has."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Protocol, Sequence

from ticketflow.automation.locks import TicketLockRegistry
from ticketflow.metrics import MetricsRegistry, metrics_registry as default_metrics_registry
from ticketflow.services.notifications import (
    NotificationDispatcher,
    NotificationKind,
    sla_breach_payload,
    sla_warning_payload,
)
from ticketflow.tickets.models import Ticket, TicketHistoryEntry
from ticketflow.tickets.state import TicketStateMachine

logger = logging.getLogger(__name__)

BREACH_REASON = "SLA deadline exceeded"


class SlaTicketStore(Protocol):
    async def list_sla_at_risk(self, *, now: datetime, horizon: datetime) -> list[Ticket]:
        ...

    async def list_sla_overdue(self, *, now: datetime) -> list[Ticket]:
        ...

    async def update_ticket(
        self,
        ticket_id: str,
        changes: Mapping[str, Any],
        history: Sequence[TicketHistoryEntry],
        *,
        updated_at: datetime | None = None,
    ) -> Ticket | None:
        ...


class TriggerSink(Protocol):
    async def process_event(self, event: str, ticket: Ticket) -> Any:
        ...


def hours_remaining(deadline: datetime, now: datetime) -> int:
    """Whole hours left before ``deadline``, rounded up."""

    return math.ceil((deadline - now).total_seconds() / 3600)


class SlaMonitor:
    """Each ticket is handled in isolation; one failing ticket never stops the sweep."""

    def __init__(
        self,
        tickets: SlaTicketStore,
        notifications: NotificationDispatcher,
        *,
        triggers: TriggerSink | None = None,
        locks: TicketLockRegistry | None = None,
        warning_hours: int = 4,
        metrics: MetricsRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tickets = tickets
        self._notifications = notifications
        self._triggers = triggers
        self._locks = locks or TicketLockRegistry()
        self._warning_window = timedelta(hours=warning_hours)
        self._metrics = metrics or default_metrics_registry
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def check_warnings(self) -> int:
        """Warn assignees about tickets due within the warning window. Returns the number warned."""

        now = self._clock()
        at_risk = await self._tickets.list_sla_at_risk(now=now, horizon=now + self._warning_window)
        logger.info("SLA warning sweep found %d tickets at risk", len(at_risk))

        warned = 0
        for ticket in at_risk:
            if ticket.sla_deadline is None:
                continue
            try:
                if ticket.assigned_to_id is not None:
                    await self._notifications.notify(
                        ticket.assigned_to_id,
                        NotificationKind.SLA_WARNING,
                        ticket.id,
                        sla_warning_payload(ticket.title, hours_remaining(ticket.sla_deadline, now)),
                    )
                self._metrics.counter("sla_warnings_total").inc()
                warned += 1
                await self._fire("sla.warning", ticket)
            except Exception:
                logger.exception("SLA warning failed for ticket %s", ticket.ticket_number)
        return warned

    async def check_breaches(self) -> int:
        """Flag overdue tickets as breached. Returns the number flagged."""

        now = self._clock()
        overdue = await self._tickets.list_sla_overdue(now=now)
        logger.info("SLA breach sweep found %d overdue tickets", len(overdue))

        flagged = 0
        for ticket in overdue:
            try:
                updated = await self._mark_breached(ticket, now)
                if updated is None:
                    continue
                if updated.assigned_to_id is not None:
                    await self._notifications.notify(
                        updated.assigned_to_id,
                        NotificationKind.SLA_BREACH,
                        updated.id,
                        sla_breach_payload(updated.title),
                    )
                self._metrics.counter("sla_breaches_total").inc()
                flagged += 1
                await self._fire("sla.breach", updated)
            except Exception:
                logger.exception("SLA breach handling failed for ticket %s", ticket.ticket_number)
        return flagged

    async def _mark_breached(self, ticket: Ticket, now: datetime) -> Ticket | None:
        changes = {"sla_breached": True}
        history = TicketStateMachine.history_for(
            ticket, changes, actor_id=None, at=now, metadata={"reason": BREACH_REASON}
        )
        async with self._locks.hold(ticket.id):
            updated = await self._tickets.update_ticket(ticket.id, changes, history, updated_at=now)
        if updated is None:
            logger.warning("Ticket %s disappeared before it could be flagged", ticket.id)
        return updated

    async def _fire(self, event: str, ticket: Ticket) -> None:
        if self._triggers is not None:
            await self._triggers.process_event(event, ticket)
