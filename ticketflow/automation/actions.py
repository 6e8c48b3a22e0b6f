"""Side-effecting actions an automation rule can run against a ticket."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Mapping, Protocol, Sequence

from ticketflow.metrics import MetricsRegistry, metrics_registry as default_metrics_registry
from ticketflow.services.directory import StaffMember
from ticketflow.services.notifications import (
    NotificationDispatcher,
    NotificationKind,
    ticket_assigned_payload,
)
from ticketflow.tickets.errors import TicketNotFoundError
from ticketflow.tickets.models import Role, Ticket, TicketHistoryEntry, TicketStatus
from ticketflow.tickets.state import TicketStateMachine

from .models import ActionType, AutomationAction

logger = logging.getLogger(__name__)

ASSIGNABLE_ROLES: frozenset[Role] = frozenset({Role.AGENT, Role.SUPERVISOR})
SUPERVISOR_ROLES: frozenset[Role] = frozenset({Role.SUPERVISOR, Role.ADMIN})
TEAM_ROLES: frozenset[Role] = frozenset({Role.AGENT, Role.SUPERVISOR, Role.ADMIN})


class TicketWriter(Protocol):
    async def update_ticket(
        self,
        ticket_id: str,
        changes: Mapping[str, Any],
        history: Sequence[TicketHistoryEntry],
        *,
        updated_at: datetime | None = None,
    ) -> Ticket | None:
        ...


class StaffDirectory(Protocol):
    async def list_staff(self, roles: Iterable[Role], *, active_only: bool = True) -> list[StaffMember]:
        ...


ActionHandler = Callable[[AutomationAction, Ticket], Awaitable[Ticket]]


class ActionExecutor:
    """Run one action at a time and return the ticket as it looks afterwards.

    Ticket writes go through the store together with a system-authored history entry.
    Unknown action types are logged and skipped rather than failing the rule.
    """

    def __init__(
        self,
        tickets: TicketWriter,
        directory: StaffDirectory,
        notifications: NotificationDispatcher,
        *,
        metrics: MetricsRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tickets = tickets
        self._directory = directory
        self._notifications = notifications
        self._metrics = metrics or default_metrics_registry
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._handlers: Mapping[ActionType, ActionHandler] = {
            ActionType.ASSIGN_LEAST_WORKLOAD: self._assign_least_workload,
            ActionType.ASSIGN_BY_SKILL: self._assign_by_skill,
            ActionType.NOTIFY_SUPERVISOR: self._notify_supervisors,
            ActionType.NOTIFY_TEAM: self._notify_team,
            ActionType.NOTIFY_ASSIGNED: self._notify_assigned,
            ActionType.ESCALATE: self._escalate,
            ActionType.CLOSE: self._close,
            ActionType.SEND_REMINDER: self._reserved,
            ActionType.SEND_SURVEY: self._reserved,
            ActionType.EMAIL_CUSTOMER: self._reserved,
        }

    async def execute(self, action: AutomationAction, ticket: Ticket) -> Ticket:
        kind = action.kind
        if kind is None:
            logger.warning("Skipping unknown automation action '%s' on ticket %s", action.type, ticket.ticket_number)
            self._metrics.counter("automation_actions_skipped_total", label_names=("action",)).inc(
                labels={"action": action.type}
            )
            return ticket

        logger.info("Executing automation action '%s' on ticket %s", kind.value, ticket.ticket_number)
        updated = await self._handlers[kind](action, ticket)
        self._metrics.counter("automation_actions_executed_total", label_names=("action",)).inc(
            labels={"action": kind.value}
        )
        return updated

    async def _assign_least_workload(self, action: AutomationAction, ticket: Ticket) -> Ticket:
        staff = await self._directory.list_staff(ASSIGNABLE_ROLES, active_only=True)
        if not staff:
            logger.info("No eligible staff to assign ticket %s", ticket.ticket_number)
            return ticket

        # min() keeps the first of equally loaded members, i.e. directory order.
        assignee = min(staff, key=lambda member: member.active_ticket_count)
        updated = await self._apply(
            action,
            ticket,
            {"assigned_to_id": assignee.id, "status": TicketStatus.IN_PROGRESS},
        )
        try:
            await self._notifications.notify(
                assignee.id, NotificationKind.TICKET_UPDATE, ticket.id, ticket_assigned_payload(ticket.title)
            )
        except Exception:
            logger.exception("Assignment notice for ticket %s failed", ticket.ticket_number)
        logger.info(
            "Assigned ticket %s to %s (%d open tickets)",
            ticket.ticket_number,
            assignee.display_name,
            assignee.active_ticket_count,
        )
        return updated

    async def _assign_by_skill(self, action: AutomationAction, ticket: Ticket) -> Ticket:
        # TODO: match agent skill tags against ticket.issue_type once the directory exposes skills.
        return await self._assign_least_workload(action, ticket)

    async def _notify_supervisors(self, action: AutomationAction, ticket: Ticket) -> Ticket:
        await self._fan_out(SUPERVISOR_ROLES, action, ticket)
        return ticket

    async def _notify_team(self, action: AutomationAction, ticket: Ticket) -> Ticket:
        await self._fan_out(TEAM_ROLES, action, ticket)
        return ticket

    async def _notify_assigned(self, action: AutomationAction, ticket: Ticket) -> Ticket:
        if ticket.assigned_to_id:
            await self._notifications.notify(
                ticket.assigned_to_id,
                NotificationKind.TICKET_UPDATE,
                ticket.id,
                ticket_assigned_payload(ticket.title),
            )
        return ticket

    async def _escalate(self, action: AutomationAction, ticket: Ticket) -> Ticket:
        updated = await self._apply(action, ticket, {"status": TicketStatus.ESCALATED})
        # Status write is already committed here.
        try:
            await self._fan_out(
                SUPERVISOR_ROLES,
                action,
                updated,
                content=f"Ticket #{ticket.ticket_number} was escalated.",
            )
        except Exception:
            logger.exception("Escalation notice for ticket %s failed", ticket.ticket_number)
        return updated

    async def _close(self, action: AutomationAction, ticket: Ticket) -> Ticket:
        return await self._apply(action, ticket, {"status": TicketStatus.CLOSED})

    async def _reserved(self, action: AutomationAction, ticket: Ticket) -> Ticket:
        logger.info("Action '%s' is not wired to a delivery channel; ticket %s unchanged", action.type, ticket.ticket_number)
        return ticket

    async def _fan_out(
        self,
        roles: Iterable[Role],
        action: AutomationAction,
        ticket: Ticket,
        *,
        content: str | None = None,
    ) -> None:
        recipients = await self._directory.list_staff(roles, active_only=True)
        message = str(action.params.get("message") or content or f'Automation alert on ticket "{ticket.title}".')
        payload = {
            "title": "Automation alert",
            "content": message,
            "action": action.type,
            "ticketNumber": ticket.ticket_number,
        }
        for member in recipients:
            await self._notifications.notify(member.id, NotificationKind.AUTOMATION_ALERT, ticket.id, payload)

    async def _apply(self, action: AutomationAction, ticket: Ticket, changes: Mapping[str, Any]) -> Ticket:
        effective = {name: value for name, value in changes.items() if getattr(ticket, name) != value}
        if not effective:
            return ticket

        now = self._clock()
        history = TicketStateMachine.history_for(
            ticket,
            effective,
            actor_id=None,
            at=now,
            metadata={"source": "automation", "action": action.type},
        )
        updated = await self._tickets.update_ticket(ticket.id, effective, history, updated_at=now)
        if updated is None:
            raise TicketNotFoundError(f"Ticket {ticket.id} not found")
        return updated
