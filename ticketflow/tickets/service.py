from __future__ import annotations

import logging
import secrets
import string
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Protocol, Sequence

from ticketflow.automation.locks import TicketLockRegistry
from ticketflow.services.directory import DirectoryService
from ticketflow.services.notifications import (
    NotificationDispatcher,
    NotificationKind,
    priority_changed_payload,
    status_changed_payload,
    ticket_assigned_payload,
    ticket_created_payload,
)
from ticketflow.sla.policy import SlaPolicy

from .errors import TicketConflictError, TicketForbiddenError, TicketNotFoundError
from .models import (
    STAFF_ROLES,
    HistoryAction,
    IssueType,
    Role,
    Ticket,
    TicketHistoryEntry,
    TicketPriority,
    TicketStatus,
    TicketUpdate,
)
from .repository import TicketRepository
from .state import TicketStateMachine

logger = logging.getLogger(__name__)

_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
_NOTIFY_ON_CREATE = (Role.SUPERVISOR, Role.ADMIN)


class TriggerSink(Protocol):
    async def process_event(self, event: str, ticket: Ticket) -> Any:
        ...


def generate_ticket_number(now: datetime) -> str:
    """``TKT-YYYYMMDD-XXXX`` with four random uppercase alphanumerics."""

    suffix = "".join(secrets.choice(_NUMBER_ALPHABET) for _ in range(4))
    return f"TKT-{now:%Y%m%d}-{suffix}"


def lifecycle_events(changes: dict[str, Any]) -> list[str]:
    """Events to fire after an update that applied ``changes``."""

    events = ["ticket.updated"]
    new_status = changes.get("status")
    if new_status is not None:
        events.append("ticket.status_changed")
        if new_status == TicketStatus.RESOLVED:
            events.append("ticket.resolved")
        elif new_status == TicketStatus.CLOSED:
            events.append("ticket.closed")
    return events


class TicketService:
    """High level orchestration for ticket lifecycle operations.

    Writes to one ticket are serialised through the shared :class:`TicketLockRegistry`.
    Automation triggers fire only after the lock is released, since the engine takes the
    same lock for the duration of its run.
    """

    def __init__(
        self,
        repository: TicketRepository,
        directory: DirectoryService,
        notifications: NotificationDispatcher,
        *,
        sla_policy: SlaPolicy | None = None,
        state_machine: TicketStateMachine | None = None,
        triggers: TriggerSink | None = None,
        locks: TicketLockRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self._directory = directory
        self._notifications = notifications
        self._sla_policy = sla_policy or SlaPolicy()
        self._state_machine = state_machine or TicketStateMachine()
        self._triggers = triggers
        self._locks = locks or TicketLockRegistry()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def bind_triggers(self, triggers: TriggerSink) -> None:
        self._triggers = triggers

    async def ensure_schema(self) -> None:
        await self.repository.ensure_schema()

    async def create_ticket(
        self,
        *,
        title: str,
        description: str = "",
        priority: TicketPriority = TicketPriority.MEDIUM,
        issue_type: IssueType = IssueType.OTHER,
        customer_id: str | None = None,
        tags: Sequence[str] = (),
        actor_id: str | None = None,
    ) -> Ticket:
        now = self._clock()
        ticket = Ticket(
            id=str(uuid.uuid4()),
            ticket_number=generate_ticket_number(now),
            title=title,
            description=description,
            status=self._state_machine.initial_state(),
            priority=priority,
            issue_type=issue_type,
            assigned_to_id=None,
            customer_id=customer_id,
            sla_deadline=await self._sla_policy.deadline_for(priority, issue_type, now),
            sla_breached=False,
            created_at=now,
            updated_at=now,
            tags=tuple(tags),
        )
        created_entry = TicketHistoryEntry(
            id=str(uuid.uuid4()),
            ticket_id=ticket.id,
            actor_id=actor_id,
            action=HistoryAction.CREATED,
            field="status",
            old_value=None,
            new_value=ticket.status.value,
            created_at=now,
        )
        await self.repository.create_ticket(ticket, [created_entry])
        logger.info("Created ticket %s (%s)", ticket.ticket_number, ticket.priority.value)

        for member in await self._directory.list_staff(_NOTIFY_ON_CREATE):
            await self._notifications.notify(
                member.id,
                NotificationKind.TICKET_UPDATE,
                ticket.id,
                ticket_created_payload(ticket.ticket_number, ticket.title),
            )

        await self._fire(["ticket.created"], ticket)
        return ticket

    async def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self.repository.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def get_ticket_for(self, ticket_id: str, *, actor_id: str, actor_role: Role) -> Ticket:
        """Fetch a ticket on behalf of a user; customers only see their own tickets."""

        ticket = await self.get_ticket(ticket_id)
        if actor_role not in STAFF_ROLES and ticket.customer_id != actor_id:
            raise TicketForbiddenError("You cannot view this ticket")
        return ticket

    async def list_tickets(
        self,
        *,
        status: TicketStatus | None = None,
        priority: TicketPriority | None = None,
        assigned_to_id: str | None = None,
        customer_id: str | None = None,
    ) -> list[Ticket]:
        return await self.repository.list_tickets(
            status=status, priority=priority, assigned_to_id=assigned_to_id, customer_id=customer_id
        )

    async def update_ticket(
        self,
        ticket_id: str,
        update: TicketUpdate,
        *,
        actor_id: str,
        actor_role: Role,
    ) -> Ticket:
        async with self._locks.hold(ticket_id):
            current = await self.repository.get_ticket(ticket_id)
            if current is None:
                raise TicketNotFoundError(f"Ticket {ticket_id} not found")

            TicketStateMachine.authorize_update(current, update, actor_id=actor_id, actor_role=actor_role)
            changes = update.changes_against(current)
            if not changes:
                return current

            if "status" in changes:
                self._state_machine.assert_transition(current.status, changes["status"])
            if changes.get("assigned_to_id") is not None:
                await self._ensure_assignable(changes["assigned_to_id"])
            if "priority" in changes:
                changes["sla_deadline"] = await self._sla_policy.deadline_for(
                    changes["priority"], current.issue_type, current.created_at
                )

            now = self._clock()
            history = TicketStateMachine.history_for(current, changes, actor_id=actor_id, at=now)
            updated = await self.repository.update_ticket(ticket_id, changes, history, updated_at=now)
            if updated is None:
                raise TicketNotFoundError(f"Ticket {ticket_id} not found")

        logger.info(
            "Ticket %s updated by %s: %s", updated.ticket_number, actor_id, ", ".join(sorted(changes))
        )
        await self._notify_changes(updated, changes, actor_id=actor_id)
        await self._fire(lifecycle_events(changes), updated)
        return updated

    async def get_history(self, ticket_id: str) -> list[TicketHistoryEntry]:
        await self.get_ticket(ticket_id)
        return await self.repository.get_history(ticket_id)

    async def _ensure_assignable(self, user_id: str) -> None:
        member = await self._directory.get_user(user_id)
        if member is None or not member.is_active or member.role not in STAFF_ROLES:
            raise TicketConflictError(f"User {user_id} is not an active staff member")

    async def _notify_changes(self, ticket: Ticket, changes: dict[str, Any], *, actor_id: str) -> None:
        assignee = ticket.assigned_to_id if ticket.assigned_to_id != actor_id else None
        customer = ticket.customer_id if ticket.customer_id != actor_id else None

        if "assigned_to_id" in changes and assignee is not None:
            await self._notifications.notify(
                assignee, NotificationKind.TICKET_UPDATE, ticket.id, ticket_assigned_payload(ticket.title)
            )

        if "status" in changes:
            payload = status_changed_payload(ticket.title, ticket.status.value)
            for recipient in (customer, assignee):
                if recipient is not None:
                    await self._notifications.notify(recipient, NotificationKind.TICKET_UPDATE, ticket.id, payload)

        if "priority" in changes:
            if assignee is not None:
                await self._notifications.notify(
                    assignee,
                    NotificationKind.TICKET_UPDATE,
                    ticket.id,
                    priority_changed_payload(ticket.title, ticket.priority.value),
                )
            if customer is not None and ticket.priority == TicketPriority.URGENT:
                await self._notifications.notify(
                    customer,
                    NotificationKind.TICKET_UPDATE,
                    ticket.id,
                    priority_changed_payload(ticket.title, ticket.priority.value, for_customer=True),
                )

    async def _fire(self, events: list[str], ticket: Ticket) -> None:
        if self._triggers is None:
            return
        current = ticket
        for index, event in enumerate(events):
            if index:
                # Earlier runs may have changed the ticket.
                current = await self.repository.get_ticket(ticket.id) or current
            await self._triggers.process_event(event, current)
