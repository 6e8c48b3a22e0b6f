"""Ordering and bucketing of the agent work queue.

Scores are derived on read from a ticket's status, priority, SLA deadline and age and are
never persisted. All scores for one call are computed against a single ``now``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Mapping

from ticketflow.tickets.models import TERMINAL_STATUSES, Ticket, TicketPriority, TicketStatus

PRIORITY_WEIGHTS: Mapping[TicketPriority, int] = {
    TicketPriority.URGENT: 100,
    TicketPriority.HIGH: 75,
    TicketPriority.MEDIUM: 50,
    TicketPriority.LOW: 25,
}

# Lower means more urgent.
STATUS_WEIGHTS: Mapping[TicketStatus, int] = {
    TicketStatus.ESCALATED: 0,
    TicketStatus.OPEN: 10,
    TicketStatus.REOPENED: 15,
    TicketStatus.IN_PROGRESS: 20,
    TicketStatus.WAITING_CUSTOMER: 50,
    TicketStatus.RESOLVED: 80,
    TicketStatus.CLOSED: 100,
}

SLA_WEIGHT = 2.0
PRIORITY_WEIGHT = 1.5
AGE_WEIGHT = 0.5
MAX_AGE_HOURS = 100.0

_URGENT_STATUSES = frozenset({TicketStatus.OPEN, TicketStatus.ESCALATED, TicketStatus.REOPENED})


class QueueSection(str, Enum):
    URGENT = "urgent"
    TO_PROCESS = "toProcess"
    WAITING_CUSTOMER = "waitingCustomer"
    RESOLVED = "resolved"


SECTION_LABELS: Mapping[QueueSection, str] = {
    QueueSection.URGENT: "Urgent",
    QueueSection.TO_PROCESS: "To process",
    QueueSection.WAITING_CUSTOMER: "Waiting for customer",
    QueueSection.RESOLVED: "Resolved",
}


@dataclass(slots=True)
class QueueEntry:
    ticket: Ticket
    score: float
    section: QueueSection


def _hours_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / 3600


class QueuePrioritizer:
    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def sla_score(self, ticket: Ticket, *, now: datetime | None = None) -> int:
        if ticket.sla_breached:
            return 200
        if ticket.sla_deadline is None:
            return 0
        remaining = _hours_between(ticket.sla_deadline, now or self._clock())
        if remaining <= 0:
            return 200
        if remaining <= 1:
            return 150
        if remaining <= 4:
            return 100
        if remaining <= 8:
            return 50
        return 0

    def age_score(self, ticket: Ticket, *, now: datetime | None = None) -> float:
        """Age in hours, clamped to ``[0, 100]``."""

        age = _hours_between(now or self._clock(), ticket.created_at)
        return min(max(age, 0.0), MAX_AGE_HOURS)

    def score(self, ticket: Ticket, *, now: datetime | None = None) -> float:
        now = now or self._clock()
        return (
            self.sla_score(ticket, now=now) * SLA_WEIGHT
            + PRIORITY_WEIGHTS[ticket.priority] * PRIORITY_WEIGHT
            + (100 - STATUS_WEIGHTS[ticket.status])
            + self.age_score(ticket, now=now) * AGE_WEIGHT
        )

    def section(self, ticket: Ticket, *, now: datetime | None = None) -> QueueSection:
        if (
            ticket.sla_breached
            or self.sla_score(ticket, now=now) >= 150
            or (ticket.priority == TicketPriority.URGENT and ticket.status in _URGENT_STATUSES)
        ):
            return QueueSection.URGENT
        if ticket.status == TicketStatus.WAITING_CUSTOMER:
            return QueueSection.WAITING_CUSTOMER
        if ticket.status in TERMINAL_STATUSES:
            return QueueSection.RESOLVED
        return QueueSection.TO_PROCESS

    def entries(self, tickets: Iterable[Ticket], *, now: datetime | None = None) -> list[QueueEntry]:
        """Scored entries, highest score first. Equal scores keep their input order."""

        now = now or self._clock()
        scored = [
            QueueEntry(ticket=ticket, score=self.score(ticket, now=now), section=self.section(ticket, now=now))
            for ticket in tickets
        ]
        scored.sort(key=lambda entry: entry.score, reverse=True)
        return scored

    def sort(self, tickets: Iterable[Ticket], *, now: datetime | None = None) -> list[Ticket]:
        return [entry.ticket for entry in self.entries(tickets, now=now)]

    def group_by_section(
        self, tickets: Iterable[Ticket], *, now: datetime | None = None
    ) -> dict[QueueSection, list[QueueEntry]]:
        groups: dict[QueueSection, list[QueueEntry]] = {section: [] for section in QueueSection}
        for entry in self.entries(tickets, now=now):
            groups[entry.section].append(entry)
        return groups

    def next_ticket(
        self,
        tickets: Iterable[Ticket],
        *,
        current_id: str | None = None,
        now: datetime | None = None,
    ) -> Ticket | None:
        """Highest-scored ticket still to be worked on, skipping ``current_id``."""

        candidates = [
            ticket for ticket in tickets if ticket.id != current_id and ticket.status not in TERMINAL_STATUSES
        ]
        ordered = self.sort(candidates, now=now)
        return ordered[0] if ordered else None
