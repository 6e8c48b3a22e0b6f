from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from ticketflow.metrics import MetricsRegistry
from ticketflow.tickets.models import IssueType, Ticket, TicketPriority, TicketStatus

FIXED_NOW = datetime(2024, 5, 6, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def registry() -> MetricsRegistry:
    return MetricsRegistry()


@pytest.fixture
def make_ticket():
    base = Ticket(
        id="ticket-1",
        ticket_number="TKT-20240506-AB12",
        title="Printer on fire",
        description="The office printer is on fire",
        status=TicketStatus.OPEN,
        priority=TicketPriority.MEDIUM,
        issue_type=IssueType.TECHNICAL,
        assigned_to_id=None,
        customer_id="customer-1",
        sla_deadline=None,
        sla_breached=False,
        created_at=FIXED_NOW,
        updated_at=FIXED_NOW,
    )

    def factory(**overrides) -> Ticket:
        return replace(base, **overrides)

    return factory
