from datetime import datetime, timedelta, timezone

import pytest

from ticketflow.queue import QueuePrioritizer, QueueSection
from ticketflow.tickets.models import TicketPriority, TicketStatus

FIXED_NOW = datetime(2024, 5, 6, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def prioritizer(clock):
    return QueuePrioritizer(clock=clock)


@pytest.mark.parametrize(
    "hours_left, expected",
    [(-1, 200), (0, 200), (0.5, 150), (1, 150), (3, 100), (4, 100), (6, 50), (8, 50), (9, 0)],
)
def test_sla_score_bands(prioritizer, make_ticket, hours_left, expected):
    ticket = make_ticket(sla_deadline=FIXED_NOW + timedelta(hours=hours_left))

    assert prioritizer.sla_score(ticket) == expected


def test_sla_score_without_deadline_and_when_breached(prioritizer, make_ticket):
    assert prioritizer.sla_score(make_ticket()) == 0
    assert prioritizer.sla_score(make_ticket(sla_breached=True)) == 200


def test_age_score_is_clamped(prioritizer, make_ticket):
    assert prioritizer.age_score(make_ticket(created_at=FIXED_NOW - timedelta(hours=10))) == 10
    assert prioritizer.age_score(make_ticket(created_at=FIXED_NOW - timedelta(days=30))) == 100
    assert prioritizer.age_score(make_ticket(created_at=FIXED_NOW + timedelta(hours=2))) == 0


def test_breached_ticket_lands_in_urgent(prioritizer, make_ticket):
    ticket = make_ticket(sla_breached=True)

    # 200 * 2 + 50 * 1.5 + (100 - 10) + 0
    assert prioritizer.score(ticket) == pytest.approx(565)
    assert prioritizer.section(ticket) == QueueSection.URGENT


def test_sections(prioritizer, make_ticket):
    assert prioritizer.section(make_ticket(priority=TicketPriority.URGENT)) == QueueSection.URGENT
    assert (
        prioritizer.section(make_ticket(priority=TicketPriority.URGENT, status=TicketStatus.IN_PROGRESS))
        == QueueSection.TO_PROCESS
    )
    assert (
        prioritizer.section(make_ticket(priority=TicketPriority.LOW, status=TicketStatus.WAITING_CUSTOMER))
        == QueueSection.WAITING_CUSTOMER
    )
    assert prioritizer.section(make_ticket(status=TicketStatus.CLOSED)) == QueueSection.RESOLVED
    assert (
        prioritizer.section(make_ticket(status=TicketStatus.RESOLVED, sla_breached=True)) == QueueSection.URGENT
    )


def test_escalated_outranks_open(prioritizer, make_ticket):
    escalated = make_ticket(id="escalated", status=TicketStatus.ESCALATED)
    opened = make_ticket(id="open")

    assert prioritizer.score(escalated) - prioritizer.score(opened) == pytest.approx(10)
    assert [t.id for t in prioritizer.sort([opened, escalated])] == ["escalated", "open"]


def test_sort_is_stable_for_equal_scores(prioritizer, make_ticket):
    tickets = [make_ticket(id=f"t{i}") for i in range(4)]

    assert [t.id for t in prioritizer.sort(tickets)] == ["t0", "t1", "t2", "t3"]


def test_group_by_section_includes_empty_sections(prioritizer, make_ticket):
    groups = prioritizer.group_by_section([make_ticket(id="a"), make_ticket(id="b", status=TicketStatus.CLOSED)])

    assert list(groups) == list(QueueSection)
    assert [entry.ticket.id for entry in groups[QueueSection.TO_PROCESS]] == ["a"]
    assert [entry.ticket.id for entry in groups[QueueSection.RESOLVED]] == ["b"]
    assert groups[QueueSection.URGENT] == []


def test_next_ticket_skips_current_and_finished(prioritizer, make_ticket):
    tickets = [
        make_ticket(id="best", priority=TicketPriority.URGENT),
        make_ticket(id="second", priority=TicketPriority.HIGH),
        make_ticket(id="done", priority=TicketPriority.URGENT, status=TicketStatus.CLOSED, sla_breached=True),
    ]

    assert prioritizer.next_ticket(tickets).id == "best"
    assert prioritizer.next_ticket(tickets, current_id="best").id == "second"
    assert prioritizer.next_ticket(tickets[2:]) is None
