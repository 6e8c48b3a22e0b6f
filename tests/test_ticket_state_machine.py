from datetime import datetime, timezone

import pytest

from ticketflow.tickets.errors import TicketConflictError, TicketForbiddenError
from ticketflow.tickets.models import (
    HistoryAction,
    Role,
    TicketPriority,
    TicketStatus,
    TicketUpdate,
)
from ticketflow.tickets.state import TicketStateMachine, history_value


def test_default_policy_allows_every_transition():
    machine = TicketStateMachine()

    assert machine.initial_state() == TicketStatus.OPEN
    for current in TicketStatus:
        for target in TicketStatus:
            assert machine.can_transition(current, target)


def test_custom_transition_map_is_enforced():
    machine = TicketStateMachine({TicketStatus.CLOSED: [TicketStatus.REOPENED]})

    assert machine.can_transition(TicketStatus.CLOSED, TicketStatus.REOPENED)
    assert machine.can_transition(TicketStatus.CLOSED, TicketStatus.CLOSED)
    assert not machine.can_transition(TicketStatus.CLOSED, TicketStatus.IN_PROGRESS)
    with pytest.raises(TicketConflictError):
        machine.assert_transition(TicketStatus.CLOSED, TicketStatus.OPEN)


@pytest.mark.parametrize("role", [Role.AGENT, Role.SUPERVISOR, Role.ADMIN])
def test_staff_may_change_anything(make_ticket, role):
    update = TicketUpdate(status=TicketStatus.CLOSED, priority=TicketPriority.LOW, assigned_to_id="agent-9")

    TicketStateMachine.authorize_update(make_ticket(), update, actor_id="staff-1", actor_role=role)


def test_customer_may_reopen_own_ticket(make_ticket):
    ticket = make_ticket(status=TicketStatus.RESOLVED)

    TicketStateMachine.authorize_update(
        ticket, TicketUpdate(status=TicketStatus.REOPENED), actor_id="customer-1", actor_role=Role.CUSTOMER
    )


@pytest.mark.parametrize(
    "update, message",
    [
        (TicketUpdate(status=TicketStatus.CLOSED), "Customers may only reopen a ticket"),
        (TicketUpdate(priority=TicketPriority.URGENT), "Modification not allowed"),
        (TicketUpdate(assigned_to_id=None), "Modification not allowed"),
        (TicketUpdate(title="Louder"), "Modification not allowed"),
    ],
)
def test_customer_restrictions(make_ticket, update, message):
    with pytest.raises(TicketForbiddenError, match=message):
        TicketStateMachine.authorize_update(
            make_ticket(), update, actor_id="customer-1", actor_role=Role.CUSTOMER
        )


def test_customer_cannot_touch_foreign_ticket(make_ticket):
    with pytest.raises(TicketForbiddenError, match="cannot modify"):
        TicketStateMachine.authorize_update(
            make_ticket(customer_id="someone-else"),
            TicketUpdate(status=TicketStatus.REOPENED),
            actor_id="customer-1",
            actor_role=Role.CUSTOMER,
        )


def test_history_entries_follow_field_order(make_ticket, now):
    ticket = make_ticket()
    changes = {
        "assigned_to_id": "agent-1",
        "priority": TicketPriority.URGENT,
        "status": TicketStatus.IN_PROGRESS,
    }

    entries = TicketStateMachine.history_for(ticket, changes, actor_id="agent-1", at=now)

    assert [entry.action for entry in entries] == [
        HistoryAction.STATUS_CHANGED,
        HistoryAction.PRIORITY_CHANGED,
        HistoryAction.ASSIGNED,
    ]
    assert [(entry.field, entry.old_value, entry.new_value) for entry in entries] == [
        ("status", "OPEN", "IN_PROGRESS"),
        ("priority", "MEDIUM", "URGENT"),
        ("assignedToId", None, "agent-1"),
    ]
    assert all(entry.ticket_id == ticket.id and entry.created_at == now for entry in entries)


def test_history_rejects_unknown_attributes(make_ticket, now):
    with pytest.raises(ValueError, match="mood"):
        TicketStateMachine.history_for(make_ticket(), {"mood": "grumpy"}, actor_id=None, at=now)


def test_history_value_rendering():
    assert history_value(None) is None
    assert history_value(TicketStatus.OPEN) == "OPEN"
    assert history_value(True) == "true"
    assert history_value(["a", "b"]) == '["a", "b"]'
    assert history_value(datetime(2024, 1, 1, tzinfo=timezone.utc)) == "2024-01-01T00:00:00+00:00"
