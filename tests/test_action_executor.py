from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock

import pytest

from ticketflow.automation.actions import ActionExecutor, ASSIGNABLE_ROLES, SUPERVISOR_ROLES, TEAM_ROLES
from ticketflow.automation.models import AutomationAction
from ticketflow.services.directory import StaffMember
from ticketflow.services.notifications import NotificationKind
from ticketflow.tickets.errors import TicketNotFoundError
from ticketflow.tickets.models import HistoryAction, Role, TicketStatus


def _member(member_id: str, role: Role = Role.AGENT, load: int = 0) -> StaffMember:
    return StaffMember(
        id=member_id,
        display_name=member_id.title(),
        email=f"{member_id}@example.com",
        role=role,
        is_active=True,
        active_ticket_count=load,
    )


def _store():
    store = AsyncMock()

    async def update_ticket(ticket_id, changes, history, *, updated_at=None):
        store.current = replace(store.current, **changes)
        return store.current

    store.update_ticket.side_effect = update_ticket
    return store


@pytest.fixture
def executor_parts(registry, clock):
    store = _store()
    directory = AsyncMock()
    notifications = AsyncMock()
    executor = ActionExecutor(store, directory, notifications, metrics=registry, clock=clock)
    return executor, store, directory, notifications


@pytest.mark.asyncio
async def test_least_workload_picks_first_of_least_loaded(executor_parts, make_ticket):
    executor, store, directory, notifications = executor_parts
    ticket = make_ticket()
    store.current = ticket
    directory.list_staff.return_value = [
        _member("busy", load=5),
        _member("first-idle", load=1),
        _member("second-idle", load=1),
    ]

    updated = await executor.execute(AutomationAction(type="assign.least_workload"), ticket)

    assert updated.assigned_to_id == "first-idle"
    assert updated.status == TicketStatus.IN_PROGRESS
    directory.list_staff.assert_awaited_once_with(ASSIGNABLE_ROLES, active_only=True)
    notifications.notify.assert_awaited_once()
    recipient, kind, ticket_id, payload = notifications.notify.await_args.args
    assert (recipient, kind, ticket_id) == ("first-idle", NotificationKind.TICKET_UPDATE, ticket.id)
    assert payload["action"] == "assigned"


@pytest.mark.asyncio
async def test_least_workload_records_system_history(executor_parts, make_ticket, now):
    executor, store, directory, _ = executor_parts
    ticket = make_ticket()
    store.current = ticket
    directory.list_staff.return_value = [_member("agent-1")]

    await executor.execute(AutomationAction(type="assign.least_workload"), ticket)

    _, changes, history = store.update_ticket.await_args.args
    assert changes == {"assigned_to_id": "agent-1", "status": TicketStatus.IN_PROGRESS}
    assert [entry.action for entry in history] == [HistoryAction.STATUS_CHANGED, HistoryAction.ASSIGNED]
    assert all(entry.actor_id is None for entry in history)
    assert all(entry.created_at == now for entry in history)
    assert history[0].metadata == {"source": "automation", "action": "assign.least_workload"}


@pytest.mark.asyncio
async def test_least_workload_without_staff_is_a_no_op(executor_parts, make_ticket):
    executor, store, directory, notifications = executor_parts
    ticket = make_ticket()
    directory.list_staff.return_value = []

    result = await executor.execute(AutomationAction(type="assign.least_workload"), ticket)

    assert result is ticket
    store.update_ticket.assert_not_awaited()
    notifications.notify.assert_not_awaited()


@pytest.mark.asyncio
async def test_notify_supervisor_fans_out_with_custom_message(executor_parts, make_ticket):
    executor, store, directory, notifications = executor_parts
    directory.list_staff.return_value = [_member("sup", Role.SUPERVISOR), _member("boss", Role.ADMIN)]
    ticket = make_ticket()

    result = await executor.execute(
        AutomationAction(type="notify.supervisor", params={"message": "Look at this"}), ticket
    )

    assert result is ticket
    directory.list_staff.assert_awaited_once_with(SUPERVISOR_ROLES, active_only=True)
    assert [call.args[0] for call in notifications.notify.await_args_list] == ["sup", "boss"]
    payload = notifications.notify.await_args.args[3]
    assert payload["content"] == "Look at this"
    assert notifications.notify.await_args.args[1] == NotificationKind.AUTOMATION_ALERT
    store.update_ticket.assert_not_awaited()


@pytest.mark.asyncio
async def test_notify_team_targets_all_staff_roles(executor_parts, make_ticket):
    executor, _, directory, notifications = executor_parts
    directory.list_staff.return_value = [_member("agent-1")]

    await executor.execute(AutomationAction(type="notify.team"), make_ticket())

    directory.list_staff.assert_awaited_once_with(TEAM_ROLES, active_only=True)
    notifications.notify.assert_awaited_once()


@pytest.mark.asyncio
async def test_notify_assigned_skips_unassigned_ticket(executor_parts, make_ticket):
    executor, _, _, notifications = executor_parts

    await executor.execute(AutomationAction(type="notify.assigned"), make_ticket())

    notifications.notify.assert_not_awaited()


@pytest.mark.asyncio
async def test_escalate_sets_status_then_notifies_supervisors(executor_parts, make_ticket):
    executor, store, directory, notifications = executor_parts
    ticket = make_ticket()
    store.current = ticket
    directory.list_staff.return_value = [_member("sup", Role.SUPERVISOR)]

    updated = await executor.execute(AutomationAction(type="escalate"), ticket)

    assert updated.status == TicketStatus.ESCALATED
    assert "escalated" in notifications.notify.await_args.args[3]["content"]


@pytest.mark.asyncio
async def test_close_on_closed_ticket_writes_nothing(executor_parts, make_ticket):
    executor, store, _, _ = executor_parts
    ticket = make_ticket(status=TicketStatus.CLOSED)

    result = await executor.execute(AutomationAction(type="close"), ticket)

    assert result is ticket
    store.update_ticket.assert_not_awaited()


@pytest.mark.asyncio
async def test_reserved_actions_leave_ticket_untouched(executor_parts, make_ticket):
    executor, store, _, notifications = executor_parts
    ticket = make_ticket()

    for action_type in ("send.reminder", "send.survey", "email.customer"):
        assert await executor.execute(AutomationAction(type=action_type), ticket) is ticket

    store.update_ticket.assert_not_awaited()
    notifications.notify.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_action_is_skipped_and_counted(executor_parts, make_ticket, registry):
    executor, store, _, _ = executor_parts
    ticket = make_ticket()

    result = await executor.execute(AutomationAction(type="launch.rocket"), ticket)

    assert result is ticket
    store.update_ticket.assert_not_awaited()
    skipped = registry.counter("automation_actions_skipped_total", label_names=("action",))
    assert skipped.value(labels={"action": "launch.rocket"}) == 1


@pytest.mark.asyncio
async def test_missing_ticket_raises(executor_parts, make_ticket):
    executor, store, _, _ = executor_parts
    store.update_ticket.side_effect = None
    store.update_ticket.return_value = None

    with pytest.raises(TicketNotFoundError):
        await executor.execute(AutomationAction(type="close"), make_ticket())


@pytest.mark.asyncio
async def test_escalate_keeps_written_status_when_notice_fails(executor_parts, make_ticket):
    executor, store, directory, notifications = executor_parts
    ticket = make_ticket()
    store.current = ticket
    directory.list_staff.return_value = [_member("sup", Role.SUPERVISOR)]
    notifications.notify.side_effect = RuntimeError("mail down")

    updated = await executor.execute(AutomationAction(type="escalate"), ticket)

    assert updated.status == TicketStatus.ESCALATED
    store.update_ticket.assert_awaited_once()


@pytest.mark.asyncio
async def test_assignment_survives_failed_notice(executor_parts, make_ticket):
    executor, store, directory, notifications = executor_parts
    ticket = make_ticket()
    store.current = ticket
    directory.list_staff.return_value = [_member("agent-1")]
    notifications.notify.side_effect = RuntimeError("mail down")

    updated = await executor.execute(AutomationAction(type="assign.least_workload"), ticket)

    assert updated.assigned_to_id == "agent-1"
    assert updated.status == TicketStatus.IN_PROGRESS
