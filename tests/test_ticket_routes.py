from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from ticketflow.dependencies.services import get_ticket_service
from ticketflow.main import create_app
from ticketflow.tickets.errors import TicketConflictError, TicketForbiddenError, TicketNotFoundError
from ticketflow.tickets.models import HistoryAction, Role, TicketHistoryEntry, TicketPriority, TicketStatus

FIXED_NOW = datetime(2024, 5, 6, 12, 0, tzinfo=timezone.utc)

AGENT = {"Authorization": "Bearer agent-token"}
CUSTOMER = {"Authorization": "Bearer customer-token"}
CUSTOMER_ID = "00000000-0000-0000-0000-000000000004"
AGENT_ID = "00000000-0000-0000-0000-000000000003"


@pytest.fixture
def ticket_client():
    app = create_app()
    service = AsyncMock()

    async def override_service():
        return service

    app.dependency_overrides[get_ticket_service] = override_service
    client = TestClient(app)
    yield client, service
    app.dependency_overrides.clear()


def test_customer_creates_ticket_for_themselves(ticket_client, make_ticket):
    client, service = ticket_client
    service.create_ticket.return_value = make_ticket(customer_id=CUSTOMER_ID)

    response = client.post(
        "/tickets",
        json={"title": "Broken", "priority": "HIGH", "customer_id": "someone-else"},
        headers=CUSTOMER,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["ticket_number"] == "TKT-20240506-AB12"
    assert body["created_at"] == FIXED_NOW.isoformat()
    kwargs = service.create_ticket.await_args.kwargs
    assert kwargs["customer_id"] == CUSTOMER_ID
    assert kwargs["priority"] == TicketPriority.HIGH
    assert kwargs["actor_id"] == CUSTOMER_ID


def test_create_rejects_invalid_payload(ticket_client):
    client, service = ticket_client

    response = client.post("/tickets", json={"title": "", "priority": "CRITICAL"}, headers=AGENT)

    assert response.status_code == 422
    service.create_ticket.assert_not_awaited()


def test_listing_requires_staff(ticket_client, make_ticket):
    client, service = ticket_client
    service.list_tickets.return_value = [make_ticket()]

    assert client.get("/tickets", headers=CUSTOMER).status_code == 403

    response = client.get("/tickets", params={"status": "OPEN", "assigned_to": "agent-1"}, headers=AGENT)
    assert response.status_code == 200
    assert [item["id"] for item in response.json()] == ["ticket-1"]
    service.list_tickets.assert_awaited_once_with(
        status=TicketStatus.OPEN, priority=None, assigned_to_id="agent-1"
    )


def test_requests_without_token_are_rejected(ticket_client):
    client, _ = ticket_client

    assert client.get("/tickets/ticket-1").status_code == 401


@pytest.mark.parametrize(
    "error, status_code",
    [
        (TicketNotFoundError("missing"), 404),
        (TicketForbiddenError("You cannot view this ticket"), 403),
    ],
)
def test_get_ticket_maps_errors(ticket_client, error, status_code):
    client, service = ticket_client
    service.get_ticket_for.side_effect = error

    response = client.get("/tickets/ticket-1", headers=CUSTOMER)

    assert response.status_code == status_code
    assert response.json()["detail"] == str(error)


def test_patch_distinguishes_unassign_from_omitted(ticket_client, make_ticket):
    client, service = ticket_client
    service.update_ticket.return_value = make_ticket()

    client.patch("/tickets/ticket-1", json={"assigned_to_id": None}, headers=AGENT)
    update = service.update_ticket.await_args.args[1]
    assert update.touches_assignment() and update.assigned_to_id is None

    client.patch("/tickets/ticket-1", json={"status": "IN_PROGRESS"}, headers=AGENT)
    update = service.update_ticket.await_args.args[1]
    assert not update.touches_assignment()
    assert update.status == TicketStatus.IN_PROGRESS
    assert service.update_ticket.await_args.kwargs == {"actor_id": AGENT_ID, "actor_role": Role.AGENT}


def test_patch_without_changes_is_rejected(ticket_client):
    client, service = ticket_client

    response = client.patch("/tickets/ticket-1", json={}, headers=AGENT)

    assert response.status_code == 400
    assert response.json()["detail"] == "No changes supplied"
    service.update_ticket.assert_not_awaited()


def test_patch_maps_conflicts_and_forbidden(ticket_client):
    client, service = ticket_client

    service.update_ticket.side_effect = TicketConflictError("User x is not an active staff member")
    assert client.patch("/tickets/ticket-1", json={"assigned_to_id": "x"}, headers=AGENT).status_code == 409

    service.update_ticket.side_effect = TicketForbiddenError("Customers may only reopen a ticket")
    assert client.patch("/tickets/ticket-1", json={"status": "CLOSED"}, headers=CUSTOMER).status_code == 403


def test_history_is_staff_only(ticket_client):
    client, service = ticket_client
    service.get_history.return_value = [
        TicketHistoryEntry(
            id="h-1",
            ticket_id="ticket-1",
            actor_id=None,
            action=HistoryAction.UPDATED,
            field="slaBreached",
            old_value="false",
            new_value="true",
            created_at=FIXED_NOW,
            metadata={"reason": "SLA deadline exceeded"},
        )
    ]

    assert client.get("/tickets/ticket-1/history", headers=CUSTOMER).status_code == 403

    response = client.get("/tickets/ticket-1/history", headers=AGENT)
    assert response.status_code == 200
    [entry] = response.json()
    assert entry["action"] == "UPDATED"
    assert entry["actor_id"] is None
    assert entry["metadata"] == {"reason": "SLA deadline exceeded"}


def test_queue_groups_tickets_by_section(ticket_client, make_ticket):
    client, service = ticket_client
    service.list_tickets.return_value = [
        make_ticket(id="breached", sla_breached=True),
        make_ticket(id="waiting", status=TicketStatus.WAITING_CUSTOMER),
    ]

    response = client.get("/queue", headers=AGENT)

    assert response.status_code == 200
    sections = {section["section"]: section for section in response.json()}
    assert list(sections) == ["urgent", "toProcess", "waitingCustomer", "resolved"]
    assert [item["ticket"]["id"] for item in sections["urgent"]["items"]] == ["breached"]
    assert sections["waitingCustomer"]["label"] == "Waiting for customer"


def test_queue_next_skips_current(ticket_client, make_ticket):
    client, service = ticket_client
    service.list_tickets.return_value = [
        make_ticket(id="a", priority=TicketPriority.URGENT),
        make_ticket(id="b", priority=TicketPriority.LOW),
    ]

    response = client.get("/queue/next", params={"current_id": "a"}, headers=AGENT)

    assert response.json()["ticket"]["id"] == "b"


def test_unconfigured_service_returns_503():
    client = TestClient(create_app())

    assert client.get("/tickets", headers=AGENT).status_code == 503
