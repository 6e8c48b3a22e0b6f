from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from ticketflow.automation.models import (
    AutomationAction,
    AutomationCondition,
    AutomationExecution,
    AutomationRule,
    AutomationStats,
    AutomationTrigger,
    ConditionOperator,
    RuleValidationError,
)
from ticketflow.automation.service import ExecutionPage, RuleNotFoundError
from ticketflow.dependencies.services import get_automation_service
from ticketflow.main import create_app

FIXED_NOW = datetime(2024, 5, 6, 12, 0, tzinfo=timezone.utc)

AGENT = {"Authorization": "Bearer agent-token"}
SUPERVISOR = {"Authorization": "Bearer supervisor-token"}


def _rule(**overrides) -> AutomationRule:
    values = dict(
        id="rule-1",
        name="Escalate urgent",
        trigger=AutomationTrigger.TICKET_CREATED,
        conditions=[AutomationCondition(field="priority", operator=ConditionOperator.EQ, value="URGENT")],
        actions=[AutomationAction(type="escalate")],
        is_active=True,
        priority=10,
        created_at=FIXED_NOW,
        updated_at=FIXED_NOW,
    )
    values.update(overrides)
    return AutomationRule(**values)


@pytest.fixture
def automation_client():
    app = create_app()
    service = AsyncMock()

    async def override_service():
        return service

    app.dependency_overrides[get_automation_service] = override_service
    client = TestClient(app)
    yield client, service
    app.dependency_overrides.clear()


def test_list_rules_serialises_descriptors(automation_client):
    client, service = automation_client
    service.list_rules.return_value = [_rule()]

    response = client.get("/automation/rules", params={"include_inactive": True}, headers=AGENT)

    assert response.status_code == 200
    [rule] = response.json()
    assert rule["conditions"] == [{"field": "priority", "operator": "eq", "value": "URGENT"}]
    assert rule["actions"] == [{"type": "escalate", "params": {}}]
    service.list_rules.assert_awaited_once_with(include_inactive=True)


def test_agents_cannot_create_rules(automation_client):
    client, service = automation_client

    response = client.post("/automation/rules", json={"name": "x", "trigger": "TICKET_CREATED"}, headers=AGENT)

    assert response.status_code == 403
    service.create_rule.assert_not_awaited()


def test_supervisor_creates_rule(automation_client):
    client, service = automation_client
    service.create_rule.return_value = _rule()

    response = client.post(
        "/automation/rules",
        json={
            "name": "Escalate urgent",
            "trigger": "TICKET_CREATED",
            "conditions": [{"field": "priority", "operator": "eq", "value": "URGENT"}],
            "actions": [{"type": "escalate"}],
            "priority": 10,
        },
        headers=SUPERVISOR,
    )

    assert response.status_code == 201
    kwargs = service.create_rule.await_args.kwargs
    assert kwargs["created_by_id"] == "00000000-0000-0000-0000-000000000002"
    assert kwargs["priority"] == 10


def test_invalid_rule_is_a_bad_request(automation_client):
    client, service = automation_client
    service.create_rule.side_effect = RuleValidationError("Unsupported trigger: 'NOPE'")

    response = client.post("/automation/rules", json={"name": "x", "trigger": "NOPE"}, headers=SUPERVISOR)

    assert response.status_code == 400
    assert "NOPE" in response.json()["detail"]


def test_update_sends_only_supplied_fields(automation_client):
    client, service = automation_client
    service.update_rule.return_value = _rule(priority=3)

    response = client.put("/automation/rules/rule-1", json={"priority": 3}, headers=SUPERVISOR)

    assert response.status_code == 200
    service.update_rule.assert_awaited_once_with("rule-1", {"priority": 3})


def test_missing_rule_is_not_found(automation_client):
    client, service = automation_client
    service.get_rule.side_effect = RuleNotFoundError("Automation rule x not found")
    service.delete_rule.side_effect = RuleNotFoundError("Automation rule x not found")
    service.toggle_rule.side_effect = RuleNotFoundError("Automation rule x not found")

    assert client.get("/automation/rules/x", headers=AGENT).status_code == 404
    assert client.delete("/automation/rules/x", headers=SUPERVISOR).status_code == 404
    assert client.put("/automation/rules/x/toggle", headers=SUPERVISOR).status_code == 404


def test_delete_and_toggle(automation_client):
    client, service = automation_client
    service.toggle_rule.return_value = _rule(is_active=False)

    assert client.delete("/automation/rules/rule-1", headers=SUPERVISOR).status_code == 204
    response = client.put("/automation/rules/rule-1/toggle", headers=SUPERVISOR)
    assert response.json()["is_active"] is False


def test_stats(automation_client):
    client, service = automation_client
    service.get_stats.return_value = AutomationStats(
        total_rules=4,
        active_rules=3,
        today_executions=12,
        week_executions=40,
        auto_assign_count=5,
        notification_count=7,
    )

    response = client.get("/automation/stats", headers=AGENT)

    assert response.json() == {
        "total_rules": 4,
        "active_rules": 3,
        "today_executions": 12,
        "week_executions": 40,
        "auto_assign_count": 5,
        "notification_count": 7,
    }


def test_executions_are_paginated(automation_client):
    client, service = automation_client
    service.get_executions.return_value = ExecutionPage(
        items=[
            AutomationExecution(
                id="e-1",
                rule_id="rule-1",
                ticket_id="ticket-1",
                success=False,
                executed_at=FIXED_NOW,
                error="boom",
                details={"matched": True},
            )
        ],
        total=31,
    )

    response = client.get("/automation/executions", params={"rule_id": "rule-1", "limit": 10}, headers=AGENT)

    body = response.json()
    assert body["total"] == 31 and body["limit"] == 10 and body["offset"] == 0
    assert body["items"][0]["error"] == "boom"
    service.get_executions.assert_awaited_once_with(rule_id="rule-1", ticket_id=None, limit=10, offset=0)
    assert client.get("/automation/executions", params={"limit": 0}, headers=AGENT).status_code == 422
