"""Rule descriptors interpreted by the automation engine.

Rules are plain data: a trigger, a list of conditions and a list of actions. They are
stored as JSON and converted to the immutable descriptors below before evaluation, so
nothing a staff member writes into a rule is ever executed as code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence, Union

ConditionValue = Union[str, int, float, bool, None, list]


class RuleValidationError(ValueError):
    """Raised when a rule descriptor cannot be parsed."""


class AutomationTrigger(str, Enum):
    """Lifecycle events that can start an automation run."""

    TICKET_CREATED = "TICKET_CREATED"
    TICKET_UPDATED = "TICKET_UPDATED"
    TICKET_STATUS_CHANGED = "TICKET_STATUS_CHANGED"
    TICKET_RESOLVED = "TICKET_RESOLVED"
    TICKET_CLOSED = "TICKET_CLOSED"
    SLA_WARNING = "SLA_WARNING"
    SLA_BREACH = "SLA_BREACH"


class ConditionOperator(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    CONTAINS = "contains"
    IN = "in"


class TicketField(str, Enum):
    """Ticket fields a condition may inspect, named as they appear in rule descriptors."""

    PRIORITY = "priority"
    STATUS = "status"
    ISSUE_TYPE = "issueType"
    ASSIGNED_TO_ID = "assignedToId"
    CUSTOMER_ID = "customerId"
    SLA_BREACHED = "slaBreached"
    TITLE = "title"
    DESCRIPTION = "description"


class ActionType(str, Enum):
    ASSIGN_LEAST_WORKLOAD = "assign.least_workload"
    ASSIGN_BY_SKILL = "assign.by_skill"
    NOTIFY_SUPERVISOR = "notify.supervisor"
    NOTIFY_TEAM = "notify.team"
    NOTIFY_ASSIGNED = "notify.assigned"
    ESCALATE = "escalate"
    CLOSE = "close"
    SEND_REMINDER = "send.reminder"
    SEND_SURVEY = "send.survey"
    EMAIL_CUSTOMER = "email.customer"


@dataclass(frozen=True, slots=True)
class AutomationCondition:
    """``<field> <operator> <value>``. ``field`` is kept verbatim so stale fields still load."""

    field: str
    operator: ConditionOperator
    value: ConditionValue = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AutomationCondition":
        if not isinstance(data, Mapping):
            raise RuleValidationError("Condition must be an object")
        field_name = data.get("field")
        if not isinstance(field_name, str) or not field_name:
            raise RuleValidationError("Condition field is required")
        try:
            operator = ConditionOperator(data.get("operator"))
        except ValueError as exc:
            raise RuleValidationError(f"Unsupported condition operator: {data.get('operator')!r}") from exc
        value = data.get("value")
        if isinstance(value, tuple):
            value = list(value)
        return cls(field=field_name, operator=operator, value=value)

    def to_dict(self) -> dict[str, Any]:
        value = list(self.value) if isinstance(self.value, list) else self.value
        return {"field": self.field, "operator": self.operator.value, "value": value}


@dataclass(frozen=True, slots=True)
class AutomationAction:
    """Named side effect with optional parameters.

    ``type`` stays a plain string: unknown types survive a load/save round trip and are
    skipped at execution time instead of invalidating the whole rule.
    """

    type: str
    params: Mapping[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> ActionType | None:
        try:
            return ActionType(self.type)
        except ValueError:
            return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AutomationAction":
        if not isinstance(data, Mapping):
            raise RuleValidationError("Action must be an object")
        action_type = data.get("type")
        if not isinstance(action_type, str) or not action_type.strip():
            raise RuleValidationError("Action type is required")
        params = data.get("params") or {}
        if not isinstance(params, Mapping):
            raise RuleValidationError("Action params must be an object")
        return cls(type=action_type.strip(), params=dict(params))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        if self.params:
            data["params"] = dict(self.params)
        return data


def parse_conditions(raw: Iterable[Mapping[str, Any]] | None) -> tuple[AutomationCondition, ...]:
    return tuple(AutomationCondition.from_dict(item) for item in (raw or ()))


def parse_actions(raw: Iterable[Mapping[str, Any]] | None) -> tuple[AutomationAction, ...]:
    return tuple(AutomationAction.from_dict(item) for item in (raw or ()))


def parse_trigger(raw: Any) -> AutomationTrigger:
    try:
        return AutomationTrigger(raw)
    except ValueError as exc:
        raise RuleValidationError(f"Unsupported trigger: {raw!r}") from exc


@dataclass(slots=True)
class AutomationRule:
    id: str
    name: str
    trigger: AutomationTrigger
    conditions: Sequence[AutomationCondition]
    actions: Sequence[AutomationAction]
    is_active: bool
    priority: int
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    created_by_id: str | None = None
    # Set when a stored descriptor could not be parsed; the engine records the rule as failed.
    load_error: str | None = None


@dataclass(slots=True)
class AutomationExecution:
    """Audit record of one rule evaluated against one ticket for one trigger firing."""

    id: str
    rule_id: str
    ticket_id: str
    success: bool
    executed_at: datetime
    error: str | None = None
    details: Mapping[str, Any] | None = None


@dataclass(slots=True)
class AutomationStats:
    total_rules: int
    active_rules: int
    today_executions: int
    week_executions: int
    auto_assign_count: int
    notification_count: int
