"""Evaluation of rule conditions against a ticket."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Mapping, Sequence

from ticketflow.tickets.models import Ticket

from .models import AutomationCondition, ConditionOperator, TicketField

logger = logging.getLogger(__name__)

FieldValue = str | bool | int | float | None


class ConditionTypeError(TypeError):
    """Raised in strict mode when an operator is applied to operands of the wrong type."""


def _enum_value(value: Enum | None) -> str | None:
    return None if value is None else str(value.value)


_FIELD_ACCESSORS: Mapping[TicketField, Callable[[Ticket], FieldValue]] = {
    TicketField.PRIORITY: lambda ticket: _enum_value(ticket.priority),
    TicketField.STATUS: lambda ticket: _enum_value(ticket.status),
    TicketField.ISSUE_TYPE: lambda ticket: _enum_value(ticket.issue_type),
    TicketField.ASSIGNED_TO_ID: lambda ticket: ticket.assigned_to_id,
    TicketField.CUSTOMER_ID: lambda ticket: ticket.customer_id,
    TicketField.SLA_BREACHED: lambda ticket: bool(ticket.sla_breached),
    TicketField.TITLE: lambda ticket: ticket.title,
    TicketField.DESCRIPTION: lambda ticket: ticket.description,
}

_missing_accessors = set(TicketField) - set(_FIELD_ACCESSORS)
if _missing_accessors:  # pragma: no cover - guards future TicketField additions
    raise RuntimeError(f"No accessor for ticket fields: {sorted(f.value for f in _missing_accessors)}")


def get_ticket_field_value(field: TicketField | str, ticket: Ticket) -> FieldValue:
    """Read ``field`` from ``ticket``. Names outside :class:`TicketField` resolve to ``None``."""

    try:
        ticket_field = TicketField(field)
    except ValueError:
        return None
    return _FIELD_ACCESSORS[ticket_field](ticket)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def strict_equals(left: Any, right: Any) -> bool:
    """Type-sensitive equality: ``1 != True`` and ``"1" != 1``, while ``1 == 1.0``."""

    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


class ConditionEvaluator:
    """Conjunctive evaluation of a condition list.

    Operators applied to incompatible operands evaluate to ``False`` by default. With
    ``strict=True`` they raise :class:`ConditionTypeError` instead, which the engine
    records as a failed execution for the rule.
    """

    def __init__(self, *, strict: bool = False) -> None:
        self._strict = strict

    @property
    def strict(self) -> bool:
        return self._strict

    def evaluate(self, conditions: Sequence[AutomationCondition], ticket: Ticket) -> bool:
        for condition in conditions:
            if not self.matches(condition, ticket):
                logger.debug(
                    "Condition %s %s %r failed for ticket %s",
                    condition.field,
                    condition.operator.value,
                    condition.value,
                    ticket.id,
                )
                return False
        return True

    def matches(self, condition: AutomationCondition, ticket: Ticket) -> bool:
        value = get_ticket_field_value(condition.field, ticket)
        target = condition.value
        operator = condition.operator

        if operator is ConditionOperator.EQ:
            return strict_equals(value, target)
        if operator is ConditionOperator.NEQ:
            return not strict_equals(value, target)
        if operator in (ConditionOperator.GT, ConditionOperator.LT, ConditionOperator.GTE, ConditionOperator.LTE):
            if not (_is_number(value) and _is_number(target)):
                return self._mismatch(condition, "numeric operands", value)
            if operator is ConditionOperator.GT:
                return value > target
            if operator is ConditionOperator.LT:
                return value < target
            if operator is ConditionOperator.GTE:
                return value >= target
            return value <= target
        if operator is ConditionOperator.CONTAINS:
            if not (isinstance(value, str) and isinstance(target, str)):
                return self._mismatch(condition, "string operands", value)
            return target in value
        if operator is ConditionOperator.IN:
            if not isinstance(target, list):
                return self._mismatch(condition, "a list target", value)
            if value is None:
                return False
            return any(strict_equals(value, candidate) for candidate in target)
        raise ValueError(f"Unsupported condition operator: {operator!r}")

    def _mismatch(self, condition: AutomationCondition, expected: str, value: Any) -> bool:
        if self._strict:
            raise ConditionTypeError(
                f"Operator '{condition.operator.value}' on field '{condition.field}' requires {expected}, "
                f"got {type(value).__name__} and {type(condition.value).__name__}"
            )
        return False
