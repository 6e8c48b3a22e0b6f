from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Mapping

from .models import (
    AutomationAction,
    AutomationCondition,
    AutomationExecution,
    AutomationRule,
    AutomationStats,
    RuleValidationError,
    TicketField,
    parse_actions,
    parse_conditions,
    parse_trigger,
)
from .repository import AutomationRepository

logger = logging.getLogger(__name__)

_KNOWN_FIELDS = frozenset(item.value for item in TicketField)
_UPDATABLE = frozenset({"name", "description", "trigger", "conditions", "actions", "is_active", "priority"})
_ASSIGN_PREFIXES = ("assign",)
_NOTIFICATION_PREFIXES = ("notify", "email", "sms")


class AutomationServiceError(RuntimeError):
    """Base error for rule administration."""


class RuleNotFoundError(AutomationServiceError):
    """Raised when a rule could not be located."""


@dataclass(slots=True)
class ExecutionPage:
    items: list[AutomationExecution] = field(default_factory=list)
    total: int = 0


def _validate_conditions(raw: Iterable[Mapping[str, Any]] | None) -> tuple[AutomationCondition, ...]:
    conditions = parse_conditions(raw)
    for condition in conditions:
        if condition.field not in _KNOWN_FIELDS:
            raise RuleValidationError(f"Unknown condition field: {condition.field!r}")
    return conditions


def _validate_actions(raw: Iterable[Mapping[str, Any]] | None) -> tuple[AutomationAction, ...]:
    actions = parse_actions(raw)
    for action in actions:
        if action.kind is None:
            logger.warning("Rule uses unknown action type '%s'; it will be skipped at run time", action.type)
    return actions


def _validate_name(raw: Any) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise RuleValidationError("Rule name is required")
    return raw.strip()


class AutomationService:
    """Administration of automation rules and read access to their audit trail."""

    def __init__(
        self,
        repository: AutomationRepository,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def list_rules(self, *, include_inactive: bool = False) -> list[AutomationRule]:
        return await self.repository.list_rules(include_inactive=include_inactive)

    async def get_rule(self, rule_id: str) -> AutomationRule:
        rule = await self.repository.get_rule(rule_id)
        if rule is None:
            raise RuleNotFoundError(f"Automation rule {rule_id} not found")
        return rule

    async def create_rule(
        self,
        *,
        name: str,
        trigger: Any,
        conditions: Iterable[Mapping[str, Any]] | None = None,
        actions: Iterable[Mapping[str, Any]] | None = None,
        description: str | None = None,
        is_active: bool = True,
        priority: int = 0,
        created_by_id: str | None = None,
    ) -> AutomationRule:
        now = self._clock()
        rule = AutomationRule(
            id=str(uuid.uuid4()),
            name=_validate_name(name),
            description=description,
            trigger=parse_trigger(trigger),
            conditions=_validate_conditions(conditions),
            actions=_validate_actions(actions),
            is_active=is_active,
            priority=int(priority),
            created_by_id=created_by_id,
            created_at=now,
            updated_at=now,
        )
        created = await self.repository.create_rule(rule)
        logger.info("Created automation rule '%s' (%s) for %s", rule.name, rule.id, rule.trigger.value)
        return created

    async def update_rule(self, rule_id: str, changes: Mapping[str, Any]) -> AutomationRule:
        """Partially update a rule. Only keys present in ``changes`` are written."""

        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise RuleValidationError(f"Unsupported rule fields: {', '.join(sorted(unknown))}")

        parsed: dict[str, Any] = {}
        for key, value in changes.items():
            if key == "name":
                parsed[key] = _validate_name(value)
            elif key == "trigger":
                parsed[key] = parse_trigger(value)
            elif key == "conditions":
                parsed[key] = _validate_conditions(value)
            elif key == "actions":
                parsed[key] = _validate_actions(value)
            elif key == "priority":
                parsed[key] = int(value)
            elif key == "is_active":
                parsed[key] = bool(value)
            else:
                parsed[key] = value

        updated = await self.repository.update_rule(rule_id, parsed, updated_at=self._clock())
        if updated is None:
            raise RuleNotFoundError(f"Automation rule {rule_id} not found")
        return updated

    async def delete_rule(self, rule_id: str) -> None:
        deleted = await self.repository.delete_rule(rule_id)
        if not deleted:
            raise RuleNotFoundError(f"Automation rule {rule_id} not found")
        logger.info("Deleted automation rule %s", rule_id)

    async def toggle_rule(self, rule_id: str) -> AutomationRule:
        rule = await self.get_rule(rule_id)
        updated = await self.repository.update_rule(
            rule_id, {"is_active": not rule.is_active}, updated_at=self._clock()
        )
        if updated is None:
            raise RuleNotFoundError(f"Automation rule {rule_id} not found")
        return updated

    async def get_stats(self) -> AutomationStats:
        now = self._clock()
        start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        # Weeks start on Sunday.
        start_of_week = start_of_today - timedelta(days=(start_of_today.weekday() + 1) % 7)

        action_types = await self.repository.list_action_types_since(start_of_today)
        auto_assign = 0
        notifications = 0
        for types in action_types:
            auto_assign += sum(1 for item in types if item.startswith(_ASSIGN_PREFIXES))
            notifications += sum(1 for item in types if item.startswith(_NOTIFICATION_PREFIXES))

        return AutomationStats(
            total_rules=await self.repository.count_rules(),
            active_rules=await self.repository.count_rules(active_only=True),
            today_executions=await self.repository.count_executions_since(start_of_today),
            week_executions=await self.repository.count_executions_since(start_of_week),
            auto_assign_count=auto_assign,
            notification_count=notifications,
        )

    async def get_executions(
        self,
        *,
        rule_id: str | None = None,
        ticket_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> ExecutionPage:
        items, total = await self.repository.list_executions(
            rule_id=rule_id, ticket_id=ticket_id, limit=limit, offset=offset
        )
        return ExecutionPage(items=items, total=total)
