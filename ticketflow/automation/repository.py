from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from packages.db.models import AutomationExecutionTable, AutomationRuleTable

from .models import (
    AutomationExecution,
    AutomationRule,
    AutomationTrigger,
    RuleValidationError,
    parse_actions,
    parse_conditions,
)


class AutomationRepository:
    """Persistence helper for `automation_rules` and `automation_executions`."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_active_rules(self, trigger: AutomationTrigger) -> list[AutomationRule]:
        statement = (
            select(AutomationRuleTable)
            .where(AutomationRuleTable.trigger == trigger.value)
            .where(AutomationRuleTable.is_active.is_(True))
            .order_by(
                AutomationRuleTable.priority.desc(),
                AutomationRuleTable.created_at.asc(),
                AutomationRuleTable.id.asc(),
            )
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_loaded_rule(row) for row in result.scalars().all()]

    async def list_rules(self, *, include_inactive: bool = True) -> list[AutomationRule]:
        statement = select(AutomationRuleTable)
        if not include_inactive:
            statement = statement.where(AutomationRuleTable.is_active.is_(True))
        statement = statement.order_by(AutomationRuleTable.priority.desc(), AutomationRuleTable.created_at.desc())
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_rule(row) for row in result.scalars().all()]

    async def get_rule(self, rule_id: str) -> AutomationRule | None:
        async with self._session_factory() as session:
            row = await session.get(AutomationRuleTable, rule_id)
            if row is None:
                return None
            return self._table_to_rule(row)

    async def create_rule(self, rule: AutomationRule) -> AutomationRule:
        async with self._session_factory() as session:
            async with session.begin():
                row = AutomationRuleTable(
                    id=rule.id,
                    name=rule.name,
                    description=rule.description,
                    trigger=rule.trigger.value,
                    conditions=[condition.to_dict() for condition in rule.conditions],
                    actions=[action.to_dict() for action in rule.actions],
                    is_active=rule.is_active,
                    priority=rule.priority,
                    created_by_id=rule.created_by_id,
                    created_at=rule.created_at,
                    updated_at=rule.updated_at,
                )
                session.add(row)
        return rule

    async def update_rule(
        self,
        rule_id: str,
        changes: Mapping[str, Any],
        *,
        updated_at: datetime | None = None,
    ) -> AutomationRule | None:
        """Apply column ``changes``; conditions and actions are passed as parsed descriptors."""

        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(AutomationRuleTable, rule_id, with_for_update=True)
                if row is None:
                    return None
                for attribute, value in changes.items():
                    setattr(row, attribute, _to_column_value(attribute, value))
                row.updated_at = updated_at or datetime.now(timezone.utc)
                updated = self._table_to_rule(row)
            return updated

    async def delete_rule(self, rule_id: str) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(AutomationRuleTable, rule_id)
                if row is None:
                    return False
                await session.delete(row)
            return True

    async def append_execution(self, execution: AutomationExecution) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    AutomationExecutionTable(
                        id=execution.id,
                        rule_id=execution.rule_id,
                        ticket_id=execution.ticket_id,
                        success=execution.success,
                        error=execution.error,
                        details=dict(execution.details) if execution.details is not None else None,
                        executed_at=execution.executed_at,
                    )
                )

    async def list_executions(
        self,
        *,
        rule_id: str | None = None,
        ticket_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AutomationExecution], int]:
        """Newest first, together with the total number of matching records."""

        statement = select(AutomationExecutionTable)
        count_statement = select(func.count()).select_from(AutomationExecutionTable)
        if rule_id is not None:
            statement = statement.where(AutomationExecutionTable.rule_id == rule_id)
            count_statement = count_statement.where(AutomationExecutionTable.rule_id == rule_id)
        if ticket_id is not None:
            statement = statement.where(AutomationExecutionTable.ticket_id == ticket_id)
            count_statement = count_statement.where(AutomationExecutionTable.ticket_id == ticket_id)
        statement = statement.order_by(AutomationExecutionTable.executed_at.desc()).offset(offset).limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(statement)
            executions = [self._table_to_execution(row) for row in result.scalars().all()]
            total = await session.execute(count_statement)
            return executions, int(total.scalar_one())

    async def count_rules(self, *, active_only: bool = False) -> int:
        statement = select(func.count()).select_from(AutomationRuleTable)
        if active_only:
            statement = statement.where(AutomationRuleTable.is_active.is_(True))
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return int(result.scalar_one())

    async def count_executions_since(self, since: datetime) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(AutomationExecutionTable)
                .where(AutomationExecutionTable.executed_at >= since)
            )
            return int(result.scalar_one())

    async def list_action_types_since(self, since: datetime) -> list[list[str]]:
        """Action types of the rule behind each execution recorded since ``since``."""

        async with self._session_factory() as session:
            result = await session.execute(
                select(AutomationRuleTable.actions)
                .join(AutomationExecutionTable, AutomationExecutionTable.rule_id == AutomationRuleTable.id)
                .where(AutomationExecutionTable.executed_at >= since)
            )
            return [
                [str(item.get("type", "")) for item in (actions or []) if isinstance(item, Mapping)]
                for actions in result.scalars().all()
            ]

    @staticmethod
    def _table_to_rule(row: AutomationRuleTable) -> AutomationRule:
        return AutomationRule(
            id=row.id,
            name=row.name,
            description=row.description,
            trigger=AutomationTrigger(row.trigger),
            conditions=parse_conditions(row.conditions),
            actions=parse_actions(row.actions),
            is_active=bool(row.is_active),
            priority=int(row.priority or 0),
            created_by_id=row.created_by_id,
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
        )

    @classmethod
    def _table_to_loaded_rule(cls, row: AutomationRuleTable) -> AutomationRule:
        """Like ``_table_to_rule`` but a malformed descriptor is kept as ``load_error``."""

        try:
            return cls._table_to_rule(row)
        except RuleValidationError as exc:
            return AutomationRule(
                id=row.id,
                name=row.name,
                description=row.description,
                trigger=AutomationTrigger(row.trigger),
                conditions=(),
                actions=(),
                is_active=bool(row.is_active),
                priority=int(row.priority or 0),
                created_by_id=row.created_by_id,
                created_at=_ensure_datetime(row.created_at),
                updated_at=_ensure_datetime(row.updated_at),
                load_error=str(exc),
            )

    @staticmethod
    def _table_to_execution(row: AutomationExecutionTable) -> AutomationExecution:
        return AutomationExecution(
            id=row.id,
            rule_id=row.rule_id,
            ticket_id=row.ticket_id,
            success=bool(row.success),
            error=row.error,
            details=dict(row.details) if row.details is not None else None,
            executed_at=_ensure_datetime(row.executed_at),
        )


def _to_column_value(attribute: str, value: Any) -> Any:
    if attribute in {"conditions", "actions"}:
        return [item.to_dict() for item in value]
    if isinstance(value, AutomationTrigger):
        return value.value
    return value


def _ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")
