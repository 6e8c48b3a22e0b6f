from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from packages.db.models import TicketHistoryTable, TicketTable

from .models import (
    TERMINAL_STATUSES,
    HistoryAction,
    IssueType,
    Ticket,
    TicketHistoryEntry,
    TicketPriority,
    TicketStatus,
)

_TERMINAL_VALUES = tuple(status.value for status in TERMINAL_STATUSES)


class TicketRepository:
    """Persistence helper wrapping the `tickets` and `ticket_history` tables."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def create_ticket(self, ticket: Ticket, history: Sequence[TicketHistoryEntry]) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    TicketTable(
                        id=ticket.id,
                        ticket_number=ticket.ticket_number,
                        title=ticket.title,
                        description=ticket.description,
                        status=ticket.status.value,
                        priority=ticket.priority.value,
                        issue_type=ticket.issue_type.value,
                        assigned_to_id=ticket.assigned_to_id,
                        customer_id=ticket.customer_id,
                        tags=list(ticket.tags),
                        sla_deadline=ticket.sla_deadline,
                        sla_breached=ticket.sla_breached,
                        created_at=ticket.created_at,
                        updated_at=ticket.updated_at,
                    )
                )
                for entry in history:
                    session.add(self._history_to_table(entry))

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            if row is None:
                return None
            return self._table_to_ticket(row)

    async def list_tickets(
        self,
        *,
        status: TicketStatus | None = None,
        priority: TicketPriority | None = None,
        assigned_to_id: str | None = None,
        customer_id: str | None = None,
    ) -> list[Ticket]:
        statement = select(TicketTable)
        if status is not None:
            statement = statement.where(TicketTable.status == status.value)
        if priority is not None:
            statement = statement.where(TicketTable.priority == priority.value)
        if assigned_to_id is not None:
            statement = statement.where(TicketTable.assigned_to_id == assigned_to_id)
        if customer_id is not None:
            statement = statement.where(TicketTable.customer_id == customer_id)
        statement = statement.order_by(TicketTable.created_at.desc())

        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_ticket(row) for row in result.scalars().all()]

    async def update_ticket(
        self,
        ticket_id: str,
        changes: Mapping[str, Any],
        history: Sequence[TicketHistoryEntry],
        *,
        updated_at: datetime | None = None,
    ) -> Ticket | None:
        """Apply ``changes`` and append ``history`` in a single transaction."""

        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(TicketTable, ticket_id, with_for_update=True)
                if row is None:
                    return None
                for attribute, value in changes.items():
                    setattr(row, attribute, _to_column_value(value))
                row.updated_at = updated_at or datetime.now(timezone.utc)
                for entry in history:
                    session.add(self._history_to_table(entry))
                updated = self._table_to_ticket(row)
            return updated

    async def get_history(self, ticket_id: str) -> list[TicketHistoryEntry]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TicketHistoryTable)
                .where(TicketHistoryTable.ticket_id == ticket_id)
                .order_by(TicketHistoryTable.created_at.asc())
            )
            return [self._table_to_history(row) for row in result.scalars().all()]

    async def count_active_assigned(self, user_id: str) -> int:
        """Number of tickets assigned to ``user_id`` that are neither resolved nor closed."""

        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(TicketTable)
                .where(TicketTable.assigned_to_id == user_id)
                .where(TicketTable.status.not_in(_TERMINAL_VALUES))
            )
            return int(result.scalar_one())

    async def list_sla_at_risk(self, *, now: datetime, horizon: datetime) -> list[Ticket]:
        """Open, non-breached tickets whose deadline lies in ``(now, horizon]``."""

        async with self._session_factory() as session:
            result = await session.execute(
                select(TicketTable)
                .where(TicketTable.sla_deadline.is_not(None))
                .where(TicketTable.sla_deadline > now)
                .where(TicketTable.sla_deadline <= horizon)
                .where(TicketTable.sla_breached.is_(False))
                .where(TicketTable.status.not_in(_TERMINAL_VALUES))
                .order_by(TicketTable.sla_deadline.asc())
            )
            return [self._table_to_ticket(row) for row in result.scalars().all()]

    async def list_sla_overdue(self, *, now: datetime) -> list[Ticket]:
        """Open, not yet flagged tickets whose deadline has passed."""

        async with self._session_factory() as session:
            result = await session.execute(
                select(TicketTable)
                .where(TicketTable.sla_deadline.is_not(None))
                .where(TicketTable.sla_deadline < now)
                .where(TicketTable.sla_breached.is_(False))
                .where(TicketTable.status.not_in(_TERMINAL_VALUES))
                .order_by(TicketTable.sla_deadline.asc())
            )
            return [self._table_to_ticket(row) for row in result.scalars().all()]

    @staticmethod
    def _history_to_table(entry: TicketHistoryEntry) -> TicketHistoryTable:
        return TicketHistoryTable(
            id=entry.id,
            ticket_id=entry.ticket_id,
            actor_id=entry.actor_id,
            action=entry.action.value,
            field=entry.field,
            old_value=entry.old_value,
            new_value=entry.new_value,
            metadata_=dict(entry.metadata),
            created_at=entry.created_at,
        )

    @staticmethod
    def _table_to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=row.id,
            ticket_number=row.ticket_number,
            title=row.title,
            description=row.description or "",
            status=TicketStatus(row.status),
            priority=TicketPriority(row.priority),
            issue_type=IssueType(row.issue_type),
            assigned_to_id=row.assigned_to_id,
            customer_id=row.customer_id,
            sla_deadline=_ensure_optional_datetime(row.sla_deadline),
            sla_breached=bool(row.sla_breached),
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
            tags=tuple(row.tags or ()),
        )

    @staticmethod
    def _table_to_history(row: TicketHistoryTable) -> TicketHistoryEntry:
        return TicketHistoryEntry(
            id=row.id,
            ticket_id=row.ticket_id,
            actor_id=row.actor_id,
            action=HistoryAction(row.action),
            field=row.field,
            old_value=row.old_value,
            new_value=row.new_value,
            metadata=dict(row.metadata_ or {}),
            created_at=_ensure_datetime(row.created_at),
        )


def _to_column_value(value: Any) -> Any:
    if isinstance(value, (TicketStatus, TicketPriority, IssueType)):
        return value.value
    if isinstance(value, tuple):
        return list(value)
    return value


def _ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")


def _ensure_optional_datetime(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return _ensure_datetime(value)
