"""Resolution deadlines per priority, overridable from the `sla_configs` table."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Mapping, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from packages.db.models import SlaConfigTable
from ticketflow.tickets.models import IssueType, TicketPriority


@dataclass(frozen=True, slots=True)
class SlaTargets:
    """Targets in minutes."""

    first_response_minutes: int
    resolution_minutes: int


DEFAULT_SLA_TARGETS: Mapping[TicketPriority, SlaTargets] = {
    TicketPriority.URGENT: SlaTargets(first_response_minutes=30, resolution_minutes=240),
    TicketPriority.HIGH: SlaTargets(first_response_minutes=60, resolution_minutes=480),
    TicketPriority.MEDIUM: SlaTargets(first_response_minutes=240, resolution_minutes=1440),
    TicketPriority.LOW: SlaTargets(first_response_minutes=480, resolution_minutes=2880),
}


class SlaConfigStore(Protocol):
    async def find_targets(self, priority: TicketPriority, issue_type: IssueType | None) -> SlaTargets | None:
        ...


class SlaConfigRepository:
    """Lookup of configured overrides. ``issue_type=None`` selects the priority-wide row."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_targets(self, priority: TicketPriority, issue_type: IssueType | None) -> SlaTargets | None:
        statement = select(SlaConfigTable).where(SlaConfigTable.priority == priority.value)
        if issue_type is None:
            statement = statement.where(SlaConfigTable.issue_type.is_(None))
        else:
            statement = statement.where(SlaConfigTable.issue_type == issue_type.value)

        async with self._session_factory() as session:
            result = await session.execute(statement.limit(1))
            row = result.scalars().first()
        if row is None:
            return None
        return SlaTargets(
            first_response_minutes=int(row.first_response_minutes),
            resolution_minutes=int(row.resolution_minutes),
        )


class SlaPolicy:
    def __init__(self, store: SlaConfigStore | None = None) -> None:
        self._store = store

    async def targets_for(self, priority: TicketPriority, issue_type: IssueType | None = None) -> SlaTargets:
        """Most specific targets: (priority, issue type), then priority alone, then the defaults."""

        if self._store is not None:
            if issue_type is not None:
                specific = await self._store.find_targets(priority, issue_type)
                if specific is not None:
                    return specific
            general = await self._store.find_targets(priority, None)
            if general is not None:
                return general
        return DEFAULT_SLA_TARGETS[priority]

    async def deadline_for(
        self, priority: TicketPriority, issue_type: IssueType | None, created_at: datetime
    ) -> datetime:
        targets = await self.targets_for(priority, issue_type)
        return created_at + timedelta(minutes=targets.resolution_minutes)
