from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from packages.db.models import UserTable
from ticketflow.tickets.models import Role


class WorkloadCounter(Protocol):
    async def count_active_assigned(self, user_id: str) -> int:
        ...


@dataclass(slots=True)
class StaffMember:
    """Directory entry with the member's current number of open assignments."""

    id: str
    display_name: str
    email: str | None
    role: Role
    is_active: bool
    active_ticket_count: int = 0


class DirectoryService:
    """Read-only view over platform users and their workload."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], workload: WorkloadCounter) -> None:
        self._session_factory = session_factory
        self._workload = workload

    async def list_staff(self, roles: Iterable[Role], *, active_only: bool = True) -> list[StaffMember]:
        """Users holding one of ``roles``, in creation order."""

        role_values = sorted({Role(role).value for role in roles})
        statement = select(UserTable).where(UserTable.role.in_(role_values))
        if active_only:
            statement = statement.where(UserTable.is_active.is_(True))
        statement = statement.order_by(UserTable.created_at.asc(), UserTable.id.asc())

        async with self._session_factory() as session:
            result = await session.execute(statement)
            rows = result.scalars().all()

        members: list[StaffMember] = []
        for row in rows:
            member = self._table_to_member(row)
            member.active_ticket_count = await self._workload.count_active_assigned(row.id)
            members.append(member)
        return members

    async def get_user(self, user_id: str) -> StaffMember | None:
        async with self._session_factory() as session:
            row = await session.get(UserTable, user_id)
        if row is None:
            return None
        return self._table_to_member(row)

    @staticmethod
    def _table_to_member(row: UserTable) -> StaffMember:
        return StaffMember(
            id=row.id,
            display_name=row.display_name,
            email=row.email,
            role=Role(row.role),
            is_active=bool(row.is_active),
        )
