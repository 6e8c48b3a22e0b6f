from __future__ import annotations

from dataclasses import dataclass

import asyncpg

_TABLES_QUERY = "SELECT tablename FROM pg_catalog.pg_tables WHERE schemaname = 'public'"


@dataclass(slots=True)
class PostgresConnectionTester:
    """Probe behind ``/ping/db``: database reachability and presence of the ticketflow tables."""

    dsn: str
    required_tables: tuple[str, ...] = ("tickets", "ticket_history", "automation_rules", "automation_executions")
    _pool: asyncpg.Pool | None = None

    @staticmethod
    def _plain_dsn(dsn: str) -> str:
        # asyncpg does not understand SQLAlchemy driver suffixes.
        return dsn.replace("postgresql+asyncpg://", "postgresql://", 1)

    async def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(dsn=self._plain_dsn(self.dsn), min_size=1, max_size=1)
        return self._pool

    async def test_connection(self) -> bool:
        pool = await self._ensure_pool()
        async with pool.acquire() as connection:
            await connection.fetchval("SELECT 1")
        return True

    async def missing_tables(self) -> list[str]:
        """Required tables that do not exist yet, e.g. before the first migration."""

        pool = await self._ensure_pool()
        async with pool.acquire() as connection:
            rows = await connection.fetch(_TABLES_QUERY)
        present = {row["tablename"] for row in rows}
        return [name for name in self.required_tables if name not in present]

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
