from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from ticketflow.main import create_app
from ticketflow.services.postgres import PostgresConnectionTester


class DummyAcquire:
    def __init__(self, connection):
        self._connection = connection

    async def __aenter__(self):
        return self._connection

    async def __aexit__(self, exc_type, exc, tb):
        return False


@pytest.fixture
def pool(monkeypatch):
    connection_mock = AsyncMock()
    pool_mock = MagicMock()
    pool_mock.acquire.side_effect = lambda: DummyAcquire(connection_mock)
    pool_mock.close = AsyncMock()
    pool_mock.connection = connection_mock
    pool_mock.create_kwargs = {}

    async def create_pool(**kwargs):
        pool_mock.create_kwargs.update(kwargs)
        return pool_mock

    monkeypatch.setattr("ticketflow.services.postgres.asyncpg.create_pool", create_pool)
    return pool_mock


@pytest.mark.asyncio
async def test_postgres_connection_tester(pool):
    tester = PostgresConnectionTester("postgresql+asyncpg://user:pw@db/tickets")

    assert await tester.test_connection() is True
    pool.connection.fetchval.assert_awaited_with("SELECT 1")
    assert pool.create_kwargs["dsn"] == "postgresql://user:pw@db/tickets"

    await tester.close()
    pool.close.assert_awaited()


@pytest.mark.asyncio
async def test_missing_tables_lists_absent_required_tables(pool):
    pool.connection.fetch.return_value = [{"tablename": "tickets"}, {"tablename": "ticket_history"}]
    tester = PostgresConnectionTester("postgresql://test")

    assert await tester.missing_tables() == ["automation_rules", "automation_executions"]


@pytest.mark.asyncio
async def test_close_without_pool_is_a_no_op():
    await PostgresConnectionTester("postgresql://test").close()


def test_ping_db_reports_database_state():
    app = create_app()
    client = TestClient(app)
    assert client.get("/ping").json() == {"status": "ok"}
    assert client.get("/ping/db").status_code == 503

    tester = MagicMock()
    tester.test_connection = AsyncMock(side_effect=OSError("connection refused"))
    app.state.postgres_tester = tester
    assert client.get("/ping/db").status_code == 503

    tester.test_connection = AsyncMock(return_value=True)
    tester.missing_tables = AsyncMock(return_value=["automation_rules"])
    assert client.get("/ping/db").json() == {
        "status": "degraded",
        "database": "reachable",
        "missing_tables": ["automation_rules"],
    }

    tester.missing_tables = AsyncMock(return_value=[])
    assert client.get("/ping/db").json()["status"] == "ok"
