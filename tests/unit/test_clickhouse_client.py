"""
Unit tests for ClickHouseClient over httpx.MockTransport.
"""

import httpx
import pytest

from dashboard_sql.config import ClickHouseConfig
from dashboard_sql.domain.errors import ClickHouseConnectionError, ClickHouseQueryError
from dashboard_sql.infrastructure.clickhouse_client import READ_ONLY_REJECTION, ClickHouseClient


class FakeClickHouseServer:
    """Answers /ping and FORMAT JSON queries; records every POST."""

    def __init__(self, responses=None, ping_status=200):
        self.responses = responses or {}
        self.ping_status = ping_status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/ping":
            return httpx.Response(self.ping_status, text="Ok.\n")

        sql = request.content.decode("utf-8")
        self.requests.append(request)
        if sql.startswith("SELECT version()"):
            return httpx.Response(200, json={"data": [{"version": "24.3.1"}]})
        for prefix, response in self.responses.items():
            if sql.startswith(prefix):
                return response
        return httpx.Response(200, json={"meta": [], "data": [], "rows": 0})


@pytest.fixture
def config():
    return ClickHouseConfig(url="http://clickhouse.test:8123", database="analytics", username="reader", password="secret")


async def _connected(config, server) -> ClickHouseClient:
    client = ClickHouseClient(config, transport=httpx.MockTransport(server))
    await client.connect()
    return client


class TestConnection:

    @pytest.mark.asyncio
    async def test_connect_and_close(self, config):
        client = await _connected(config, FakeClickHouseServer())
        assert client.is_connected()

        await client.close()
        assert not client.is_connected()

    @pytest.mark.asyncio
    async def test_credentials_sent_as_headers(self, config):
        server = FakeClickHouseServer()
        client = await _connected(config, server)

        request = server.requests[0]
        assert request.headers["X-ClickHouse-User"] == "reader"
        assert request.headers["X-ClickHouse-Key"] == "secret"
        await client.close()

    @pytest.mark.asyncio
    async def test_failed_ping_raises(self, config):
        client = ClickHouseClient(config, transport=httpx.MockTransport(FakeClickHouseServer(ping_status=503)))
        with pytest.raises(ClickHouseConnectionError):
            await client.connect()
        assert not client.is_connected()

    @pytest.mark.asyncio
    async def test_health_check(self, config):
        client = await _connected(config, FakeClickHouseServer())
        health = await client.health_check()
        assert health["status"] == "healthy"
        assert health["database"] == "analytics"
        await client.close()

        health = await client.health_check()
        assert health["status"] == "unhealthy"
        assert health["connected"] is False

    @pytest.mark.asyncio
    async def test_query_requires_connection(self, config):
        client = ClickHouseClient(config)
        with pytest.raises(ClickHouseConnectionError):
            await client.run_read_only_query("SELECT 1")


class TestReadOnlyQuery:

    @pytest.mark.asyncio
    async def test_rows_returned(self, config):
        rows = [{"staff_name": "Asha", "hours": 41.5}]
        server = FakeClickHouseServer({"SELECT staff_name": httpx.Response(200, json={"data": rows})})
        client = await _connected(config, server)

        result = await client.run_read_only_query("SELECT staff_name, hours FROM daily_worker_summary;")

        assert result.ok
        assert result.rows == rows
        request = server.requests[-1]
        assert request.content.decode() == "SELECT staff_name, hours FROM daily_worker_summary FORMAT JSON"
        assert request.url.params["readonly"] == "1"
        assert request.url.params["database"] == "analytics"
        await client.close()

    @pytest.mark.asyncio
    async def test_server_error_text_verbatim(self, config):
        error = "Code: 47. DB::Exception: Unknown identifier 'WEEK'. (UNKNOWN_IDENTIFIER)"
        server = FakeClickHouseServer({"SELECT WEEK": httpx.Response(404, text=error + "\n")})
        client = await _connected(config, server)

        result = await client.run_read_only_query("SELECT WEEK FROM daily_worker_summary")

        assert not result.ok
        assert result.error == error
        await client.close()

    @pytest.mark.asyncio
    async def test_write_statement_refused_locally(self, config):
        server = FakeClickHouseServer()
        client = await _connected(config, server)
        sent_before = len(server.requests)

        result = await client.run_read_only_query("INSERT INTO daily_worker_summary VALUES (1)")

        assert result.error == READ_ONLY_REJECTION
        assert len(server.requests) == sent_before
        await client.close()

    @pytest.mark.asyncio
    async def test_read_only_setting_can_be_disabled(self, config):
        server = FakeClickHouseServer()
        client = await _connected(config.model_copy(update={"enforce_read_only": False}), server)

        await client.run_read_only_query("SELECT 1")

        assert "readonly" not in server.requests[-1].url.params
        await client.close()


class TestIntrospection:

    @pytest.mark.asyncio
    async def test_list_tables_binds_database_parameter(self, config):
        tables = [{"name": "daily_worker_summary", "engine": "MergeTree", "total_rows": "1200", "total_bytes": "40960"}]
        server = FakeClickHouseServer({"SELECT name, engine": httpx.Response(200, json={"data": tables})})
        client = await _connected(config, server)

        result = await client.list_tables()

        assert result == tables
        assert server.requests[-1].url.params["param_database"] == "analytics"
        await client.close()

    @pytest.mark.asyncio
    async def test_describe_table(self, config):
        columns = [{"name": "id", "type": "UInt64", "default_type": "", "default_expression": "", "comment": ""}]
        server = FakeClickHouseServer({"DESCRIBE TABLE": httpx.Response(200, json={"data": columns})})
        client = await _connected(config, server)

        assert await client.describe_table("daily_worker_summary") == columns
        assert server.requests[-1].content.decode() == "DESCRIBE TABLE daily_worker_summary FORMAT JSON"
        await client.close()

    @pytest.mark.asyncio
    async def test_describe_rejects_non_identifier(self, config):
        server = FakeClickHouseServer()
        client = await _connected(config, server)
        sent_before = len(server.requests)

        with pytest.raises(ClickHouseQueryError):
            await client.describe_table("x; DROP TABLE y")
        assert len(server.requests) == sent_before
        await client.close()

    @pytest.mark.asyncio
    async def test_introspection_error_raises(self, config):
        server = FakeClickHouseServer({"DESCRIBE TABLE": httpx.Response(404, text="Table analytics.nope does not exist")})
        client = await _connected(config, server)

        with pytest.raises(ClickHouseQueryError) as exc_info:
            await client.describe_table("nope")
        assert "does not exist" in exc_info.value.message
        await client.close()
