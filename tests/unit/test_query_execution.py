"""
Unit tests for QueryExecutionRepository.
"""

import pytest

from dashboard_sql.domain.errors import ClickHouseConnectionError
from dashboard_sql.domain.query_models import ExecutionFailure, ExecutionSuccess
from dashboard_sql.infrastructure.clickhouse_client import READ_ONLY_REJECTION, StoreQueryResult
from dashboard_sql.repositories.query_execution import QueryExecutionRepository

from fakes import FakeClickHouseClient


class TestQueryExecution:

    @pytest.mark.asyncio
    async def test_success_returns_rows(self):
        rows = [{"staff_name": "Asha", "hours": 41.5}, {"staff_name": "Ben", "hours": 38.0}]
        store = FakeClickHouseClient([StoreQueryResult(rows=rows)])

        outcome = await QueryExecutionRepository(store).execute("SELECT staff_name FROM daily_worker_summary")

        assert isinstance(outcome, ExecutionSuccess)
        assert outcome.rows == rows
        assert outcome.row_count == 2
        assert outcome.execution_ms >= 0
        assert store.queries == ["SELECT staff_name FROM daily_worker_summary"]

    @pytest.mark.asyncio
    async def test_store_error_text_is_verbatim(self):
        error = "Code: 47. DB::Exception: Unknown identifier 'WEEK' in scope SELECT WEEK"
        store = FakeClickHouseClient([StoreQueryResult(error=error)])

        outcome = await QueryExecutionRepository(store).execute("SELECT WEEK FROM daily_worker_summary")

        assert isinstance(outcome, ExecutionFailure)
        assert outcome.error_text == error

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sql", [
        "DELETE FROM daily_worker_summary",
        "INSERT INTO daily_worker_summary VALUES (1)",
        "DROP TABLE daily_worker_summary",
        "",
    ])
    async def test_write_statements_never_reach_the_store(self, sql):
        store = FakeClickHouseClient()

        outcome = await QueryExecutionRepository(store).execute(sql)

        assert isinstance(outcome, ExecutionFailure)
        assert outcome.error_text == READ_ONLY_REJECTION
        assert store.queries == []

    @pytest.mark.asyncio
    async def test_database_error_becomes_failure(self):
        store = FakeClickHouseClient([ClickHouseConnectionError("ClickHouse client is not connected")])

        outcome = await QueryExecutionRepository(store).execute("SELECT 1")

        assert isinstance(outcome, ExecutionFailure)
        assert outcome.error_text == "ClickHouse client is not connected"

    @pytest.mark.asyncio
    async def test_empty_result_is_success(self):
        store = FakeClickHouseClient([StoreQueryResult(rows=[])])

        outcome = await QueryExecutionRepository(store).execute("WITH x AS (SELECT 1) SELECT * FROM x WHERE 0")

        assert isinstance(outcome, ExecutionSuccess)
        assert outcome.row_count == 0
