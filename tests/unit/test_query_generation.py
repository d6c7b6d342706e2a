"""
Unit tests for QueryGenerationRepository.

The fake LLM client runs the real tool executor on the canned arguments, so
these tests cover the tool gate as well as the repository.
"""

import pytest

from dashboard_sql.domain.base_enums import VisualizationKind
from dashboard_sql.domain.errors import LLMError, QueryGenerationError
from dashboard_sql.domain.query_models import GenerationRequest
from dashboard_sql.repositories.query_generation import (
    GENERATE_TOOL_NAME,
    QueryGenerationRepository,
    build_generation_tool,
    extract_statement,
)

from fakes import FakeLLMClient, tool_payload

TABLE = "daily_worker_summary"


def _request(message="Show total hours by staff", kind="table", table=TABLE) -> GenerationRequest:
    return GenerationRequest(user_message=message, visualization_kind=kind, target_table=table)


def _repository(catalog, reply) -> tuple:
    llm = FakeLLMClient({GENERATE_TOOL_NAME: reply})
    return QueryGenerationRepository(llm, catalog), llm


class TestToolPath:

    @pytest.mark.asyncio
    async def test_tool_payload_becomes_generated_query(self, catalog):
        sql = "SELECT staff_name, SUM(total_work_hours) FROM daily_worker_summary GROUP BY staff_name"
        repo, llm = _repository(catalog, tool_payload(sql, columns=["staff_name", "SUM(total_work_hours)"]))

        generated = await repo.generate(_request())

        assert generated.sql == sql
        assert generated.columns == ["staff_name", "SUM(total_work_hours)"]
        assert generated.visualization_kind is VisualizationKind.TABLE
        assert generated.is_fallback is False
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_prompt_carries_request_and_schema(self, catalog):
        repo, llm = _repository(catalog, tool_payload("SELECT staff_name FROM daily_worker_summary"))

        await repo.generate(_request(message="Average attendance rate", kind="kpi"))

        call = llm.calls[0]
        assert '"Average attendance rate"' in call["prompt"]
        assert "kpi" in call["prompt"]
        assert "MANDATORY: Use AS aliases" in call["prompt"]
        assert "### TABLE: daily_worker_summary" in call["instructions"]

    @pytest.mark.asyncio
    async def test_non_kpi_prompt_forbids_aliases(self, catalog):
        repo, llm = _repository(catalog, tool_payload("SELECT staff_name FROM daily_worker_summary"))

        await repo.generate(_request(kind=VisualizationKind.BAR))

        assert "NEVER use column aliases" in llm.calls[0]["prompt"]

    @pytest.mark.asyncio
    async def test_query_is_trimmed(self, catalog):
        repo, _ = _repository(catalog, tool_payload("  SELECT staff_name FROM daily_worker_summary \n"))
        generated = await repo.generate(_request())
        assert generated.sql == "SELECT staff_name FROM daily_worker_summary"


class TestToolGate:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", [
        "SELECT staff_name, payment FROM daily_worker_summary",
        "SELECT SUM(Salary) FROM daily_worker_summary",
        "SELECT avg(hourly_wage) FROM daily_worker_summary",
    ])
    async def test_financial_columns_rejected(self, catalog, query):
        repo, _ = _repository(catalog, tool_payload(query))
        with pytest.raises(QueryGenerationError) as exc_info:
            await repo.generate(_request())
        assert "Financial columns are not available" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_write_statement_rejected(self, catalog):
        repo, _ = _repository(catalog, tool_payload("DELETE FROM daily_worker_summary WHERE 1"))
        with pytest.raises(QueryGenerationError) as exc_info:
            await repo.generate(_request())
        assert exc_info.value.message == "Only SELECT queries are allowed"

    @pytest.mark.asyncio
    async def test_missing_target_table_rejected(self, catalog):
        repo, _ = _repository(catalog, tool_payload("SELECT project_name FROM client_projects"))
        with pytest.raises(QueryGenerationError) as exc_info:
            await repo.generate(_request())
        assert exc_info.value.message == "Query must use the daily_worker_summary table"

    @pytest.mark.asyncio
    async def test_empty_columns_rejected(self, catalog):
        payload = tool_payload("SELECT staff_name FROM daily_worker_summary")
        payload["columns"] = []
        repo, _ = _repository(catalog, payload)
        with pytest.raises(QueryGenerationError):
            await repo.generate(_request())

    def test_gate_accepts_with_statement(self):
        tool = build_generation_tool(TABLE)
        payload = tool.run(tool_payload("WITH t AS (SELECT staff_id FROM daily_worker_summary) SELECT count() FROM t"))
        assert payload["query"].startswith("WITH")


class TestFallback:

    @pytest.mark.asyncio
    async def test_fenced_block_extracted(self, catalog):
        text = "Here you go:\n```sql\nSELECT staff_name\nFROM daily_worker_summary;\n```\nExplanation: names."
        repo, _ = _repository(catalog, text)

        generated = await repo.generate(_request())

        assert generated.sql == "SELECT staff_name FROM daily_worker_summary"
        assert generated.columns == ["*"]
        assert generated.is_fallback is True
        assert generated.explanation == "Generated query from LLM response"

    @pytest.mark.asyncio
    async def test_bare_select_extracted(self, catalog):
        text = "SELECT staff_name FROM daily_worker_summary LIMIT 5\n\nThis lists five names."
        repo, _ = _repository(catalog, text)
        generated = await repo.generate(_request())
        assert generated.sql == "SELECT staff_name FROM daily_worker_summary LIMIT 5"

    @pytest.mark.asyncio
    async def test_text_without_statement_fails(self, catalog):
        repo, _ = _repository(catalog, "I cannot answer that.")
        with pytest.raises(QueryGenerationError) as exc_info:
            await repo.generate(_request())
        assert exc_info.value.message == "LLM response did not contain a SQL statement"

    @pytest.mark.asyncio
    async def test_fenced_write_statement_fails(self, catalog):
        repo, _ = _repository(catalog, "```sql\nDROP TABLE daily_worker_summary\n```")
        with pytest.raises(QueryGenerationError):
            await repo.generate(_request())

    def test_extract_statement_none_for_empty(self):
        assert extract_statement("") is None

    def test_extract_statement_stops_at_semicolon(self):
        assert extract_statement("Query: SELECT 1; SELECT 2") == "SELECT 1"


class TestInputErrors:

    @pytest.mark.asyncio
    async def test_empty_message(self, catalog):
        repo, llm = _repository(catalog, tool_payload("SELECT 1"))
        with pytest.raises(QueryGenerationError) as exc_info:
            await repo.generate(_request(message="   "))
        assert exc_info.value.message == "User message and card type are required"
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_missing_kind(self, catalog):
        repo, llm = _repository(catalog, tool_payload("SELECT 1"))
        with pytest.raises(QueryGenerationError):
            await repo.generate(_request(kind=None))
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_unknown_kind(self, catalog):
        repo, llm = _repository(catalog, tool_payload("SELECT 1"))
        with pytest.raises(QueryGenerationError) as exc_info:
            await repo.generate(_request(kind="scatter"))
        assert exc_info.value.message.startswith("Invalid card type. Must be one of: table, bar, line, pie, map, kpi")
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_unknown_table(self, catalog):
        repo, llm = _repository(catalog, tool_payload("SELECT 1"))
        with pytest.raises(QueryGenerationError) as exc_info:
            await repo.generate(_request(table="orders"))
        assert exc_info.value.message == "Table orders not found in schema"
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_llm_failure_wrapped(self, catalog):
        repo, _ = _repository(catalog, LLMError("LLM invocation failed: timeout"))
        with pytest.raises(QueryGenerationError) as exc_info:
            await repo.generate(_request())
        assert exc_info.value.details["cause"] == "LLM_ERROR"
