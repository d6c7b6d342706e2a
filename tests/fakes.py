"""
Test doubles for the two external collaborators.

FakeLLMClient and FakeClickHouseClient expose the same methods the
repositories call (invoke_with_tool / run_read_only_query), return canned
values and record calls, so the pipeline can be driven deterministically
without network.
"""

from collections import deque
from typing import Any, Dict, List, Optional, Union

from dashboard_sql.domain.tools import ModelTool, ToolInvocation
from dashboard_sql.infrastructure.clickhouse_client import StoreQueryResult

# A canned reply: tool arguments (dict), free text (str) or an exception to raise
CannedReply = Union[Dict[str, Any], str, Exception]


class FakeLLMClient:
    """Returns one canned reply per tool name and records every call."""

    def __init__(self, replies: Optional[Dict[str, CannedReply]] = None):
        self.replies: Dict[str, CannedReply] = dict(replies or {})
        self.calls: List[Dict[str, Any]] = []

    def is_connected(self) -> bool:
        return True

    async def invoke_with_tool(self, instructions: str, prompt: str, tool: ModelTool) -> ToolInvocation:
        self.calls.append({"tool": tool.name, "instructions": instructions, "prompt": prompt})

        reply = self.replies[tool.name]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return ToolInvocation(tool_name=tool.name, text=reply)
        return ToolInvocation(tool_name=tool.name, payload=tool.run(reply))

    def calls_for(self, tool_name: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["tool"] == tool_name]


class FakeClickHouseClient:
    """Pops one canned StoreQueryResult (or exception) per query and records the SQL."""

    def __init__(self, results: Optional[List[Union[StoreQueryResult, Exception]]] = None):
        self.results = deque(results or [])
        self.queries: List[str] = []

    def is_connected(self) -> bool:
        return True

    async def run_read_only_query(self, sql: str) -> StoreQueryResult:
        self.queries.append(sql)
        result = self.results.popleft()
        if isinstance(result, Exception):
            raise result
        return result

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "connected": True}


class FakeIntrospectionClient(FakeClickHouseClient):
    """Adds canned system.tables and DESCRIBE TABLE answers; queued results still serve run_read_only_query."""

    DEFAULT_COLUMNS = [{"name": "id", "type": "UInt64", "default_type": "", "default_expression": "", "comment": "Row ID"}]

    def __init__(
        self,
        results: Optional[List[Union[StoreQueryResult, Exception]]] = None,
        columns: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(results)
        self.columns = columns if columns is not None else self.DEFAULT_COLUMNS

    async def list_tables(self) -> List[Dict[str, Any]]:
        return [{"name": "daily_worker_summary", "engine": "MergeTree", "total_rows": "1200", "total_bytes": None}]

    async def describe_table(self, table_name: str) -> List[Dict[str, Any]]:
        return self.columns


def tool_payload(query: str, card_type: str = "table", columns: Optional[List[str]] = None, explanation: str = "Test query") -> Dict[str, Any]:
    """Arguments the model would send to generate_clickhouse_query."""
    return {
        "query": query,
        "explanation": explanation,
        "card_type": card_type,
        "columns": columns or ["staff_name", "total_hours"],
    }


def correction_payload(
    can_correct: bool,
    corrected_query: Optional[str] = None,
    error_kind: str = "column_not_found",
    alternatives: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Arguments the model would send to correct_clickhouse_query."""
    return {
        "can_correct": can_correct,
        "corrected_query": corrected_query,
        "error_kind": error_kind,
        "explanation": "Replaced the unknown identifier",
        "user_friendly_message": "The query referenced a column that does not exist",
        "alternatives": alternatives,
    }

