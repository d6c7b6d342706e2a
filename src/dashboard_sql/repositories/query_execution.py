"""
Query Execution Repository.

Runs a generated (or corrected) statement against ClickHouse and reports
the outcome as a value instead of raising.

Safety Features:
- Read-only gate: statements not starting with SELECT/WITH are refused here,
  before the client's own check and the server's readonly=1 setting
- Verbatim errors: the store's error text is passed through unchanged so the
  corrector sees exactly what ClickHouse complained about

Architecture Notes:
- This is a REPOSITORY (data access layer)
- Uses injected ClickHouseClient for the HTTP round trip
- Returns ExecutionSuccess / ExecutionFailure with wall time in milliseconds
"""

from datetime import datetime, timezone

from dashboard_sql.domain.errors import DatabaseError
from dashboard_sql.domain.query_models import ExecutionFailure, ExecutionOutcome, ExecutionSuccess
from dashboard_sql.infrastructure.clickhouse_client import READ_ONLY_REJECTION, ClickHouseClient
from dashboard_sql.utils.logging import get_module_logger
from dashboard_sql.utils.sql_text import is_read_only_statement
from dashboard_sql.utils.tracing import current_trace_id

logger = get_module_logger()


class QueryExecutionRepository:
    """
    Repository for query execution.

    One store call per execute(); no retries.
    """

    def __init__(self, clickhouse_client: ClickHouseClient):
        self.clickhouse_client = clickhouse_client

    async def execute(self, sql: str) -> ExecutionOutcome:
        """
        Execute one statement.

        Args:
            sql: Statement to run

        Returns:
            ExecutionSuccess with rows, or ExecutionFailure with the store's error text
        """
        trace_id = current_trace_id()

        if not is_read_only_statement(sql):
            logger.warning("Execution refused: statement is not read-only", sql=sql, trace_id=trace_id)
            return ExecutionFailure(error_text=READ_ONLY_REJECTION, execution_ms=0.0)

        logger.info("Executing query", sql_length=len(sql), trace_id=trace_id)

        start_time = datetime.now(timezone.utc)
        try:
            result = await self.clickhouse_client.run_read_only_query(sql)
            error_text = result.error
        except DatabaseError as e:
            result = None
            error_text = e.message
        execution_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000

        if error_text is not None or result is None:
            logger.info(
                "Query execution failed",
                error=error_text,
                execution_ms=round(execution_ms, 2),
                trace_id=trace_id,
            )
            return ExecutionFailure(error_text=error_text or "Unknown ClickHouse error", execution_ms=execution_ms)

        logger.info(
            "Query execution successful",
            row_count=len(result.rows),
            execution_ms=round(execution_ms, 2),
            trace_id=trace_id,
        )
        return ExecutionSuccess(rows=result.rows, row_count=len(result.rows), execution_ms=execution_ms)
