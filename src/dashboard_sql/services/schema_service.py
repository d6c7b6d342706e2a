"""
Schema Service for catalog and live table introspection.

Catalog lookups answer from the in-memory SchemaCatalog. Live lookups go to
ClickHouse (system.tables / DESCRIBE TABLE) and need a connected client, as
do the exploration helpers used by dashboard filters: table analytics,
distinct column values and caller-supplied read-only queries.

Every identifier spliced into SQL here is checked with is_plain_identifier
first; caller-supplied statements go through the same read-only gate as
generated ones.
"""

from typing import Dict, List, Optional, Tuple

from ..domain.errors import (
    BadRequestError,
    ClickHouseQueryError,
    NotFoundError,
    QueryExecutionError,
    ServiceUnavailableError,
)
from ..domain.query_models import ExecutionFailure, ExecutionOutcome
from ..domain.responses import ColumnStats, StoreColumn, StoreTable, TableAnalytics
from ..domain.schema_nodes import TableSchema
from ..domain.types import Rows
from ..infrastructure.clickhouse_client import READ_ONLY_REJECTION, ClickHouseClient
from ..repositories.query_execution import QueryExecutionRepository
from ..repositories.schema_catalog import SchemaCatalog
from ..utils.logging import get_module_logger
from ..utils.sql_text import is_plain_identifier, is_read_only_statement, leading_keyword
from ..utils.tracing import current_trace_id


logger = get_module_logger()

# Substrings of ClickHouse type names that mark a column as numeric (covers UInt*, Nullable(...))
NUMERIC_TYPE_MARKERS = ("Int", "Float", "Decimal")
MAX_STATS_COLUMNS = 5

DEFAULT_DISTINCT_LIMIT = 100
MAX_DISTINCT_LIMIT = 1000


def _optional_int(value) -> Optional[int]:
    # FORMAT JSON quotes 64-bit integers
    if value is None or value == "":
        return None
    return int(value)


class SchemaService:
    """
    Service for schema-related business logic.

    Usage:
        schema_service = SchemaService(get_schema_catalog(), clickhouse_client)
        tables = schema_service.list_schemas()
        live_tables = await schema_service.list_store_tables()
    """

    def __init__(
        self,
        catalog: SchemaCatalog,
        clickhouse_client: Optional[ClickHouseClient] = None,
    ):
        """
        Initialize schema service.

        Args:
            catalog: SchemaCatalog with the tables the pipeline may query
            clickhouse_client: Optional ClickHouseClient for live introspection
        """
        self.catalog = catalog
        self.clickhouse_client = clickhouse_client

    def list_schemas(self) -> Dict[str, TableSchema]:
        """All cataloged tables, in catalog order."""
        return {table.name: table for table in self.catalog.describe_all()}

    def describe_table(self, table_name: str) -> TableSchema:
        """
        Cataloged schema of one table.

        Raises:
            NotFoundError: If the table is not in the catalog
        """
        table = self.catalog.describe(table_name)
        if table is None:
            raise NotFoundError(
                f"Table '{table_name}' not found in schema catalog",
                details={"table_name": table_name, "available_tables": self.catalog.table_names}
            )
        return table

    async def list_store_tables(self) -> List[StoreTable]:
        """
        Tables that exist in the configured ClickHouse database.

        Raises:
            ServiceUnavailableError: If no ClickHouse client is connected
            ClickHouseQueryError: If the query fails
        """
        client = self._require_client()
        rows = await client.list_tables()

        logger.info("Fetched live table list", count=len(rows), trace_id=current_trace_id())

        return [
            StoreTable(
                name=row["name"],
                engine=row.get("engine"),
                total_rows=_optional_int(row.get("total_rows")),
                total_bytes=_optional_int(row.get("total_bytes")),
            )
            for row in rows
        ]

    async def describe_store_table(self, table_name: str) -> List[StoreColumn]:
        """
        Live column list of one ClickHouse table.

        Raises:
            BadRequestError: If the table name is not a plain identifier
            ServiceUnavailableError: If no ClickHouse client is connected
            ClickHouseQueryError: If the query fails (e.g. unknown table)
        """
        if not is_plain_identifier(table_name):
            raise BadRequestError(
                "Table name must contain only letters, digits and underscores",
                details={"table_name": table_name}
            )

        client = self._require_client()
        rows = await client.describe_table(table_name)

        logger.info(
            "Fetched live table schema",
            table_name=table_name,
            column_count=len(rows),
            trace_id=current_trace_id()
        )

        return [
            StoreColumn(
                name=row["name"],
                type=row["type"],
                default_type=row.get("default_type") or None,
                default_expression=row.get("default_expression") or None,
                comment=row.get("comment") or None,
            )
            for row in rows
        ]

    # =========================================================================
    # Live Data Exploration
    # =========================================================================

    async def table_analytics(self, table_name: str) -> TableAnalytics:
        """
        Row count plus min/max/avg/sum of the first numeric columns.

        A stats query that fails only drops its column (listed in
        skipped_columns); a failing row count fails the whole call.

        Raises:
            BadRequestError: If the table name is not a plain identifier
            ServiceUnavailableError: If no ClickHouse client is connected
            ClickHouseQueryError: If DESCRIBE TABLE or the row count fails
        """
        self._require_identifier("Table name", table_name)
        client = self._require_client()
        trace_id = current_trace_id()

        columns = await client.describe_table(table_name)
        numeric_columns = [
            column["name"] for column in columns
            if any(marker in column["type"] for marker in NUMERIC_TYPE_MARKERS)
        ][:MAX_STATS_COLUMNS]

        count_rows = await self._fetch(client, f"SELECT count() AS total_rows FROM {table_name}")
        total_rows = (_optional_int(count_rows[0].get("total_rows")) if count_rows else None) or 0

        column_stats: Dict[str, ColumnStats] = {}
        skipped: List[str] = []
        for column in numeric_columns:
            sql = (
                f"SELECT min({column}) AS min_val, max({column}) AS max_val, "
                f"avg({column}) AS avg_val, sum({column}) AS sum_val "
                f"FROM {table_name} WHERE {column} IS NOT NULL"
            )
            result = await client.run_read_only_query(sql)
            if not result.ok:
                logger.warning("Column statistics failed", column=column, error=result.error, trace_id=trace_id)
                skipped.append(column)
                continue
            column_stats[column] = ColumnStats(**result.rows[0]) if result.rows else ColumnStats()

        logger.info(
            "Computed table analytics",
            table_name=table_name,
            total_rows=total_rows,
            stats_columns=list(column_stats),
            skipped_columns=skipped,
            trace_id=trace_id
        )
        return TableAnalytics(
            table_name=table_name,
            total_rows=total_rows,
            column_stats=column_stats,
            skipped_columns=skipped,
        )

    async def distinct_values(self, table_name: str, column_name: str, limit: int = DEFAULT_DISTINCT_LIMIT) -> List[str]:
        """
        Distinct non-empty values of one column as strings, sorted, for filter dropdowns.

        Raises:
            BadRequestError: If a name is not a plain identifier or limit is out of range
            ServiceUnavailableError: If no ClickHouse client is connected
            ClickHouseQueryError: If the query fails (e.g. unknown column)
        """
        self._require_identifier("Table name", table_name)
        self._require_identifier("Column name", column_name)
        if not 1 <= limit <= MAX_DISTINCT_LIMIT:
            raise BadRequestError(
                f"limit must be between 1 and {MAX_DISTINCT_LIMIT}",
                details={"limit": limit}
            )
        client = self._require_client()

        rows = await self._fetch(
            client,
            f"SELECT DISTINCT toString({column_name}) AS value "
            f"FROM {table_name} "
            f"WHERE {column_name} IS NOT NULL AND toString({column_name}) != '' "
            f"ORDER BY value LIMIT {limit}"
        )
        return [row["value"] for row in rows]

    async def run_query(self, sql: str) -> Tuple[ExecutionOutcome, Optional[QueryExecutionError]]:
        """
        Run a caller-supplied read-only statement.

        Store errors are returned, not raised: the outcome is an
        ExecutionFailure and the second element the QueryExecutionError
        describing it.

        Raises:
            BadRequestError: If the statement does not start with SELECT or WITH
            ServiceUnavailableError: If no ClickHouse client is connected
        """
        if not is_read_only_statement(sql):
            raise BadRequestError(READ_ONLY_REJECTION, details={"keyword": leading_keyword(sql) or None})
        client = self._require_client()

        outcome = await QueryExecutionRepository(client).execute(sql)
        if isinstance(outcome, ExecutionFailure):
            return outcome, QueryExecutionError(
                "ClickHouse rejected the query",
                details={"store_error": outcome.error_text}
            )
        return outcome, None

    async def _fetch(self, client: ClickHouseClient, sql: str) -> Rows:
        result = await client.run_read_only_query(sql)
        if not result.ok:
            logger.error("ClickHouse exploration query failed", sql=sql, error=result.error, trace_id=current_trace_id())
            raise ClickHouseQueryError(result.error or "Unknown ClickHouse error", details={"sql": sql})
        return result.rows

    @staticmethod
    def _require_identifier(label: str, name: str) -> None:
        if not is_plain_identifier(name):
            raise BadRequestError(
                f"{label} must contain only letters, digits and underscores",
                details={"name": name}
            )

    def _require_client(self) -> ClickHouseClient:
        if self.clickhouse_client is None or not self.clickhouse_client.is_connected():
            raise ServiceUnavailableError("ClickHouse client not connected")
        return self.clickhouse_client
