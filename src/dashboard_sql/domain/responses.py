"""
API response models for the dashboard-sql system.

These models define the structure for all outgoing API responses,
ensuring consistent response formats and type safety.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from .pipeline import PipelineResult
from .schema_nodes import TableSchema


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str = Field(..., description="Health status", examples=["healthy", "degraded"])
    timestamp: datetime = Field(..., description="Health check timestamp")
    version: str = Field(..., description="Application version")
    database_status: str = Field(..., description="ClickHouse connection status")
    llm_service_status: str = Field(..., description="LLM service status")
    catalog_tables: int = Field(..., description="Number of tables in the schema catalog")


class ErrorResponse(BaseModel):
    """Response model for error responses."""

    error: str = Field(..., description="Error type or category")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Additional error details"
    )
    trace_id: Optional[str] = Field(
        default=None,
        description="Trace ID for debugging"
    )
    timestamp: datetime = Field(..., description="Error timestamp")


class ChatResponse(PipelineResult):
    """Pipeline result returned by POST /api/chat, tagged with the request's trace ID."""

    trace_id: str = Field(..., description="Trace ID for debugging")

    @classmethod
    def from_result(cls, result: PipelineResult, trace_id: str) -> "ChatResponse":
        return cls(trace_id=trace_id, **result.model_dump())


class SchemaListResponse(BaseModel):
    """All cataloged tables, in catalog order."""

    trace_id: str = Field(..., description="Trace ID for debugging")
    default_table: str = Field(..., description="Table used when a request names none")
    tables: Dict[str, TableSchema] = Field(..., description="Table name -> schema")


class TableSchemaResponse(BaseModel):
    """One cataloged table."""

    trace_id: str = Field(..., description="Trace ID for debugging")
    table: TableSchema = Field(..., description="Table schema")


class StoreTable(BaseModel):
    """A table as reported by ClickHouse system.tables."""

    name: str = Field(..., description="Table name")
    engine: Optional[str] = Field(default=None, description="Table engine, e.g. MergeTree")
    total_rows: Optional[int] = Field(default=None, description="Approximate row count")
    total_bytes: Optional[int] = Field(default=None, description="Approximate size on disk")


class StoreTableListResponse(BaseModel):
    """Live table list from ClickHouse."""

    trace_id: str = Field(..., description="Trace ID for debugging")
    database: str = Field(..., description="ClickHouse database that was listed")
    tables: List[StoreTable] = Field(..., description="Tables in name order")


class StoreColumn(BaseModel):
    """A column as reported by DESCRIBE TABLE."""

    name: str = Field(..., description="Column name")
    type: str = Field(..., description="ClickHouse data type")
    default_type: Optional[str] = Field(default=None, description="DEFAULT / MATERIALIZED / ALIAS")
    default_expression: Optional[str] = Field(default=None, description="Default expression")
    comment: Optional[str] = Field(default=None, description="Column comment")


class StoreTableSchemaResponse(BaseModel):
    """Live column list from ClickHouse."""

    trace_id: str = Field(..., description="Trace ID for debugging")
    table_name: str = Field(..., description="Described table")
    columns: List[StoreColumn] = Field(..., description="Columns in declaration order")


class ColumnStats(BaseModel):
    """Aggregates of one numeric column; values are whatever ClickHouse returned (64-bit ints arrive quoted)."""

    min_val: Any = Field(default=None, description="Smallest non-null value")
    max_val: Any = Field(default=None, description="Largest non-null value")
    avg_val: Any = Field(default=None, description="Mean of non-null values")
    sum_val: Any = Field(default=None, description="Sum of non-null values")


class TableAnalytics(BaseModel):
    """Row count and per-column statistics of one live table."""

    table_name: str = Field(..., description="Analysed table")
    total_rows: int = Field(..., ge=0, description="Exact row count")
    column_stats: Dict[str, ColumnStats] = Field(
        default_factory=dict,
        description="Column name -> statistics, for the first numeric columns"
    )
    skipped_columns: List[str] = Field(
        default_factory=list,
        description="Numeric columns whose statistics query failed"
    )


class TableAnalyticsResponse(TableAnalytics):
    """Response of GET /api/tables/{table_name}/analytics."""

    trace_id: str = Field(..., description="Trace ID for debugging")


class DistinctValuesResponse(BaseModel):
    """Distinct values of one column, as strings, for filter dropdowns."""

    trace_id: str = Field(..., description="Trace ID for debugging")
    table_name: str = Field(..., description="Queried table")
    column_name: str = Field(..., description="Queried column")
    values: List[str] = Field(..., description="Sorted distinct non-empty values")


class QueryResponse(BaseModel):
    """
    Result of POST /api/query.

    Like /api/chat, a statement ClickHouse rejects is not an HTTP error:
    success is false and error carries QUERY_EXECUTION_ERROR with the
    store's text in details.store_error.
    """

    trace_id: str = Field(..., description="Trace ID for debugging")
    success: bool = Field(..., description="Whether ClickHouse ran the statement")
    query: str = Field(..., description="Statement as received")
    data: Optional[List[Dict[str, Any]]] = Field(default=None, description="Result rows (success only)")
    row_count: int = Field(default=0, ge=0, description="Number of rows returned")
    execution_ms: float = Field(default=0.0, ge=0, description="Wall time of the store call")
    error: Optional[Dict[str, Any]] = Field(default=None, description="error_code, message, details (failure only)")
