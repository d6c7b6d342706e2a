"""
API request models for the dashboard-sql system.

These models define the structure for incoming API requests,
ensuring type safety and validation at API boundaries.

All fields include descriptions that appear in Swagger/OpenAPI documentation.
"""

from pydantic import BaseModel, Field
from typing import Optional

from .base_enums import VisualizationKind


class ChatRequest(BaseModel):
    """
    Request model for turning a dashboard question into data.

    The card type decides the shape of the generated query: number of
    columns, aliasing rules and row limits.
    """

    message: str = Field(
        ...,
        description="Natural language request. "
                    "Example: 'Show total hours by staff'",
        min_length=1,
        max_length=2000,
        json_schema_extra={"example": "Show total hours by staff"}
    )
    card_type: VisualizationKind = Field(
        ...,
        description="Dashboard card the result feeds: table, bar, line, pie, map or kpi.",
        json_schema_extra={"example": "table"}
    )
    table_name: Optional[str] = Field(
        default=None,
        description="Table the query must use. "
                    "If not provided, uses the default table from configuration.",
        json_schema_extra={"example": "daily_worker_summary"}
    )


class QueryRequest(BaseModel):
    """Request model for running a hand-written read-only statement."""

    query: str = Field(
        ...,
        description="ClickHouse statement starting with SELECT or WITH; no FORMAT clause",
        min_length=1,
        max_length=20000,
        json_schema_extra={"example": "SELECT staff_name, count() FROM daily_worker_summary GROUP BY staff_name"}
    )
