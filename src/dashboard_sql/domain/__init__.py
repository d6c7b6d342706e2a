"""
Domain package for the dashboard-sql system.

This package contains the domain models, enums, errors and value objects
used throughout the application for type safety and validation.
"""

from .base_enums import (
    CorrectionErrorKind,
    PathTaken,
    PipelineStage,
    VisualizationKind,
)
from .schema_nodes import ColumnSchema, TableRelationship, TableSchema
from .query_models import (
    CorrectionOutcome,
    ExecutionFailure,
    ExecutionOutcome,
    ExecutionSuccess,
    GeneratedQuery,
    GenerationRequest,
    InvalidQuery,
    ValidationOutcome,
    ValidQuery,
)
from .pipeline import PipelineErrorDetail, PipelineMetrics, PipelineResult, PipelineState
from .requests import ChatRequest
from .responses import ChatResponse, ErrorResponse, HealthResponse

__all__ = [
    # Enums
    "CorrectionErrorKind",
    "PathTaken",
    "PipelineStage",
    "VisualizationKind",

    # Schema
    "ColumnSchema",
    "TableRelationship",
    "TableSchema",

    # Stage values
    "CorrectionOutcome",
    "ExecutionFailure",
    "ExecutionOutcome",
    "ExecutionSuccess",
    "GeneratedQuery",
    "GenerationRequest",
    "InvalidQuery",
    "ValidationOutcome",
    "ValidQuery",

    # Pipeline
    "PipelineErrorDetail",
    "PipelineMetrics",
    "PipelineResult",
    "PipelineState",

    # API
    "ChatRequest",
    "ChatResponse",
    "ErrorResponse",
    "HealthResponse",
]
