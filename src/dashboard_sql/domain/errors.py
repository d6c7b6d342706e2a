"""
Custom exception hierarchy for the dashboard-sql system.

This module defines the exception hierarchy with:
- Consistent error codes for API responses and pipeline results
- HTTP status code mappings for FastAPI
- Detailed error messages for debugging

Exception Categories:
- 4xx Client Errors: BadRequestError, NotFoundError
- 5xx Server Errors: DatabaseError, LLMError, SchemaError, etc.
- Pipeline outcomes: OutOfScopeRequestError ... CorrectionExecutionError

Pipeline outcome errors are not raised across the service boundary; the
orchestrator turns them into the `error` block of a PipelineResult via
to_dict(). QueryGenerationError is the one raised internally, by the
generator, and caught by the orchestrator.

Usage:
    raise ClickHouseConnectionError("Failed to reach ClickHouse")
    raise NotFoundError("Table not found", details={"table_name": "orders"})
"""

from typing import Any, Dict, Optional


class DashboardSQLException(Exception):
    """
    Base exception for all dashboard-sql errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable error code (e.g., "DATABASE_CONNECTION_ERROR")
        http_status: HTTP status code to return (default: 500)
        details: Optional dictionary with additional error context
    """

    error_code: str = "INTERNAL_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
        http_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        if http_status:
            self.http_status = http_status

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result: Dict[str, Any] = {
            "error_code": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Client Errors (4xx)
# =============================================================================


class BadRequestError(DashboardSQLException):
    """
    Raised when the request is malformed or invalid.

    HTTP Status: 400 Bad Request

    Examples:
        - Table name that is not a plain identifier
    """

    error_code = "BAD_REQUEST"
    http_status = 400


class NotFoundError(DashboardSQLException):
    """
    Raised when a requested resource is not found.

    HTTP Status: 404 Not Found

    Examples:
        - Table not in the schema catalog
    """

    error_code = "NOT_FOUND"
    http_status = 404


# =============================================================================
# Configuration / Schema Errors (5xx)
# =============================================================================


class ConfigurationError(DashboardSQLException):
    """
    Raised when configuration is invalid or missing.

    Examples:
        - OpenRouter API key not set
    """

    error_code = "CONFIGURATION_ERROR"
    http_status = 500


class SchemaError(DashboardSQLException):
    """
    Raised when the schema catalog cannot be loaded.

    Examples:
        - Catalog YAML missing or unreadable
        - Table without columns
    """

    error_code = "SCHEMA_ERROR"
    http_status = 500


# =============================================================================
# Database Errors (5xx)
# =============================================================================


class DatabaseError(DashboardSQLException):
    """
    Base class for ClickHouse-related errors.

    HTTP Status: 503 Service Unavailable
    """

    error_code = "DATABASE_ERROR"
    http_status = 503


class ClickHouseConnectionError(DatabaseError):
    """
    Raised when ClickHouse cannot be reached.

    Examples:
        - Connection refused or timed out
        - Authentication failure on ping
    """

    error_code = "DATABASE_CONNECTION_ERROR"
    http_status = 503


class ClickHouseQueryError(DatabaseError):
    """
    Raised when an introspection or table exploration query fails.

    Generated and /api/query statements never raise this; their errors
    come back as text.
    """

    error_code = "DATABASE_QUERY_ERROR"
    http_status = 500


# =============================================================================
# LLM Errors (5xx)
# =============================================================================


class LLMError(DashboardSQLException):
    """
    Raised when LLM operations fail.

    HTTP Status: 503 Service Unavailable

    Examples:
        - LLM API unreachable
        - Input larger than the configured limit
    """

    error_code = "LLM_ERROR"
    http_status = 503


class ToolExecutionError(LLMError):
    """
    Raised when the model's tool call is rejected.

    Examples:
        - Arguments do not match the tool's declared shape
        - The tool's executor refused the payload (non-SELECT, wrong table)
    """

    error_code = "TOOL_EXECUTION_ERROR"
    http_status = 502


# =============================================================================
# Pipeline Outcomes
# =============================================================================


class OutOfScopeRequestError(DashboardSQLException):
    """
    Request asks for data the catalog does not contain.

    Recorded when the domain guard trips. No model or database call has
    been made at that point.
    """

    error_code = "OUT_OF_SCOPE_REQUEST"
    http_status = 422


class QueryGenerationError(DashboardSQLException):
    """
    Raised when no query could be generated.

    Examples:
        - Missing message or visualization kind
        - Unknown visualization kind or target table
        - Tool call rejected by its executor
        - Free-text reply without a SELECT statement
    """

    error_code = "QUERY_GENERATION_ERROR"
    http_status = 500


class QueryValidationError(DashboardSQLException):
    """
    Generated query references an identifier outside the active column set.

    Recorded for diagnostics only; execution still decides.
    """

    error_code = "QUERY_VALIDATION_ERROR"
    http_status = 422


class QueryExecutionError(DashboardSQLException):
    """
    ClickHouse rejected a query, generated or sent to /api/query.

    The store's error text is kept verbatim in details["store_error"].
    """

    error_code = "QUERY_EXECUTION_ERROR"
    http_status = 500


class CorrectionUnfixableError(DashboardSQLException):
    """
    The corrector declined to repair a failed query.

    Details carry error_kind and alternatives for the caller.
    """

    error_code = "CORRECTION_UNFIXABLE"
    http_status = 422


class CorrectionExecutionError(DashboardSQLException):
    """
    The corrected query failed as well.

    Details carry both error texts.
    """

    error_code = "CORRECTION_EXECUTION_ERROR"
    http_status = 500


class PipelineStateError(DashboardSQLException):
    """
    Raised on an illegal state machine transition.

    Indicates a programming error, never a user error.
    """

    error_code = "PIPELINE_STATE_ERROR"
    http_status = 500


# =============================================================================
# Service Unavailable (5xx)
# =============================================================================


class ServiceUnavailableError(DashboardSQLException):
    """
    Raised when a required service is not available.

    HTTP Status: 503 Service Unavailable

    Examples:
        - ClickHouse client not connected
        - LLM client not initialized
    """

    error_code = "SERVICE_UNAVAILABLE"
    http_status = 503
