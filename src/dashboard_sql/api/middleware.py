"""
HTTP middleware and exception handlers for the dashboard-sql API.

Two middleware functions wrap every request: one binds the trace ID the
pipeline logs with, the other times the request. Exceptions that escape a
route are turned into ErrorResponse bodies here.

Only infrastructure problems reach these handlers (bad path parameters,
unknown catalog tables, missing ClickHouse or LLM clients). Failures inside
the query pipeline are part of the chat result and come back as 200 with
success=false.

Usage in main.py:
    from .api.middleware import register_exception_handlers
    register_exception_handlers(app)
"""

import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..utils.logging import get_module_logger
from ..utils.tracing import generate_trace_id, current_trace_id, trace_scope
from ..domain.responses import ErrorResponse
from ..domain.errors import DashboardSQLException

logger = get_module_logger()

TRACE_HEADER = "X-Trace-ID"
PROCESS_TIME_HEADER = "X-Process-Time"

# error codes for plain HTTP errors raised by Starlette (unknown route, wrong method)
HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}

INTERNAL_ERROR_MESSAGE = "An internal server error occurred. Please try again later."


# =============================================================================
# Middleware Functions
# =============================================================================


async def trace_id_middleware(request: Request, call_next: Callable) -> Response:
    """
    Bind a trace ID for the duration of the request.

    A caller-supplied X-Trace-ID is reused so that dashboard clients can
    correlate their own logs; otherwise a fresh UUID is generated. The ID is
    echoed back in the response headers.
    """
    trace_id = request.headers.get(TRACE_HEADER) or generate_trace_id()

    with trace_scope(trace_id):
        response = await call_next(request)

    response.headers[TRACE_HEADER] = trace_id
    return response


async def logging_middleware(request: Request, call_next: Callable) -> Response:
    """Log each request with its status and duration, and expose the duration as X-Process-Time."""
    started = time.perf_counter()
    path = request.url.path

    logger.info(
        "HTTP request started",
        method=request.method,
        path=path,
        query=request.url.query or None,
        client_ip=request.client.host if request.client else None,
        trace_id=current_trace_id()
    )

    response = await call_next(request)

    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    response.headers[PROCESS_TIME_HEADER] = str(duration_ms)

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=path,
        status_code=response.status_code,
        duration_ms=duration_ms,
        trace_id=current_trace_id()
    )

    return response


# =============================================================================
# Exception Handlers
# =============================================================================


def _error_json(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None
) -> JSONResponse:
    """
    Serialize an ErrorResponse.

    Body shape:
    {
        "error": "not_found",
        "message": "Table 'orders' not found in schema catalog",
        "details": {...},
        "trace_id": "uuid",
        "timestamp": "ISO8601"
    }
    """
    body = ErrorResponse(
        error=error_code.lower(),
        message=message,
        details=details or None,
        trace_id=current_trace_id(),
        timestamp=datetime.now(timezone.utc)
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


def _log_http_error(request: Request, status_code: int, event: str, **fields: Any) -> None:
    # client mistakes are warnings, server-side problems are errors
    log = logger.warning if status_code < 500 else logger.error
    log(
        event,
        http_status=status_code,
        method=request.method,
        path=request.url.path,
        trace_id=current_trace_id(),
        **fields
    )


def _field_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    """Flatten pydantic errors to {field, message, type}; field skips the 'body' prefix."""
    flattened = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ())]
        if len(location) > 1 and location[0] in ("body", "query", "path"):
            location = location[1:]
        flattened.append({
            "field": ".".join(location),
            "message": error.get("msg", ""),
            "type": error.get("type", "")
        })
    return flattened


async def dashboard_sql_exception_handler(request: Request, exc: DashboardSQLException) -> JSONResponse:
    """Render a DashboardSQLException with its own status, code and details."""
    _log_http_error(
        request,
        exc.http_status,
        f"{type(exc).__name__}: {exc.message}",
        error_code=exc.error_code,
        details=exc.details
    )
    return _error_json(exc.http_status, exc.error_code, exc.message, exc.details)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 for request bodies that do not parse, e.g. an empty message or unknown card_type."""
    errors = _field_errors(exc)
    _log_http_error(request, 422, "Request validation failed", errors=errors)
    return _error_json(422, "VALIDATION_ERROR", "Request validation failed", {"errors": errors})


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Plain HTTP errors from routing, rendered in the same body shape."""
    error_code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    message = str(exc.detail) if exc.detail else f"HTTP {exc.status_code} error"

    _log_http_error(request, exc.status_code, f"HTTP {exc.status_code}: {message}", error_code=error_code)
    return _error_json(exc.status_code, error_code, message)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log the traceback, answer 500 without internals."""
    logger.error(
        "Unhandled exception occurred",
        error=str(exc),
        error_type=type(exc).__name__,
        method=request.method,
        path=request.url.path,
        trace_id=current_trace_id(),
        exc_info=True
    )
    return _error_json(500, "INTERNAL_ERROR", INTERNAL_ERROR_MESSAGE)


# =============================================================================
# Exception Handler Registration
# =============================================================================

# Most specific first; Starlette picks the handler by walking the exception MRO
_HANDLERS = (
    (DashboardSQLException, dashboard_sql_exception_handler),
    (RequestValidationError, validation_exception_handler),
    (StarletteHTTPException, http_exception_handler),
    (Exception, general_exception_handler),
)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach every handler above to the application."""
    for exc_class, handler in _HANDLERS:
        # add_exception_handler is typed for the base Exception signature
        app.add_exception_handler(exc_class, handler)  # type: ignore[arg-type]

    logger.info("Exception handlers registered", handlers=[exc_class.__name__ for exc_class, _ in _HANDLERS])


# =============================================================================
# OpenAPI Error Responses (for documentation)
# =============================================================================

# status -> (description, error, example message)
_ERROR_EXAMPLES = {
    400: ("Table name is not a plain identifier", "bad_request",
          "Table name must contain only letters, digits and underscores"),
    404: ("Table is not in the schema catalog", "not_found",
          "Table 'orders' not found in schema catalog"),
    422: ("Request body failed validation", "validation_error",
          "Request validation failed"),
    500: ("ClickHouse rejected an introspection query, or an unexpected error", "internal_error",
          INTERNAL_ERROR_MESSAGE),
    503: ("ClickHouse or the LLM service is not connected", "service_unavailable",
          "ClickHouse client not connected"),
}

ERROR_RESPONSES: Dict[int, Dict[str, Any]] = {
    status: {
        "description": description,
        "content": {
            "application/json": {
                "example": {
                    "error": error,
                    "message": message,
                    "trace_id": "550e8400-e29b-41d4-a716-446655440000",
                    "timestamp": "2024-01-15T10:30:00Z"
                }
            }
        }
    }
    for status, (description, error, message) in _ERROR_EXAMPLES.items()
}


def error_responses(*statuses: int) -> Dict[int, Dict[str, Any]]:
    """Subset of ERROR_RESPONSES for a route's `responses=` argument."""
    return {status: ERROR_RESPONSES[status] for status in statuses}
