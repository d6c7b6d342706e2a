"""
Main FastAPI application for the dashboard-sql system.

This module sets up the FastAPI application with proper logging,
tracing, and error handling middleware.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, Union

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware

from .utils.logging import configure_logging, get_module_logger
from .utils.tracing import get_trace_id
from .domain.requests import ChatRequest, QueryRequest
from .domain.responses import (
    ChatResponse,
    DistinctValuesResponse,
    HealthResponse,
    QueryResponse,
    SchemaListResponse,
    StoreTableListResponse,
    StoreTableSchemaResponse,
    TableAnalyticsResponse,
    TableSchemaResponse,
)
from .api.middleware import (
    trace_id_middleware,
    logging_middleware,
    register_exception_handlers,
    error_responses,
)
from .api.dependencies import (
    CatalogDep,
    SettingsDep,
    SchemaServiceDep,
    PipelineServiceDep,
    OptionalClickHouseClientDep,
    OptionalLLMClientDep,
)
from .config import get_settings
from .repositories.schema_catalog import get_schema_catalog
from .services.schema_service import DEFAULT_DISTINCT_LIMIT, MAX_DISTINCT_LIMIT
from .infrastructure.clickhouse_client import ClickHouseClient
from .infrastructure.llm_client import LLMClient

APP_VERSION = "0.1.0"

# Configure logging on module import
configure_logging()
logger = get_module_logger()


async def _connect(name: str, client: ClickHouseClient | LLMClient) -> None:
    # A failed connection leaves the client disconnected; /health reports it and /api/chat answers 503
    try:
        await client.connect()
        logger.info(f"{name} client connected successfully")
    except Exception as e:
        logger.error(f"Failed to connect {name} client: {e}", error_type=type(e).__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load settings and the catalog, connect ClickHouse and the LLM, close both on shutdown."""
    logger.info("Starting dashboard-sql API server", version=APP_VERSION)

    settings = get_settings()
    app.state.settings = settings

    # A broken catalog is fatal: nothing can be generated without it
    catalog = get_schema_catalog()
    app.state.catalog = catalog
    logger.info("Schema catalog loaded", tables=catalog.table_names, default_table=settings.pipeline.default_table)

    # Repositories and services are built per request in dependencies.py
    app.state.clickhouse_client = ClickHouseClient(settings.clickhouse)
    app.state.llm_client = LLMClient(settings.llm)
    await _connect("ClickHouse", app.state.clickhouse_client)
    await _connect("LLM", app.state.llm_client)

    yield

    logger.info("Shutting down dashboard-sql API server")
    await app.state.clickhouse_client.close()
    await app.state.llm_client.close()


# Create FastAPI application
app = FastAPI(
    title="Dashboard SQL API",
    description="Natural language to ClickHouse SQL for dashboard cards, with one automatic correction pass",
    version=APP_VERSION,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register middleware in correct order (last registered = first executed)
app.middleware("http")(logging_middleware)
app.middleware("http")(trace_id_middleware)

# Register all exception handlers (DashboardSQLException, ValidationError, HTTPException, etc.)
register_exception_handlers(app)


# API Routes
@app.get("/", tags=["Root"])
async def root(settings: SettingsDep) -> Dict[str, Union[str, None]]:
    """
    Root endpoint returning basic API information.

    **Response**: Dict with message, version, trace_id, log_level
    """
    trace_id = get_trace_id()
    logger.info("Root endpoint accessed", trace_id=trace_id)

    return {
        "message": "Dashboard SQL API",
        "version": APP_VERSION,
        "trace_id": trace_id,
        "log_level": settings.app.log_level
    }


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health(
    clickhouse_client: OptionalClickHouseClientDep,
    llm_client: OptionalLLMClientDep,
    catalog: CatalogDep,
) -> HealthResponse:
    """
    Report ClickHouse, LLM and catalog status.

    **Response Model**: `HealthResponse`
    - status: "healthy" only when ClickHouse answers /ping and the LLM client is connected, else "degraded"
    - database_status / llm_service_status: healthy, unhealthy or not_configured
    - catalog_tables: number of cataloged tables
    """
    database_status = (await clickhouse_client.health_check())["status"] if clickhouse_client else "not_configured"
    if llm_client is None:
        llm_status = "not_configured"
    else:
        llm_status = "healthy" if llm_client.is_connected() else "unhealthy"

    status = "healthy" if database_status == llm_status == "healthy" else "degraded"
    logger.info(
        "Health checked",
        status=status,
        database_status=database_status,
        llm_service_status=llm_status,
        trace_id=get_trace_id()
    )

    return HealthResponse(
        status=status,
        timestamp=datetime.now(timezone.utc),
        version=APP_VERSION,
        database_status=database_status,
        llm_service_status=llm_status,
        catalog_tables=len(catalog)
    )


# -------------------------
# Query Pipeline Endpoint
# -------------------------

@app.post(
    "/api/chat",
    response_model=ChatResponse,
    tags=["Pipeline"],
    responses=error_responses(422, 500, 503),
)
async def chat(
    request: ChatRequest,
    pipeline_service: PipelineServiceDep,
) -> ChatResponse:
    """
    Turn a dashboard question into rows from ClickHouse.

    1. **Guard**: out-of-scope requests (pay, salary, ...) are refused without a model call
    2. **Generation**: one LLM call through the generate_clickhouse_query tool
    3. **Validation**: static column check; near-miss names are rewritten
    4. **Execution**: read-only ClickHouse query
    5. **Correction**: on failure, one LLM repair call and one re-execution

    **Request Model**: `ChatRequest`
    - message: Natural language request (required)
    - card_type: table, bar, line, pie, map or kpi (required)
    - table_name: Target table (default: from config)

    **Response Model**: `ChatResponse`
    - success, data, row_count, sql, explanation, columns
    - original_sql / corrected_sql / original_error / corrected_error when a correction ran
    - error: error_code, message, error_kind, alternatives when success is false
    - metrics: generation_ms, execution_ms, correction_ms, total_ms, path_taken

    Pipeline failures answer 200 with success=false; only an unusable request
    (422) or missing backing service (503) produce an error status.
    """
    trace_id = get_trace_id()

    logger.info(
        "Chat request received",
        message_length=len(request.message),
        card_type=request.card_type.value,
        table_name=request.table_name,
        trace_id=trace_id,
    )

    result = await pipeline_service.process_request(
        user_message=request.message,
        visualization_kind=request.card_type,
        target_table=request.table_name,
    )

    logger.info(
        "Chat request completed",
        success=result.success,
        path_taken=result.metrics.path_taken.value,
        row_count=result.row_count,
        trace_id=trace_id,
    )

    return ChatResponse.from_result(result, trace_id)


# -------------------------
# Schema Catalog Endpoints
# -------------------------

@app.get("/api/schemas", response_model=SchemaListResponse, tags=["Schema Catalog"])
async def list_schemas(
    schema_service: SchemaServiceDep,
    settings: SettingsDep,
) -> SchemaListResponse:
    """
    List every table in the schema catalog with its columns.

    **Response Model**: `SchemaListResponse`
    - default_table: Table used when a chat request names none
    - tables: Table name -> TableSchema
    """
    trace_id = get_trace_id()
    tables = schema_service.list_schemas()

    logger.info("Schema catalog listed", table_count=len(tables), trace_id=trace_id)

    return SchemaListResponse(
        trace_id=trace_id,
        default_table=settings.pipeline.default_table,
        tables=tables,
    )


@app.get(
    "/api/schemas/{table_name}",
    response_model=TableSchemaResponse,
    tags=["Schema Catalog"],
    responses=error_responses(404),
)
async def get_schema(table_name: str, schema_service: SchemaServiceDep) -> TableSchemaResponse:
    """
    Get the cataloged schema of one table.

    **Possible Errors**:
    - 404: Table not in the catalog
    """
    trace_id = get_trace_id()
    table = schema_service.describe_table(table_name)

    logger.info("Catalog table described", table_name=table_name, trace_id=trace_id)

    return TableSchemaResponse(trace_id=trace_id, table=table)


# -------------------------
# Live ClickHouse Introspection
# -------------------------

@app.get(
    "/api/tables",
    response_model=StoreTableListResponse,
    tags=["ClickHouse"],
    responses=error_responses(500, 503),
)
async def list_tables(
    schema_service: SchemaServiceDep,
    settings: SettingsDep,
) -> StoreTableListResponse:
    """
    List tables in the configured ClickHouse database (system.tables).

    **Possible Errors**:
    - 500: ClickHouse rejected the introspection query
    - 503: ClickHouse not connected
    """
    trace_id = get_trace_id()
    tables = await schema_service.list_store_tables()

    return StoreTableListResponse(
        trace_id=trace_id,
        database=settings.clickhouse.database,
        tables=tables,
    )


@app.get(
    "/api/tables/{table_name}/schema",
    response_model=StoreTableSchemaResponse,
    tags=["ClickHouse"],
    responses=error_responses(400, 500, 503),
)
async def get_table_schema(table_name: str, schema_service: SchemaServiceDep) -> StoreTableSchemaResponse:
    """
    Describe one ClickHouse table (DESCRIBE TABLE).

    **Possible Errors**:
    - 400: Table name is not a plain identifier
    - 500: ClickHouse rejected the query (e.g. unknown table)
    - 503: ClickHouse not connected
    """
    trace_id = get_trace_id()
    columns = await schema_service.describe_store_table(table_name)

    return StoreTableSchemaResponse(
        trace_id=trace_id,
        table_name=table_name,
        columns=columns,
    )


@app.get(
    "/api/tables/{table_name}/analytics",
    response_model=TableAnalyticsResponse,
    tags=["ClickHouse"],
    responses=error_responses(400, 500, 503),
)
async def get_table_analytics(table_name: str, schema_service: SchemaServiceDep) -> TableAnalyticsResponse:
    """
    Row count plus min/max/avg/sum of the first five numeric columns.

    **Possible Errors**:
    - 400: Table name is not a plain identifier
    - 500: ClickHouse rejected DESCRIBE TABLE or the row count
    - 503: ClickHouse not connected
    """
    trace_id = get_trace_id()
    analytics = await schema_service.table_analytics(table_name)

    return TableAnalyticsResponse(trace_id=trace_id, **analytics.model_dump())


@app.get(
    "/api/tables/{table_name}/columns/{column_name}/values",
    response_model=DistinctValuesResponse,
    tags=["ClickHouse"],
    responses=error_responses(400, 500, 503),
)
async def get_distinct_values(
    table_name: str,
    column_name: str,
    schema_service: SchemaServiceDep,
    limit: int = Query(default=DEFAULT_DISTINCT_LIMIT, ge=1, le=MAX_DISTINCT_LIMIT),
) -> DistinctValuesResponse:
    """
    Distinct non-empty values of one column, sorted, as strings.

    **Possible Errors**:
    - 400: Table or column name is not a plain identifier
    - 422: limit outside 1..1000
    - 500: ClickHouse rejected the query (e.g. unknown column)
    - 503: ClickHouse not connected
    """
    trace_id = get_trace_id()
    values = await schema_service.distinct_values(table_name, column_name, limit)

    return DistinctValuesResponse(
        trace_id=trace_id,
        table_name=table_name,
        column_name=column_name,
        values=values,
    )


@app.post(
    "/api/query",
    response_model=QueryResponse,
    tags=["ClickHouse"],
    responses=error_responses(400, 422, 503),
)
async def run_query(request: QueryRequest, schema_service: SchemaServiceDep) -> QueryResponse:
    """
    Run a hand-written SELECT or WITH statement.

    A statement ClickHouse rejects returns 200 with success=false and an
    error block (QUERY_EXECUTION_ERROR, details.store_error).

    **Possible Errors**:
    - 400: Statement is not read-only
    - 422: Empty query
    - 503: ClickHouse not connected
    """
    trace_id = get_trace_id()
    outcome, failure = await schema_service.run_query(request.query)

    if failure is not None:
        logger.warning(
            "Custom query failed",
            error_code=failure.error_code,
            details=failure.details,
            trace_id=trace_id
        )
        return QueryResponse(
            trace_id=trace_id,
            success=False,
            query=request.query,
            execution_ms=outcome.execution_ms,
            error=failure.to_dict(),
        )

    logger.info("Custom query succeeded", row_count=outcome.row_count, trace_id=trace_id)
    return QueryResponse(
        trace_id=trace_id,
        success=True,
        query=request.query,
        data=outcome.rows,
        row_count=outcome.row_count,
        execution_ms=outcome.execution_ms,
    )


# Use scripts/run_dev.py for development or uvicorn dashboard_sql.main:app
