"""
FastAPI dependencies for dependency injection.

This module provides reusable dependencies that can be injected into
API route handlers following proper layered architecture:
- Services (SchemaService, PipelineService) for business logic
- Settings and the schema catalog for configuration
- Optional client dependencies for health checks only

Routes should depend on services, not infrastructure clients directly.
"""

from typing import Annotated

from fastapi import Depends, Request

from ..infrastructure.clickhouse_client import ClickHouseClient
from ..infrastructure.llm_client import LLMClient
from ..repositories.domain_guard import DomainGuard
from ..repositories.schema_catalog import SchemaCatalog, get_schema_catalog
from ..repositories.query_generation import QueryGenerationRepository
from ..repositories.query_validation import QueryValidationRepository
from ..repositories.query_execution import QueryExecutionRepository
from ..repositories.query_correction import QueryCorrectionRepository
from ..services.schema_service import SchemaService
from ..services.pipeline_service import PipelineService
from ..domain.errors import ServiceUnavailableError
from ..config import Settings


def get_settings(request: Request) -> Settings:
    """
    Dependency to get the settings from app state.

    Usage in routes:
        @app.get("/config")
        async def get_config(settings: SettingsDep):
            return {"log_level": settings.app.log_level}

    Raises:
        RuntimeError: If settings are not initialized
    """
    if not hasattr(request.app.state, "settings"):
        raise RuntimeError("Settings not initialized")

    return request.app.state.settings


def get_catalog(request: Request) -> SchemaCatalog:
    """Catalog loaded at startup, or the process-wide one when the app skipped its lifespan."""
    catalog = getattr(request.app.state, "catalog", None)
    return catalog if catalog is not None else get_schema_catalog()


SettingsDep = Annotated[Settings, Depends(get_settings)]
CatalogDep = Annotated[SchemaCatalog, Depends(get_catalog)]


# Optional dependency getters for health checks and endpoints that need graceful degradation
def get_clickhouse_client_optional(request: Request) -> ClickHouseClient | None:
    """Get ClickHouse client if available, None otherwise."""
    return getattr(request.app.state, "clickhouse_client", None)


def get_llm_client_optional(request: Request) -> LLMClient | None:
    """Get LLM client if available, None otherwise."""
    return getattr(request.app.state, "llm_client", None)


OptionalClickHouseClientDep = Annotated[ClickHouseClient | None, Depends(get_clickhouse_client_optional)]
OptionalLLMClientDep = Annotated[LLMClient | None, Depends(get_llm_client_optional)]


def get_schema_service(
    catalog: CatalogDep,
    clickhouse_client: OptionalClickHouseClientDep,
) -> SchemaService:
    """
    Dependency to get a SchemaService instance.

    The ClickHouse client is optional here: catalog endpoints work without
    it, live endpoints raise ServiceUnavailableError from the service.

    Usage in routes:
        @app.get("/api/schemas")
        async def list_schemas(schema_service: SchemaServiceDep):
            return schema_service.list_schemas()
    """
    return SchemaService(
        catalog=catalog,
        clickhouse_client=clickhouse_client,
    )


def get_pipeline_service(
    settings: SettingsDep,
    catalog: CatalogDep,
    clickhouse_client: OptionalClickHouseClientDep,
    llm_client: OptionalLLMClientDep,
) -> PipelineService:
    """
    Dependency to get a PipelineService instance.

    This creates a PipelineService with full repository tree:
    PipelineService (orchestrator)
      ├── DomainGuard (out-of-scope pre-filter)
      ├── QueryGenerationRepository (LLM-based generation)
      ├── QueryValidationRepository (static column check)
      ├── QueryExecutionRepository (ClickHouse execution)
      └── QueryCorrectionRepository (LLM-based correction)

    Raises:
        ServiceUnavailableError: If the ClickHouse or LLM client is not connected
        RuntimeError: If settings are not initialized
    """
    if clickhouse_client is None or not clickhouse_client.is_connected():
        raise ServiceUnavailableError("ClickHouse client not connected")

    if llm_client is None or not llm_client.is_connected():
        raise ServiceUnavailableError("LLM client not initialized")

    return PipelineService(
        domain_guard=DomainGuard(),
        query_generation_repository=QueryGenerationRepository(llm_client=llm_client, catalog=catalog),
        query_validation_repository=QueryValidationRepository(catalog=catalog),
        query_execution_repository=QueryExecutionRepository(clickhouse_client=clickhouse_client),
        query_correction_repository=QueryCorrectionRepository(llm_client=llm_client, catalog=catalog),
        config=settings.pipeline,
    )


# Type aliases for cleaner dependency injection
# Service dependencies (used in API routes)
SchemaServiceDep = Annotated[SchemaService, Depends(get_schema_service)]
PipelineServiceDep = Annotated[PipelineService, Depends(get_pipeline_service)]
