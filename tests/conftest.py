"""Shared fixtures for the unit tests."""

import pytest

from dashboard_sql.config import PipelineConfig
from dashboard_sql.repositories.domain_guard import DomainGuard
from dashboard_sql.repositories.query_correction import QueryCorrectionRepository
from dashboard_sql.repositories.query_execution import QueryExecutionRepository
from dashboard_sql.repositories.query_generation import QueryGenerationRepository
from dashboard_sql.repositories.query_validation import QueryValidationRepository
from dashboard_sql.repositories.schema_catalog import SchemaCatalog
from dashboard_sql.services.pipeline_service import PipelineService

from fakes import FakeClickHouseClient, FakeLLMClient


@pytest.fixture(scope="session")
def catalog() -> SchemaCatalog:
    """The bundled workforce catalog."""
    return SchemaCatalog.from_yaml()


@pytest.fixture
def llm_client() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def clickhouse_client() -> FakeClickHouseClient:
    return FakeClickHouseClient()


@pytest.fixture
def pipeline_service(catalog, llm_client, clickhouse_client) -> PipelineService:
    """PipelineService wired to the fakes with default configuration."""
    return PipelineService(
        domain_guard=DomainGuard(),
        query_generation_repository=QueryGenerationRepository(llm_client, catalog),
        query_validation_repository=QueryValidationRepository(catalog),
        query_execution_repository=QueryExecutionRepository(clickhouse_client),
        query_correction_repository=QueryCorrectionRepository(llm_client, catalog),
        config=PipelineConfig(),
    )
