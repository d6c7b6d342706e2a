"""
Unit tests for the HTTP routes.

The app is exercised through FastAPI's TestClient without running the
lifespan hook; services and clients are swapped in with dependency
overrides.
"""

import pytest
from fastapi.testclient import TestClient

from dashboard_sql.api.dependencies import (
    get_catalog,
    get_clickhouse_client_optional,
    get_llm_client_optional,
    get_pipeline_service,
    get_schema_service,
    get_settings,
)
from dashboard_sql.config import Settings
from dashboard_sql.infrastructure.clickhouse_client import StoreQueryResult
from dashboard_sql.main import app
from dashboard_sql.repositories.query_generation import GENERATE_TOOL_NAME
from dashboard_sql.services.schema_service import SchemaService

from fakes import FakeClickHouseClient, FakeIntrospectionClient, tool_payload

HOURS_BY_STAFF = "SELECT staff_name, SUM(total_work_hours) FROM daily_worker_summary GROUP BY staff_name"


@pytest.fixture
def client(catalog):
    app.dependency_overrides[get_settings] = lambda: Settings(_env_file=None)
    app.dependency_overrides[get_catalog] = lambda: catalog
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestRootAndHealth:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Dashboard SQL API"
        assert body["trace_id"] == response.headers["X-Trace-ID"]

    def test_trace_id_header_is_echoed(self, client):
        response = client.get("/", headers={"X-Trace-ID": "trace-from-caller"})
        assert response.headers["X-Trace-ID"] == "trace-from-caller"
        assert response.json()["trace_id"] == "trace-from-caller"
        assert "X-Process-Time" in response.headers

    def test_health_without_clients_is_degraded(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["database_status"] == "not_configured"
        assert body["llm_service_status"] == "not_configured"
        assert body["catalog_tables"] == 2

    def test_health_with_clients(self, client, llm_client):
        app.dependency_overrides[get_clickhouse_client_optional] = lambda: FakeClickHouseClient()
        app.dependency_overrides[get_llm_client_optional] = lambda: llm_client

        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["database_status"] == "healthy"
        assert body["llm_service_status"] == "healthy"


class TestChat:

    def test_chat_success(self, client, pipeline_service, llm_client, clickhouse_client):
        llm_client.replies[GENERATE_TOOL_NAME] = tool_payload(HOURS_BY_STAFF)
        clickhouse_client.results.append(StoreQueryResult(rows=[{"staff_name": "Asha", "SUM(total_work_hours)": 41.5}]))
        app.dependency_overrides[get_pipeline_service] = lambda: pipeline_service

        response = client.post("/api/chat", json={"message": "Show total hours by staff", "card_type": "table"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["row_count"] == 1
        assert body["sql"] == HOURS_BY_STAFF
        assert body["metrics"]["path_taken"] == "fast_path"
        assert body["trace_id"] == response.headers["X-Trace-ID"]

    def test_chat_pipeline_failure_is_200(self, client, pipeline_service, llm_client):
        app.dependency_overrides[get_pipeline_service] = lambda: pipeline_service

        response = client.post("/api/chat", json={"message": "Average salary per staff", "card_type": "kpi"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["data"] is None
        assert body["error"]["error_code"] == "OUT_OF_SCOPE_REQUEST"
        assert body["metrics"]["path_taken"] == "out_of_scope"
        assert llm_client.calls == []

    def test_chat_rejects_unknown_card_type(self, client, pipeline_service):
        app.dependency_overrides[get_pipeline_service] = lambda: pipeline_service

        response = client.post("/api/chat", json={"message": "Show hours", "card_type": "scatter"})

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "validation_error"
        assert any(error["field"] == "card_type" for error in body["details"]["errors"])

    def test_chat_rejects_empty_message(self, client, pipeline_service):
        app.dependency_overrides[get_pipeline_service] = lambda: pipeline_service

        response = client.post("/api/chat", json={"message": "", "card_type": "table"})

        assert response.status_code == 422

    def test_chat_without_clients_is_503(self, client):
        response = client.post("/api/chat", json={"message": "Show hours", "card_type": "table"})

        assert response.status_code == 503
        body = response.json()
        assert body["error"] == "service_unavailable"
        assert body["trace_id"] == response.headers["X-Trace-ID"]


class TestSchemas:

    def test_list_schemas(self, client):
        response = client.get("/api/schemas")
        assert response.status_code == 200
        body = response.json()
        assert body["default_table"] == "daily_worker_summary"
        assert list(body["tables"]) == ["daily_worker_summary", "client_projects"]

    def test_get_schema(self, client):
        response = client.get("/api/schemas/client_projects")
        assert response.status_code == 200
        assert response.json()["table"]["name"] == "client_projects"

    def test_unknown_schema_is_404(self, client):
        response = client.get("/api/schemas/orders")
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "not_found"
        assert body["details"]["table_name"] == "orders"


class TestLiveTables:

    @pytest.fixture
    def live_client(self, client, catalog):
        app.dependency_overrides[get_schema_service] = lambda: SchemaService(catalog, FakeIntrospectionClient())
        return client

    def test_list_tables(self, live_client):
        response = live_client.get("/api/tables")
        assert response.status_code == 200
        body = response.json()
        assert body["tables"][0]["name"] == "daily_worker_summary"
        assert body["tables"][0]["total_rows"] == 1200
        assert body["tables"][0]["total_bytes"] is None

    def test_table_schema(self, live_client):
        response = live_client.get("/api/tables/daily_worker_summary/schema")
        assert response.status_code == 200
        column = response.json()["columns"][0]
        assert column["name"] == "id"
        assert column["default_type"] is None
        assert column["comment"] == "Row ID"

    def test_table_schema_rejects_bad_name(self, live_client):
        response = live_client.get("/api/tables/bad-name/schema")
        assert response.status_code == 400

    def test_tables_without_clickhouse_is_503(self, client):
        response = client.get("/api/tables")
        assert response.status_code == 503


class TestExploration:

    @pytest.fixture
    def explore(self, client, catalog):
        """Returns a function that queues store results behind the exploration routes."""
        def with_results(*results, columns=None):
            store = FakeIntrospectionClient(list(results), columns=columns)
            app.dependency_overrides[get_schema_service] = lambda: SchemaService(catalog, store)
            return client, store
        return with_results

    def test_table_analytics(self, explore):
        http, store = explore(
            StoreQueryResult(rows=[{"total_rows": "1200"}]),
            StoreQueryResult(rows=[{"min_val": 0, "max_val": 12.5, "avg_val": 7.9, "sum_val": 9480}]),
            columns=[{"name": "staff_name", "type": "String"}, {"name": "total_work_hours", "type": "Float64"}],
        )

        response = http.get("/api/tables/daily_worker_summary/analytics")

        assert response.status_code == 200
        body = response.json()
        assert body["trace_id"] == response.headers["X-Trace-ID"]
        assert body["total_rows"] == 1200
        assert body["column_stats"]["total_work_hours"]["sum_val"] == 9480
        assert body["skipped_columns"] == []

    def test_table_analytics_rejects_bad_name(self, explore):
        http, store = explore()
        response = http.get("/api/tables/bad-name/analytics")
        assert response.status_code == 400
        assert response.json()["error"] == "bad_request"

    def test_table_analytics_store_error_is_500(self, explore):
        http, _ = explore(StoreQueryResult(error="Code: 60. DB::Exception: Unknown table"))
        response = http.get("/api/tables/missing_table/analytics")
        assert response.status_code == 500
        assert response.json()["error"] == "database_query_error"

    def test_distinct_values(self, explore):
        http, store = explore(StoreQueryResult(rows=[{"value": "Annual Leave"}, {"value": "Sick Leave"}]))

        response = http.get("/api/tables/daily_worker_summary/columns/leave_type/values", params={"limit": 10})

        assert response.status_code == 200
        body = response.json()
        assert body["column_name"] == "leave_type"
        assert body["values"] == ["Annual Leave", "Sick Leave"]
        assert store.queries[0].endswith("LIMIT 10")

    def test_distinct_values_limit_out_of_range_is_422(self, explore):
        http, store = explore()
        response = http.get("/api/tables/daily_worker_summary/columns/leave_type/values", params={"limit": 5000})
        assert response.status_code == 422
        assert store.queries == []

    def test_custom_query(self, explore):
        rows = [{"staff_name": "Asha", "days": 21}]
        http, _ = explore(StoreQueryResult(rows=rows))

        response = http.post("/api/query", json={"query": "SELECT staff_name, count() AS days FROM daily_worker_summary"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"] == rows
        assert body["row_count"] == 1
        assert body["error"] is None

    def test_custom_query_store_error_is_reported(self, explore):
        store_error = "Code: 62. DB::Exception: Syntax error"
        http, _ = explore(StoreQueryResult(error=store_error))

        response = http.post("/api/query", json={"query": "SELECT FROM daily_worker_summary"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["data"] is None
        assert body["error"]["error_code"] == "QUERY_EXECUTION_ERROR"
        assert body["error"]["details"]["store_error"] == store_error

    def test_custom_query_must_be_read_only(self, explore):
        http, store = explore()
        response = http.post("/api/query", json={"query": "DROP TABLE daily_worker_summary"})
        assert response.status_code == 400
        assert response.json()["message"] == "Only SELECT queries are allowed"
        assert store.queries == []

    def test_empty_custom_query_is_422(self, explore):
        http, _ = explore()
        response = http.post("/api/query", json={"query": ""})
        assert response.status_code == 422

    def test_custom_query_without_clickhouse_is_503(self, client):
        response = client.post("/api/query", json={"query": "SELECT 1"})
        assert response.status_code == 503
