"""
Unit tests for the schema catalog and its YAML loader.
"""

import pytest

from dashboard_sql.domain.errors import SchemaError
from dashboard_sql.domain.schema_nodes import ColumnSchema, TableSchema
from dashboard_sql.repositories.schema_catalog import SchemaCatalog
from dashboard_sql.utils.yaml_loader import load_yaml_file, parse_catalog


class TestBundledCatalog:
    """The catalog shipped with the package."""

    def test_tables_in_file_order(self, catalog):
        assert catalog.table_names == ["daily_worker_summary", "client_projects"]
        assert len(catalog) == 2

    def test_contains(self, catalog):
        assert "daily_worker_summary" in catalog
        assert "orders" not in catalog

    def test_describe(self, catalog):
        table = catalog.describe("daily_worker_summary")
        assert table is not None
        assert table.column_names[:3] == ["id", "client_id", "staff_id"]
        assert "total_work_hours" in table.column_names
        assert catalog.describe("orders") is None

    def test_column_names_single_table(self, catalog):
        names = catalog.column_names(["client_projects"])
        assert names[0] == "project_id"
        assert "staff_name" not in names

    def test_column_names_deduplicated_across_tables(self, catalog):
        names = catalog.column_names()
        assert names.count("client_id") == 1
        assert names.count("created_at") == 1
        assert "project_name" in names
        assert "staff_name" in names

    def test_unknown_tables_ignored(self, catalog):
        assert catalog.column_names(["orders"]) == []

    def test_all_column_names_is_a_set(self, catalog):
        assert catalog.all_column_names(["daily_worker_summary"]) == set(
            catalog.column_names(["daily_worker_summary"])
        )

    def test_relationship(self, catalog):
        assert len(catalog.relationships) == 1
        relationship = catalog.relationships[0]
        assert relationship.from_column == "checkin_project_id"
        assert relationship.to_table == "client_projects"

    def test_render_for_prompt(self, catalog):
        rendered = catalog.render_for_prompt()
        assert "### TABLE: daily_worker_summary" in rendered
        assert "### TABLE: client_projects" in rendered
        assert "- work_date (Date)" in rendered
        assert "daily_worker_summary.checkin_project_id -> client_projects.project_id" in rendered


class TestCatalogConstruction:

    def test_duplicate_table_rejected(self):
        table = TableSchema(name="t", columns=(ColumnSchema(name="a", type="String"),))
        with pytest.raises(ValueError):
            SchemaCatalog([table, table])

    def test_table_requires_columns(self):
        with pytest.raises(ValueError):
            TableSchema(name="t", columns=())


class TestYamlParsing:

    def test_parse_minimal_catalog(self):
        tables, relationships = parse_catalog({
            "tables": {
                "events": {
                    "description": "One row per event",
                    "columns": {
                        "event_id": {"type": "UInt64", "description": "Event ID"},
                        "happened_at": {"type": "DateTime"},
                    },
                }
            }
        })
        assert [t.name for t in tables] == ["events"]
        assert tables[0].column_names == ["event_id", "happened_at"]
        assert tables[0].columns[1].description is None
        assert relationships == []

    def test_empty_catalog_rejected(self):
        with pytest.raises(SchemaError):
            parse_catalog({"tables": {}})

    def test_table_without_columns_rejected(self):
        with pytest.raises(SchemaError):
            parse_catalog({"tables": {"events": {"description": "x", "columns": {}}}})

    def test_relationship_to_unknown_table_rejected(self):
        with pytest.raises(SchemaError):
            parse_catalog({
                "tables": {"events": {"columns": {"id": {"type": "UInt64"}}}},
                "relationships": [
                    {"from_table": "events", "from_column": "id", "to_table": "users", "to_column": "id"}
                ],
            })

    def test_missing_file(self, tmp_path):
        with pytest.raises(SchemaError):
            load_yaml_file(tmp_path / "missing.yaml")

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(SchemaError):
            load_yaml_file(path)

    def test_from_yaml_custom_path(self, tmp_path):
        path = tmp_path / "catalog.yaml"
        path.write_text(
            "tables:\n"
            "  events:\n"
            "    description: Events\n"
            "    columns:\n"
            "      id:\n"
            "        type: UInt64\n",
            encoding="utf-8",
        )
        catalog = SchemaCatalog.from_yaml(str(path))
        assert catalog.table_names == ["events"]
