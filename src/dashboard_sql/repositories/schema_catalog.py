"""
Schema Catalog.

Read-only, process-wide view of the tables the pipeline may query. The
catalog is loaded once from YAML and never mutated afterwards, so concurrent
pipelines can share it without locking.

All lookups return domain models from schema_nodes.py.
"""

from functools import lru_cache
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from dashboard_sql.config import get_settings
from dashboard_sql.domain.schema_nodes import TableRelationship, TableSchema
from dashboard_sql.utils.logging import get_module_logger
from dashboard_sql.utils.yaml_loader import load_catalog_file

logger = get_module_logger()


class SchemaCatalog:
    """
    Mapping from table name to TableSchema, in catalog order.

    Usage:
        catalog = get_schema_catalog()
        table = catalog.describe("daily_worker_summary")
        columns = catalog.column_names(["daily_worker_summary"])
        prompt_block = catalog.render_for_prompt()
    """

    def __init__(
        self,
        tables: Iterable[TableSchema],
        relationships: Iterable[TableRelationship] = (),
    ):
        table_map = {}
        for table in tables:
            if table.name in table_map:
                raise ValueError(f"Duplicate table in catalog: {table.name}")
            table_map[table.name] = table

        self._tables: Mapping[str, TableSchema] = MappingProxyType(table_map)
        self._relationships: Tuple[TableRelationship, ...] = tuple(relationships)

        logger.info(
            "SchemaCatalog initialized",
            tables=list(self._tables),
            relationship_count=len(self._relationships)
        )

    @classmethod
    def from_yaml(cls, file_path: Optional[str] = None) -> "SchemaCatalog":
        tables, relationships = load_catalog_file(file_path)
        return cls(tables, relationships)

    # =========================================================================
    # Lookups
    # =========================================================================

    @property
    def table_names(self) -> List[str]:
        return list(self._tables)

    @property
    def relationships(self) -> Tuple[TableRelationship, ...]:
        return self._relationships

    def __contains__(self, table_name: object) -> bool:
        return table_name in self._tables

    def __len__(self) -> int:
        return len(self._tables)

    def describe(self, table_name: str) -> Optional[TableSchema]:
        """Return the table's schema, or None when the table is not cataloged."""
        return self._tables.get(table_name)

    def describe_all(self) -> List[TableSchema]:
        """All tables in catalog order."""
        return list(self._tables.values())

    def column_names(self, table_names: Optional[Sequence[str]] = None) -> List[str]:
        """
        Column names of the given tables, in catalog order, without duplicates.

        Unknown table names are ignored. None means every cataloged table.
        """
        selected = self._tables.keys() if table_names is None else table_names
        seen: Set[str] = set()
        names: List[str] = []
        for table_name in selected:
            table = self._tables.get(table_name)
            if table is None:
                continue
            for column in table.columns:
                if column.name not in seen:
                    seen.add(column.name)
                    names.append(column.name)
        return names

    def all_column_names(self, table_names: Optional[Sequence[str]] = None) -> Set[str]:
        """Union of the column names of the given tables (every table when None)."""
        return set(self.column_names(table_names))

    # =========================================================================
    # Prompt rendering
    # =========================================================================

    def render_for_prompt(self) -> str:
        """
        Render every table as a prompt section.

        Format:
            ### TABLE: daily_worker_summary
            Description: ...
            Columns:
            - id (UInt64): Unique record ID
        """
        sections = []
        for table in self._tables.values():
            column_lines = "\n".join(
                f"- {column.name} ({column.type})"
                + (f": {column.description}" if column.description else "")
                for column in table.columns
            )
            sections.append(
                f"### TABLE: {table.name}\n"
                f"Description: {table.description or 'No description'}\n"
                f"Columns:\n{column_lines}"
            )

        if self._relationships:
            relationship_lines = "\n".join(
                f"- {r.from_table}.{r.from_column} -> {r.to_table}.{r.to_column}"
                + (f" ({r.description})" if r.description else "")
                for r in self._relationships
            )
            sections.append(f"### RELATIONSHIPS (for JOINs):\n{relationship_lines}")

        return "\n\n".join(sections)


@lru_cache
def get_schema_catalog() -> SchemaCatalog:
    """
    Get the process-wide catalog (loaded on first call).

    Uses CATALOG__CATALOG_PATH when set, the bundled catalog otherwise.
    """
    return SchemaCatalog.from_yaml(get_settings().catalog.catalog_path)
