"""
Utility for loading and parsing the schema catalog YAML file.

The catalog ships with the package (catalog/workforce_schema.yaml) and can be
replaced through CATALOG__CATALOG_PATH. The file is read once at start-up.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..domain.errors import SchemaError
from ..domain.schema_nodes import ColumnSchema, TableRelationship, TableSchema
from ..utils.logging import get_module_logger


logger = get_module_logger()

BUNDLED_CATALOG_PATH = Path(__file__).resolve().parent.parent / "catalog" / "workforce_schema.yaml"


def load_yaml_file(file_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a YAML file from disk.

    Args:
        file_path: Path to the YAML file

    Returns:
        Parsed YAML content as dictionary

    Raises:
        SchemaError: If the file is missing, unreadable or not a mapping
    """
    path = Path(file_path)
    logger.info("Loading YAML file", file_path=str(path))

    try:
        with path.open("r", encoding="utf-8") as handle:
            content = yaml.safe_load(handle)
    except FileNotFoundError as e:
        raise SchemaError(f"Catalog file not found: {path}", details={"file_path": str(path)}) from e
    except (OSError, yaml.YAMLError) as e:
        raise SchemaError(f"Failed to read catalog file: {e}", details={"file_path": str(path)}) from e

    if not isinstance(content, dict):
        raise SchemaError(
            "Catalog file must contain a mapping at the top level",
            details={"file_path": str(path)}
        )

    return content


def parse_catalog(
    yaml_content: Dict[str, Any]
) -> Tuple[List[TableSchema], List[TableRelationship]]:
    """
    Parse tables and relationships from catalog YAML content.

    Args:
        yaml_content: Parsed YAML dictionary with structure:
            {
                "tables": {
                    "table_name": {
                        "description": "table desc",
                        "columns": {
                            "column_name": {"type": "UInt32", "description": "col desc"}
                        }
                    }
                },
                "relationships": [
                    {"from_table": ..., "from_column": ..., "to_table": ..., "to_column": ...}
                ]
            }

    Returns:
        Tuple of (tables, relationships), both in file order

    Raises:
        SchemaError: If a table or column entry is malformed
    """
    tables_data = yaml_content.get("tables") or {}
    if not tables_data:
        raise SchemaError("Catalog defines no tables")

    tables: List[TableSchema] = []
    for table_name, table_data in tables_data.items():
        table_data = table_data or {}
        columns_data = table_data.get("columns") or {}

        try:
            columns = tuple(
                ColumnSchema(
                    name=column_name,
                    type=(column_data or {}).get("type", ""),
                    description=(column_data or {}).get("description"),
                )
                for column_name, column_data in columns_data.items()
            )
            tables.append(
                TableSchema(
                    name=table_name,
                    description=table_data.get("description", ""),
                    columns=columns,
                )
            )
        except PydanticValidationError as e:
            raise SchemaError(
                f"Invalid catalog entry for table '{table_name}'",
                details={"table_name": table_name, "errors": e.errors(include_url=False, include_context=False)},
            ) from e

    known_tables = {table.name for table in tables}
    relationships: List[TableRelationship] = []
    for entry in yaml_content.get("relationships") or []:
        try:
            relationship = TableRelationship.model_validate(entry)
        except PydanticValidationError as e:
            raise SchemaError(
                "Invalid catalog relationship",
                details={"entry": entry, "errors": e.errors(include_url=False, include_context=False)},
            ) from e
        if relationship.from_table not in known_tables or relationship.to_table not in known_tables:
            raise SchemaError(
                "Catalog relationship references an unknown table",
                details={"from_table": relationship.from_table, "to_table": relationship.to_table},
            )
        relationships.append(relationship)

    logger.info(
        "Parsed catalog from YAML",
        table_count=len(tables),
        column_count=sum(len(table.columns) for table in tables),
        relationship_count=len(relationships)
    )

    return tables, relationships


def load_catalog_file(
    file_path: Optional[Union[str, Path]] = None
) -> Tuple[List[TableSchema], List[TableRelationship]]:
    """Load and parse a catalog file; the bundled catalog when no path is given."""
    return parse_catalog(load_yaml_file(file_path or BUNDLED_CATALOG_PATH))
