from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Tuple


class ColumnSchema(BaseModel):
    """A column of a cataloged table."""

    model_config = ConfigDict(frozen=True)

    name : str = Field(..., description="Column name exactly as stored in ClickHouse")
    type : str = Field(..., description="ClickHouse data type, e.g. 'LowCardinality(Nullable(String))'")
    description : Optional[str] = Field(default=None, description="Meaning of the column for prompt construction")


class TableSchema(BaseModel):
    """A cataloged table with its ordered columns."""

    model_config = ConfigDict(frozen=True)

    name : str = Field(..., description="Table name")
    description : str = Field(default="", description="What one row of the table represents")
    columns : Tuple[ColumnSchema, ...] = Field(..., min_length=1, description="Columns in declaration order")

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]


class TableRelationship(BaseModel):
    """A join path between two cataloged tables."""

    model_config = ConfigDict(frozen=True)

    from_table : str = Field(..., description="Name of the source table in the relationship")
    from_column : str = Field(..., description="Column in the source table")
    to_table : str = Field(..., description="Name of the target table in the relationship")
    to_column : str = Field(..., description="Column in the target table")
    description : Optional[str] = Field(default=None, description="When the join applies")
