"""
Values passed between the pipeline stages.

GenerationRequest goes in, GeneratedQuery comes out of the generator, the
validator answers with a ValidationOutcome, the executor with an
ExecutionOutcome and the corrector with a CorrectionOutcome. Outcomes are
tagged unions discriminated by their `status` field so they serialize
unambiguously in API payloads and logs.
"""

from dataclasses import dataclass
from typing import Annotated, List, Literal, Optional, Self, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .base_enums import CorrectionErrorKind, VisualizationKind
from .types import Row
from dashboard_sql.utils.sql_text import is_read_only_statement

# Column list used when the model answered in free text and the real columns are unknown
WILDCARD_COLUMNS = ["*"]


@dataclass(frozen=True)
class GenerationRequest:
    """
    One inbound request as the generator sees it.

    visualization_kind stays loosely typed so that a raw string from the
    caller reaches the generator, which owns the "unknown kind" failure.
    """

    user_message: str
    visualization_kind: Union[VisualizationKind, str, None]
    target_table: str


class GeneratedQuery(BaseModel):
    """A query produced by the generator."""

    model_config = ConfigDict(frozen=True)

    sql: str = Field(..., min_length=1, description="Trimmed single-statement ClickHouse SQL")
    explanation: str = Field(default="", description="What the query returns, in plain words")
    visualization_kind: VisualizationKind = Field(..., description="Card type the query was shaped for")
    columns: List[str] = Field(..., min_length=1, description="Result column names in select order")

    @model_validator(mode="after")
    def check_read_only(self) -> Self:
        """Generated SQL must start with a read-only keyword."""
        if not is_read_only_statement(self.sql):
            raise ValueError("Generated query must start with SELECT or WITH")
        return self

    @property
    def is_fallback(self) -> bool:
        """True when the columns are unknown because the model skipped the tool."""
        return self.columns == WILDCARD_COLUMNS


# =============================================================================
# Validation
# =============================================================================


class ValidQuery(BaseModel):
    """Every bare identifier in the statement resolved."""

    status: Literal["valid"] = "valid"
    used_columns: List[str] = Field(default_factory=list, description="Catalog columns referenced, first-use order")


class InvalidQuery(BaseModel):
    """The statement references an identifier outside the active column set."""

    status: Literal["invalid"] = "invalid"
    bad_identifier: str = Field(..., description="First token that did not resolve")
    suggestion: Optional[str] = Field(default=None, description="Catalog column that substring-matches the token")
    suggested_sql: Optional[str] = Field(default=None, description="Statement with every occurrence of the token replaced")
    available_columns: List[str] = Field(default_factory=list, description="Identifier universe the token was checked against")


ValidationOutcome = Annotated[Union[ValidQuery, InvalidQuery], Field(discriminator="status")]


# =============================================================================
# Execution
# =============================================================================


class ExecutionSuccess(BaseModel):
    """The store ran the statement."""

    status: Literal["success"] = "success"
    rows: List[Row] = Field(default_factory=list, description="Result rows as column -> value mappings")
    row_count: int = Field(..., ge=0, description="Number of rows returned")
    execution_ms: float = Field(default=0.0, description="Wall time of the store call in milliseconds")


class ExecutionFailure(BaseModel):
    """The store (or the read-only gate) rejected the statement."""

    status: Literal["failure"] = "failure"
    error_text: str = Field(..., description="Store error message, verbatim")
    execution_ms: float = Field(default=0.0, description="Wall time of the store call in milliseconds")


ExecutionOutcome = Annotated[Union[ExecutionSuccess, ExecutionFailure], Field(discriminator="status")]


# =============================================================================
# Correction
# =============================================================================


class CorrectionOutcome(BaseModel):
    """The corrector's verdict on a failed query."""

    model_config = ConfigDict(frozen=True)

    can_correct: bool = Field(..., description="Whether a corrected query was produced")
    corrected_sql: Optional[str] = Field(default=None, description="Replacement statement when can_correct is true")
    error_kind: CorrectionErrorKind = Field(default=CorrectionErrorKind.OTHER, description="Error classification")
    explanation: str = Field(default="", description="What caused the error and what was changed")
    user_message: str = Field(default="", description="Explanation suitable for end users")
    alternatives: Optional[List[str]] = Field(default=None, description="Other questions the user could ask")

    @property
    def has_correction(self) -> bool:
        return self.can_correct and bool(self.corrected_sql and self.corrected_sql.strip())

