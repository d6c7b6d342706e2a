"""
Pipeline state and result models for the dashboard-sql system.

PipelineState is the mutable record one request carries through the state
machine; PipelineResult is the immutable terminal record handed back to the
caller.

The legal transitions live in PIPELINE_TRANSITIONS. PipelineState.advance()
refuses any move that is not in the table or that would re-enter a state
already visited, which is what bounds a run to one correction and two
executions.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Self

from pydantic import BaseModel, Field, model_validator

from .base_enums import CorrectionErrorKind, PathTaken, PipelineStage, VisualizationKind
from .errors import DashboardSQLException, PipelineStateError
from .query_models import (
    CorrectionOutcome,
    ExecutionFailure,
    ExecutionSuccess,
    GeneratedQuery,
    GenerationRequest,
)
from .types import Rows


PIPELINE_TRANSITIONS: Mapping[PipelineStage, FrozenSet[PipelineStage]] = {
    PipelineStage.START: frozenset({PipelineStage.GUARDING}),
    PipelineStage.GUARDING: frozenset({PipelineStage.GENERATING, PipelineStage.FAILED}),
    PipelineStage.GENERATING: frozenset({PipelineStage.VALIDATING, PipelineStage.FAILED}),
    PipelineStage.VALIDATING: frozenset({PipelineStage.EXECUTING, PipelineStage.FAILED}),
    PipelineStage.EXECUTING: frozenset({PipelineStage.DONE, PipelineStage.CORRECTING, PipelineStage.FAILED}),
    PipelineStage.CORRECTING: frozenset({PipelineStage.RE_EXECUTING, PipelineStage.FAILED}),
    PipelineStage.RE_EXECUTING: frozenset({PipelineStage.DONE, PipelineStage.FAILED}),
    PipelineStage.DONE: frozenset(),
    PipelineStage.FAILED: frozenset(),
}


def elapsed_ms(start: datetime) -> float:
    return (datetime.now(timezone.utc) - start).total_seconds() * 1000


class PipelineMetrics(BaseModel):
    """Per-stage wall time of one run."""

    generation_ms: float = Field(default=0.0, ge=0, description="Time spent in the generator (model call included)")
    execution_ms: float = Field(default=0.0, ge=0, description="Time spent in store calls, both executions summed")
    correction_ms: float = Field(default=0.0, ge=0, description="Time spent in the corrector; 0 on the fast path")
    total_ms: float = Field(default=0.0, ge=0, description="Wall time of the whole run")
    path_taken: PathTaken = Field(..., description="Route the run took")


class PipelineErrorDetail(BaseModel):
    """Why a run failed, for humans and machines."""

    error_code: str = Field(..., description="Stable machine-readable code, e.g. CORRECTION_UNFIXABLE")
    message: str = Field(..., description="User-readable explanation")
    error_kind: Optional[CorrectionErrorKind] = Field(
        default=None,
        description="Corrector classification; absent when no correction was attempted"
    )
    alternatives: Optional[List[str]] = Field(default=None, description="Suggested alternative requests")
    details: Dict[str, Any] = Field(default_factory=dict, description="Additional diagnostic context")


class PipelineResult(BaseModel):
    """Terminal record of one pipeline run."""

    success: bool = Field(..., description="Whether data was returned")
    sql: Optional[str] = Field(default=None, description="The query that produced the data (or failed last)")
    explanation: Optional[str] = Field(default=None, description="Generator's explanation of the query")
    visualization_kind: Optional[VisualizationKind] = Field(default=None, description="Card type requested")
    columns: List[str] = Field(default_factory=list, description="Result columns declared by the generator")
    data: Optional[Rows] = Field(default=None, description="Result rows; present only on success")
    row_count: int = Field(default=0, ge=0, description="Number of rows in data")
    error: Optional[PipelineErrorDetail] = Field(default=None, description="Failure detail; present only on failure")

    # Audit trail of the correction path
    original_sql: Optional[str] = Field(default=None, description="First generated query when a correction ran")
    corrected_sql: Optional[str] = Field(default=None, description="Corrected query when a correction ran")
    original_error: Optional[str] = Field(default=None, description="Store error of the first execution")
    corrected_error: Optional[str] = Field(default=None, description="Store error of the corrected execution")

    metrics: PipelineMetrics = Field(..., description="Timing and path information")

    @model_validator(mode="after")
    def check_data_xor_error(self) -> Self:
        """A result carries data or an error, never both."""
        if self.data is not None and self.error is not None:
            raise ValueError("PipelineResult cannot carry both data and an error")
        if self.success != (self.error is None):
            raise ValueError("success must be True exactly when no error is set")
        return self


@dataclass
class PipelineState:
    """
    Mutable state passed through the pipeline steps.

    Tracks the current stage, the intermediate values each stage produced
    and the per-stage timings.
    """

    # Input
    request: GenerationRequest

    # State machine
    stage: PipelineStage = PipelineStage.START
    visited: List[PipelineStage] = field(default_factory=lambda: [PipelineStage.START])
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # Stage outputs
    generated: Optional[GeneratedQuery] = None
    active_sql: Optional[str] = None
    original_sql: Optional[str] = None
    first_execution: Optional[ExecutionSuccess | ExecutionFailure] = None
    correction: Optional[CorrectionOutcome] = None
    second_execution: Optional[ExecutionSuccess | ExecutionFailure] = None
    validation_warning: Optional[DashboardSQLException] = None

    # Call budget bookkeeping
    executions: int = 0
    corrections: int = 0

    # Timings (milliseconds)
    generation_ms: float = 0.0
    execution_ms: float = 0.0
    correction_ms: float = 0.0

    # Outcome
    path_taken: Optional[PathTaken] = None
    failure: Optional[DashboardSQLException] = None

    def advance(self, next_stage: PipelineStage) -> None:
        """
        Move to next_stage.

        Raises:
            PipelineStateError: If the move is not in the transition table or
                the target stage was already visited
        """
        if next_stage not in PIPELINE_TRANSITIONS[self.stage]:
            raise PipelineStateError(
                f"Illegal pipeline transition {self.stage.value} -> {next_stage.value}",
                details={"visited": [stage.value for stage in self.visited]},
            )
        if next_stage in self.visited:
            raise PipelineStateError(
                f"Pipeline stage {next_stage.value} already visited",
                details={"visited": [stage.value for stage in self.visited]},
            )
        self.stage = next_stage
        self.visited.append(next_stage)

    def fail(self, error: DashboardSQLException, path_taken: PathTaken) -> PipelineStage:
        """Record the failure and return the FAILED stage for the caller to advance to."""
        self.failure = error
        self.path_taken = path_taken
        return PipelineStage.FAILED

    def succeed(self, path_taken: PathTaken) -> PipelineStage:
        self.path_taken = path_taken
        return PipelineStage.DONE

    @property
    def is_terminal(self) -> bool:
        return self.stage.is_terminal

    def metrics(self) -> PipelineMetrics:
        return PipelineMetrics(
            generation_ms=self.generation_ms,
            execution_ms=self.execution_ms,
            correction_ms=self.correction_ms,
            total_ms=elapsed_ms(self.started_at),
            path_taken=self.path_taken or PathTaken.PIPELINE_ERROR,
        )
