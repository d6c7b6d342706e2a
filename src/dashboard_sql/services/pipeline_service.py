"""
Pipeline Service - Orchestrator for dashboard query requests.

This service is a THIN ORCHESTRATOR that drives one request through the
state machine and delegates every stage to a repository:
1. DomainGuard - out-of-scope pre-filter (no model call)
2. QueryGenerationRepository - LLM-based query generation
3. QueryValidationRepository - static column check and rewrite
4. QueryExecutionRepository - ClickHouse execution
5. QueryCorrectionRepository - one LLM repair pass after a failed execution

Key principles:
- Transitions come from PIPELINE_TRANSITIONS; no stage runs twice, so a
  request costs at most two model calls and two executions
- Every outcome, including unexpected errors, ends as a PipelineResult
"""

from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional

from dashboard_sql.config import PipelineConfig
from dashboard_sql.domain.base_enums import PathTaken, PipelineStage, VisualizationKind
from dashboard_sql.domain.errors import (
    CorrectionExecutionError,
    CorrectionUnfixableError,
    DashboardSQLException,
    OutOfScopeRequestError,
    PipelineStateError,
    QueryGenerationError,
    QueryValidationError,
)
from dashboard_sql.domain.pipeline import PipelineErrorDetail, PipelineResult, PipelineState, elapsed_ms
from dashboard_sql.domain.query_models import ExecutionFailure, ExecutionSuccess, GenerationRequest, InvalidQuery
from dashboard_sql.repositories.domain_guard import OUT_OF_SCOPE_MESSAGE, DomainGuard
from dashboard_sql.repositories.query_correction import NO_CORRECTION_MESSAGE, QueryCorrectionRepository
from dashboard_sql.repositories.query_execution import QueryExecutionRepository
from dashboard_sql.repositories.query_generation import QueryGenerationRepository
from dashboard_sql.repositories.query_validation import QueryValidationRepository
from dashboard_sql.utils.logging import get_module_logger
from dashboard_sql.utils.tracing import current_trace_id

logger = get_module_logger()

StepHandler = Callable[[PipelineState], Awaitable[PipelineStage]]


class PipelineService:
    """
    Main orchestrator for the dashboard query pipeline.

    States:
        START -> GUARDING -> GENERATING -> VALIDATING -> EXECUTING
        EXECUTING -> DONE | CORRECTING
        CORRECTING -> RE_EXECUTING | FAILED
        RE_EXECUTING -> DONE | FAILED
    """

    def __init__(
        self,
        domain_guard: DomainGuard,
        query_generation_repository: QueryGenerationRepository,
        query_validation_repository: QueryValidationRepository,
        query_execution_repository: QueryExecutionRepository,
        query_correction_repository: QueryCorrectionRepository,
        config: PipelineConfig,
    ):
        self.guard = domain_guard
        self.generation_repo = query_generation_repository
        self.validation_repo = query_validation_repository
        self.execution_repo = query_execution_repository
        self.correction_repo = query_correction_repository
        self.config = config

        self._handlers: Dict[PipelineStage, StepHandler] = {
            PipelineStage.GUARDING: self._step_guard,
            PipelineStage.GENERATING: self._step_generate,
            PipelineStage.VALIDATING: self._step_validate,
            PipelineStage.EXECUTING: self._step_execute,
            PipelineStage.CORRECTING: self._step_correct,
            PipelineStage.RE_EXECUTING: self._step_re_execute,
        }

    async def process_request(
        self,
        user_message: str,
        visualization_kind,
        target_table: Optional[str] = None,
    ) -> PipelineResult:
        """
        Run the full pipeline for one request.

        Args:
            user_message: Natural language request
            visualization_kind: Card type (VisualizationKind or its string value)
            target_table: Table to query; PipelineConfig.default_table when None

        Returns:
            PipelineResult with data on success or an error detail on failure
        """
        trace_id = current_trace_id()
        request = GenerationRequest(
            user_message=user_message,
            visualization_kind=visualization_kind,
            target_table=target_table or self.config.default_table,
        )
        state = PipelineState(request=request)

        logger.info(
            "Starting query pipeline",
            message_length=len(user_message or ""),
            card_type=str(getattr(visualization_kind, "value", visualization_kind)),
            target_table=request.target_table,
            trace_id=trace_id,
        )

        try:
            state.advance(PipelineStage.GUARDING)
            while not state.is_terminal:
                handler = self._handlers[state.stage]
                next_stage = await handler(state)
                state.advance(next_stage)

        except Exception as e:
            logger.error(
                "Query pipeline failed unexpectedly",
                error=str(e),
                stage=state.stage.value,
                trace_id=trace_id,
                exc_info=True,
            )
            if isinstance(e, DashboardSQLException):
                failure = e
            else:
                failure = PipelineStateError(
                    f"Pipeline failed: {e}",
                    details={"stage": state.stage.value},
                    error_code="PIPELINE_ERROR",
                )
            state.fail(failure, PathTaken.PIPELINE_ERROR)

        result = self._build_result(state)

        logger.info(
            "Query pipeline finished",
            success=result.success,
            path_taken=result.metrics.path_taken.value,
            row_count=result.row_count,
            generation_ms=round(result.metrics.generation_ms, 2),
            execution_ms=round(result.metrics.execution_ms, 2),
            correction_ms=round(result.metrics.correction_ms, 2),
            total_ms=round(result.metrics.total_ms, 2),
            trace_id=trace_id,
        )
        return result

    # =========================================================================
    # Pipeline Steps (thin - delegate to repositories)
    # =========================================================================

    async def _step_guard(self, state: PipelineState) -> PipelineStage:
        if self.guard.is_out_of_scope(state.request.user_message):
            return state.fail(OutOfScopeRequestError(OUT_OF_SCOPE_MESSAGE), PathTaken.OUT_OF_SCOPE)
        return PipelineStage.GENERATING

    async def _step_generate(self, state: PipelineState) -> PipelineStage:
        trace_id = current_trace_id()
        logger.info("Step: query generation", trace_id=trace_id)

        start = datetime.now(timezone.utc)
        try:
            state.generated = await self.generation_repo.generate(state.request)
        except QueryGenerationError as e:
            logger.warning("Query generation failed", error=e.message, trace_id=trace_id)
            return state.fail(e, PathTaken.GENERATION_FAILED)
        finally:
            state.generation_ms = elapsed_ms(start)

        state.active_sql = state.generated.sql
        return PipelineStage.VALIDATING

    async def _step_validate(self, state: PipelineState) -> PipelineStage:
        """Static column check. Never fails the run; a suggestion is applied once."""
        trace_id = current_trace_id()
        if not self.config.validate_before_execution:
            return PipelineStage.EXECUTING

        outcome = self.validation_repo.validate(state.active_sql, state.request.target_table)
        if not isinstance(outcome, InvalidQuery):
            return PipelineStage.EXECUTING

        if outcome.suggested_sql and self.config.apply_column_suggestions:
            logger.info(
                "Applying column suggestion",
                bad_identifier=outcome.bad_identifier,
                suggestion=outcome.suggestion,
                trace_id=trace_id,
            )
            state.active_sql = outcome.suggested_sql

            recheck = self.validation_repo.validate(state.active_sql, state.request.target_table)
            logger.debug("Column re-check after suggestion", status=recheck.status, trace_id=trace_id)
            return PipelineStage.EXECUTING

        # Kept on the state: a failed run reports it next to the store error
        state.validation_warning = QueryValidationError(
            f"Unknown identifier '{outcome.bad_identifier}'",
            details={
                "bad_identifier": outcome.bad_identifier,
                "available_columns": outcome.available_columns,
            },
        )
        logger.warning(
            "Column check found an unknown identifier; executing anyway",
            error_code=state.validation_warning.error_code,
            details=state.validation_warning.details,
            trace_id=trace_id,
        )
        return PipelineStage.EXECUTING

    async def _step_execute(self, state: PipelineState) -> PipelineStage:
        logger.info("Step: query execution", trace_id=current_trace_id())

        state.executions += 1
        outcome = await self.execution_repo.execute(state.active_sql)
        state.execution_ms += outcome.execution_ms
        state.first_execution = outcome

        if isinstance(outcome, ExecutionSuccess):
            return state.succeed(PathTaken.FAST_PATH)
        return PipelineStage.CORRECTING

    async def _step_correct(self, state: PipelineState) -> PipelineStage:
        trace_id = current_trace_id()
        logger.info("Step: query correction", trace_id=trace_id)

        failure = state.first_execution
        if not isinstance(failure, ExecutionFailure):
            raise PipelineStateError("Correction requires a failed execution")

        state.corrections += 1
        start = datetime.now(timezone.utc)
        correction = await self.correction_repo.correct(
            original_sql=state.active_sql,
            error_text=failure.error_text,
            request=state.request,
        )
        state.correction_ms = elapsed_ms(start)
        state.correction = correction
        state.original_sql = state.active_sql

        if not correction.has_correction:
            return state.fail(
                CorrectionUnfixableError(
                    correction.user_message or NO_CORRECTION_MESSAGE,
                    details={"store_error": failure.error_text, "explanation": correction.explanation},
                ),
                PathTaken.CORRECTION_FAILED,
            )

        state.active_sql = correction.corrected_sql.strip()
        return PipelineStage.RE_EXECUTING

    async def _step_re_execute(self, state: PipelineState) -> PipelineStage:
        logger.info("Step: corrected query execution", trace_id=current_trace_id())

        state.executions += 1
        outcome = await self.execution_repo.execute(state.active_sql)
        state.execution_ms += outcome.execution_ms
        state.second_execution = outcome

        if isinstance(outcome, ExecutionSuccess):
            return state.succeed(PathTaken.CORRECTION_SUCCESS)

        first_error = state.first_execution.error_text
        return state.fail(
            CorrectionExecutionError(
                f"Even the corrected query failed: {outcome.error_text}",
                details={"original_error": first_error, "corrected_error": outcome.error_text},
            ),
            PathTaken.CORRECTION_ALSO_FAILED,
        )

    # =========================================================================
    # Result Building
    # =========================================================================

    def _build_result(self, state: PipelineState) -> PipelineResult:
        generated = state.generated
        correction = state.correction

        try:
            kind: Optional[VisualizationKind] = VisualizationKind(state.request.visualization_kind)
        except ValueError:
            kind = None

        first = state.first_execution
        second = state.second_execution

        common = dict(
            sql=state.active_sql,
            explanation=generated.explanation if generated else None,
            visualization_kind=kind,
            columns=list(generated.columns) if generated else [],
            original_sql=state.original_sql if correction else None,
            corrected_sql=correction.corrected_sql if correction else None,
            original_error=first.error_text if isinstance(first, ExecutionFailure) else None,
            corrected_error=second.error_text if isinstance(second, ExecutionFailure) else None,
            metrics=state.metrics(),
        )

        if state.failure is None and state.stage is PipelineStage.DONE:
            final = second if second is not None else first
            return PipelineResult(
                success=True,
                data=final.rows,
                row_count=final.row_count,
                **common,
            )

        failure = state.failure or PipelineStateError("Pipeline ended without an outcome")
        error_fields = failure.to_dict()
        if state.validation_warning is not None:
            error_fields["details"] = {
                **error_fields.get("details", {}),
                "validation_warning": state.validation_warning.to_dict(),
            }
        error = PipelineErrorDetail(
            **error_fields,
            error_kind=correction.error_kind if correction else None,
            alternatives=correction.alternatives if correction else None,
        )
        return PipelineResult(success=False, error=error, **common)
