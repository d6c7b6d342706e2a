"""
Query Correction Repository.

Second model call of the pipeline: given the statement ClickHouse rejected
and the exact error text, ask the model for a repaired statement through the
correct_clickhouse_query tool.

The corrector never raises. A model failure, a rejected tool call or a
free-text answer all produce CorrectionOutcome(can_correct=False,
error_kind=other) with a stable user message.
"""

from dashboard_sql.domain.base_enums import CorrectionErrorKind, VisualizationKind
from dashboard_sql.domain.errors import LLMError
from dashboard_sql.domain.query_models import CorrectionOutcome, GenerationRequest
from dashboard_sql.domain.tools import CorrectQueryArgs, ModelTool
from dashboard_sql.infrastructure.llm_client import LLMClient
from dashboard_sql.repositories.schema_catalog import SchemaCatalog
from dashboard_sql.utils.logging import get_module_logger
from dashboard_sql.utils.tracing import current_trace_id

logger = get_module_logger()

CORRECT_TOOL_NAME = "correct_clickhouse_query"

NO_CORRECTION_MESSAGE = "Unable to automatically correct this query. Please try rephrasing your request."
CORRECTION_ERROR_MESSAGE = "An error occurred while trying to correct the query. Please try rephrasing your request."

CORRECTION_TOOL = ModelTool(
    name=CORRECT_TOOL_NAME,
    description="Correct a ClickHouse SQL query based on specific database error message",
    args_schema=CorrectQueryArgs,
)


class QueryCorrectionRepository:
    """
    Repository for LLM-based query correction.

    One model call per correct().
    """

    def __init__(self, llm_client: LLMClient, catalog: SchemaCatalog):
        self.llm_client = llm_client
        self.catalog = catalog

    async def correct(
        self,
        original_sql: str,
        error_text: str,
        request: GenerationRequest,
    ) -> CorrectionOutcome:
        """
        Ask the model to repair a failed statement.

        Args:
            original_sql: Statement ClickHouse rejected
            error_text: ClickHouse error message, verbatim
            request: The original request (message, card type, table)

        Returns:
            CorrectionOutcome; can_correct is False on any failure
        """
        trace_id = current_trace_id()

        instructions = self._build_instructions()
        prompt = self._build_prompt(original_sql, error_text, request)

        logger.info(
            "Calling LLM for query correction",
            error=error_text,
            prompt_length=len(prompt),
            trace_id=trace_id,
        )

        try:
            invocation = await self.llm_client.invoke_with_tool(
                instructions=instructions,
                prompt=prompt,
                tool=CORRECTION_TOOL,
            )
        except LLMError as e:
            logger.error(
                "Query correction failed in the LLM call",
                error=e.message,
                error_code=e.error_code,
                trace_id=trace_id,
            )
            return CorrectionOutcome(
                can_correct=False,
                error_kind=CorrectionErrorKind.OTHER,
                explanation=f"Correction failed: {e.message}",
                user_message=CORRECTION_ERROR_MESSAGE,
            )

        if invocation.payload is None:
            logger.warning("Correction LLM did not call the tool", trace_id=trace_id)
            return CorrectionOutcome(
                can_correct=False,
                error_kind=CorrectionErrorKind.OTHER,
                explanation="Correction agent failed to provide a result",
                user_message=NO_CORRECTION_MESSAGE,
            )

        payload = invocation.payload
        corrected_sql = (payload.get("corrected_query") or "").strip() or None
        outcome = CorrectionOutcome(
            can_correct=bool(payload["can_correct"]) and corrected_sql is not None,
            corrected_sql=corrected_sql,
            error_kind=payload["error_kind"],
            explanation=payload.get("explanation", ""),
            user_message=payload.get("user_friendly_message", ""),
            alternatives=payload.get("alternatives"),
        )

        logger.info(
            "Query correction completed",
            can_correct=outcome.can_correct,
            error_kind=outcome.error_kind.value,
            corrected_sql=outcome.corrected_sql,
            trace_id=trace_id,
        )
        return outcome

    def _build_instructions(self) -> str:
        """Build the corrector's system instructions with the common ClickHouse error patterns."""
        column_lists = "\n".join(
            f"- {table.name}: {', '.join(table.column_names)}"
            for table in self.catalog.describe_all()
        )

        return f"""You are a ClickHouse SQL query error corrector for workforce analytics. Your job is to analyze ClickHouse database errors and correct queries based on real error messages.

## CORRECTION APPROACH
1. Analyze the original user intent and the generated query
2. Examine the specific ClickHouse error message to understand what went wrong
3. Apply targeted fixes based on the actual error, not pre-assumptions
4. Translate ClickHouse errors into proper fixes

## AVAILABLE COLUMNS
{column_lists}

## COMMON ERROR PATTERNS & FIXES

### column_not_found
- "Unknown identifier 'WEEK'" -> use toWeek(work_date)
- "Unknown identifier 'DAY'" -> use toDayOfWeek(work_date) or work_date
- "Unknown identifier 'Payment'" -> unfixable: financial data is not available

### syntax_error
- "Syntax error near 'GROUP BY'" -> check GROUP BY placement and columns
- "Expected one of: SELECT" -> ensure proper SQL structure

### function_error
- "Wrong number of arguments" -> check the function's parameter count
- "Cannot convert DateTime to Float64" -> convert first, e.g. AVG(toHour(checkin_time))

### type_mismatch
- "Cannot convert types" -> add CAST() or a to*() conversion

### join_error
- "Missing JOIN condition" -> add an ON clause
- "Ambiguous column reference" -> prefix columns with table aliases

### aggregation_error
- "Column must appear in GROUP BY" -> add it to GROUP BY or remove it from SELECT
- "Aggregate function in non-aggregate query" -> add GROUP BY or remove the aggregation

## ERROR CATEGORIZATION
1. FIXABLE: column names, syntax, type mismatches -> can_correct=true with corrected_query
2. UNFIXABLE: financial data requests, missing tables -> can_correct=false, error_kind=unfixable, explain and suggest alternatives
3. UNCLEAR: complex errors -> can_correct=false with alternatives

## CORRECTION PRINCIPLES
- Use the exact ClickHouse error message to guide fixes
- Keep the original user intent and card type
- Prefer simple fixes over restructuring
- Only SELECT statements; only columns listed above
"""

    def _build_prompt(self, original_sql: str, error_text: str, request: GenerationRequest) -> str:
        """Build the per-failure correction prompt."""
        kind = request.visualization_kind
        card_type = kind.value if isinstance(kind, VisualizationKind) else str(kind)

        return f"""## ORIGINAL USER REQUEST
"{request.user_message}"

## CARD TYPE
{card_type}

## TARGET TABLE
{request.target_table}

## GENERATED QUERY
{original_sql}

## CLICKHOUSE ERROR
{error_text}

## AVAILABLE SCHEMA
{self.catalog.render_for_prompt()}

## CORRECTION TASK
Analyze the ClickHouse error message and correct the query.
1. What exactly did ClickHouse complain about?
2. How can this specific error be fixed while keeping the user's intent?
3. Is the error correctable, or does it show a fundamental limitation?

Use the {CORRECT_TOOL_NAME} tool to provide your correction."""
