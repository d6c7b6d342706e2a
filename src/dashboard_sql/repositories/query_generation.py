"""
Query Generation Repository.

Handles LLM-based ClickHouse query generation:
- Instruction and prompt building with the schema catalog
- Tool-constrained LLM interaction (generate_clickhouse_query)
- Fallback extraction when the model answers in free text
"""

import re
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from dashboard_sql.domain.base_enums import VisualizationKind
from dashboard_sql.domain.errors import LLMError, QueryGenerationError
from dashboard_sql.domain.query_models import WILDCARD_COLUMNS, GeneratedQuery, GenerationRequest
from dashboard_sql.domain.tools import GenerateQueryArgs, ModelTool
from dashboard_sql.infrastructure.llm_client import LLMClient
from dashboard_sql.repositories.schema_catalog import SchemaCatalog
from dashboard_sql.utils.logging import get_module_logger
from dashboard_sql.utils.sql_text import is_read_only_statement, normalize_statement
from dashboard_sql.utils.tracing import current_trace_id

logger = get_module_logger()

GENERATE_TOOL_NAME = "generate_clickhouse_query"

# Column-like terms the generated statement may not contain
FINANCIAL_COLUMN_TERMS = ("payment", "salary", "wage", "earnings", "cost", "price", "amount", "compensation")

_FENCED_BLOCK = re.compile(r"```(?:sql)?\s*\n?([\s\S]*?)\n?```")
_SELECT_RUN = re.compile(r"\bSELECT[\s\S]*?(?=\n\n|$|Explanation|;)", re.IGNORECASE)


def extract_statement(text: str) -> Optional[str]:
    """
    Pull a SQL statement out of a free-text model answer.

    A fenced code block wins; otherwise the first SELECT run up to a blank
    line, "Explanation", a semicolon or the end of the text. The result has
    trailing semicolons removed and whitespace collapsed. Returns None when
    neither is found.
    """
    if not text:
        return None

    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        candidate = fenced.group(1)
    else:
        select_run = _SELECT_RUN.search(text)
        if not select_run:
            return None
        candidate = select_run.group(0)

    statement = normalize_statement(candidate)
    return statement or None


def build_generation_tool(target_table: str) -> ModelTool:
    """The generate_clickhouse_query tool, gated on the request's target table."""

    def _gate(args: GenerateQueryArgs) -> Dict[str, Any]:
        query = args.query.strip()
        lowered = query.lower()

        if any(term in lowered for term in FINANCIAL_COLUMN_TERMS):
            raise ValueError(
                "Financial columns are not available in this workforce tracking system. "
                "This schema only contains attendance, work hours, and location data."
            )
        if not is_read_only_statement(query):
            raise ValueError("Only SELECT queries are allowed")
        if target_table.lower() not in lowered:
            raise ValueError(f"Query must use the {target_table} table")

        payload = args.model_dump(mode="json")
        payload["query"] = query
        return payload

    return ModelTool(
        name=GENERATE_TOOL_NAME,
        description="Generate a ClickHouse SQL query based on user request and card type",
        args_schema=GenerateQueryArgs,
        executor=_gate,
    )


class QueryGenerationRepository:
    """
    Repository for LLM-based query generation.

    Handles prompt construction, the tool call and the free-text fallback.
    One model call per generate().
    """

    def __init__(self, llm_client: LLMClient, catalog: SchemaCatalog):
        self.llm_client = llm_client
        self.catalog = catalog

    async def generate(self, request: GenerationRequest) -> GeneratedQuery:
        """
        Generate a query for one request.

        Args:
            request: User message, visualization kind and target table

        Returns:
            GeneratedQuery; columns are ["*"] when the model skipped the tool

        Raises:
            QueryGenerationError: On bad input, a rejected tool call, an LLM
                failure or a free-text answer without a statement
        """
        trace_id = current_trace_id()

        if not request.user_message or not request.user_message.strip() or not request.visualization_kind:
            raise QueryGenerationError("User message and card type are required")

        try:
            kind = VisualizationKind(request.visualization_kind)
        except ValueError as e:
            valid_kinds = ", ".join(k.value for k in VisualizationKind)
            raise QueryGenerationError(
                f"Invalid card type. Must be one of: {valid_kinds}",
                details={"card_type": str(request.visualization_kind)},
            ) from e

        if request.target_table not in self.catalog:
            raise QueryGenerationError(
                f"Table {request.target_table} not found in schema",
                details={"table_name": request.target_table, "available_tables": self.catalog.table_names},
            )

        instructions = self._build_instructions()
        prompt = self._build_prompt(request.user_message, kind, request.target_table)

        logger.debug(
            "Calling LLM for query generation",
            instructions_length=len(instructions),
            prompt_length=len(prompt),
            card_type=kind.value,
            target_table=request.target_table,
            trace_id=trace_id,
        )

        try:
            invocation = await self.llm_client.invoke_with_tool(
                instructions=instructions,
                prompt=prompt,
                tool=build_generation_tool(request.target_table),
            )
        except LLMError as e:
            logger.warning(
                "Query generation failed in the LLM call",
                error=e.message,
                error_code=e.error_code,
                trace_id=trace_id,
            )
            raise QueryGenerationError(
                e.message,
                details={"cause": e.error_code, **e.details},
            ) from e

        if invocation.payload is not None:
            payload = invocation.payload
            generated = self._to_generated_query(
                sql=payload["query"],
                explanation=payload.get("explanation", ""),
                kind=kind,
                columns=payload["columns"],
            )
            logger.info(
                "LLM generated query via tool",
                sql=generated.sql,
                columns=generated.columns,
                trace_id=trace_id,
            )
            return generated

        statement = extract_statement(invocation.text or "")
        if statement is None:
            raise QueryGenerationError(
                "LLM response did not contain a SQL statement",
                details={"response_preview": (invocation.text or "")[:200]},
            )

        generated = self._to_generated_query(
            sql=statement,
            explanation="Generated query from LLM response",
            kind=kind,
            columns=list(WILDCARD_COLUMNS),
        )
        logger.info(
            "LLM skipped the tool; statement extracted from text",
            sql=generated.sql,
            trace_id=trace_id,
        )
        return generated

    def _to_generated_query(self, sql: str, explanation: str, kind: VisualizationKind, columns) -> GeneratedQuery:
        try:
            return GeneratedQuery(
                sql=sql.strip(),
                explanation=explanation,
                visualization_kind=kind,
                columns=columns,
            )
        except PydanticValidationError as e:
            raise QueryGenerationError(
                "Generated query is not a read-only statement",
                details={"sql": sql, "errors": e.errors(include_url=False, include_context=False)},
            ) from e

    def _build_instructions(self) -> str:
        """Build the system instructions: global rules, card guidelines, catalog and examples."""
        schema_section = self.catalog.render_for_prompt()

        return f"""You are a ClickHouse SQL query generator for workforce analytics dashboards. Your job is to convert natural language requests into optimized ClickHouse SQL queries.

## CRITICAL RULES
1. ONLY generate SELECT statements - no other SQL commands
2. ALWAYS use the table name given in the request
3. Return ONLY the SQL query without any markdown formatting, explanations, or additional text
4. Generate queries appropriate for the specified card type
5. Use proper ClickHouse functions and syntax
6. Handle date formatting properly (work_date is Date type)
7. Use appropriate aggregations for the card type
8. Consider performance - use appropriate LIMIT clauses
9. Handle NULL values properly
10. Do NOT wrap queries in markdown code blocks
11. NEVER use column aliases with AS for table/bar/line/pie/map cards - use original database column names
12. FOR KPI CARDS ONLY: Use AS aliases to provide meaningful display names
13. Keep all field names exactly as they appear in the database schema
14. ONLY use columns that exist in the provided schema - never invent or assume columns
15. If asked about non-existent fields, use the closest matching existing column
16. NEVER use implicit column aliases (like COUNT(*) days_present) - use explicit AS or no alias
17. Each SELECT item must be properly separated by commas with NO extra text

## CARD TYPE GUIDELINES

### TABLE
- Select relevant columns for tabular display, with proper ordering
- Limit to a reasonable row count (50-100 rows)

### BAR / LINE / PIE
- Exactly 2 columns: one for labels/categories, one for values
- Use GROUP BY for aggregations; order by value or time
- Limit to 10-20 data points for readability

### MAP
- ALWAYS include coordinates (checkin_lat, checkin_lng, checkout_lat, checkout_lng)
- Include staff_name, client_name for map markers
- Filter out NULL coordinates with WHERE clauses
- NEVER rename coordinate columns

### KPI
- Return a SINGLE aggregate value (one row, one column)
- NEVER use GROUP BY in the main query; for conditional staff counts use a subquery:
  COUNT(*) FROM (SELECT staff_id ... GROUP BY staff_id HAVING ...)
- MUST use a human-readable alias with AS; the alias becomes the KPI title
- Example: AVG(attendance_score) AS "Average Attendance Rate"

## COMMON PATTERNS
- Daily: GROUP BY work_date
- Monthly: GROUP BY toYYYYMM(work_date)
- Yearly: GROUP BY toYear(work_date)
- Quarterly: GROUP BY toQuarter(work_date)
- Weekday: GROUP BY toDayOfWeek(work_date)
- Staff analysis: GROUP BY staff_name, staff_id
- Client analysis: GROUP BY client_name, client_id
- Attendance: is_present, leave_type
- Time analysis: total_work_hours, overtime_hours, effective_work_hours
- Project location: checkin_project_id, checkout_project_id (NULL or -1 = outside project)
- Project analysis: JOIN client_projects p ON d.checkin_project_id = p.project_id

## DATETIME HANDLING
- NEVER use AVG() directly on DateTime columns; average check-in hour is AVG(toHour(checkin_time))
- Earliest / latest: MIN(checkin_time), MAX(checkout_time)
- Time differences: dateDiff('minute', checkin_time, checkout_time)
- Formatting: formatDateTime(checkin_time, '%H:%M')
- DAY, WEEK, MONTH and YEAR are NOT columns; use work_date with date functions

## DATE FILTERING (EXACT SYNTAX)
- This week: work_date >= toMonday(today()) AND work_date < addDays(toMonday(today()), 7)
- Last week: work_date >= subtractDays(toMonday(today()), 7) AND work_date < toMonday(today())
- This month: toYYYYMM(work_date) = toYYYYMM(today())
- Last month: toYYYYMM(work_date) = toYYYYMM(addMonths(today(), -1))
- This year: toYear(work_date) = toYear(today())
- Last year: toYear(work_date) = toYear(today()) - 1
- Recent 7 days: work_date >= today() - 7
- This quarter: toQuarter(work_date) = toQuarter(today()) AND toYear(work_date) = toYear(today())
- Yesterday: work_date = yesterday()
- Today: work_date = today()

## NO FINANCIAL DATA
- There is NO earnings, payment, salary, wage, compensation or cost data in this schema
- "Unpaid" in a workforce context means attendance problems: use is_present, total_work_hours, attendance_score
- Never generate queries with financial columns (Payment, Salary, Wage, Pay, Earnings, Cost, Price, Amount)

## AVAILABLE SCHEMA
{schema_section}

## EXAMPLE QUERIES
- "Show total hours by staff" (TABLE) -> SELECT staff_name, SUM(total_work_hours) FROM daily_worker_summary GROUP BY staff_name ORDER BY SUM(total_work_hours) DESC LIMIT 20
- "Monthly work hours trend" (LINE) -> SELECT toYYYYMM(work_date), SUM(total_work_hours) FROM daily_worker_summary GROUP BY toYYYYMM(work_date) ORDER BY toYYYYMM(work_date) DESC LIMIT 12
- "Top 10 staff by check-in times" (BAR) -> SELECT staff_name, AVG(toHour(checkin_time)) FROM daily_worker_summary WHERE checkin_time IS NOT NULL GROUP BY staff_name ORDER BY AVG(toHour(checkin_time)) ASC LIMIT 10
- "Check-in locations map" (MAP) -> SELECT checkin_lat, checkin_lng, staff_name, client_name, total_work_hours FROM daily_worker_summary WHERE checkin_lat IS NOT NULL AND checkin_lng IS NOT NULL LIMIT 100
- "Staff working outside projects" (TABLE) -> SELECT staff_name, COUNT(*) FROM daily_worker_summary WHERE (checkin_project_id IS NULL OR checkin_project_id = -1) GROUP BY staff_name ORDER BY COUNT(*) DESC
- "Project attendance with names" (BAR) -> SELECT p.project_name, COUNT(d.staff_id) FROM daily_worker_summary d JOIN client_projects p ON d.checkin_project_id = p.project_id WHERE d.is_present = 1 GROUP BY p.project_name ORDER BY COUNT(d.staff_id) DESC
- "People who have gone unpaid regularly" (TABLE) -> SELECT staff_name, COUNT(*), SUM(total_work_hours), AVG(attendance_score) FROM daily_worker_summary WHERE toYYYYMM(work_date) = toYYYYMM(addMonths(today(), -1)) AND (is_present = 0 OR total_work_hours < 4) GROUP BY staff_name HAVING COUNT(*) >= 5 ORDER BY COUNT(*) DESC
- "People who have gone unpaid regularly" (KPI) -> SELECT COUNT(*) AS "People Needing Attention" FROM (SELECT staff_id FROM daily_worker_summary WHERE toYYYYMM(work_date) = toYYYYMM(addMonths(today(), -1)) AND (is_present = 0 OR total_work_hours < 4) GROUP BY staff_id HAVING COUNT(*) >= 5)
- "Average attendance rate" (KPI) -> SELECT AVG(attendance_score) AS "Average Attendance Rate" FROM daily_worker_summary WHERE toYYYYMM(work_date) = toYYYYMM(today())
- "How many staff worked today" (KPI) -> SELECT COUNT(DISTINCT staff_id) AS "Staff Working Today" FROM daily_worker_summary WHERE work_date = today()
"""

    def _build_prompt(self, user_message: str, kind: VisualizationKind, target_table: str) -> str:
        """Build the per-request prompt with the card-specific aliasing policy."""
        if kind.allows_aliases:
            alias_rule = (
                "MANDATORY: Use AS aliases with human-readable titles in quotes "
                "(e.g., COUNT(*) AS \"Total Staff Count\") and return a single row"
            )
        else:
            alias_rule = "NEVER use column aliases (AS) - use original column names only"

        return f"""## USER REQUEST
"{user_message}"

## CARD TYPE
{kind.value}

## TARGET TABLE
{target_table}

## REQUIREMENTS
1. Answer the user's request for a {kind.value} visualization
2. The query MUST read from {target_table}; JOIN other listed tables only when needed
3. {alias_rule}
4. Use work_date with ClickHouse date functions for time filtering (e.g., toYYYYMM(work_date))
5. Use exact column names from the schema

Generate ONLY the SQL query using the {GENERATE_TOOL_NAME} tool."""
