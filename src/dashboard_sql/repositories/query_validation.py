"""
Query Validation Repository.

Lightweight static column check for generated ClickHouse SQL, run between
generation and execution.

What it does:
1. Picks the identifier universe: every catalog column when the statement
   contains JOIN, otherwise the target table's columns
2. Strips quoted literals and quoted aliases, then tokenizes into bare words
3. Exempts keywords, ClickHouse functions, table names, table aliases,
   AS aliases and numbers
4. For the first word left over, searches the universe for a column that
   contains it or is contained in it (case-insensitive, catalog order)

What it is not:
- Not a SQL parser; regex and word boundaries only
- Not a gate: an InvalidQuery without a suggestion is informational and the
  store decides. A suggestion is a rewrite the pipeline may apply.

Architecture Notes:
- This is a REPOSITORY with no I/O; it reads the in-memory SchemaCatalog
- Returns ValidQuery / InvalidQuery, never raises on bad SQL
"""

import re
from typing import FrozenSet, List, Optional, Set

from dashboard_sql.domain.query_models import InvalidQuery, ValidationOutcome, ValidQuery
from dashboard_sql.repositories.schema_catalog import SchemaCatalog
from dashboard_sql.utils.logging import get_module_logger
from dashboard_sql.utils.tracing import current_trace_id

logger = get_module_logger()


# SQL keywords, compared in upper case
SQL_KEYWORDS: FrozenSet[str] = frozenset({
    "SELECT", "FROM", "WHERE", "AND", "OR", "NOT", "IN", "IS", "NULL", "AS",
    "ON", "USING", "JOIN", "INNER", "LEFT", "RIGHT", "FULL", "OUTER", "CROSS",
    "SEMI", "ANTI", "ANY", "ALL", "ASOF", "GLOBAL", "ARRAY",
    "GROUP", "BY", "ORDER", "HAVING", "LIMIT", "OFFSET", "ASC", "DESC",
    "NULLS", "FIRST", "LAST", "DISTINCT", "UNION", "EXCEPT", "INTERSECT",
    "CASE", "WHEN", "THEN", "ELSE", "END", "BETWEEN", "LIKE", "ILIKE",
    "EXISTS", "WITH", "TOTALS", "ROLLUP", "CUBE", "OVER", "PARTITION",
    "ROWS", "RANGE", "UNBOUNDED", "PRECEDING", "FOLLOWING", "CURRENT", "ROW",
    "FILL", "STEP", "TIES", "SETTINGS", "FORMAT", "FINAL", "SAMPLE",
    "PREWHERE", "TRUE", "FALSE", "INTERVAL",
    # Interval units
    "SECOND", "MINUTE", "HOUR", "DAY", "WEEK", "MONTH", "QUARTER", "YEAR",
    # Type names used in CAST(x AS T)
    "STRING", "DATE", "DATETIME", "DATE32", "DATETIME64", "FLOAT32", "FLOAT64",
    "INT8", "INT16", "INT32", "INT64", "UINT8", "UINT16", "UINT32", "UINT64",
    "DECIMAL", "NULLABLE", "LOWCARDINALITY",
})

# ClickHouse functions the generator may emit, compared in lower case
CLICKHOUSE_FUNCTIONS: FrozenSet[str] = frozenset(name.lower() for name in {
    # Aggregates
    "count", "sum", "avg", "min", "max", "any", "anyLast", "argMin", "argMax",
    "uniq", "uniqExact", "uniqCombined", "groupArray", "groupUniqArray",
    "median", "quantile", "quantiles", "quantileExact", "stddevPop",
    "stddevSamp", "varPop", "varSamp", "countIf", "sumIf", "avgIf", "minIf",
    "maxIf", "uniqIf", "topK", "countDistinct", "uniqHLL12", "groupArrayIf",
    "sumMap", "anyHeavy", "argMinIf", "argMaxIf", "quantileIf", "corr",
    "covarPop", "covarSamp", "simpleLinearRegression", "histogram",
    # Window
    "row_number", "rank", "dense_rank", "lag", "lead", "lagInFrame",
    "leadInFrame", "first_value", "last_value", "ntile",
    # Dates and times
    "today", "yesterday", "now", "toDate", "toDateTime", "toYear", "toQuarter",
    "toMonth", "toWeek", "toISOWeek", "toDayOfWeek", "toDayOfMonth",
    "toDayOfYear", "toHour", "toMinute", "toSecond", "toYYYYMM", "toYYYYMMDD",
    "toYearWeek", "toMonday", "toStartOfDay", "toStartOfWeek",
    "toStartOfMonth", "toStartOfQuarter", "toStartOfYear", "toStartOfHour",
    "toStartOfInterval", "toLastDayOfMonth", "addDays", "addWeeks",
    "addMonths", "addYears", "addHours", "addMinutes", "subtractDays",
    "subtractWeeks", "subtractMonths", "subtractYears", "subtractHours",
    "dateDiff", "date_diff", "dateAdd", "dateSub", "date_trunc", "dateTrunc",
    "formatDateTime", "parseDateTimeBestEffort", "toUnixTimestamp",
    "timeSlot", "age", "monthName", "dayName", "toStartOfFiveMinutes",
    "toStartOfFifteenMinutes", "toStartOfMinute", "toRelativeWeekNum",
    "toRelativeMonthNum", "toRelativeDayNum", "addQuarters", "subtractQuarters",
    "subtractMinutes", "addSeconds", "subtractSeconds", "toTime", "toTimeZone",
    "timeDiff", "timestampDiff", "toIntervalDay", "toIntervalWeek",
    "toIntervalMonth", "toIntervalYear", "toIntervalHour", "fromUnixTimestamp",
    "parseDateTimeBestEffortOrNull", "toDayOfWeekName",
    # Type conversion
    "cast", "toString", "toInt8", "toInt16", "toInt32", "toInt64", "toUInt8",
    "toUInt16", "toUInt32", "toUInt64", "toFloat32", "toFloat64", "toDecimal32",
    "toDecimal64", "toInt32OrNull", "toFloat64OrNull", "toDateOrNull",
    "toTypeName", "reinterpretAsString",
    # Null handling and conditionals
    "coalesce", "ifNull", "nullIf", "isNull", "isNotNull", "assumeNotNull",
    "toNullable", "if", "multiIf",
    # Math
    "round", "floor", "ceil", "ceiling", "abs", "sqrt", "pow", "power", "exp",
    "log", "ln", "greatest", "least", "intDiv", "modulo", "divide",
    "multiply", "plus", "minus", "roundBankers", "roundDown", "truncate",
    "trunc", "sign", "exp2", "log2", "log10", "widthBucket", "percentRank",
    # Strings
    "concat", "lower", "upper", "lowerUTF8", "upperUTF8", "length",
    "lengthUTF8", "substring", "substr", "trim", "trimBoth", "trimLeft",
    "trimRight", "replaceAll", "replaceOne", "position", "positionCaseInsensitive",
    "match", "extract", "splitByChar", "arrayJoin", "has", "empty", "notEmpty",
    "startsWith", "endsWith", "leftPad", "rightPad", "format", "concatWithSeparator",
    "splitByString", "reverse", "repeat", "left", "right", "lpad", "rpad",
    "formatReadableQuantity", "formatReadableSize", "toValidUTF8", "initcap",
    # Geo
    "greatCircleDistance", "geoDistance", "pointInPolygon",
    # Arrays / tuples
    "arrayStringConcat", "arraySort", "arrayDistinct", "tuple", "tupleElement",
    "countEqual", "indexOf", "range", "arrayMap", "arrayFilter", "arraySum",
    "arrayCount", "arrayElement", "arrayReverse", "arraySlice",
})

# Single-quoted, double-quoted and backtick-quoted text, with backslash escapes
_QUOTED = re.compile(r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\"|`(?:[^`\\]|\\.)*`")
_WORD = re.compile(r"\w+")
_JOIN = re.compile(r"\bJOIN\b", re.IGNORECASE)
_TABLE_REFERENCE = re.compile(r"\b(?:FROM|JOIN)\s+(?:\w+\.)?(\w+)(?:\s+(?:AS\s+)?(\w+))?", re.IGNORECASE)
_AS_ALIAS = re.compile(r"\bAS\s+(\w+)", re.IGNORECASE)


def strip_literals(sql: str) -> str:
    """Replace every quoted literal or quoted identifier with a space."""
    return _QUOTED.sub(" ", sql)


def find_substring_match(token: str, universe: List[str]) -> Optional[str]:
    """
    First column (in universe order) that contains the token or is contained in it.

    The match is deliberately loose: short column names such as "id" match
    any token that contains them.
    """
    lowered = token.lower()
    for column in universe:
        candidate = column.lower()
        if lowered in candidate or candidate in lowered:
            return column
    return None


def replace_identifier(sql: str, old: str, new: str) -> str:
    """Replace every whole-word occurrence of old with new."""
    return re.sub(rf"\b{re.escape(old)}\b", lambda _: new, sql)


class QueryValidationRepository:
    """
    Repository for the static column check.

    Usage:
        validator = QueryValidationRepository(get_schema_catalog())
        outcome = validator.validate(sql, "daily_worker_summary")
        if isinstance(outcome, InvalidQuery) and outcome.suggested_sql:
            sql = outcome.suggested_sql
    """

    def __init__(self, catalog: SchemaCatalog):
        self.catalog = catalog

    def identifier_universe(self, sql: str, target_table: str) -> List[str]:
        """Columns the statement may reference, in catalog order."""
        if _JOIN.search(sql):
            return self.catalog.column_names()
        return self.catalog.column_names([target_table])

    def validate(self, sql: str, target_table: str) -> ValidationOutcome:
        """
        Check every bare identifier in the statement.

        Args:
            sql: Generated statement
            target_table: Table the request targets

        Returns:
            ValidQuery with the referenced columns, or InvalidQuery for the
            first identifier that did not resolve
        """
        trace_id = current_trace_id()
        universe = self.identifier_universe(sql, target_table)
        universe_set = set(universe)

        text = strip_literals(sql)
        exempt = self._exempt_names(text)

        used_columns: List[str] = []
        for token in _WORD.findall(text):
            if token[0].isdigit():
                continue
            if token in universe_set:
                if token not in used_columns:
                    used_columns.append(token)
                continue
            if self._is_exempt(token, exempt):
                continue

            suggestion = find_substring_match(token, universe)
            if suggestion is not None:
                suggested_sql = replace_identifier(sql, token, suggestion)
                logger.info(
                    "Unknown identifier has a close column match",
                    bad_identifier=token,
                    suggestion=suggestion,
                    trace_id=trace_id,
                )
                return InvalidQuery(
                    bad_identifier=token,
                    suggestion=suggestion,
                    suggested_sql=suggested_sql,
                    available_columns=universe,
                )

            logger.info(
                "Unknown identifier without a column match",
                bad_identifier=token,
                universe_size=len(universe),
                trace_id=trace_id,
            )
            return InvalidQuery(bad_identifier=token, available_columns=universe)

        logger.debug("Column check passed", used_columns=used_columns, trace_id=trace_id)
        return ValidQuery(used_columns=used_columns)

    def _exempt_names(self, text: str) -> Set[str]:
        """Table names and aliases declared in the statement, lower case."""
        names = {name.lower() for name in self.catalog.table_names}
        for match in _TABLE_REFERENCE.finditer(text):
            names.add(match.group(1).lower())
            if match.group(2):
                names.add(match.group(2).lower())
        for match in _AS_ALIAS.finditer(text):
            names.add(match.group(1).lower())
        return names

    @staticmethod
    def _is_exempt(token: str, exempt: Set[str]) -> bool:
        return (
            token.upper() in SQL_KEYWORDS
            or token.lower() in CLICKHOUSE_FUNCTIONS
            or token.lower() in exempt
        )
