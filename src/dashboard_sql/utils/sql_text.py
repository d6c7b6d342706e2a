"""
Small text helpers shared by every stage that touches SQL strings.

These are string operations, not parsing: they look at the leading keyword,
strip terminators and normalise whitespace.
"""

import re

# Statements that can only read data
READ_ONLY_KEYWORDS = ("SELECT", "WITH")

_LEADING_KEYWORD = re.compile(r"^\s*\(?\s*([A-Za-z]+)\b")
_TRAILING_TERMINATORS = re.compile(r"[\s;]+$")
_WHITESPACE = re.compile(r"\s+")


def leading_keyword(sql: str) -> str:
    """Return the first word of the statement in upper case ('' when there is none)."""
    match = _LEADING_KEYWORD.match(sql or "")
    return match.group(1).upper() if match else ""


def is_read_only_statement(sql: str) -> bool:
    """True when the statement starts with SELECT or WITH."""
    return leading_keyword(sql) in READ_ONLY_KEYWORDS


def strip_terminators(sql: str) -> str:
    """Trim the statement and drop trailing semicolons."""
    return _TRAILING_TERMINATORS.sub("", sql.strip())


def collapse_whitespace(sql: str) -> str:
    """Replace every run of whitespace with a single space."""
    return _WHITESPACE.sub(" ", sql).strip()


def normalize_statement(sql: str) -> str:
    """Single-line statement without trailing terminators."""
    return collapse_whitespace(strip_terminators(sql))


_PLAIN_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_plain_identifier(name: str) -> bool:
    """True for an unquoted identifier: letters, digits and underscores, not starting with a digit."""
    return bool(_PLAIN_IDENTIFIER.match(name or ""))
