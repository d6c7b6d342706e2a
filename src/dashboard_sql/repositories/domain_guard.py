"""
Domain Guard.

Keyword pre-filter that rejects requests for data the workforce catalog does
not hold (pay, money, prices) before any model call is made.

Rules, applied in this order on the lower-cased message (substring matching):
1. Any monetary term present: out of scope, even next to attendance words.
2. "paid"/"unpaid" together with an attendance context term: in scope
   ("people who have gone unpaid regularly" is an attendance question).
3. "paid"/"unpaid" without a context term: out of scope.
4. Anything else: in scope.
"""

from typing import Iterable, Tuple

from dashboard_sql.utils.logging import get_module_logger
from dashboard_sql.utils.tracing import current_trace_id

logger = get_module_logger()


# Terms that always mean a request for financial data
MONETARY_TERMS: Tuple[str, ...] = (
    "salary", "salaries", "wage", "wages", "payment", "payments",
    "compensation", "money", "dollar", "cost", "price", "earnings",
    "finance", "financial",
)

# Terms that are financial unless the message is clearly about attendance
AMBIGUOUS_TERMS: Tuple[str, ...] = ("paid", "unpaid")

# Attendance vocabulary that turns an ambiguous term into an attendance question
ATTENDANCE_CONTEXT_TERMS: Tuple[str, ...] = (
    "absent", "attendance", "present", "working", "work", "staff",
    "employee", "people", "regularly", "missing", "show up",
    "came to work", "not working", "not present",
)

OUT_OF_SCOPE_MESSAGE = (
    "Financial data is not available in this workforce tracking system. "
    "This database only contains attendance, work hours, and location tracking data. "
    "Please try asking about work hours, attendance rates, or staff performance metrics instead."
)


class DomainGuard:
    """
    Stateless out-of-scope classifier.

    Usage:
        guard = DomainGuard()
        if guard.is_out_of_scope("What is the average salary?"):
            ...
    """

    def __init__(
        self,
        monetary_terms: Iterable[str] = MONETARY_TERMS,
        ambiguous_terms: Iterable[str] = AMBIGUOUS_TERMS,
        context_terms: Iterable[str] = ATTENDANCE_CONTEXT_TERMS,
    ):
        self.monetary_terms = tuple(term.lower() for term in monetary_terms)
        self.ambiguous_terms = tuple(term.lower() for term in ambiguous_terms)
        self.context_terms = tuple(term.lower() for term in context_terms)

    def is_out_of_scope(self, user_message: str) -> bool:
        """Return True when the message asks for data outside the catalog."""
        message = (user_message or "").lower()

        monetary_hit = next((term for term in self.monetary_terms if term in message), None)
        if monetary_hit is not None:
            logger.info(
                "Request blocked by domain guard",
                matched_term=monetary_hit,
                rule="monetary_term",
                trace_id=current_trace_id()
            )
            return True

        if not any(term in message for term in self.ambiguous_terms):
            return False

        if any(context in message for context in self.context_terms):
            logger.debug(
                "Ambiguous pay term allowed in attendance context",
                trace_id=current_trace_id()
            )
            return False

        logger.info(
            "Request blocked by domain guard",
            rule="ambiguous_term_without_context",
            trace_id=current_trace_id()
        )
        return True


_default_guard = DomainGuard()


def is_out_of_scope(user_message: str) -> bool:
    """Classify with the default lexicons."""
    return _default_guard.is_out_of_scope(user_message)
