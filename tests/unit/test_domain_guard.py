"""
Unit tests for the out-of-scope pre-filter.
"""

import pytest

from dashboard_sql.repositories.domain_guard import DomainGuard, is_out_of_scope


class TestDomainGuard:

    @pytest.mark.parametrize("message", [
        "What is the average salary?",
        "Show wages by client",
        "Total payment per staff member last month",
        "How much money did we spend on overtime",
        "Cost per project",
        "EARNINGS by staff",
    ])
    def test_monetary_terms_block(self, message):
        assert is_out_of_scope(message) is True

    @pytest.mark.parametrize("message", [
        "Show total hours by staff",
        "Monthly work hours trend",
        "Check-in locations map",
        "Average attendance rate",
    ])
    def test_workforce_questions_pass(self, message):
        assert is_out_of_scope(message) is False

    def test_unpaid_with_attendance_context_passes(self):
        assert is_out_of_scope("People who have gone unpaid regularly") is False

    def test_paid_without_context_blocks(self):
        assert is_out_of_scope("List unpaid invoices") is True

    def test_monetary_term_wins_over_context(self):
        assert is_out_of_scope("Salary of staff who were absent") is True

    def test_matching_is_case_insensitive(self):
        assert is_out_of_scope("SALARY") is True
        assert is_out_of_scope("Unpaid STAFF") is False

    def test_empty_message_is_in_scope(self):
        assert is_out_of_scope("") is False

    def test_custom_lexicons(self):
        guard = DomainGuard(monetary_terms=("revenue",), ambiguous_terms=(), context_terms=())
        assert guard.is_out_of_scope("Revenue by month") is True
        assert guard.is_out_of_scope("Salary by month") is False
