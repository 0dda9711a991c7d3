"""
test_compliance_us.py - US federal/state compliance tests

Usage: pytest test_compliance_us.py
"""

from __future__ import annotations

import os
import sys
from decimal import Decimal
from typing import Any

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from compliance_us import (
    FEDERAL_DEDUCTION_RATES,
    STATE_TAX_RATES,
    TAX_EXEMPT_STATES,
    USComplianceEvaluator,
    federal_deduction,
)
from models import ReceiptRecord, SuggestionAction

evaluator = USComplianceEvaluator()


def make_record(**overrides: Any) -> ReceiptRecord:
    data: dict[str, Any] = {
        "vendor": "Office Depot",
        "date": "2024-01-15",
        "total": 107.25,
        "tax": 7.25,
        "currency": "USD",
    }
    data.update(overrides)
    return ReceiptRecord.model_validate(data)


def reasons(result) -> list[str]:
    return [suggestion.reason for suggestion in result.suggestions]


def test_rate_tables():
    assert len(STATE_TAX_RATES) == 51
    assert all(STATE_TAX_RATES[state] == 0 for state in TAX_EXEMPT_STATES)
    assert FEDERAL_DEDUCTION_RATES["Meals & Entertainment"] == Decimal("0.5")


def test_missing_state_code_is_informational():
    result = evaluator.evaluate(make_record())
    assert result.compliant
    assert not result.requires_review
    assert result.alerts == []
    assert "State code not provided. Unable to validate state sales tax." in reasons(result)
    assert all(s.action is SuggestionAction.INFO for s in result.suggestions)


def test_matching_state_rate_is_compliant():
    result = evaluator.evaluate(make_record(stateCode="CA"))
    assert result.compliant
    assert result.alerts == []
    assert result.jurisdiction == "US"


def test_state_rate_mismatch():
    result = evaluator.evaluate(make_record(total=110, tax=10, stateCode="ca"))
    assert not result.compliant
    assert result.alerts == ["Tax amount (10.00) doesn't match expected CA rate (7.25%). Expected: 7.25"]
    tax_suggestion = next(s for s in result.suggestions if s.target_field == "tax")
    assert tax_suggestion.suggested_value == 7.25
    assert tax_suggestion.action is SuggestionAction.REVIEW


def test_small_state_difference_within_tolerance():
    # 7.30 charged vs 7.25 expected: within 5% of the charged tax.
    result = evaluator.evaluate(make_record(total=107.30, tax=7.30, stateCode="CA"))
    assert result.compliant


def test_tax_exempt_state_charging_tax():
    result = evaluator.evaluate(make_record(total=105, tax=5, stateCode="OR"))
    assert not result.compliant
    assert "OR is a tax-exempt state, but tax was charged" in result.alerts


def test_tax_exempt_state_without_tax():
    result = evaluator.evaluate(make_record(total=100, tax=0, stateCode="OR"))
    assert result.compliant


def test_unknown_state_code():
    result = evaluator.evaluate(make_record(stateCode="ZZ"))
    assert result.compliant
    assert any("Unknown state code ZZ" in reason for reason in reasons(result))


def test_high_overall_rate_requires_review():
    result = evaluator.evaluate(make_record(total=120, tax=20))
    assert not result.compliant
    assert result.requires_review
    assert result.alerts == ["Unusually high tax rate: 20.00%. US sales tax typically ranges from 0-15%."]


def test_meals_are_half_deductible():
    record = make_record(total=100, tax=0, category="Meals & Entertainment")
    assert federal_deduction(record) == Decimal("50.0")
    result = evaluator.evaluate(record)
    note = next(s for s in result.suggestions if s.target_field == "category")
    assert note.suggested_value == 50.0
    assert note.action is SuggestionAction.INFO


def test_other_categories_fully_deductible():
    assert federal_deduction(make_record(total=80, category="Travel")) == Decimal("80")
    assert federal_deduction(make_record(total=80, category="Widgets")) == Decimal("80")
    assert federal_deduction(make_record(total=80)) == Decimal("80")
    result = evaluator.evaluate(make_record(category="Travel"))
    assert all(s.target_field != "category" for s in result.suggestions)
