"""
test_alerts.py - Alert and suggestion synthesis tests

Usage: pytest test_alerts.py
"""

from __future__ import annotations

import os
import sys
from typing import Any

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from alerts import ALERT_DISCREPANCY, ALERT_DUPLICATE, build_alerts, build_suggestions, merge_unique
from compliance_eu import ALERT_ADD_VAT_ID, VAT_ID_PLACEHOLDER
from models import (
    DateAnomaly,
    DateAnomalyKind,
    DuplicateMatch,
    ReceiptRecord,
    SuggestionAction,
    TaxDiscrepancy,
    ValidationResult,
)
from reconcile import reconcile_tax
from validate import ISSUE_INVALID_TOTAL, ISSUE_MISSING_TAX_IDENTIFIER, validate_fields

SAMPLE_LINES = [
    {"description": "Supplies", "quantity": 2, "unitPrice": 50, "tax": 8},
    {"description": "Shipping", "quantity": 1, "unitPrice": 25.5, "tax": 2.04},
]


def make_record(**overrides: Any) -> ReceiptRecord:
    data: dict[str, Any] = {
        "vendor": "Amazon",
        "date": "2024-01-15",
        "total": 125.50,
        "tax": 10.04,
        "currency": "USD",
        "invoiceNumber": "INV-2024-001",
        "lineItems": SAMPLE_LINES,
    }
    data.update(overrides)
    return ReceiptRecord.model_validate(data)


def test_no_findings_no_alerts():
    assert build_alerts(ValidationResult(), DuplicateMatch(), TaxDiscrepancy(), DateAnomaly()) == []


def test_every_finding_maps_to_one_alert():
    validation = ValidationResult(
        missing_fields=["vendor", "date"],
        issues=[ISSUE_INVALID_TOTAL, ISSUE_MISSING_TAX_IDENTIFIER],
    )
    alerts = build_alerts(
        validation,
        DuplicateMatch(is_duplicate=True),
        TaxDiscrepancy(has_discrepancy=True),
        DateAnomaly(kind=DateAnomalyKind.FUTURE),
    )
    assert alerts == [
        "Missing required fields: vendor, date",
        ISSUE_INVALID_TOTAL,
        ALERT_ADD_VAT_ID,
        ALERT_DUPLICATE,
        ALERT_DISCREPANCY,
        "Invoice date is in the future, please verify.",
    ]


def test_date_alert_phrases():
    def alert_for(kind: DateAnomalyKind) -> list[str]:
        return build_alerts(ValidationResult(), DuplicateMatch(), TaxDiscrepancy(), DateAnomaly(kind=kind))

    assert alert_for(DateAnomalyKind.STALE) == ["Invoice date is more than 1 year old, please verify."]
    assert alert_for(DateAnomalyKind.INVALID) == ["Invalid invoice date format."]
    assert alert_for(DateAnomalyKind.MISSING) == []


def test_merge_unique_preserves_order():
    assert merge_unique(["a", "b"], ["b", "c"], ["a"]) == ["a", "b", "c"]


def test_discrepancy_suggests_recomputed_total():
    record = make_record(total=140)
    suggestions = build_suggestions(record, validate_fields(record), DuplicateMatch(), reconcile_tax(record))
    assert len(suggestions) == 1
    assert suggestions[0].target_field == "total"
    assert suggestions[0].suggested_value == 135.54
    assert suggestions[0].action is SuggestionAction.EDIT


def test_discrepancy_suggests_tax_when_tax_differs():
    record = make_record(total=135.54, tax=2)
    suggestions = build_suggestions(record, validate_fields(record), DuplicateMatch(), reconcile_tax(record))
    fields = [suggestion.target_field for suggestion in suggestions]
    assert fields == ["total", "tax"]
    assert suggestions[1].suggested_value == 10.04


def test_eu_missing_identifier_placeholder():
    record = make_record(currency="EUR")
    suggestions = build_suggestions(record, validate_fields(record), DuplicateMatch(), TaxDiscrepancy())
    assert [s.suggested_value for s in suggestions] == [VAT_ID_PLACEHOLDER]


def test_duplicate_suggests_review():
    duplicate = DuplicateMatch(
        is_duplicate=True,
        matched_invoice_number="INV-9",
        matched_date="2024-01-10",
        similarity_score=100,
    )
    record = make_record()
    suggestions = build_suggestions(record, ValidationResult(), duplicate, TaxDiscrepancy())
    assert suggestions[0].action is SuggestionAction.REVIEW
    assert suggestions[0].reason == "Similar receipt found: Invoice #INV-9 on 2024-01-10"


def test_unusual_line_tax_note():
    record = make_record(
        total=14,
        tax=4,
        lineItems=[{"description": "Vape", "quantity": 1, "unitPrice": 10, "tax": 4}],
    )
    suggestions = build_suggestions(record, ValidationResult(), DuplicateMatch(), reconcile_tax(record))
    note = suggestions[-1]
    assert note.target_field == "lineItems[0].tax"
    assert note.action is SuggestionAction.INFO
    assert "Vape" in note.reason
