"""
test_assess.py - End-to-end assessment tests

Runs whole records through the orchestrator with a fixed "today" so date
checks are deterministic.

Usage: pytest test_assess.py
"""

from __future__ import annotations

import os
import sys
from datetime import date
from typing import Any

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import assess
from alerts import ALERT_DUPLICATE
from assess import AssessmentStage, assess_batch, assess_receipt, run_assessment
from compliance_eu import ALERT_ADD_VAT_ID
from models import ComplianceStatus, RiskTier

TODAY = date(2024, 2, 1)


def make_record(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "vendor": "Amazon",
        "date": "2024-01-15",
        "total": 125.50,
        "tax": 10.04,
        "currency": "USD",
        "invoiceNumber": "INV-2024-001",
        "lineItems": [
            {"description": "Supplies", "quantity": 2, "unitPrice": 50, "tax": 8},
            {"description": "Shipping", "quantity": 1, "unitPrice": 25.5, "tax": 2.04},
        ],
    }
    data.update(overrides)
    return data


def test_clean_usd_receipt():
    result = assess_receipt(make_record(), today=TODAY)
    assert result.risk_score == 0
    assert result.risk_tier is RiskTier.LOW
    assert result.compliance_status is ComplianceStatus.COMPLIANT
    assert result.confidence_score == 1.0
    assert not result.requires_manual_review
    assert result.alerts == []


def test_eu_receipt_without_vat_id():
    result = assess_receipt(make_record(currency="EUR"), today=TODAY)
    assert result.alerts.count(ALERT_ADD_VAT_ID) == 1
    assert result.compliance_status is ComplianceStatus.NON_COMPLIANT
    assert result.requires_manual_review
    assert result.risk_score == 15
    assert result.risk_tier is RiskTier.LOW
    assert result.confidence_score == 0.7
    placeholders = [s for s in result.suggested_corrections if s.target_field == "taxIdentifier"]
    assert len(placeholders) == 1


def test_exact_duplicate_from_history():
    history = [{"vendor": "Amazon.com", "date": "2024-01-10", "total": 99, "invoiceNumber": "INV-2024-001"}]
    result = assess_receipt(make_record(), history, today=TODAY)
    assert result.risk_score == 30
    assert result.risk_tier is RiskTier.LOW
    assert ALERT_DUPLICATE in result.alerts


def test_non_record_input_fails_safe():
    report = run_assessment(42, today=TODAY)
    assert report.failed
    assert report.stage is AssessmentStage.FAILED
    result = report.assessment
    assert result.alerts == ["Error processing receipt: Expected a receipt record, got int"]
    assert result.risk_score == 100
    assert result.risk_tier is RiskTier.HIGH
    assert result.compliance_status is ComplianceStatus.ERROR
    assert result.confidence_score == 0.0
    assert result.requires_manual_review


def test_stage_fault_keeps_earlier_results(monkeypatch):
    def boom(record):
        raise RuntimeError("reconciler offline")

    monkeypatch.setattr(assess, "reconcile_tax", boom)
    report = run_assessment(make_record(), today=TODAY)
    assert report.failed
    assert report.validation is not None
    assert report.duplicate is not None
    assert report.discrepancy is None
    assert report.assessment.alerts == ["Error processing receipt: reconciler offline"]


def test_unparseable_line_amount_is_a_finding():
    lines = [
        {"description": "Widget", "quantity": "2 pcs", "unitPrice": 50, "tax": 8},
        {"description": "Shipping", "quantity": 1, "unitPrice": 25.5, "tax": 2.04},
    ]
    report = run_assessment(make_record(lineItems=lines), today=TODAY)
    assert report.stage is AssessmentStage.DONE
    result = report.assessment
    assert "Invalid line item amount" in result.alerts
    assert result.compliance_status is ComplianceStatus.COMPLIANT
    # 5 for the issue, 20 for totals recomputed with quantity 1.
    assert result.risk_score == 25


def test_malformed_record_alert_is_one_line():
    result = assess_receipt(make_record(lineItems="not a list"), today=TODAY)
    assert result.compliance_status is ComplianceStatus.ERROR
    assert len(result.alerts) == 1
    assert result.alerts[0].startswith("Error processing receipt: ")
    assert "\n" not in result.alerts[0]
    assert "errors.pydantic.dev" not in result.alerts[0]


def test_bad_total_and_date_are_findings_not_faults():
    report = run_assessment(make_record(total="abc", date="not-a-date"), today=TODAY)
    assert report.stage is AssessmentStage.DONE
    result = report.assessment
    assert result.risk_score == 45
    assert result.risk_tier is RiskTier.MEDIUM
    assert result.confidence_score == 0.65
    assert "Invalid total amount" in result.alerts
    assert "Invalid invoice date format." in result.alerts


def test_stale_receipt():
    result = assess_receipt(make_record(), today=date(2025, 6, 1))
    assert result.risk_score == 10
    assert "Invoice date is more than 1 year old, please verify." in result.alerts


def test_batch_threads_history():
    history: list[dict[str, Any]] = []
    results = assess_batch([make_record(), make_record(), make_record()], history, today=TODAY)
    assert ALERT_DUPLICATE not in results[0].alerts
    assert ALERT_DUPLICATE in results[1].alerts
    assert ALERT_DUPLICATE in results[2].alerts
    assert history == []


def test_batch_survives_bad_records():
    results = assess_batch([make_record(), "garbage", make_record(invoiceNumber="INV-2")], today=TODAY)
    assert [r.compliance_status for r in results] == [
        ComplianceStatus.COMPLIANT,
        ComplianceStatus.ERROR,
        ComplianceStatus.COMPLIANT,
    ]


def test_report_keeps_breakdown():
    report = run_assessment(make_record(invoiceNumber=None), today=TODAY)
    assert report.stage is AssessmentStage.DONE
    assert report.breakdown is not None
    assert report.breakdown.other == 5
    assert report.assessment.risk_score == report.breakdown.total


def test_score_and_tier_always_agree():
    for overrides in ({}, {"vendor": None, "total": None, "date": None, "currency": None}, {"currency": "EUR"}):
        result = assess_receipt(make_record(**overrides), today=TODAY)
        assert 0 <= result.risk_score <= 100
        assert result.risk_tier is assess.tier_of(result.risk_score)


def test_ancient_date_is_stale_not_a_fault():
    report = run_assessment(make_record(date="0999-01-01"), today=TODAY)
    assert report.stage is AssessmentStage.DONE
    assert report.date_anomaly.parsed_date == "0999-01-01"
    assert report.assessment.risk_score == 10
    assert "Invoice date is more than 1 year old, please verify." in report.assessment.alerts
