"""
scoring.py - Risk score and confidence from the stage findings.

Risk score: additive points per finding, clamped to [0, 100]. Points are
kept per category in a RiskBreakdown so callers can see where a score
came from. The tier is never computed here; see models.tier_of.

Confidence: starts at 1.0 and loses weight for every signal that makes the
extracted data less trustworthy.
"""

from __future__ import annotations

from decimal import Decimal

from logging_config import get_logger
from models import (
    ComplianceStatus,
    DateAnomaly,
    DateAnomalyKind,
    DuplicateMatch,
    ReceiptRecord,
    RiskBreakdown,
    TaxDiscrepancy,
    ValidationResult,
    tier_of,
)
from validate import ISSUE_UNSUPPORTED_CURRENCY, TAX_IDENTIFIER_ISSUES

logger = get_logger(__name__)

# --- Risk points ---
MISSING_FIELD_POINTS = {
    "total": 20,
    "vendor": 15,
    "date": 15,
    "currency": 15,
    "invoice_number": 10,
}
UNKNOWN_FIELD_POINTS = 10

TAX_IDENTIFIER_ISSUE_POINTS = 15
CURRENCY_ISSUE_POINTS = 10
OTHER_ISSUE_POINTS = 5

DUPLICATE_POINTS = 30

# (ratio above which, points), checked in order; anything else scores MINOR.
DISCREPANCY_POINTS = (
    (Decimal("0.05"), 20),
    (Decimal("0.01"), 10),
)
MINOR_DISCREPANCY_POINTS = 5

DATE_ANOMALY_POINTS = {
    DateAnomalyKind.FUTURE: 15,
    DateAnomalyKind.INVALID: 15,
    DateAnomalyKind.STALE: 10,
}

MISSING_INVOICE_POINTS = 5
NO_LINE_ITEMS_POINTS = 5
HIGH_TOTAL = Decimal("10000")
HIGH_TOTAL_POINTS = 5
LOW_TOTAL = Decimal("0.01")
LOW_TOTAL_POINTS = 10

MAX_SCORE = 100

# --- Confidence penalties ---
MISSING_FIELD_PENALTY = 0.15
ISSUE_PENALTY = 0.10
DISCREPANCY_PENALTY = 0.30
DISCREPANCY_RATIO_CAP = 0.5
NON_COMPLIANT_PENALTY = 0.20


def _issue_points(issue: str) -> int:
    if issue in TAX_IDENTIFIER_ISSUES:
        return TAX_IDENTIFIER_ISSUE_POINTS
    if issue == ISSUE_UNSUPPORTED_CURRENCY:
        return CURRENCY_ISSUE_POINTS
    return OTHER_ISSUE_POINTS


def _discrepancy_points(discrepancy: TaxDiscrepancy) -> int:
    if not discrepancy.has_discrepancy:
        return 0
    ratio = discrepancy.discrepancy_ratio
    for above, points in DISCREPANCY_POINTS:
        if ratio > above:
            return points
    return MINOR_DISCREPANCY_POINTS


def risk_breakdown(
    validation: ValidationResult,
    duplicate: DuplicateMatch,
    discrepancy: TaxDiscrepancy,
    date_anomaly: DateAnomaly,
    record: ReceiptRecord,
) -> RiskBreakdown:
    """Points per scoring category, before clamping."""
    other = 0
    if not record.has_invoice_number:
        other += MISSING_INVOICE_POINTS
    if not record.line_items:
        other += NO_LINE_ITEMS_POINTS

    total = record.total_amount
    if total is not None:
        if total > HIGH_TOTAL:
            other += HIGH_TOTAL_POINTS
        if total < LOW_TOTAL:
            other += LOW_TOTAL_POINTS

    return RiskBreakdown(
        missing_fields=sum(
            MISSING_FIELD_POINTS.get(field, UNKNOWN_FIELD_POINTS) for field in validation.missing_fields
        ),
        validation_issues=sum(_issue_points(issue) for issue in validation.issues),
        duplicates=DUPLICATE_POINTS if duplicate.is_duplicate else 0,
        tax_discrepancies=_discrepancy_points(discrepancy),
        date_anomalies=DATE_ANOMALY_POINTS.get(date_anomaly.kind, 0),
        other=other,
    )


def score_from_breakdown(breakdown: RiskBreakdown) -> int:
    """Clamp the breakdown total to [0, 100]."""
    score = max(0, min(MAX_SCORE, breakdown.total))
    logger.info(
        "risk_score | score=%s | tier=%s | breakdown=%s",
        score,
        tier_of(score).value,
        breakdown.model_dump(),
    )
    return score


def calculate_risk_score(
    validation: ValidationResult,
    duplicate: DuplicateMatch,
    discrepancy: TaxDiscrepancy,
    date_anomaly: DateAnomaly,
    record: ReceiptRecord,
) -> int:
    return score_from_breakdown(risk_breakdown(validation, duplicate, discrepancy, date_anomaly, record))


def calculate_confidence(
    validation: ValidationResult,
    discrepancy: TaxDiscrepancy,
    compliance_status: ComplianceStatus,
) -> float:
    """Confidence in [0, 1] that the extracted data is accurate, rounded to 4 places."""
    confidence = 1.0
    confidence -= MISSING_FIELD_PENALTY * len(validation.missing_fields)
    confidence -= ISSUE_PENALTY * len(validation.issues)

    if discrepancy.has_discrepancy:
        ratio = min(float(discrepancy.discrepancy_ratio), DISCREPANCY_RATIO_CAP)
        confidence -= ratio * DISCREPANCY_PENALTY

    if compliance_status is ComplianceStatus.NON_COMPLIANT:
        confidence -= NON_COMPLIANT_PENALTY

    return round(max(0.0, min(1.0, confidence)), 4)
