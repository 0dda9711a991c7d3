"""
alerts.py - Turn stage findings into user-facing alerts and suggestions.

Every finding maps to exactly one alert string. Suggestions are structured
edits, review requests or informational notes.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, TypeVar

from compliance_eu import ALERT_ADD_VAT_ID, vat_id_placeholder_suggestion
from logging_config import get_logger
from models import (
    EU_REGIME_CURRENCY,
    CorrectionSuggestion,
    DateAnomaly,
    DateAnomalyKind,
    DuplicateMatch,
    ReceiptRecord,
    SuggestionAction,
    TaxDiscrepancy,
    ValidationResult,
)
from normalize import money
from reconcile import BASIS_TAX_INCLUSIVE, UNUSUAL_LINE_TAX_RATIO
from validate import TAX_IDENTIFIER_ISSUES

logger = get_logger(__name__)

T = TypeVar("T")

ALERT_MISSING_FIELDS = "Missing required fields: {fields}"
ALERT_DUPLICATE = "Possible duplicate invoice detected."
ALERT_DISCREPANCY = "Check total vs line items, possible OCR error."
ALERT_FAILED = "Error processing receipt: {message}"

DATE_ALERTS = {
    DateAnomalyKind.FUTURE: "Invoice date is in the future, please verify.",
    DateAnomalyKind.STALE: "Invoice date is more than 1 year old, please verify.",
    DateAnomalyKind.INVALID: "Invalid invoice date format.",
}

# Tax differences at or below this are not worth a suggestion.
TAX_SUGGESTION_TOLERANCE = Decimal("0.01")


def merge_unique(*groups: Iterable[T]) -> list[T]:
    """Concatenate groups, keeping only the first occurrence of each item."""
    merged: list[T] = []
    for group in groups:
        for item in group:
            if item not in merged:
                merged.append(item)
    return merged


def build_alerts(
    validation: ValidationResult,
    duplicate: DuplicateMatch,
    discrepancy: TaxDiscrepancy,
    date_anomaly: DateAnomaly,
) -> list[str]:
    alerts: list[str] = []

    if validation.missing_fields:
        alerts.append(ALERT_MISSING_FIELDS.format(fields=", ".join(validation.missing_fields)))

    for issue in validation.issues:
        alerts.append(ALERT_ADD_VAT_ID if issue in TAX_IDENTIFIER_ISSUES else issue)

    if duplicate.is_duplicate:
        alerts.append(ALERT_DUPLICATE)

    if discrepancy.has_discrepancy:
        alerts.append(ALERT_DISCREPANCY)

    date_alert = DATE_ALERTS.get(date_anomaly.kind)
    if date_alert:
        alerts.append(date_alert)

    return merge_unique(alerts)


def _discrepancy_suggestions(record: ReceiptRecord, discrepancy: TaxDiscrepancy) -> list[CorrectionSuggestion]:
    basis = "tax-inclusive unit prices" if discrepancy.basis == BASIS_TAX_INCLUSIVE else "line items"
    suggestions = [
        CorrectionSuggestion(
            target_field="total",
            current_value=record.total,
            suggested_value=money(discrepancy.recomputed_total),
            reason=f"Calculated total from {basis} differs from the reported total",
        )
    ]
    if abs(discrepancy.tax_difference) > TAX_SUGGESTION_TOLERANCE:
        suggestions.append(
            CorrectionSuggestion(
                target_field="tax",
                current_value=record.tax,
                suggested_value=money(discrepancy.recomputed_tax),
                reason="Calculated tax from line items differs from the reported tax",
            )
        )
    return suggestions


def build_suggestions(
    record: ReceiptRecord,
    validation: ValidationResult,
    duplicate: DuplicateMatch,
    discrepancy: TaxDiscrepancy,
) -> list[CorrectionSuggestion]:
    suggestions: list[CorrectionSuggestion] = []

    if discrepancy.has_discrepancy:
        suggestions.extend(_discrepancy_suggestions(record, discrepancy))

    missing_identifier = any(issue in TAX_IDENTIFIER_ISSUES for issue in validation.issues)
    if missing_identifier or (record.currency_code == EU_REGIME_CURRENCY and not record.has_tax_identifier):
        suggestions.append(vat_id_placeholder_suggestion(record))

    if duplicate.is_duplicate:
        suggestions.append(
            CorrectionSuggestion(
                target_field="invoiceNumber",
                current_value=record.invoice_number,
                suggested_value=duplicate.matched_invoice_number,
                reason=(
                    f"Similar receipt found: Invoice #{duplicate.matched_invoice_number} "
                    f"on {duplicate.matched_date}"
                ),
                action=SuggestionAction.REVIEW,
            )
        )

    for index in discrepancy.unusual_tax_lines:
        line = record.line_items[index]
        suggestions.append(
            CorrectionSuggestion(
                target_field=f"lineItems[{index}].tax",
                current_value=money(line.tax_amount),
                reason=(
                    f"Tax on '{line.description or f'line {index + 1}'}' exceeds "
                    f"{UNUSUAL_LINE_TAX_RATIO * 100:.0f}% of its subtotal"
                ),
                action=SuggestionAction.INFO,
            )
        )

    logger.debug("suggestions_built | count=%s", len(suggestions))
    return merge_unique(suggestions)
