"""
validate.py - Structural and semantic checks on a raw receipt record.

The validator is the only stage that judges input shape. Problems found here
are reported as missing fields or issues, never raised.
"""

from __future__ import annotations

from logging_config import get_logger
from models import EU_REGIME_CURRENCY, SUPPORTED_CURRENCIES, ReceiptRecord, ValidationResult
from normalize import parse_iso_date

logger = get_logger(__name__)

ISSUE_INVALID_DATE = "Invalid date format"
ISSUE_INVALID_TOTAL = "Invalid total amount"
ISSUE_UNSUPPORTED_CURRENCY = "Unsupported currency"
ISSUE_MISSING_TAX_IDENTIFIER = "Missing VAT ID (tax identifier) for EU receipt"
ISSUE_INVALID_LINE_ITEM = "Invalid line item amount"

# Issues about the tax identifier; scored and phrased differently downstream.
TAX_IDENTIFIER_ISSUES = frozenset({ISSUE_MISSING_TAX_IDENTIFIER})


def _blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_fields(record: ReceiptRecord) -> ValidationResult:
    """Check vendor, date, total, currency, the EU tax identifier and line amounts, in that order."""
    missing: list[str] = []
    issues: list[str] = []

    if _blank(record.vendor):
        missing.append("vendor")

    if _blank(record.date):
        missing.append("date")
    elif parse_iso_date(record.date) is None:
        issues.append(ISSUE_INVALID_DATE)

    if _blank(record.total):
        missing.append("total")
    else:
        amount = record.total_amount
        if amount is None or amount <= 0:
            issues.append(ISSUE_INVALID_TOTAL)

    currency = record.currency_code
    if not currency:
        missing.append("currency")
    elif currency not in SUPPORTED_CURRENCIES:
        issues.append(ISSUE_UNSUPPORTED_CURRENCY)

    if currency == EU_REGIME_CURRENCY and not record.has_tax_identifier:
        issues.append(ISSUE_MISSING_TAX_IDENTIFIER)

    invalid_lines = {
        index: line.invalid_amounts for index, line in enumerate(record.line_items) if line.invalid_amounts
    }
    if invalid_lines:
        issues.append(ISSUE_INVALID_LINE_ITEM)
        logger.warning(
            "validation_line_amounts | invalid=%s | fallback='quantity 1, price and tax 0'",
            invalid_lines,
        )

    result = ValidationResult(missing_fields=missing, issues=issues)
    logger.info(
        "validation_complete | valid=%s | missing=%s | issues=%s",
        result.is_valid,
        missing,
        issues,
    )
    return result
