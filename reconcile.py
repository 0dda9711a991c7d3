"""
reconcile.py - Reported totals vs totals recomputed from line items.

Tolerance rules:
- threshold = max(1% of the reported total, 0.01)
- a difference equal to the threshold is NOT a discrepancy
- no line items means nothing to reconcile

Line items are first read tax-exclusive (unit price + line tax). Receipts
that print tax-inclusive unit prices only reconcile on quantity x unit price,
so that basis is tried when the first one misses.
"""

from __future__ import annotations

from decimal import Decimal
from types import MappingProxyType
from typing import Any, Mapping, Optional

from logging_config import get_logger
from models import ReceiptRecord, TaxDiscrepancy
from normalize import to_decimal

logger = get_logger(__name__)

TOLERANCE_PCT = Decimal("0.01")
TOLERANCE_FLOOR = Decimal("0.01")

# A line whose tax exceeds this share of its subtotal is unusual.
UNUSUAL_LINE_TAX_RATIO = Decimal("0.30")

BASIS_TAX_EXCLUSIVE = "tax-exclusive"
BASIS_TAX_INCLUSIVE = "tax-inclusive"
BASIS_NONE = "none"

# Plausible overall tax rate (tax / pre-tax subtotal) by currency.
TAX_RATE_RANGES: Mapping[str, tuple[Decimal, Decimal]] = MappingProxyType(
    {
        "USD": (Decimal("0"), Decimal("0.15")),
        "EUR": (Decimal("0"), Decimal("0.27")),
        "PKR": (Decimal("0"), Decimal("0.20")),
    }
)
DEFAULT_TAX_RATE_RANGE = (Decimal("0"), Decimal("0.30"))


def calculate_tax_rate(total: Any, tax: Any) -> Optional[Decimal]:
    """Tax as a fraction of the pre-tax subtotal; None when the subtotal is not positive."""
    total_amount = to_decimal(total)
    tax_amount = to_decimal(tax) or Decimal("0")
    if total_amount is None:
        return None
    subtotal = total_amount - tax_amount
    if subtotal <= 0:
        return None
    return tax_amount / subtotal


def check_tax_rate_range(record: ReceiptRecord) -> Optional[str]:
    """Return a note when the receipt's tax rate falls outside its currency's range."""
    rate = calculate_tax_rate(record.total, record.tax)
    if rate is None:
        return None
    low, high = TAX_RATE_RANGES.get(record.currency_code, DEFAULT_TAX_RATE_RANGE)
    if low <= rate <= high:
        return None
    return (
        f"Tax rate {rate * 100:.2f}% is outside the expected range "
        f"{low * 100:.0f}-{high * 100:.0f}% for {record.currency_code or 'this currency'}"
    )


def unusual_tax_lines(record: ReceiptRecord) -> list[int]:
    """Indexes of line items whose tax exceeds 30% of quantity x unit price."""
    flagged = []
    for index, line in enumerate(record.line_items):
        subtotal = line.subtotal
        if line.tax_amount > 0 and subtotal > 0 and line.tax_amount > subtotal * UNUSUAL_LINE_TAX_RATIO:
            flagged.append(index)
    return flagged


def reconcile_tax(record: ReceiptRecord) -> TaxDiscrepancy:
    """Compare the reported total and tax with the line-item sums."""
    if not record.line_items:
        logger.debug("reconcile_complete | line_items=0 | discrepancy=False")
        return TaxDiscrepancy()

    reported_total = record.total_amount or Decimal("0")
    reported_tax = record.tax_amount
    threshold = max(abs(reported_total) * TOLERANCE_PCT, TOLERANCE_FLOOR)

    recomputed_tax = sum((line.tax_amount for line in record.line_items), Decimal("0"))
    exclusive_total = sum((line.line_total for line in record.line_items), Decimal("0"))
    inclusive_total = sum((line.subtotal for line in record.line_items), Decimal("0"))

    basis = BASIS_TAX_EXCLUSIVE
    recomputed_total = exclusive_total
    if abs(reported_total - exclusive_total) > threshold and abs(reported_total - inclusive_total) <= threshold:
        basis = BASIS_TAX_INCLUSIVE
        recomputed_total = inclusive_total

    total_difference = reported_total - recomputed_total
    tax_difference = reported_tax - recomputed_tax
    has_discrepancy = abs(total_difference) > threshold or abs(tax_difference) > threshold
    flagged_lines = unusual_tax_lines(record)

    logger.info(
        "reconcile_complete | discrepancy=%s | basis=%s | total_diff=%s | tax_diff=%s | threshold=%s",
        has_discrepancy,
        basis,
        total_difference,
        tax_difference,
        threshold,
    )
    if flagged_lines:
        logger.debug("reconcile_unusual_lines | indexes=%s", flagged_lines)

    return TaxDiscrepancy(
        has_discrepancy=has_discrepancy,
        total_difference=total_difference,
        tax_difference=tax_difference,
        recomputed_total=recomputed_total,
        recomputed_tax=recomputed_tax,
        threshold=threshold,
        basis=basis,
        unusual_tax_lines=flagged_lines,
    )
