"""
test_reconcile.py - Tax reconciler tests

Usage: pytest test_reconcile.py
"""

from __future__ import annotations

import os
import sys
from decimal import Decimal
from typing import Any

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from models import ReceiptRecord
from reconcile import (
    BASIS_NONE,
    BASIS_TAX_EXCLUSIVE,
    BASIS_TAX_INCLUSIVE,
    calculate_tax_rate,
    check_tax_rate_range,
    reconcile_tax,
    unusual_tax_lines,
)

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
        "lineItems": SAMPLE_LINES,
    }
    data.update(overrides)
    return ReceiptRecord.model_validate(data)


def single_line(unit_price: Any, tax: Any = 0) -> list[dict[str, Any]]:
    return [{"description": "Item", "quantity": 1, "unitPrice": unit_price, "tax": tax}]


def test_sample_receipt_reconciles_on_tax_inclusive_prices():
    result = reconcile_tax(make_record())
    assert not result.has_discrepancy
    assert result.basis == BASIS_TAX_INCLUSIVE
    assert result.recomputed_total == Decimal("125.5")
    assert result.recomputed_tax == Decimal("10.04")


def test_tax_exclusive_total_reconciles():
    result = reconcile_tax(make_record(total=135.54))
    assert not result.has_discrepancy
    assert result.basis == BASIS_TAX_EXCLUSIVE
    assert result.total_difference == Decimal("0")


def test_no_line_items_means_no_discrepancy():
    result = reconcile_tax(make_record(lineItems=[], total=999))
    assert not result.has_discrepancy
    assert result.basis == BASIS_NONE
    assert result.recomputed_total is None


def test_difference_of_exactly_one_percent_is_not_flagged():
    result = reconcile_tax(make_record(total=100, tax=0, lineItems=single_line(99)))
    assert result.threshold == Decimal("1.00")
    assert abs(result.total_difference) == Decimal("1")
    assert not result.has_discrepancy


def test_difference_above_one_percent_is_flagged():
    result = reconcile_tax(make_record(total=100, tax=0, lineItems=single_line("98.9")))
    assert result.has_discrepancy
    assert result.basis == BASIS_TAX_EXCLUSIVE
    assert result.total_difference == Decimal("1.1")


def test_threshold_floor_is_one_cent():
    result = reconcile_tax(make_record(total=0.5, tax=0, lineItems=single_line("0.49")))
    assert result.threshold == Decimal("0.01")
    assert not result.has_discrepancy


def test_tax_mismatch_is_flagged():
    result = reconcile_tax(make_record(total=108, tax=2, lineItems=single_line(100, 8)))
    assert result.has_discrepancy
    assert result.total_difference == Decimal("0")
    assert result.tax_difference == Decimal("-6")


def test_non_numeric_total_counts_as_zero():
    result = reconcile_tax(make_record(total="abc", tax=None, lineItems=single_line(10)))
    assert result.has_discrepancy
    assert result.total_difference == Decimal("-10")
    assert result.discrepancy_ratio == Decimal("1")


def test_calculate_tax_rate():
    assert calculate_tax_rate(110, 10) == Decimal("0.1")
    assert calculate_tax_rate(10, 10) is None
    assert calculate_tax_rate("abc", 1) is None
    assert calculate_tax_rate(50, None) == Decimal("0")


def test_check_tax_rate_range():
    assert check_tax_rate_range(make_record(total=130, tax=30)) is not None
    assert check_tax_rate_range(make_record(currency="EUR", total=127, tax=27)) is None
    note = check_tax_rate_range(make_record(currency="GBP", total=140, tax=40))
    assert note is not None and "0-30%" in note


def test_unusual_tax_lines():
    lines = [
        {"description": "Heavy", "quantity": 1, "unitPrice": 10, "tax": 4},
        {"description": "Normal", "quantity": 1, "unitPrice": 10, "tax": 1},
    ]
    record = make_record(lineItems=lines, total=25, tax=5)
    assert unusual_tax_lines(record) == [0]
    assert reconcile_tax(record).unusual_tax_lines == [0]


def test_unparseable_line_amounts_use_defaults():
    lines = [{"description": "Widget", "quantity": "2 pcs", "unitPrice": 50, "tax": "abc"}]
    result = reconcile_tax(make_record(total=50, tax=0, lineItems=lines))
    assert not result.has_discrepancy
    assert result.recomputed_total == Decimal("50")
    assert result.recomputed_tax == Decimal("0")
