"""
test_validate.py - Field validator tests

Usage: pytest test_validate.py
"""

from __future__ import annotations

import os
import sys
from typing import Any

import pytest

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from models import ReceiptRecord
from validate import (
    ISSUE_INVALID_DATE,
    ISSUE_INVALID_LINE_ITEM,
    ISSUE_INVALID_TOTAL,
    ISSUE_MISSING_TAX_IDENTIFIER,
    ISSUE_UNSUPPORTED_CURRENCY,
    validate_fields,
)


def make_record(**overrides: Any) -> ReceiptRecord:
    data: dict[str, Any] = {
        "vendor": "Amazon",
        "date": "2024-01-15",
        "total": 125.50,
        "tax": 10.04,
        "currency": "USD",
        "invoiceNumber": "INV-2024-001",
    }
    data.update(overrides)
    return ReceiptRecord.model_validate(data)


def test_valid_record():
    result = validate_fields(make_record())
    assert result.is_valid
    assert result.missing_fields == []
    assert result.issues == []


def test_missing_fields_in_check_order():
    result = validate_fields(make_record(vendor="   ", date=None, total=None, currency=""))
    assert result.missing_fields == ["vendor", "date", "total", "currency"]
    assert result.issues == []
    assert not result.is_valid


@pytest.mark.parametrize("value", ["01/15/2024", "2024-02-30", "yesterday"])
def test_invalid_date(value):
    assert validate_fields(make_record(date=value)).issues == [ISSUE_INVALID_DATE]


@pytest.mark.parametrize("value", ["abc", 0, -5, "0.00"])
def test_invalid_total(value):
    assert validate_fields(make_record(total=value)).issues == [ISSUE_INVALID_TOTAL]


def test_numeric_string_total_is_accepted():
    assert validate_fields(make_record(total="125.50")).is_valid


def test_unsupported_currency():
    result = validate_fields(make_record(currency="GBP"))
    assert result.issues == [ISSUE_UNSUPPORTED_CURRENCY]


def test_lowercase_currency_is_supported():
    assert validate_fields(make_record(currency="pkr")).is_valid


def test_eur_requires_tax_identifier():
    assert validate_fields(make_record(currency="EUR")).issues == [ISSUE_MISSING_TAX_IDENTIFIER]
    assert validate_fields(make_record(currency="EUR", taxIdentifier="  ")).issues == [
        ISSUE_MISSING_TAX_IDENTIFIER
    ]
    assert validate_fields(make_record(currency="EUR", taxIdentifier="DE123456789")).is_valid


def test_multiple_problems_reported_together():
    result = validate_fields(make_record(vendor=None, date="15.01.2024", total="x", currency="EUR"))
    assert result.missing_fields == ["vendor"]
    assert result.issues == [ISSUE_INVALID_DATE, ISSUE_INVALID_TOTAL, ISSUE_MISSING_TAX_IDENTIFIER]


def test_unparseable_line_amount_is_an_issue():
    lines = [
        {"description": "Widget", "quantity": "2 pcs", "unitPrice": 50},
        {"description": "Shipping", "quantity": None, "unitPrice": "", "tax": "n/a"},
    ]
    result = validate_fields(make_record(lineItems=lines))
    assert result.missing_fields == []
    assert result.issues == [ISSUE_INVALID_LINE_ITEM]


def test_blank_line_amounts_are_not_issues():
    lines = [{"description": "Widget", "quantity": None, "unitPrice": "12.50", "tax": ""}]
    assert validate_fields(make_record(lineItems=lines)).is_valid
