"""
compliance_eu.py - EU VAT rules.

Checks, in order:
1. currency is EUR
2. a VAT ID is present, well-formed and carries a recognized country prefix
3. the VAT rate (tax / (total - tax)) does not exceed 27%
4. the VAT rate is close to the issuing country's standard rate (note only)
"""

from __future__ import annotations

import re
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, NamedTuple, Optional

from compliance_base import ComplianceEvaluator, info_suggestion, percent
from logging_config import get_logger
from models import (
    EU_REGIME_CURRENCY,
    ComplianceResult,
    CorrectionSuggestion,
    ReceiptRecord,
    SuggestionAction,
)
from reconcile import calculate_tax_rate

logger = get_logger(__name__)

ALERT_ADD_VAT_ID = "Add VAT ID for EU compliance."
VAT_ID_PLACEHOLDER = "REQUIRED"

VAT_ID_PATTERN = re.compile(r"^[A-Z]{2}[A-Z0-9]{2,12}$")
MAX_EU_VAT_RATE = Decimal("0.27")
RATE_MISMATCH_TOLERANCE = Decimal("0.01")
DEFAULT_VAT_RATE = Decimal("0.20")

# EU member states plus GB and XI (Northern Ireland), which still issue VAT IDs.
VAT_COUNTRY_CODES: frozenset[str] = frozenset(
    {
        "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI", "FR",
        "DE", "GR", "HU", "IE", "IT", "LV", "LT", "LU", "MT", "NL",
        "PL", "PT", "RO", "SK", "SI", "ES", "SE", "GB", "XI",
    }
)

STANDARD_VAT_RATES: Mapping[str, Decimal] = MappingProxyType(
    {
        code: Decimal(rate)
        for code, rate in {
            "DE": "0.19", "FR": "0.20", "IT": "0.22", "ES": "0.21", "NL": "0.21",
            "BE": "0.21", "AT": "0.20", "PL": "0.23", "SE": "0.25", "DK": "0.25",
            "FI": "0.24", "IE": "0.23", "PT": "0.23", "GR": "0.24", "CZ": "0.21",
            "RO": "0.19", "HU": "0.27", "SK": "0.20", "SI": "0.22", "BG": "0.20",
            "HR": "0.25", "CY": "0.19", "MT": "0.18", "LU": "0.17", "EE": "0.20",
            "LV": "0.21", "LT": "0.21",
        }.items()
    }
)


class CountryVatRule(NamedTuple):
    reduced_rate: Decimal
    vat_format: re.Pattern


COUNTRY_VAT_RULES: Mapping[str, CountryVatRule] = MappingProxyType(
    {
        "DE": CountryVatRule(Decimal("0.07"), re.compile(r"^DE\d{9}$")),
        "FR": CountryVatRule(Decimal("0.055"), re.compile(r"^FR[A-Z0-9]{2}\d{9}$")),
        "IT": CountryVatRule(Decimal("0.10"), re.compile(r"^IT\d{11}$")),
        "ES": CountryVatRule(Decimal("0.10"), re.compile(r"^ES[A-Z0-9]\d{7}[A-Z0-9]$")),
        "NL": CountryVatRule(Decimal("0.09"), re.compile(r"^NL\d{9}B\d{2}$")),
        "BE": CountryVatRule(Decimal("0.06"), re.compile(r"^BE\d{10}$")),
        "AT": CountryVatRule(Decimal("0.10"), re.compile(r"^ATU\d{8}$")),
        "PL": CountryVatRule(Decimal("0.08"), re.compile(r"^PL\d{10}$")),
        "SE": CountryVatRule(Decimal("0.12"), re.compile(r"^SE\d{12}$")),
        # Denmark has no reduced rate.
        "DK": CountryVatRule(Decimal("0.25"), re.compile(r"^DK\d{8}$")),
    }
)


class VatIdCheck(NamedTuple):
    valid: bool
    formatted: str = ""
    country_code: Optional[str] = None
    message: str = ""


def clean_vat_id(value: Optional[str]) -> str:
    return re.sub(r"\s+", "", (value or "").strip().upper())


def validate_vat_format(value: Optional[str]) -> VatIdCheck:
    """Check the generic EU VAT ID shape and its country prefix."""
    cleaned = clean_vat_id(value)
    if not cleaned:
        return VatIdCheck(valid=False, message="VAT ID is empty")
    if not VAT_ID_PATTERN.match(cleaned):
        return VatIdCheck(
            valid=False,
            formatted=cleaned,
            message=(
                "Expected a 2-letter country code followed by 2-12 alphanumeric "
                "characters (e.g., DE123456789)"
            ),
        )
    country = cleaned[:2]
    if country not in VAT_COUNTRY_CODES:
        return VatIdCheck(
            valid=False,
            formatted=cleaned,
            message=f"Invalid EU country code: {country}",
        )
    return VatIdCheck(valid=True, formatted=cleaned, country_code=country)


def standard_vat_rate(country_code: str) -> Decimal:
    return STANDARD_VAT_RATES.get(country_code, DEFAULT_VAT_RATE)


def vat_id_placeholder_suggestion(record: ReceiptRecord) -> CorrectionSuggestion:
    """Suggestion asking the user to supply the vendor's VAT ID."""
    return CorrectionSuggestion(
        target_field="taxIdentifier",
        current_value=record.tax_identifier,
        suggested_value=VAT_ID_PLACEHOLDER,
        reason="VAT ID is required for EU receipts. Please add the vendor VAT identification number.",
        action=SuggestionAction.EDIT,
    )


def _rate_note(country: str, rate: Decimal) -> Optional[CorrectionSuggestion]:
    expected = standard_vat_rate(country)
    if abs(rate - expected) <= RATE_MISMATCH_TOLERANCE:
        return None

    reason = (
        f"VAT rate ({percent(rate)}) differs from {country} standard rate ({percent(expected)})."
    )
    rule = COUNTRY_VAT_RULES.get(country)
    if rule is not None and abs(rate - rule.reduced_rate) <= RATE_MISMATCH_TOLERANCE:
        reason += f" It matches the {country} reduced rate ({percent(rule.reduced_rate)})."
    else:
        reason += " May be using a reduced rate or special category."
    return info_suggestion("tax", reason, suggested_value=float(expected))


class EUComplianceEvaluator(ComplianceEvaluator):
    jurisdiction = "EU"

    def evaluate(self, record: ReceiptRecord) -> ComplianceResult:
        alerts: list[str] = []
        suggestions: list[CorrectionSuggestion] = []
        compliant = True
        requires_review = False

        if record.currency_code != EU_REGIME_CURRENCY:
            compliant = False
            alerts.append(f"Currency mismatch: Expected {EU_REGIME_CURRENCY} for EU receipt")

        country: Optional[str] = None
        if not record.has_tax_identifier:
            compliant = False
            requires_review = True
            alerts.append(ALERT_ADD_VAT_ID)
            suggestions.append(vat_id_placeholder_suggestion(record))
        else:
            check = validate_vat_format(record.tax_identifier)
            if not check.valid:
                compliant = False
                alerts.append(f"Invalid VAT ID format: {check.message}")
            else:
                country = check.country_code
                rule = COUNTRY_VAT_RULES.get(country)
                if rule is not None and not rule.vat_format.match(check.formatted):
                    suggestions.append(
                        info_suggestion(
                            "taxIdentifier",
                            f"VAT ID doesn't match the {country} format pattern",
                            current_value=record.tax_identifier,
                        )
                    )

        if record.tax_amount == 0:
            suggestions.append(
                info_suggestion(
                    "tax",
                    "No VAT found. Verify if this is a VAT-exempt transaction "
                    "or if VAT was not captured.",
                    current_value=0,
                )
            )
        else:
            rate = calculate_tax_rate(record.total, record.tax)
            if rate is not None and rate > MAX_EU_VAT_RATE:
                compliant = False
                requires_review = True
                alerts.append(
                    f"Unusually high VAT rate: {percent(rate)}. EU VAT typically ranges from 0-27%."
                )
            if rate is not None and country is not None:
                note = _rate_note(country, rate)
                if note is not None:
                    suggestions.append(note)

        logger.info(
            "compliance_complete | jurisdiction=EU | compliant=%s | review=%s | country=%s | alerts=%s",
            compliant,
            requires_review,
            country,
            len(alerts),
        )
        return ComplianceResult(
            jurisdiction=self.jurisdiction,
            compliant=compliant,
            alerts=alerts,
            suggestions=suggestions,
            requires_review=requires_review,
        )
