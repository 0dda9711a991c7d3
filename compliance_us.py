"""
compliance_us.py - US federal and state sales-tax rules.

Federal deductibility is informational only. State rules apply when the
receipt carries a state code:
- tax must match the state rate within 5% of the charged tax and $0.01
- tax-exempt states must not charge tax
Any overall sales-tax rate above 15% needs review.
"""

from __future__ import annotations

from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional

from compliance_base import ComplianceEvaluator, info_suggestion, percent
from logging_config import get_logger
from models import ComplianceResult, CorrectionSuggestion, ReceiptRecord, SuggestionAction
from normalize import money
from reconcile import calculate_tax_rate

logger = get_logger(__name__)

MAX_US_TAX_RATE = Decimal("0.15")
STATE_RATE_TOLERANCE = Decimal("0.05")
STATE_ABSOLUTE_TOLERANCE = Decimal("0.01")
DEFAULT_CATEGORY = "Other"

STATE_TAX_RATES: Mapping[str, Decimal] = MappingProxyType(
    {
        code: Decimal(rate)
        for code, rate in {
            "AL": "0.04", "AK": "0", "AZ": "0.056", "AR": "0.065", "CA": "0.0725",
            "CO": "0.029", "CT": "0.0635", "DE": "0", "FL": "0.06", "GA": "0.04",
            "HI": "0.04", "ID": "0.06", "IL": "0.0625", "IN": "0.07", "IA": "0.06",
            "KS": "0.065", "KY": "0.06", "LA": "0.0445", "ME": "0.055", "MD": "0.06",
            "MA": "0.0625", "MI": "0.06", "MN": "0.06875", "MS": "0.07", "MO": "0.04225",
            "MT": "0", "NE": "0.055", "NV": "0.0685", "NH": "0", "NJ": "0.06625",
            "NM": "0.05125", "NY": "0.08", "NC": "0.0475", "ND": "0.05", "OH": "0.0575",
            "OK": "0.045", "OR": "0", "PA": "0.06", "RI": "0.07", "SC": "0.06",
            "SD": "0.045", "TN": "0.07", "TX": "0.0625", "UT": "0.061", "VT": "0.06",
            "VA": "0.053", "WA": "0.065", "WV": "0.06", "WI": "0.05", "WY": "0.04",
            "DC": "0.06",
        }.items()
    }
)

TAX_EXEMPT_STATES: frozenset[str] = frozenset({"AK", "DE", "MT", "NH", "OR"})

FEDERAL_DEDUCTION_RATES: Mapping[str, Decimal] = MappingProxyType(
    {
        "Meals & Entertainment": Decimal("0.5"),
        "Travel": Decimal("1.0"),
        "Office Supplies": Decimal("1.0"),
        "Software & Subscriptions": Decimal("1.0"),
        "Professional Services": Decimal("1.0"),
        "Utilities": Decimal("1.0"),
        "Marketing & Advertising": Decimal("1.0"),
        "Equipment": Decimal("1.0"),
        "Training & Education": Decimal("1.0"),
        "Insurance": Decimal("1.0"),
        "Rent": Decimal("1.0"),
        "Other": Decimal("1.0"),
    }
)


def deduction_rate(category: Optional[str]) -> Decimal:
    """Deductible share for an expense category; unknown categories are fully deductible."""
    name = (category or "").strip() or DEFAULT_CATEGORY
    return FEDERAL_DEDUCTION_RATES.get(name, Decimal("1.0"))


def federal_deduction(record: ReceiptRecord) -> Decimal:
    """Federally deductible amount of the receipt total."""
    total = record.total_amount or Decimal("0")
    return total * deduction_rate(record.category)


def expected_state_tax(record: ReceiptRecord, state_code: str) -> Optional[Decimal]:
    rate = STATE_TAX_RATES.get(state_code)
    if rate is None:
        return None
    subtotal = (record.total_amount or Decimal("0")) - record.tax_amount
    return subtotal * rate


class USComplianceEvaluator(ComplianceEvaluator):
    jurisdiction = "US"

    def evaluate(self, record: ReceiptRecord) -> ComplianceResult:
        alerts: list[str] = []
        suggestions: list[CorrectionSuggestion] = []
        compliant = True
        requires_review = False

        rate = deduction_rate(record.category)
        if record.category and rate < 1:
            suggestions.append(
                info_suggestion(
                    "category",
                    f"{record.category} expenses are {rate * 100:.0f}% deductible under federal rules",
                    current_value=record.category,
                    suggested_value=money(federal_deduction(record)),
                )
            )

        state_code = (record.state_code or "").strip().upper()
        actual_tax = record.tax_amount
        if not state_code:
            suggestions.append(
                info_suggestion(
                    "stateCode",
                    "State code not provided. Unable to validate state sales tax.",
                )
            )
        elif state_code not in STATE_TAX_RATES:
            suggestions.append(
                info_suggestion(
                    "stateCode",
                    f"Unknown state code {state_code}. Unable to validate state sales tax.",
                    current_value=record.state_code,
                )
            )
        else:
            expected = expected_state_tax(record, state_code)
            difference = abs(expected - actual_tax)
            if difference > actual_tax * STATE_RATE_TOLERANCE and difference > STATE_ABSOLUTE_TOLERANCE:
                compliant = False
                alerts.append(
                    f"Tax amount ({actual_tax:.2f}) doesn't match expected {state_code} rate "
                    f"({percent(STATE_TAX_RATES[state_code])}). Expected: {expected:.2f}"
                )
                suggestions.append(
                    CorrectionSuggestion(
                        target_field="tax",
                        current_value=money(actual_tax),
                        suggested_value=money(expected),
                        reason=f"Expected tax based on the {state_code} sales-tax rate",
                        action=SuggestionAction.REVIEW,
                    )
                )
            if state_code in TAX_EXEMPT_STATES and actual_tax > 0:
                compliant = False
                alerts.append(f"{state_code} is a tax-exempt state, but tax was charged")

        tax_rate = calculate_tax_rate(record.total, record.tax)
        if tax_rate is not None and tax_rate > MAX_US_TAX_RATE:
            compliant = False
            requires_review = True
            alerts.append(
                f"Unusually high tax rate: {percent(tax_rate)}. "
                "US sales tax typically ranges from 0-15%."
            )

        logger.info(
            "compliance_complete | jurisdiction=US | compliant=%s | review=%s | state=%s | alerts=%s",
            compliant,
            requires_review,
            state_code or None,
            len(alerts),
        )
        return ComplianceResult(
            jurisdiction=self.jurisdiction,
            compliant=compliant,
            alerts=alerts,
            suggestions=suggestions,
            requires_review=requires_review,
        )
