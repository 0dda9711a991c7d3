"""
compliance.py - Jurisdiction dispatch for compliance evaluation.

    EUR  -> EUComplianceEvaluator
    USD  -> USComplianceEvaluator
    else -> DefaultComplianceEvaluator

An evaluator fault never fails the assessment: it becomes an informational
suggestion on a compliant result.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Mapping

from compliance_base import ComplianceEvaluator, info_suggestion
from compliance_eu import EUComplianceEvaluator
from compliance_us import USComplianceEvaluator
from logging_config import get_logger, graceful
from models import EU_REGIME_CURRENCY, US_DOLLAR_CURRENCY, ComplianceResult, ReceiptRecord
from reconcile import check_tax_rate_range

logger = get_logger(__name__)


class DefaultComplianceEvaluator(ComplianceEvaluator):
    """Pass-through for currencies without a dedicated rule set."""

    jurisdiction = "default"

    def evaluate(self, record: ReceiptRecord) -> ComplianceResult:
        currency = record.currency_code or "unknown"
        suggestions = [
            info_suggestion(
                "currency",
                f"No jurisdiction-specific compliance rules for currency {currency}",
                current_value=record.currency,
            )
        ]
        note = check_tax_rate_range(record)
        if note:
            suggestions.append(info_suggestion("tax", note, current_value=record.tax))

        logger.info(
            "compliance_complete | jurisdiction=default | currency=%s | notes=%s",
            currency,
            len(suggestions),
        )
        return ComplianceResult(jurisdiction=self.jurisdiction, suggestions=suggestions)


_EVALUATORS: Mapping[str, ComplianceEvaluator] = MappingProxyType(
    {
        EU_REGIME_CURRENCY: EUComplianceEvaluator(),
        US_DOLLAR_CURRENCY: USComplianceEvaluator(),
    }
)
_DEFAULT_EVALUATOR = DefaultComplianceEvaluator()


def evaluator_for(currency: str | None) -> ComplianceEvaluator:
    """Pick the rule set for a currency code."""
    code = (currency or "").strip().upper()
    return _EVALUATORS.get(code, _DEFAULT_EVALUATOR)


def _degraded(exc: Exception) -> ComplianceResult:
    return ComplianceResult(
        jurisdiction="unavailable",
        suggestions=[
            info_suggestion(
                "compliance",
                f"Compliance rules could not be evaluated: {exc}",
            )
        ],
    )


@graceful(default_factory=_degraded, log_level=logging.WARNING)
def evaluate_compliance(record: ReceiptRecord) -> ComplianceResult:
    evaluator = evaluator_for(record.currency)
    logger.debug("compliance_dispatch | currency=%s | evaluator=%r", record.currency, evaluator)
    return evaluator.evaluate(record)
