"""
compliance_base.py - Shared interface for jurisdiction compliance evaluators.

Each evaluator turns one receipt into a ComplianceResult. Evaluators are
stateless: their rule tables are module-level constants.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any

from models import ComplianceResult, CorrectionSuggestion, ReceiptRecord, SuggestionAction


class ComplianceEvaluator(ABC):
    """One jurisdiction's rule set."""

    jurisdiction: str = "default"

    @abstractmethod
    def evaluate(self, record: ReceiptRecord) -> ComplianceResult:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(jurisdiction={self.jurisdiction!r})"


def info_suggestion(
    target_field: str,
    reason: str,
    current_value: Any = None,
    suggested_value: Any = None,
) -> CorrectionSuggestion:
    """A note for the user that carries no score impact."""
    return CorrectionSuggestion(
        target_field=target_field,
        current_value=current_value,
        suggested_value=suggested_value,
        reason=reason,
        action=SuggestionAction.INFO,
    )


def percent(rate: Any) -> str:
    return f"{Decimal(str(rate)) * 100:.2f}%"
