"""
explain.py - Human-readable and JSON-ready assessment formatting.

This module converts a `RiskAssessment` (or a full `AssessmentReport`) into:
- terminal-friendly text output for CLI usage
- machine-friendly dictionary output for APIs/logging/storage
"""

from __future__ import annotations

from typing import Any, Optional

from assess import AssessmentReport
from logging_config import get_logger
from models import ReceiptRecord, RiskAssessment, RiskTier, SuggestionAction

logger = get_logger(__name__)

TIER_HEADERS: dict[RiskTier, str] = {
    RiskTier.LOW: "LOW RISK",
    RiskTier.MEDIUM: "MEDIUM RISK",
    RiskTier.HIGH: "HIGH RISK",
}

ACTION_MARKERS: dict[SuggestionAction, str] = {
    SuggestionAction.EDIT: "edit",
    SuggestionAction.REVIEW: "review",
    SuggestionAction.INFO: "note",
}

OUTPUT_WIDTH = 56
SEPARATOR = "=" * OUTPUT_WIDTH
MAX_ALERTS_DISPLAY = 8


def _unwrap(
    result: RiskAssessment | AssessmentReport | None,
) -> tuple[Optional[RiskAssessment], Optional[AssessmentReport]]:
    if isinstance(result, AssessmentReport):
        return result.assessment, result
    return result, None


def format_assessment(
    result: RiskAssessment | AssessmentReport | None,
    record: ReceiptRecord | None = None,
) -> str:
    """Format an assessment into a clean, human-readable text block."""
    assessment, report = _unwrap(result)
    if assessment is None:
        logger.error("explain_input_error | assessment_none=True | fallback=error_block")
        return "\n" + SEPARATOR + "\n" + "  ERROR: No assessment data available\n" + SEPARATOR + "\n"

    lines: list[str] = [""]
    lines.append(SEPARATOR)
    lines.append(f"  {TIER_HEADERS[assessment.risk_tier]} - score {assessment.risk_score}/100")
    lines.append(SEPARATOR)

    if record is not None:
        lines.append("")
        lines.append(f"  Receipt:      {record.vendor or '(vendor unknown)'}")
        lines.append(
            f"                {record.total} {record.currency_code or '???'}  |  "
            f"{record.date or 'date unknown'}"
        )
        if record.has_invoice_number:
            lines.append(f"                Invoice #{record.invoice_number}")

    lines.append("")
    lines.append(f"  Compliance:   {assessment.compliance_status.value}")
    lines.append(f"  Confidence:   {assessment.confidence_score:.0%}")

    lines.append("")
    lines.append("  Alerts:")
    alerts = list(assessment.alerts)
    if not alerts:
        lines.append("    • (none)")
    elif len(alerts) <= MAX_ALERTS_DISPLAY:
        for alert in alerts:
            lines.append(f"    • {alert}")
    else:
        for alert in alerts[: MAX_ALERTS_DISPLAY - 1]:
            lines.append(f"    • {alert}")
        lines.append(f"    • ... and {len(alerts) - (MAX_ALERTS_DISPLAY - 1)} more alert(s)")

    if assessment.suggested_corrections:
        lines.append("")
        lines.append("  Suggestions:")
        for suggestion in assessment.suggested_corrections:
            marker = ACTION_MARKERS[suggestion.action]
            if suggestion.suggested_value is not None and suggestion.action is SuggestionAction.EDIT:
                lines.append(
                    f"    [{marker}] {suggestion.target_field}: "
                    f"{suggestion.current_value!r} -> {suggestion.suggested_value!r}"
                )
                lines.append(f"           {suggestion.reason}")
            else:
                lines.append(f"    [{marker}] {suggestion.target_field}: {suggestion.reason}")

    if report is not None and report.breakdown is not None:
        breakdown = report.breakdown
        lines.append("")
        lines.append("  Score breakdown:")
        for name, points in breakdown.model_dump().items():
            if points:
                lines.append(f"    {name.replace('_', ' '):<20} +{points}")

    if assessment.requires_manual_review:
        lines.append("")
        lines.append("  ACTION: Manual review required")

    lines.append("")
    lines.append(SEPARATOR)
    lines.append("")
    return "\n".join(lines)


def format_assessment_json(
    result: RiskAssessment | AssessmentReport | None,
    detail: bool = False,
) -> dict[str, Any]:
    """Render the camelCase output contract, optionally with the score breakdown."""
    assessment, report = _unwrap(result)
    if assessment is None:
        logger.error("explain_json_input_error | assessment_none=True | fallback=error_payload")
        return {"status": "error", "alerts": ["No assessment data available"]}

    payload = assessment.to_contract()
    if detail and report is not None:
        payload["stage"] = report.stage.value
        payload["riskBreakdown"] = (
            report.breakdown.model_dump(by_alias=True) if report.breakdown is not None else None
        )
        if report.discrepancy is not None:
            payload["taxDiscrepancy"] = report.discrepancy.model_dump(by_alias=True, mode="json")
        if report.duplicate is not None:
            payload["duplicateMatch"] = report.duplicate.model_dump(by_alias=True, mode="json")
    return payload
