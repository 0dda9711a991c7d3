"""
assess.py - Orchestrates one assessment through every stage.

Stages run strictly in order:
    VALIDATING -> DUPLICATE_CHECKING -> RECONCILING -> DATE_CHECKING
    -> COMPLIANCE_CHECKING -> SCORING -> SYNTHESIZING -> DONE

Any fault moves straight to FAILED and produces the fail-safe assessment
(score 100, High, manual review). Faults never reach the caller.

Batch mode threads an immutable history snapshot: record i is checked
against the caller's history plus records 0..i-1.
"""

from __future__ import annotations

import time
from datetime import date
from enum import Enum
from typing import Any, Iterable, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from alerts import ALERT_FAILED, build_alerts, build_suggestions, merge_unique
from compliance import evaluate_compliance
from date_anomaly import detect_date_anomaly
from duplicates import check_duplicates, prepare_history
from logging_config import get_logger
from models import (
    ComplianceResult,
    ComplianceStatus,
    DateAnomaly,
    DuplicateMatch,
    HistoryEntry,
    ReceiptRecord,
    RiskAssessment,
    RiskBreakdown,
    RiskTier,
    TaxDiscrepancy,
    ValidationResult,
    tier_of,
)
from reconcile import reconcile_tax
from scoring import calculate_confidence, risk_breakdown, score_from_breakdown
from validate import validate_fields

logger = get_logger(__name__)


class AssessmentStage(str, Enum):
    VALIDATING = "validating"
    DUPLICATE_CHECKING = "duplicate-checking"
    RECONCILING = "reconciling"
    DATE_CHECKING = "date-checking"
    COMPLIANCE_CHECKING = "compliance-checking"
    SCORING = "scoring"
    SYNTHESIZING = "synthesizing"
    DONE = "done"
    FAILED = "failed"


class AssessmentReport(BaseModel):
    """An assessment together with the evidence that produced it.

    Intermediate results are None when the run failed before reaching
    their stage.
    """

    model_config = ConfigDict(frozen=True)

    assessment: RiskAssessment
    stage: AssessmentStage
    validation: Optional[ValidationResult] = None
    duplicate: Optional[DuplicateMatch] = None
    discrepancy: Optional[TaxDiscrepancy] = None
    date_anomaly: Optional[DateAnomaly] = None
    compliance: Optional[ComplianceResult] = None
    breakdown: Optional[RiskBreakdown] = None

    @property
    def failed(self) -> bool:
        return self.stage is AssessmentStage.FAILED


def fail_safe_assessment(message: str) -> RiskAssessment:
    """Maximal-risk result used whenever an assessment cannot complete."""
    score = 100
    return RiskAssessment(
        risk_score=score,
        risk_tier=tier_of(score),
        alerts=[ALERT_FAILED.format(message=message)],
        suggested_corrections=[],
        confidence_score=0.0,
        compliance_status=ComplianceStatus.ERROR,
        requires_manual_review=True,
    )


def _failure_message(exc: Exception) -> str:
    """First line of the error message; the full text goes to the log."""
    lines = str(exc).strip().splitlines()
    return lines[0] if lines else type(exc).__name__


def _coerce_record(record: Any) -> ReceiptRecord:
    if isinstance(record, ReceiptRecord):
        return record
    if isinstance(record, dict):
        return ReceiptRecord.model_validate(record)
    raise TypeError(f"Expected a receipt record, got {type(record).__name__}")


def run_assessment(
    record: Any,
    history: Optional[Iterable[Any]] = None,
    today: Optional[date] = None,
) -> AssessmentReport:
    """Assess one record and keep every intermediate result."""
    started = time.perf_counter()
    stage = AssessmentStage.VALIDATING
    found: dict[str, Any] = {}

    def advance(next_stage: AssessmentStage) -> AssessmentStage:
        logger.debug("pipeline_stage | from=%s | to=%s", stage.value, next_stage.value)
        return next_stage

    try:
        receipt = _coerce_record(record)
        validation = validate_fields(receipt)
        found["validation"] = validation

        stage = advance(AssessmentStage.DUPLICATE_CHECKING)
        duplicate = check_duplicates(receipt, history)
        found["duplicate"] = duplicate

        stage = advance(AssessmentStage.RECONCILING)
        discrepancy = reconcile_tax(receipt)
        found["discrepancy"] = discrepancy

        stage = advance(AssessmentStage.DATE_CHECKING)
        date_anomaly = detect_date_anomaly(receipt.date, today=today)
        found["date_anomaly"] = date_anomaly

        stage = advance(AssessmentStage.COMPLIANCE_CHECKING)
        compliance = evaluate_compliance(receipt)
        found["compliance"] = compliance

        stage = advance(AssessmentStage.SCORING)
        breakdown = risk_breakdown(validation, duplicate, discrepancy, date_anomaly, receipt)
        found["breakdown"] = breakdown
        score = score_from_breakdown(breakdown)
        tier = tier_of(score)
        confidence = calculate_confidence(validation, discrepancy, compliance.status)

        stage = advance(AssessmentStage.SYNTHESIZING)
        alerts = merge_unique(
            build_alerts(validation, duplicate, discrepancy, date_anomaly),
            compliance.alerts,
        )
        suggestions = merge_unique(
            build_suggestions(receipt, validation, duplicate, discrepancy),
            compliance.suggestions,
        )
        assessment = RiskAssessment(
            risk_score=score,
            risk_tier=tier,
            alerts=alerts,
            suggested_corrections=suggestions,
            confidence_score=confidence,
            compliance_status=compliance.status,
            requires_manual_review=tier is RiskTier.HIGH or compliance.requires_review,
        )
        stage = advance(AssessmentStage.DONE)
    except Exception as exc:
        logger.error(
            "pipeline_failed | stage=%s | error_type=%s | error=%s",
            stage.value,
            type(exc).__name__,
            exc,
            exc_info=True,
        )
        return AssessmentReport(
            assessment=fail_safe_assessment(_failure_message(exc)),
            stage=AssessmentStage.FAILED,
            **found,
        )

    logger.info(
        "pipeline_complete | score=%s | tier=%s | status=%s | review=%s | alerts=%s | duration_ms=%.1f",
        assessment.risk_score,
        assessment.risk_tier.value,
        assessment.compliance_status.value,
        assessment.requires_manual_review,
        len(assessment.alerts),
        (time.perf_counter() - started) * 1000.0,
    )
    return AssessmentReport(assessment=assessment, stage=stage, **found)


def assess_receipt(
    record: Any,
    history: Optional[Iterable[Any]] = None,
    today: Optional[date] = None,
) -> RiskAssessment:
    """Assess one record against previously accepted receipts."""
    return run_assessment(record, history, today=today).assessment


def _as_history_entry(record: Any) -> Optional[HistoryEntry]:
    try:
        return HistoryEntry.from_source(record)
    except (TypeError, ValueError) as exc:
        logger.warning("batch_history_skip | error=%s | fallback='not added to history'", exc)
        return None


def run_batch(
    records: Sequence[Any],
    history: Optional[Iterable[Any]] = None,
    today: Optional[date] = None,
) -> list[AssessmentReport]:
    """Assess records in submission order with a growing history snapshot."""
    snapshot: tuple[HistoryEntry, ...] = prepare_history(history)
    reports: list[AssessmentReport] = []

    for index, record in enumerate(records):
        report = run_assessment(record, snapshot, today=today)
        reports.append(report)
        logger.info(
            "batch_step | index=%s | history_size=%s | score=%s | stage=%s",
            index,
            len(snapshot),
            report.assessment.risk_score,
            report.stage.value,
        )
        entry = _as_history_entry(record)
        if entry is not None:
            snapshot = snapshot + (entry,)

    return reports


def assess_batch(
    records: Sequence[Any],
    history: Optional[Iterable[Any]] = None,
    today: Optional[date] = None,
) -> list[RiskAssessment]:
    return [report.assessment for report in run_batch(records, history, today=today)]
