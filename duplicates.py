"""
duplicates.py - Duplicate detection against previously accepted receipts.

A candidate is a duplicate when either:
1. its invoice number equals (trimmed, case-insensitive) a history entry's, or
2. a history entry has the same vendor (case-insensitive), the same calendar
   date and an amount within max(1% of the candidate total, 0.10).

Every similar-record match also carries a 0-100 similarity score built from
four weighted dimensions:
- vendor similarity (40)
- date equality (20)
- amount proximity (30)
- invoice number equality (10)
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from rapidfuzz import fuzz

from logging_config import get_logger
from models import (
    DuplicateMatch,
    DuplicateMatchDetail,
    DuplicateMatchType,
    HistoryEntry,
    ReceiptRecord,
)
from normalize import casefold_text, normalize_date, normalize_vendor

logger = get_logger(__name__)

VENDOR_WEIGHT = 40.0
DATE_WEIGHT = 20.0
AMOUNT_WEIGHT = 30.0
INVOICE_WEIGHT = 10.0

AMOUNT_TOLERANCE_PCT = Decimal("0.01")
AMOUNT_TOLERANCE_FLOOR = Decimal("0.10")
MIN_SIMILAR_SCORE = 80.0


def vendor_similarity(first: Any, second: Any) -> float:
    """Fuzzy vendor similarity in [0, 1] on normalized names."""
    left = normalize_vendor(first)
    right = normalize_vendor(second)
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    return round(float(fuzz.ratio(left, right)) / 100.0, 4)


def _date_key(value: Any) -> str:
    """Calendar-day key; falls back to the raw text when the date cannot be parsed."""
    return normalize_date(value) or casefold_text(value)


def same_date(first: Any, second: Any) -> bool:
    left = _date_key(first)
    return bool(left) and left == _date_key(second)


def same_invoice(first: Any, second: Any) -> bool:
    left = casefold_text(first)
    return bool(left) and left == casefold_text(second)


def calculate_similarity(candidate: ReceiptRecord | HistoryEntry, other: HistoryEntry) -> float:
    """Score how alike two receipts are (0-100).

    Each term only counts when both sides carry the field.
    """
    score = 0.0

    if casefold_text(candidate.vendor) and casefold_text(other.vendor):
        if casefold_text(candidate.vendor) == casefold_text(other.vendor):
            score += VENDOR_WEIGHT
        else:
            score += vendor_similarity(candidate.vendor, other.vendor) * VENDOR_WEIGHT

    if _date_key(candidate.date) and _date_key(other.date):
        if same_date(candidate.date, other.date):
            score += DATE_WEIGHT

    candidate_total = candidate.total_amount
    other_total = other.total_amount
    if candidate_total and other_total is not None:
        ratio = min(abs(candidate_total - other_total) / abs(candidate_total), Decimal("1"))
        score += float(Decimal("1") - ratio) * AMOUNT_WEIGHT

    if casefold_text(candidate.invoice_number) and casefold_text(other.invoice_number):
        if same_invoice(candidate.invoice_number, other.invoice_number):
            score += INVOICE_WEIGHT

    return round(min(100.0, score), 1)


def prepare_history(history: Optional[Iterable[Any]]) -> tuple[HistoryEntry, ...]:
    """Coerce raw history items into entries, skipping unusable ones."""
    if not history:
        return ()

    entries: list[HistoryEntry] = []
    for index, item in enumerate(history):
        if item is None:
            continue
        try:
            entries.append(HistoryEntry.from_source(item))
        except (TypeError, ValueError) as exc:
            logger.warning(
                "history_entry_skipped | index=%s | error=%s | fallback='skip entry'",
                index,
                exc,
            )
    return tuple(entries)


def _amount_difference(candidate_total: Optional[Decimal], entry: HistoryEntry) -> Decimal:
    return abs((entry.total_amount or Decimal("0")) - (candidate_total or Decimal("0")))


def _is_similar(record: ReceiptRecord, entry: HistoryEntry) -> bool:
    vendor = casefold_text(record.vendor)
    if not vendor or vendor != casefold_text(entry.vendor):
        return False
    if not same_date(record.date, entry.date):
        return False
    candidate_total = record.total_amount or Decimal("0")
    tolerance = max(candidate_total * AMOUNT_TOLERANCE_PCT, AMOUNT_TOLERANCE_FLOOR)
    return _amount_difference(record.total_amount, entry) <= tolerance


def check_duplicates(
    record: ReceiptRecord,
    history: Optional[Iterable[Any]] = None,
) -> DuplicateMatch:
    """Decide whether the candidate repeats a receipt already in history."""
    entries = prepare_history(history)
    if not entries:
        logger.debug("duplicate_check | history_empty=True")
        return DuplicateMatch()

    if record.has_invoice_number:
        for entry in entries:
            if same_invoice(record.invoice_number, entry.invoice_number):
                logger.info(
                    "duplicate_check_complete | type=exact_invoice | invoice=%r | matched_date=%s",
                    entry.invoice_number,
                    entry.date,
                )
                return DuplicateMatch(
                    is_duplicate=True,
                    matched_invoice_number=entry.invoice_number,
                    matched_date=entry.date,
                    similarity_score=100.0,
                    match_details=[
                        DuplicateMatchDetail(
                            type=DuplicateMatchType.EXACT_INVOICE,
                            record=entry,
                            similarity=100.0,
                        )
                    ],
                )

    similar = [entry for entry in entries if _is_similar(record, entry)]
    if not similar:
        logger.info(
            "duplicate_check_complete | duplicate=False | history_size=%s | vendor=%r",
            len(entries),
            record.vendor,
        )
        return DuplicateMatch()

    best = similar[0]
    candidate_total = record.total_amount
    divisor = candidate_total if candidate_total else Decimal("1")
    amount_similarity = 100.0 - float(_amount_difference(candidate_total, best) / abs(divisor)) * 100.0
    similarity = round(min(100.0, max(MIN_SIMILAR_SCORE, amount_similarity)), 2)

    details = [
        DuplicateMatchDetail(
            type=DuplicateMatchType.SIMILAR_RECORD,
            record=entry,
            similarity=calculate_similarity(record, entry),
        )
        for entry in similar
    ]

    logger.info(
        "duplicate_check_complete | type=similar_record | matches=%s | similarity=%.1f | vendor=%r | date=%s",
        len(similar),
        similarity,
        record.vendor,
        record.date,
    )
    return DuplicateMatch(
        is_duplicate=True,
        matched_invoice_number=best.invoice_number or "N/A",
        matched_date=best.date,
        similarity_score=similarity,
        match_details=details,
    )


def batch_check_duplicates(
    records: Sequence[ReceiptRecord],
    history: Optional[Iterable[Any]] = None,
) -> list[DuplicateMatch]:
    """Check records in submission order, each against history plus earlier records."""
    snapshot = prepare_history(history)
    results: list[DuplicateMatch] = []
    for record in records:
        results.append(check_duplicates(record, snapshot))
        snapshot = snapshot + (HistoryEntry.from_source(record),)
    return results
