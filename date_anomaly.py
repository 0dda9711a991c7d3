"""
date_anomaly.py - Classify a transaction date relative to today.

Granularity is the calendar day: today itself is neither future nor stale.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from dateutil.relativedelta import relativedelta

from logging_config import get_logger
from models import DateAnomaly, DateAnomalyKind
from normalize import parse_date

logger = get_logger(__name__)

STALE_AFTER = relativedelta(years=1)


def detect_date_anomaly(value: Any, today: Optional[date] = None) -> DateAnomaly:
    if value is None or (isinstance(value, str) and not value.strip()):
        return DateAnomaly(kind=DateAnomalyKind.MISSING)

    parsed = parse_date(value)
    if parsed is None:
        logger.info("date_anomaly | kind=invalid | raw=%r", value)
        return DateAnomaly(kind=DateAnomalyKind.INVALID)

    today = today or date.today()

    if parsed > today:
        kind = DateAnomalyKind.FUTURE
    elif parsed < today - STALE_AFTER:
        kind = DateAnomalyKind.STALE
    else:
        kind = DateAnomalyKind.NONE

    if kind is not DateAnomalyKind.NONE:
        logger.info("date_anomaly | kind=%s | date=%s | today=%s", kind.value, parsed.isoformat(), today)
    return DateAnomaly(kind=kind, parsed_date=parsed.isoformat())
