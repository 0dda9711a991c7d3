"""
normalize.py - Value normalization shared by every engine stage.

Core normalizers:
    normalize_vendor(vendor)    -> cleaned vendor name for fuzzy comparison
    parse_date(value)           -> date or None (lenient parse)
    normalize_date(value)       -> ISO YYYY-MM-DD or '' (lenient parse)
    parse_iso_date(value)       -> date or None (strict YYYY-MM-DD)
    to_decimal(value)           -> Decimal or None
    casefold_text(value)        -> trimmed, case-folded text for exact keys

Design principles:
    - SAME normalization on BOTH sides of any comparison
    - Pure transformations, no I/O
    - Invalid input degrades to neutral values ('' / None), never raises
"""

from __future__ import annotations

import math
import re
import unicodedata
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from dateutil import parser as dateparser

from logging_config import get_logger

logger = get_logger(__name__)

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DECIMAL_PATTERN = re.compile(r"^-?\d+(\.\d+)?$")

VENDOR_ALIASES: dict[str, str] = {
    "amzn": "amazon",
    "amzn mktp": "amazon",
    "amazon.com": "amazon",
    "wmt": "walmart",
    "wal-mart": "walmart",
    "walmart.com": "walmart",
    "sbux": "starbucks",
    "the home depot": "home depot",
    "homedepot": "home depot",
    "costco wholesale": "costco",
    "target.com": "target",
    "mcdonald's": "mcdonalds",
}

STRIP_SUFFIXES: frozenset[str] = frozenset(
    {"inc", "llc", "corp", "ltd", "co", "gmbh", "sa", "sarl", "bv", "ag", "plc", "store"}
)

PROCESSOR_PREFIXES: tuple[str, ...] = ("sq *", "sq*", "pp*", "pp *", "tst*", "tst *")

NULL_TOKENS = {"n/a", "na", "none", "null", "unknown"}


def _clean_alias(alias: str) -> str:
    cleaned = re.sub(r"[^a-z0-9\s]", "", alias.lower().strip())
    return re.sub(r"\s+", " ", cleaned).strip()


# Longest aliases first so "amzn mktp" wins over "amzn".
_NORMALIZED_ALIASES: tuple[tuple[str, str], ...] = tuple(
    sorted(
        ((_clean_alias(alias), canonical) for alias, canonical in VENDOR_ALIASES.items()),
        key=lambda item: -len(item[0]),
    )
)


def casefold_text(value: Any) -> str:
    """Trimmed, case-folded text; '' for None."""
    if value is None:
        return ""
    return str(value).strip().casefold()


def normalize_vendor(vendor: Any) -> str:
    """Normalize a vendor name for similarity scoring."""
    if vendor is None:
        return ""

    name = str(vendor).lower().strip()
    if not name:
        return ""

    name = unicodedata.normalize("NFD", name)
    name = "".join(char for char in name if unicodedata.category(char) != "Mn")

    for prefix in PROCESSOR_PREFIXES:
        if name.startswith(prefix):
            name = name[len(prefix) :].strip()
            break

    name = re.sub(r"#\s*\d+", "", name)
    name = re.sub(r"[^\w\s]", "", name, flags=re.UNICODE)
    name = name.replace("_", " ")

    words = name.split()
    while len(words) > 1 and words[-1] in STRIP_SUFFIXES:
        words.pop()
    name = " ".join(words)

    for alias, canonical in _NORMALIZED_ALIASES:
        if name == alias or name.startswith(alias + " "):
            name = canonical
            break

    logger.debug("normalize_vendor | raw=%r | normalized=%r", vendor, name)
    return name


def parse_date(value: Any) -> Optional[date]:
    """Leniently parse a date value; None when unusable.

    Strict ISO input is read first so years below 1000 survive intact.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text or text.lower() in NULL_TOKENS:
        return None
    iso = parse_iso_date(text)
    if iso is not None:
        return iso
    if not any(char.isdigit() for char in text):
        logger.debug("parse_date | rejected_no_digits | raw=%r", text)
        return None
    # Bare numbers and month/year fragments are not calendar dates.
    if re.fullmatch(r"\d+", text) or re.fullmatch(r"\d{1,2}[/-]\d{2,4}", text):
        return None

    try:
        parsed = dateparser.parse(text, dayfirst=False)
    except (ValueError, TypeError, OverflowError) as exc:
        logger.debug(
            "parse_date | parse_error=%s | raw=%r | fallback=None",
            type(exc).__name__,
            text,
        )
        return None
    return parsed.date() if parsed is not None else None


def normalize_date(value: Any) -> str:
    """Leniently normalize a date value to ISO YYYY-MM-DD ('' when unusable)."""
    parsed = parse_date(value)
    return parsed.isoformat() if parsed is not None else ""


def parse_iso_date(value: Any) -> Optional[date]:
    """Strictly parse 'YYYY-MM-DD' into a real calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not ISO_DATE_PATTERN.match(text):
        return None
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        return None


def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert a raw amount into Decimal; None for missing or non-numeric input.

    Negative values are preserved so the validator can reject them explicitly.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        return value if value.is_finite() else None

    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return Decimal(str(value))

    if not isinstance(value, str):
        return None

    text = (
        value.strip()
        .replace("$", "")
        .replace("€", "")
        .replace("£", "")
        .replace(",", "")
        .strip()
    )
    if not text or text.lower() in NULL_TOKENS:
        return None
    if not DECIMAL_PATTERN.match(text):
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def money(value: Optional[Decimal]) -> Optional[float]:
    """Round a Decimal amount to cents for user-facing output."""
    if value is None:
        return None
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
