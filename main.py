"""
main.py - CLI for the receipt risk & compliance engine.

This module is orchestration-only:
1. load receipts (JSON) and history (CSV or JSON)
2. assess (single record or ordered batch)
3. explain (text block, JSON, or batch summary table)
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from typing import Any

import pandas as pd

from assess import AssessmentReport, run_assessment, run_batch
from config import load_settings
from explain import format_assessment, format_assessment_json
from logging_config import get_logger, setup_logging
from models import HistoryEntry, ReceiptRecord

logger = get_logger("receipt-risk")

REQUIRED_COLUMNS = ["vendor", "date", "total"]
OPTIONAL_COLUMNS = ["invoice_number"]
COLUMN_ALIASES = {
    "invoicenumber": "invoice_number",
    "invoice number": "invoice_number",
    "invoice_no": "invoice_number",
    "amount": "total",
    "merchant": "vendor",
}


def _configure_output_symbols() -> tuple[str, str]:
    """Configure stdout encoding and return safe line/fail symbols."""
    try:
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    except (AttributeError, ValueError, OSError):
        pass

    try:
        "═✗".encode(sys.stdout.encoding or "utf-8")
        return "═", "✗"
    except (UnicodeEncodeError, LookupError):
        return "=", "X"


BOX_CHAR, FAIL_CHAR = _configure_output_symbols()


def _check_path(path: str | None, flag: str) -> str:
    if path is None:
        raise ValueError(f"{flag} path cannot be None")
    path = str(path).strip()
    if not path:
        raise ValueError(f"{flag} path cannot be empty")
    if not os.path.exists(path):
        raise FileNotFoundError(f"File not found: {path}\nProvide a valid path with {flag}")
    return path


def _read_json(path: str) -> Any:
    try:
        with open(path, encoding="utf-8-sig") as handle:
            return json.load(handle)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in '{path}': {exc}") from exc


def _load_history_csv(csv_path: str) -> list[HistoryEntry]:
    try:
        df = pd.read_csv(csv_path, encoding="utf-8-sig", dtype=str)
    except UnicodeDecodeError:
        logger.warning(
            "csv_encoding_warning | path=%s | reason='utf-8 decode failed' | fallback=latin-1",
            csv_path,
        )
        df = pd.read_csv(csv_path, encoding="latin-1", dtype=str)
    except pd.errors.EmptyDataError:
        return []
    except (pd.errors.ParserError, OSError) as exc:
        raise ValueError(f"Failed to read CSV '{csv_path}': {exc}") from exc

    # Normalize column names and remove fully empty rows.
    df.columns = [str(col).strip().lower() for col in df.columns]
    df = df.rename(columns=COLUMN_ALIASES).dropna(how="all").copy()

    if df.empty:
        logger.info("csv_loaded | path=%s | rows=0", csv_path)
        return []

    missing = [column for column in REQUIRED_COLUMNS if column not in df.columns]
    if missing:
        raise ValueError(
            f"History CSV missing required columns: {missing}\n"
            f"Required: {REQUIRED_COLUMNS}\n"
            f"Found: {list(df.columns)}"
        )

    for optional in OPTIONAL_COLUMNS:
        if optional not in df.columns:
            df[optional] = None

    df["vendor"] = df["vendor"].fillna("").astype(str).str.strip()
    df["date"] = df["date"].fillna("").astype(str).str.strip()

    amount_clean = (
        df["total"]
        .astype(str)
        .str.replace("$", "", regex=False)
        .str.replace(",", "", regex=False)
        .str.strip()
    )
    amount_numeric = pd.to_numeric(amount_clean, errors="coerce")
    invalid_amounts = int(amount_numeric.isna().sum())
    if invalid_amounts > 0:
        logger.warning(
            "csv_amount_warning | invalid_total_rows=%s | fallback='total left empty'",
            invalid_amounts,
        )
    df["total"] = amount_numeric.astype(object).where(amount_numeric.notna(), None)
    df["invoice_number"] = df["invoice_number"].astype(object).where(df["invoice_number"].notna(), None)

    logger.info("csv_loaded | path=%s | rows=%s | columns=%s", csv_path, len(df), list(df.columns))

    dates = pd.to_datetime(df["date"], errors="coerce", format="mixed")
    valid_dates = dates.dropna()
    if not valid_dates.empty:
        logger.info(
            "csv_date_range | min=%s | max=%s",
            valid_dates.min().strftime("%Y-%m-%d"),
            valid_dates.max().strftime("%Y-%m-%d"),
        )

    return [
        HistoryEntry.from_source(row)
        for row in df[REQUIRED_COLUMNS + OPTIONAL_COLUMNS].to_dict(orient="records")
    ]


def load_history(path: str | None) -> list[HistoryEntry]:
    """Load previously accepted receipts from a CSV or JSON file."""
    if path is None:
        return []
    path = _check_path(path, "--history")

    if path.lower().endswith(".json"):
        data = _read_json(path)
        if not isinstance(data, list):
            raise ValueError(f"History JSON must be a list of records: {path}")
        entries = [HistoryEntry.from_source(item) for item in data if isinstance(item, dict)]
        logger.info("history_loaded | path=%s | rows=%s", path, len(entries))
        return entries

    return _load_history_csv(path)


def load_receipts(path: str) -> list[dict[str, Any]]:
    """Load one receipt object or a list of receipt objects from JSON."""
    path = _check_path(path, "--receipt/--batch")
    data = _read_json(path)
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list) and all(isinstance(item, dict) for item in data):
        return data
    raise ValueError(f"Receipt JSON must be an object or a list of objects: {path}")


def _print_summary_table(rows: list[tuple[str, AssessmentReport]]) -> None:
    """Print a formatted summary table for batch mode results."""
    print(f"\n{BOX_CHAR * 60}")
    print(f"  SUMMARY - {len(rows)} receipt(s) assessed")
    print(f"{BOX_CHAR * 60}")
    print()
    print(f"  {'Receipt':<30} {'Tier':<8} {'Score':>5} {'Review':>7}")
    print(f"  {'─' * 30} {'─' * 8} {'─' * 5} {'─' * 7}")

    for label, report in rows:
        assessment = report.assessment
        short_label = label[:28] + ".." if len(label) > 30 else label
        tier = assessment.risk_tier.value if not report.failed else f"{FAIL_CHAR} ERR"
        review = "yes" if assessment.requires_manual_review else "no"
        print(f"  {short_label:<30} {tier:<8} {assessment.risk_score:>5} {review:>7}")

    print()
    print(f"{BOX_CHAR * 60}")


def _label(raw: dict[str, Any], index: int) -> str:
    invoice = raw.get("invoiceNumber") or raw.get("invoice_number")
    vendor = raw.get("vendor") or "unknown vendor"
    return f"{index + 1}. {vendor}" + (f" #{invoice}" if invoice else "")


def _record_or_none(raw: dict[str, Any]) -> ReceiptRecord | None:
    try:
        return ReceiptRecord.model_validate(raw)
    except ValueError:
        return None


def run_single(receipt_path: str, history_path: str | None, as_json: bool, detail: bool) -> str:
    """Assess the first receipt in a file and render it."""
    started = time.time()
    raws = load_receipts(receipt_path)
    if not raws:
        raise ValueError(f"No receipts found in {receipt_path}")
    raw = raws[0]
    history = load_history(history_path)

    report = run_assessment(raw, history)
    logger.info(
        "cli_single_complete | score=%s | tier=%s | duration_s=%.2f",
        report.assessment.risk_score,
        report.assessment.risk_tier.value,
        time.time() - started,
    )
    if as_json:
        return json.dumps(format_assessment_json(report, detail=detail), indent=2)
    return format_assessment(report, record=_record_or_none(raw))


def run_batch_file(batch_path: str, history_path: str | None, as_json: bool, detail: bool) -> None:
    """Assess every receipt in a file in order and print the results."""
    raws = load_receipts(batch_path)
    history = load_history(history_path)
    logger.info("batch_start | receipt_count=%s | history_size=%s", len(raws), len(history))

    reports = run_batch(raws, history)
    failed = sum(1 for report in reports if report.failed)
    logger.info("batch_complete | success=%s | failed=%s", len(reports) - failed, failed)

    if as_json:
        print(json.dumps([format_assessment_json(report, detail=detail) for report in reports], indent=2))
        return

    rows: list[tuple[str, AssessmentReport]] = []
    for index, (raw, report) in enumerate(zip(raws, reports)):
        label = _label(raw, index)
        print(f"\n{BOX_CHAR * 60}")
        print(f"  Receipt {index + 1}/{len(raws)}: {label}")
        print(f"{BOX_CHAR * 60}")
        print(format_assessment(report, record=_record_or_none(raw)))
        rows.append((label, report))

    _print_summary_table(rows)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="receipt-risk",
        description=(
            "Receipt Risk & Compliance Engine\n"
            "Scores receipts for fraud/error risk and US/EU tax compliance."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s --receipt receipt.json\n"
            "  %(prog)s --receipt receipt.json --history accepted.csv --json\n"
            "  %(prog)s --batch receipts.json --history accepted.json --verbose\n"
        ),
    )
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--receipt", "-r", type=str, help="Path to a receipt JSON object")
    mode.add_argument("--batch", "-b", type=str, help="Path to a JSON list of receipts, assessed in order")
    parser.add_argument(
        "--history",
        "-H",
        type=str,
        help="Previously accepted receipts (.csv with vendor,date,total[,invoice_number] or .json list)",
    )
    parser.add_argument("--json", action="store_true", help="Output the JSON output contract instead of text")
    parser.add_argument("--detail", action="store_true", help="Include the score breakdown in JSON output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose (DEBUG-level) logging")
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs as JSON lines (for production/log aggregation)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_settings()
    setup_logging(
        level=logging.DEBUG if args.verbose else settings.log_level,
        json_format=args.log_json or settings.log_json,
    )

    try:
        if args.batch:
            logger.info("cli_mode | mode=batch | batch=%s | history=%s", args.batch, args.history)
            run_batch_file(args.batch, args.history, args.json, args.detail or settings.debug)
        else:
            logger.info("cli_mode | mode=single | receipt=%s | history=%s", args.receipt, args.history)
            print(run_single(args.receipt, args.history, args.json, args.detail or settings.debug))
    except FileNotFoundError as exc:
        logger.error("cli_error | type=FileNotFoundError | error=%s", exc)
        print(f"\nError: {exc}")
        raise SystemExit(1) from exc
    except ValueError as exc:
        logger.error("cli_error | type=ValueError | error=%s", exc)
        print(f"\nError: {exc}")
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        print("\nInterrupted.")
        raise SystemExit(130)


if __name__ == "__main__":
    main()
