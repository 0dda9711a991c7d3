"""
models.py - Data Models for the Receipt Risk & Compliance Engine

This file defines ALL data structures used across the engine.
Every stage communicates exclusively through these models:

    validate.py       ->  ValidationResult
    duplicates.py     ->  DuplicateMatch
    reconcile.py      ->  TaxDiscrepancy
    date_anomaly.py   ->  DateAnomaly
    compliance*.py    ->  ComplianceResult
    scoring.py        ->  RiskBreakdown, int score, float confidence
    alerts.py         ->  list[str], list[CorrectionSuggestion]
    assess.py         ->  RiskAssessment (wrapped in AssessmentReport)

Design principles:
1. Input models keep raw values so malformed input reaches the validator
   instead of failing at parse time
2. Every intermediate model is created fresh per assessment and discarded
3. Output models serialize with the camelCase names of the JSON contract
4. Score -> tier mapping lives in exactly one function, `tier_of`

Schema relationships:
    ReceiptRecord  --reduced to--> HistoryEntry (duplicate comparison only)
    HistoryEntry   --used by-->    DuplicateMatchDetail.record
    CorrectionSuggestion --used by--> ComplianceResult, RiskAssessment
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from normalize import to_decimal


class Currency(str, Enum):
    """Currencies the engine accepts."""

    USD = "USD"
    EUR = "EUR"
    PKR = "PKR"


SUPPORTED_CURRENCIES: frozenset[str] = frozenset(currency.value for currency in Currency)
EU_REGIME_CURRENCY = Currency.EUR.value
US_DOLLAR_CURRENCY = Currency.USD.value


class RiskTier(str, Enum):
    """Severity tier derived solely from the risk score."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# Upper bounds (inclusive) checked in order; anything above the last is HIGH.
TIER_THRESHOLDS: tuple[tuple[int, RiskTier], ...] = (
    (30, RiskTier.LOW),
    (60, RiskTier.MEDIUM),
)


def tier_of(score: int) -> RiskTier:
    """Map a risk score onto its tier. The only place tier boundaries live."""
    for upper, tier in TIER_THRESHOLDS:
        if score <= upper:
            return tier
    return RiskTier.HIGH


class ComplianceStatus(str, Enum):
    COMPLIANT = "compliant"
    NON_COMPLIANT = "non-compliant"
    ERROR = "error"


class DateAnomalyKind(str, Enum):
    """Classification of the transaction date relative to today."""

    NONE = "none"
    MISSING = "missing"
    INVALID = "invalid"
    # Later than today.
    FUTURE = "future"
    # Earlier than today minus one calendar year.
    STALE = "stale"


class DuplicateMatchType(str, Enum):
    EXACT_INVOICE = "exact-invoice"
    SIMILAR_RECORD = "similar-record"


class SuggestionAction(str, Enum):
    """What the user is expected to do with a suggestion."""

    EDIT = "edit"
    REVIEW = "review"
    INFO = "info"


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _coerce_text(value: Any) -> Any:
    """Turn non-text scalars into text so raw OCR output never fails parsing."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


class _InputModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class _OutputModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class LineItem(_InputModel):
    """One line of a receipt as extracted upstream.

    Amounts are kept exactly as received, like `ReceiptRecord.total`. Read
    them through the `*_amount` properties: blank or unparseable quantities
    count as 1, blank or unparseable prices and taxes as 0. The validator
    reports unparseable values.
    """

    description: str = Field(
        default="",
        validation_alias=AliasChoices("description", "item"),
        serialization_alias="description",
        description="Line description, e.g. 'Office Supplies'.",
    )
    quantity: Any = Field(default=None, description="Units purchased (raw value kept).")
    unit_price: Any = Field(
        default=None,
        validation_alias=AliasChoices("unitPrice", "unit_price"),
        serialization_alias="unitPrice",
        description="Price per unit before line tax (raw value kept).",
    )
    tax: Any = Field(default=None, description="Tax charged on this line (raw value kept).")

    @field_validator("description", mode="before")
    @classmethod
    def _description_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @property
    def quantity_amount(self) -> Decimal:
        amount = to_decimal(self.quantity)
        return Decimal("1") if amount is None else amount

    @property
    def unit_price_amount(self) -> Decimal:
        return to_decimal(self.unit_price) or Decimal("0")

    @property
    def tax_amount(self) -> Decimal:
        return to_decimal(self.tax) or Decimal("0")

    @property
    def invalid_amounts(self) -> list[str]:
        """Names of amount fields that hold a value but not a number."""
        raw = {"quantity": self.quantity, "unitPrice": self.unit_price, "tax": self.tax}
        return [
            name
            for name, value in raw.items()
            if not _blank(value) and to_decimal(value) is None
        ]

    @property
    def subtotal(self) -> Decimal:
        """Quantity times unit price, excluding line tax."""
        return self.quantity_amount * self.unit_price_amount

    @property
    def line_total(self) -> Decimal:
        """Quantity times unit price plus line tax."""
        return self.subtotal + self.tax_amount


class ReceiptRecord(_InputModel):
    """Candidate receipt handed to the engine by the upload or batch pipeline.

    Numeric fields (`total`, `tax`) are stored exactly as received. The field
    validator decides whether they are usable; every other stage reads them
    through `total_amount` / `tax_amount`, which yield `Decimal | None`.

    The record is frozen: no stage may modify it.
    """

    vendor: Optional[str] = Field(
        default=None,
        description="Vendor or merchant name as printed on the receipt.",
    )
    date: Optional[str] = Field(
        default=None,
        description=(
            "Transaction date. Expected as ISO 'YYYY-MM-DD'; date objects are "
            "converted to that form. Anything else is kept as text and judged "
            "by the validator and the date anomaly detector."
        ),
    )
    total: Any = Field(
        default=None,
        description="Reported grand total (decimal >= 0 expected, raw value kept).",
    )
    tax: Any = Field(default=0, description="Reported tax amount (raw value kept).")
    currency: Optional[str] = Field(
        default=None,
        description="ISO 4217 code. Supported: USD, EUR, PKR.",
    )
    tax_identifier: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("taxIdentifier", "tax_identifier", "VAT_ID", "vatId"),
        serialization_alias="taxIdentifier",
        description="Vendor VAT identification number. Required for EUR receipts.",
    )
    invoice_number: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("invoiceNumber", "invoice_number"),
        serialization_alias="invoiceNumber",
        description="Invoice or receipt number; primary duplicate key.",
    )
    line_items: list[LineItem] = Field(
        default_factory=list,
        validation_alias=AliasChoices("lineItems", "line_items"),
        serialization_alias="lineItems",
        description="Ordered line items used for reconciliation.",
    )
    category: Optional[str] = Field(
        default=None,
        description="Expense category, e.g. 'Meals & Entertainment'. Drives US deductibility notes.",
    )
    state_code: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("stateCode", "state_code", "state"),
        serialization_alias="stateCode",
        description="Two-letter US state code for state sales-tax checks.",
    )

    @field_validator(
        "vendor",
        "date",
        "currency",
        "tax_identifier",
        "invoice_number",
        "category",
        "state_code",
        mode="before",
    )
    @classmethod
    def _text_fields(cls, value: Any) -> Any:
        return _coerce_text(value)

    @field_validator("line_items", mode="before")
    @classmethod
    def _line_items_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def total_amount(self) -> Optional[Decimal]:
        """Reported total as Decimal, or None when missing or non-numeric."""
        return to_decimal(self.total)

    @property
    def tax_amount(self) -> Decimal:
        """Reported tax as Decimal; missing or non-numeric tax counts as 0."""
        return to_decimal(self.tax) or Decimal("0")

    @property
    def currency_code(self) -> str:
        return (self.currency or "").strip().upper()

    @property
    def has_invoice_number(self) -> bool:
        return bool(self.invoice_number and self.invoice_number.strip())

    @property
    def has_tax_identifier(self) -> bool:
        return bool(self.tax_identifier and self.tax_identifier.strip())

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "vendor": "Amazon",
                    "date": "2024-01-15",
                    "total": 125.50,
                    "tax": 10.04,
                    "currency": "USD",
                    "invoiceNumber": "INV-2024-001",
                    "lineItems": [
                        {"description": "Supplies", "quantity": 2, "unitPrice": 50, "tax": 8},
                        {"description": "Shipping", "quantity": 1, "unitPrice": 25.5, "tax": 2.04},
                    ],
                }
            ]
        }
    )


class HistoryEntry(_InputModel):
    """Previously accepted receipt, reduced to the fields duplicate checks read."""

    vendor: Optional[str] = None
    date: Optional[str] = None
    total: Any = None
    invoice_number: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("invoiceNumber", "invoice_number"),
        serialization_alias="invoiceNumber",
    )

    @field_validator("vendor", "date", "invoice_number", mode="before")
    @classmethod
    def _text_fields(cls, value: Any) -> Any:
        return _coerce_text(value)

    @property
    def total_amount(self) -> Optional[Decimal]:
        return to_decimal(self.total)

    @classmethod
    def from_source(cls, source: Any) -> "HistoryEntry":
        """Build an entry from a dict, a ReceiptRecord or another entry."""
        if isinstance(source, HistoryEntry):
            return source
        if isinstance(source, ReceiptRecord):
            return cls(
                vendor=source.vendor,
                date=source.date,
                total=source.total,
                invoice_number=source.invoice_number,
            )
        if isinstance(source, dict):
            return cls.model_validate(source)
        raise TypeError(f"Cannot build a history entry from {type(source).__name__}")


class ValidationResult(_OutputModel):
    missing_fields: list[str] = Field(
        default_factory=list,
        description="Required field names that are absent, in check order, no repeats.",
    )
    issues: list[str] = Field(
        default_factory=list,
        description="Human-readable problems with present fields, e.g. 'Invalid total amount'.",
    )

    @property
    def is_valid(self) -> bool:
        return not self.missing_fields and not self.issues


class DuplicateMatchDetail(_OutputModel):
    type: DuplicateMatchType
    record: HistoryEntry
    similarity: float = Field(..., ge=0, le=100)


class DuplicateMatch(_OutputModel):
    """Outcome of comparing a candidate against history."""

    is_duplicate: bool = False
    matched_invoice_number: Optional[str] = None
    matched_date: Optional[str] = None
    similarity_score: float = Field(default=0.0, ge=0, le=100)
    match_details: list[DuplicateMatchDetail] = Field(default_factory=list)


class TaxDiscrepancy(_OutputModel):
    """Reported totals compared with totals recomputed from line items.

    `basis` records how line items were read: 'tax-exclusive' when unit
    prices exclude line tax, 'tax-inclusive' when the reported total only
    reconciles with line tax already inside the unit prices, 'none' when
    there were no line items.
    """

    has_discrepancy: bool = False
    total_difference: Decimal = Decimal("0")
    tax_difference: Decimal = Decimal("0")
    recomputed_total: Optional[Decimal] = None
    recomputed_tax: Optional[Decimal] = None
    threshold: Decimal = Decimal("0")
    basis: str = "none"
    unusual_tax_lines: list[int] = Field(
        default_factory=list,
        description="Zero-based indexes of lines whose tax exceeds 30% of their subtotal.",
    )

    @property
    def discrepancy_ratio(self) -> Decimal:
        """Total difference relative to the recomputed total (or to 1)."""
        base = self.recomputed_total if self.recomputed_total else Decimal("1")
        return abs(self.total_difference / base)


class DateAnomaly(_OutputModel):
    kind: DateAnomalyKind = DateAnomalyKind.NONE
    parsed_date: Optional[str] = None

    @property
    def has_anomaly(self) -> bool:
        return self.kind is not DateAnomalyKind.NONE


class CorrectionSuggestion(_OutputModel):
    """A structured edit, review request or note for the user."""

    target_field: str
    current_value: Any = None
    suggested_value: Any = None
    reason: str
    action: SuggestionAction = SuggestionAction.EDIT


class ComplianceResult(_OutputModel):
    jurisdiction: str = "default"
    compliant: bool = True
    alerts: list[str] = Field(default_factory=list)
    suggestions: list[CorrectionSuggestion] = Field(default_factory=list)
    requires_review: bool = False

    @property
    def status(self) -> ComplianceStatus:
        return ComplianceStatus.COMPLIANT if self.compliant else ComplianceStatus.NON_COMPLIANT


class RiskBreakdown(_OutputModel):
    """Points contributed by each scoring category before clamping."""

    missing_fields: int = 0
    validation_issues: int = 0
    duplicates: int = 0
    tax_discrepancies: int = 0
    date_anomalies: int = 0
    other: int = 0

    @property
    def total(self) -> int:
        return (
            self.missing_fields
            + self.validation_issues
            + self.duplicates
            + self.tax_discrepancies
            + self.date_anomalies
            + self.other
        )


class RiskAssessment(_OutputModel):
    """Final, immutable output of one assessment.

    Serialized with `model_dump(by_alias=True, mode="json")` this is the
    external output contract:
    {riskScore, riskTier, alerts, suggestedCorrections, confidenceScore,
     complianceStatus, requiresManualReview}.
    """

    risk_score: int = Field(..., ge=0, le=100)
    risk_tier: RiskTier
    alerts: list[str] = Field(default_factory=list)
    suggested_corrections: list[CorrectionSuggestion] = Field(default_factory=list)
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    compliance_status: ComplianceStatus
    requires_manual_review: bool

    @model_validator(mode="after")
    def _tier_matches_score(self) -> "RiskAssessment":
        expected = tier_of(self.risk_score)
        if self.risk_tier is not expected:
            raise ValueError(
                f"risk_tier {self.risk_tier.value} inconsistent with score "
                f"{self.risk_score} (expected {expected.value})"
            )
        return self

    def to_contract(self) -> dict[str, Any]:
        """Render the camelCase JSON-ready dictionary of the output contract."""
        return self.model_dump(by_alias=True, mode="json")
