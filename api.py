"""
api.py - FastAPI HTTP layer for the receipt risk & compliance engine.

Endpoints:
  - GET  /health
  - POST /assess          {record, history}
  - POST /assess/batch    {records, history}

No scoring or compliance logic is implemented here.
"""

from __future__ import annotations

from typing import Any, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from assess import run_assessment, run_batch
from config import load_settings
from explain import format_assessment_json
from logging_config import get_logger, setup_logging

logger = get_logger("receipt-risk-api")

settings = load_settings()

app = FastAPI(
    title="Receipt Risk & Compliance API",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


class AssessRequest(BaseModel):
    record: dict[str, Any] = Field(..., description="Receipt record in the camelCase input contract.")
    history: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Previously accepted receipts (vendor, date, total, invoiceNumber).",
    )


class BatchAssessRequest(BaseModel):
    records: list[dict[str, Any]] = Field(..., description="Receipts assessed in submission order.")
    history: list[dict[str, Any]] = Field(default_factory=list)


def _detail(detail: Optional[bool]) -> bool:
    return settings.debug if detail is None else detail


@app.get("/health")
def health() -> dict[str, str]:
    """Service health check."""
    return {"status": "ok"}


@app.post("/assess")
def assess_endpoint(
    request: AssessRequest,
    detail: Optional[bool] = Query(default=None, description="Include the score breakdown."),
) -> dict[str, Any]:
    """Assess one receipt and return the output contract."""
    try:
        report = run_assessment(request.record, request.history)
        return format_assessment_json(report, detail=_detail(detail))
    except Exception as exc:
        logger.error(
            "api_assess_error | error_type=%s | error=%s",
            type(exc).__name__,
            exc,
            exc_info=True,
        )
        raise HTTPException(
            status_code=500,
            detail="Unexpected server error while assessing receipt.",
        ) from exc


@app.post("/assess/batch")
def assess_batch_endpoint(
    request: BatchAssessRequest,
    detail: Optional[bool] = Query(default=None, description="Include the score breakdown."),
) -> list[dict[str, Any]]:
    """Assess receipts in order; later receipts see earlier ones as history."""
    if not request.records:
        raise HTTPException(status_code=400, detail="At least one record is required.")
    try:
        reports = run_batch(request.records, request.history)
        return [format_assessment_json(report, detail=_detail(detail)) for report in reports]
    except Exception as exc:
        logger.error(
            "api_batch_error | error_type=%s | error=%s",
            type(exc).__name__,
            exc,
            exc_info=True,
        )
        raise HTTPException(
            status_code=500,
            detail="Unexpected server error while assessing batch.",
        ) from exc


if __name__ == "__main__":
    setup_logging(level=settings.log_level, json_format=settings.log_json)
    uvicorn.run("api:app", host="0.0.0.0", port=settings.port, reload=False)
