"""
config.py - Runtime settings for the CLI and HTTP surfaces.

Settings come from the process environment, optionally seeded from a local
`.env` file. Engine thresholds are module constants and are not read here.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from logging_config import level_from_name

TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Process-level settings shared by main.py and api.py."""

    model_config = ConfigDict(frozen=True)

    log_level: int = Field(default=logging.INFO, description="Root logging level.")
    log_json: bool = Field(default=False, description="Emit JSON-like log lines.")
    port: int = Field(default=8000, ge=1, le=65535, description="HTTP listen port.")
    debug: bool = Field(
        default=False,
        description="Include the per-category risk breakdown in API responses by default.",
    )


def _flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in TRUTHY


def load_settings(env_file: str | None = None) -> Settings:
    """Load settings from `.env` (if present) and the environment."""
    load_dotenv(env_file, override=False)

    raw_port = os.getenv("PORT", "8000").strip()
    try:
        port = int(raw_port)
    except ValueError:
        port = 8000

    return Settings(
        log_level=level_from_name(os.getenv("LOG_LEVEL")),
        log_json=_flag("LOG_JSON"),
        port=port,
        debug=_flag("DEBUG"),
    )
