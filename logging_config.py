"""
logging_config.py - Logging setup for the risk engine, CLI and API.

Every engine stage logs one pipe-delimited event line when it finishes,
e.g. `reconcile_complete | discrepancy=False | basis=tax-inclusive`, so a
single assessment can be followed stage by stage in the log. `main.py` and
`api.py` call `setup_logging` once with the level and format from `config.py`.

`graceful` wraps compliance dispatch: a faulty rule table is logged and turned
into an informational note instead of failing the whole assessment.
"""

from __future__ import annotations

import functools
import logging
import sys
from typing import Callable, TypeVar

T = TypeVar("T")


def setup_logging(level: int = logging.INFO, json_format: bool = False) -> None:
    """Configure root logger with consistent formatting.

    Args:
        level: Logging level.
        json_format: If True, emit JSON-like log lines.
    """
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    if json_format:
        formatter = logging.Formatter(
            '{"timestamp":"%(asctime)s","level":"%(levelname)s",'
            '"module":"%(name)s","message":"%(message)s"}',
            datefmt="%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(name)-20s] %(levelname)-7s %(message)s",
            datefmt="%H:%M:%S",
        )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger."""
    return logging.getLogger(name)


def level_from_name(name: str | None, default: int = logging.INFO) -> int:
    """Translate a level name such as 'debug' into a logging constant."""
    if not name:
        return default
    value = logging.getLevelName(str(name).strip().upper())
    return value if isinstance(value, int) else default


def graceful(default_factory: Callable[[Exception], T], log_level: int = logging.ERROR):
    """Decorator that catches exceptions and returns a fallback value.

    The fallback is built from the caught exception so callers can turn the
    failure into a user-facing note instead of an error.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except (KeyboardInterrupt, SystemExit):
                raise
            except Exception as exc:
                logger = logging.getLogger(func.__module__)
                logger.log(
                    log_level,
                    "%s failed: %s: %s",
                    func.__name__,
                    type(exc).__name__,
                    exc,
                    exc_info=True,
                )
                return default_factory(exc)

        return wrapper

    return decorator
