"""
Logging for the darkscan namespace.

JSON lines by default (one object per record), plain text when
DARKSCAN_LOG_FORMAT=text. Context goes in ``extra=``; only the keys in
CONTEXT_FIELDS reach the JSON output.

    logger = get_logger("engine")
    logger.info("Scan complete", extra={"found": 4, "mode": "Hybrid AI"})
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional


LOG_LEVEL = os.getenv("DARKSCAN_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("DARKSCAN_LOG_FORMAT", "json")  # "json" or "text"

CONTEXT_FIELDS = (
    # scan pipeline
    "category", "candidates", "found", "mode", "duration_ms",
    # verifier channel
    "request_id",
    # failures
    "error", "error_type",
    # http / config
    "method", "path",
)


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key))
            for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(
            fmt="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )


def setup_logging(
    stream=None,
    fmt: Optional[str] = None,
    level: Optional[str] = None,
) -> logging.Logger:
    """
    Install one handler on the ``darkscan`` logger, replacing any earlier one.

    ``fmt`` and ``level`` override DARKSCAN_LOG_FORMAT / DARKSCAN_LOG_LEVEL.
    """
    root = logging.getLogger("darkscan")
    root.setLevel(getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter() if (fmt or LOG_FORMAT) == "json" else TextFormatter())
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sentence_transformers").setLevel(logging.WARNING)
    return root


def get_logger(name: str) -> logging.Logger:
    """``get_logger("engine")`` -> the ``darkscan.engine`` logger."""
    return logging.getLogger(f"darkscan.{name}")
