"""Structured logging helpers.

Call sites attach machine-readable context via ``extra={"structured": {...}}``;
``StructuredFormatter`` appends it to the log line as JSON so reconciliation
details (document ids, storage keys, failed legs) survive into log search.
"""

import json
import logging
from typing import Any

_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


class StructuredFormatter(logging.Formatter):
    """Formatter that renders the ``structured`` extra as a JSON suffix."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        structured: dict[str, Any] | None = getattr(record, "structured", None)
        if structured:
            line = f"{line} {json.dumps(structured, default=str, sort_keys=True)}"
        return line


def configure_logging(level: str = "INFO") -> None:
    """Install the structured formatter on the root logger."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter(_FORMAT))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level.upper())


class DeletionLogger:
    """Structured logger for the legs of a fan-out document deletion."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def log_leg(
        self,
        document_id: str,
        leg: str,
        outcome: str,
        s3_key: str | None = None,
        error_reason: str | None = None,
    ) -> None:
        """Log the outcome of one deletion leg with reconciliation data."""
        log_data: dict[str, Any] = {
            "document_id": document_id,
            "leg": leg,
            "outcome": outcome,
        }
        if s3_key:
            log_data["s3_key"] = s3_key
        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Document delete: {leg} - {outcome}"

        if outcome in ("success", "skipped"):
            self._logger.info(log_msg, extra={"structured": log_data})
        else:
            self._logger.warning(log_msg, extra={"structured": log_data})
