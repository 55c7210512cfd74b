"""
src/sponsormatch/core/logging.py

Structured JSON logs for SponsorMatch. Every record carries the request id and
the pipeline stage it was emitted from, so one /decide call can be followed
from RECEIVED to AD_SHOWN | NO_AD in the log sink.

    setup_json_logging("INFO")     # once, from create_app()
    request_id_ctx.set("...")      # RequestIDMiddleware
    stage_ctx.set("MAPPED")        # AdRelevancePipeline
"""
from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

__all__ = [
    "request_id_ctx",
    "stage_ctx",
    "setup_json_logging",
]

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
stage_ctx: ContextVar[str] = ContextVar("stage", default="")

# Third-party loggers that echo full provider requests at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "openai")


class _JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Always: timestamp, level, logger, message, request_id, stage.
    ``extra={"fields": {...}}`` is merged in under ``fields``.
    Exceptions are reduced to type + message; tracebacks are dropped so
    provider payloads never reach the sink.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_ctx.get(""),
            "stage": stage_ctx.get(""),
        }

        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            payload["fields"] = fields

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_val, _ = record.exc_info
            payload["exc"] = {"type": exc_type.__name__, "detail": str(exc_val)}

        return json.dumps(payload, ensure_ascii=False, default=str)


def _has_json_handler(root: logging.Logger) -> bool:
    return any(isinstance(h.formatter, _JsonFormatter) for h in root.handlers)


def setup_json_logging(level: str | None = None) -> None:
    """Attach the JSON handler to the root logger. Repeated calls only adjust the level."""
    root = logging.getLogger()
    effective_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    root.setLevel(effective_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if _has_json_handler(root):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter())
    root.addHandler(handler)
