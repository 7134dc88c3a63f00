"""Logging configuration.

Goals:
- Structured JSON logs by default (log-shipper friendly)
- Every record emitted during a poll cycle carries that cycle's number
- Minimal dependencies (stdlib only)

Structured fields are passed with `extra=` (device_id, client_id, status,
error) and copied into the JSON payload when present.
"""

from __future__ import annotations

import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# Set by the poll loop for the duration of one cycle.
cycle_var: ContextVar[Optional[int]] = ContextVar("cycle", default=None)


class _ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        cycle = cycle_var.get()
        if cycle is not None:
            setattr(record, "cycle", cycle)
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Common structured fields (set by filter / extra)
        for key in ("cycle", "device_id", "client_id", "status", "error"):
            v = getattr(record, key, None)
            if v is not None:
                payload[key] = v

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def setup_logging(*, log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure root logging.

    Idempotent: safe to call multiple times.
    """

    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers to avoid duplicate logs on reconfiguration.
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler()
    if (log_format or "json").lower() == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    handler.addFilter(_ContextFilter())

    root.addHandler(handler)

    # Quiet connection-pool chatter (keep warnings).
    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))
