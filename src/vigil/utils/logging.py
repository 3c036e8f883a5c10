"""Structured JSON logging for all VIGIL components."""

import logging
import json
import sys
from datetime import datetime, timezone

# Extras callers may attach via ``extra=`` that are promoted to top-level keys
CONTEXT_FIELDS = ("tenant_id", "client_id", "level_assessed", "score")


class JSONFormatter(logging.Formatter):
    """Emit logs as structured JSON."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def configure_logging(level="info"):
    """Configure structured logging for the VIGIL engine."""
    root = logging.getLogger("vigil")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(
        isinstance(h.formatter, JSONFormatter) for h in root.handlers
    ):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        root.addHandler(handler)
    root.propagate = False
    return root
