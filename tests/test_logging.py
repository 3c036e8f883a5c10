"""Verify the structured JSON log format."""

import json
import logging

from vigil.utils.logging import JSONFormatter, configure_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "vigil.engine.detector", logging.INFO, __file__, 1,
        "Anomaly [%s]", ("acme/alice",), None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_fields():
    entry = json.loads(JSONFormatter().format(_record()))
    assert entry["level"] == "INFO"
    assert entry["component"] == "vigil.engine.detector"
    assert entry["message"] == "Anomaly [acme/alice]"
    assert "timestamp" in entry


def test_context_fields_promoted():
    entry = json.loads(
        JSONFormatter().format(_record(tenant_id="acme", client_id="alice", score=0.9))
    )
    assert entry["tenant_id"] == "acme"
    assert entry["client_id"] == "alice"
    assert entry["score"] == 0.9


def test_configure_logging_is_idempotent():
    root = configure_logging("debug")
    configure_logging("debug")
    assert root.level == logging.DEBUG
    assert sum(isinstance(h.formatter, JSONFormatter) for h in root.handlers) == 1
    configure_logging("warning")
