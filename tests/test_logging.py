"""Tests for structured log formatting."""

import logging

from app.core.logging import StructuredFormatter, log_with_context


def _record(msg: str, context: dict | None = None) -> logging.LogRecord:
    record = logging.LogRecord("csr", logging.INFO, __file__, 1, msg, None, None)
    if context is not None:
        record.context = context
    return record


def test_context_keys_promoted():
    line = StructuredFormatter().format(
        _record("drafted", {"tokens": 10, "section_id": "9.1", "run_id": "r1"})
    )
    assert "message=drafted" in line
    assert line.index("run_id=r1") < line.index("section_id=9.1") < line.index("tokens=10")


def test_long_values_clipped():
    line = StructuredFormatter().format(_record("x", {"excerpt": "a" * 1000}))
    assert "a" * 300 + "..." in line
    assert "a" * 301 not in line


def test_log_with_context_attaches_fields(caplog):
    logger = logging.getLogger("test_log_with_context")
    with caplog.at_level(logging.INFO, logger="test_log_with_context"):
        log_with_context(logger, logging.INFO, "run started", run_id="r2", mode="mapped")
    record = caplog.records[-1]
    assert record.context == {"run_id": "r2", "mode": "mapped"}
