"""Unit tests for structlog configuration."""

import json
import logging

import structlog

from loyalty_sync.logging_config import configure_logging


def test_json_lines_carry_service_context(caplog):
    """Production format renders JSON with the bound service context."""
    caplog.set_level(logging.INFO)
    configure_logging(log_level="INFO", format_as_json=True)

    structlog.get_logger("loyalty_sync.test").info("stamp_added", customer_id="cust_alice")

    line = json.loads(caplog.records[-1].getMessage())
    assert line["event"] == "stamp_added"
    assert line["customer_id"] == "cust_alice"
    assert line["service"] == "loyalty-sync"
    assert line["level"] == "info"
    assert "timestamp" in line


def test_request_context_is_merged(caplog):
    caplog.set_level(logging.INFO)
    configure_logging(log_level="INFO", format_as_json=True)
    structlog.contextvars.bind_contextvars(business_id="biz_coffee")

    try:
        structlog.get_logger("loyalty_sync.test").warning("scan_offer_hash_unmatched")
    finally:
        structlog.contextvars.unbind_contextvars("business_id")

    line = json.loads(caplog.records[-1].getMessage())
    assert line["business_id"] == "biz_coffee"
    assert line["level"] == "warning"
