"""
Tests for structured logging.

Tests cover:
- Service label derived from the emitting logger
- Request id attached only inside a request context
"""

import json
import logging

import pytest

from sosrelay import logging_utils
from sosrelay.logging_utils import ServiceJsonFormatter, service_for


def format_record(name: str, msg: str = "hello", **extra) -> dict:
    formatter = ServiceJsonFormatter("%(ts)s %(level)s %(name)s %(message)s")
    record = logging.LogRecord(name, logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(formatter.format(record))


class TestServiceLabel:

    @pytest.mark.parametrize("name,expected", [
        ("sosrelay.command_main", "command"),
        ("sosrelay.command.requests", "command"),
        ("sosrelay.wire", "command"),
        ("sosrelay.relay_main", "relay"),
        ("sosrelay.relay.requests", "relay"),
        ("sosrelay.retry_queue", "relay"),
        ("sosrelay.forwarder", "relay"),
        ("uvicorn.error", "sosrelay"),
        ("sosrelay", "sosrelay"),
    ])
    def test_service_for(self, name, expected):
        assert service_for(name) == expected

    def test_both_apps_loaded_keep_their_labels(self):
        # Importing both apps reconfigures logging twice
        import sosrelay.command_main  # noqa: F401
        import sosrelay.relay_main  # noqa: F401

        assert format_record("sosrelay.command_main")["service"] == "command"
        assert format_record("sosrelay.relay_main")["service"] == "relay"

    def test_explicit_service_wins(self):
        assert format_record("sosrelay.wire", service="relay")["service"] == "relay"


class TestRecordFields:

    def test_core_fields(self):
        line = format_record("sosrelay.resolver", "resolved")

        assert line["message"] == "resolved"
        assert line["level"] == "INFO"
        assert line["name"] == "sosrelay.resolver"
        assert line["ts"].endswith("Z")
        assert "request_id" not in line

    def test_request_id_inside_request(self):
        token = logging_utils._request_id.set("abc123")
        try:
            line = format_record("sosrelay.command_main")
        finally:
            logging_utils._request_id.reset(token)

        assert line["request_id"] == "abc123"

    def test_cleared_request_id_is_omitted(self):
        token = logging_utils._request_id.set("abc123")
        try:
            logging_utils.clear_request_id()
            line = format_record("sosrelay.retry_queue")
        finally:
            logging_utils._request_id.reset(token)

        assert "request_id" not in line
