"""Log processor tests."""

from __future__ import annotations

import logging

from gatekeeper.logging_config import ServiceFields, scrub_control_chars, set_log_level


class TestServiceFields:
    def test_fields_added(self):
        event = ServiceFields("2.1.0", "staging")(None, "info", {"event": "x"})
        assert event == {
            "event": "x",
            "service": "gatekeeper",
            "version": "2.1.0",
            "environment": "staging",
        }

    def test_bound_values_win(self):
        event = ServiceFields("2.1.0", "staging")(None, "info", {"event": "x", "environment": "canary"})
        assert event["environment"] == "canary"


class TestScrubControlChars:
    def test_newlines_stripped(self):
        event = scrub_control_chars(None, "info", {"event": "x", "path": "/a\r\nforged=1"})
        assert event["path"] == "/aforged=1"

    def test_non_strings_untouched(self):
        event = scrub_control_chars(None, "info", {"event": "x", "count": 3, "tags": ["a\n"]})
        assert event["count"] == 3
        assert event["tags"] == ["a\n"]

    def test_traceback_kept_multiline(self):
        trace = "Traceback (most recent call last):\n  File ...\nValueError: x"
        event = scrub_control_chars(None, "error", {"event": "x", "exception": trace})
        assert event["exception"] == trace


def test_set_log_level():
    root = logging.getLogger()
    previous = root.level
    try:
        set_log_level("warning")
        assert root.level == logging.WARNING
        set_log_level("nonsense")
        assert root.level == logging.INFO
    finally:
        root.setLevel(previous)
