"""
PDCA Action Tracker
Tests: log formatters and handler setup.
"""

import json
import logging

from pdca.middleware.logging_config import JSONFormatter, ReadableFormatter, configure_logging


def _record(msg="Action created", **extra):
    record = logging.LogRecord("pdca.services.entity_store", logging.INFO, __file__, 10,
                               msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    def test_json_carries_context(self):
        out = json.loads(JSONFormatter().format(_record(project_id="p1", action_id="a1")))
        assert out["message"] == "Action created"
        assert out["level"] == "INFO"
        assert out["project_id"] == "p1"
        assert out["action_id"] == "a1"
        assert "user_id" not in out

    def test_readable_appends_tags(self):
        line = ReadableFormatter().format(_record(user_id="u-alice", project_id="p1", duration_ms=12.4))
        assert "pdca.services.entity_store: Action created (12ms)" in line
        assert line.endswith("[user=u-alice project=p1]")

    def test_readable_plain_without_context(self):
        assert ReadableFormatter().format(_record()).endswith("Action created")


class TestConfigure:
    def test_single_handler(self, app):
        configure_logging(app)
        configure_logging(app)
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, ReadableFormatter)

    def test_log_format_override(self, app, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        configure_logging(app)
        assert isinstance(logging.getLogger().handlers[0].formatter, JSONFormatter)
        monkeypatch.delenv("LOG_FORMAT")
        configure_logging(app)
