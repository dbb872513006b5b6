"""
Logging setup for the tracker.

Production writes one JSON object per line; development and tests get a
short readable line with the request/entity context appended. ``LOG_LEVEL``
sets the level and ``LOG_FORMAT`` (``json`` | ``readable``) overrides the
format picked from the config.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Record attributes passed through ``extra=``, in output order.
CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "user_id",
    "project_id",
    "action_id",
    "collection",
)


def record_context(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "line": f"{record.module}:{record.lineno}",
        }
        entry.update(record_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message [project=.. action=..]``"""

    LEVEL_COLORS = {
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }

    def __init__(self, color=False):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        if self.color and record.levelname in self.LEVEL_COLORS:
            level = f"{self.LEVEL_COLORS[record.levelname]}{level}\033[0m"
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{ts} {level} {record.name}: {record.getMessage()}"

        context = record_context(record)
        duration = context.pop("duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        tags = [f"{key.removesuffix('_id')}={context[key]}"
                for key in ("user_id", "project_id", "action_id", "collection") if key in context]
        if tags:
            line += " [" + " ".join(tags) + "]"

        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def build_formatter(app) -> logging.Formatter:
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing
    fmt = os.getenv("LOG_FORMAT", "json" if is_prod else "readable").lower()
    if fmt == "json":
        return JSONFormatter()
    return ReadableFormatter(color=not is_testing and sys.stderr.isatty())


def configure_logging(app):
    """Install a single stderr handler on the root logger."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(build_formatter(app))
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app runs once per test session; never stack handlers.
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s formatter=%s",
                        level_name, type(handler.formatter).__name__)
