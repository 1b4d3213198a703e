"""
Structured logging for Governance Central.

Production writes one JSON object per line; development and testing write a
short coloured line. Every record emitted inside a request is stamped with
the request id, so the evidence/hook/knowledge log lines of one call can be
correlated with the timing line written by ``middleware.timing``.

Scope fields passed through ``extra=`` (user_id, team_id, project_id,
event_type) are carried into both formats.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_app_context

SERVICE_NAME = "governance-central"

# Scope and request fields copied from ``extra=``
SCOPE_FIELDS = ("user_id", "team_id", "project_id", "event_type")
REQUEST_FIELDS = ("request_id", "method", "path", "status", "duration_ms", "remote_addr")

_QUIET_LOGGERS = ("urllib3", "requests", "werkzeug", "sqlalchemy.engine", "alembic")


def _fields(record, names):
    return {name: getattr(record, name) for name in names if getattr(record, name, None) is not None}


class RequestIdFilter(logging.Filter):
    """Copy g.request_id onto records that do not carry one."""

    def filter(self, record):
        if getattr(record, "request_id", None) is None and has_app_context():
            record.request_id = g.get("request_id")
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record):
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(_fields(record, REQUEST_FIELDS))
        entry.update(_fields(record, SCOPE_FIELDS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """One line per record: time, level, logger, message, then scope tags."""

    LEVEL_COLORS = {
        "DEBUG": "\033[2m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def format(self, record):
        color = self.LEVEL_COLORS.get(record.levelname, "")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tags = " ".join(f"{k}={v}" for k, v in _fields(record, SCOPE_FIELDS).items())
        line = f"{color}{stamp} {record.levelname[:4]}{self.RESET} {record.name}: {record.getMessage()}"
        if tags:
            line += f"  [{tags}]"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger.

    LOG_LEVEL (config, then environment) wins; otherwise INFO in production
    and DEBUG elsewhere.
    """
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing

    level_name = (app.config.get("LOG_LEVEL") or os.getenv("LOG_LEVEL") or ("INFO" if production else "DEBUG")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level_name, level = "INFO", logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if production else ReadableFormatter())
    handler.addFilter(RequestIdFilter())

    root = logging.getLogger()
    # create_app runs once per test session and once per worker; never stack handlers
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    app.logger.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if not testing:
        app.logger.info("Logging ready level=%s format=%s", level_name, "json" if production else "text")
