"""
Structured logging for the sketch workflow.

Every record emitted while a request is being served is stamped with the
request id and the acting user (id, role, drafting center), so a line such
as "Assignment 7 accepted" can be traced back to the operator who sent it.

Workflow ids passed through ``extra=`` (sketch_request_id, assignment_id,
drafting_center_id, application_id) are kept as separate JSON keys.

Settings (app.config):
    LOG_LEVEL   level name; DEBUG in development, INFO otherwise
    LOG_FORMAT  "json" or "readable"; JSON outside development and testing
"""

import json
import logging
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Stamped by RequestContextFilter
CONTEXT_FIELDS = ("request_id", "actor_id", "role", "center_id")

# Passed by callers via ``extra=``
REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr")
WORKFLOW_FIELDS = ("sketch_request_id", "assignment_id", "drafting_center_id", "application_id")

_QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "flask_limiter")


class RequestContextFilter(logging.Filter):
    """Copy request id and actor from ``flask.g`` onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            actor = getattr(g, "actor", None)
            values = {
                "request_id": getattr(g, "request_id", None),
                "actor_id": actor.id if actor else None,
                "role": actor.role if actor else None,
                "center_id": actor.center_id if actor else None,
            }
        else:
            values = dict.fromkeys(CONTEXT_FIELDS)
        for key, value in values.items():
            # An explicit extra= wins over the ambient request
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line; None-valued fields are omitted."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        for key in CONTEXT_FIELDS + REQUEST_FIELDS + WORKFLOW_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line output for a developer terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        tags = []
        request_id = getattr(record, "request_id", None)
        if request_id:
            tags.append(f"req={request_id}")
        actor_id = getattr(record, "actor_id", None)
        if actor_id:
            tags.append(f"actor={actor_id}/{getattr(record, 'role', None)}")
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            tags.append(f"{duration:.0f}ms")
        if tags:
            line += f" [{' '.join(tags)}]"

        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _pick_format(app) -> str:
    chosen = (app.config.get("LOG_FORMAT") or "").lower()
    if chosen in ("json", "readable"):
        return chosen
    if app.config.get("DEBUG") or app.config.get("TESTING"):
        return "readable"
    return "json"


def configure_logging(app):
    """Install one stderr handler on the root logger for ``app``.

    Rebuilding the handler on every call keeps test runs, which create
    several apps, from printing each line more than once.
    """
    is_dev = bool(app.config.get("DEBUG") or app.config.get("TESTING"))
    level_name = (app.config.get("LOG_LEVEL") or ("DEBUG" if is_dev else "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    fmt = _pick_format(app)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.config.get("TESTING"):
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
    return handler
