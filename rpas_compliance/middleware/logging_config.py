"""
Structured logging configuration.

- Development: human-readable colored format
- Production: JSON format (log aggregator compatible)
- Log level: controlled via LOG_LEVEL env variable

Every record emitted while a request is active is stamped with the request
id and acting user (``RequestContextFilter``). Services tag workflow events
with the record they touched via ``entity_extra``:

    logger.info("SFOC application %s -> %s", app_id, status,
                extra=entity_extra(organization_id=org_id, application_id=app_id,
                                   from_status=old, to_status=status))
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context, request

# Request-scoped attributes copied from ``extra=`` into JSON output
_REQUEST_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "request_id",
    "actor",
)

# Workflow records a log line can point at, in display order
_ENTITY_FIELDS = (
    "organization_id",
    "application_id",
    "hazard_id",
    "fha_number",
    "permit_id",
    "template_id",
)

_TRANSITION_FIELDS = ("from_status", "to_status")


def entity_extra(**fields) -> dict:
    """``extra=`` payload for a workflow event; unknown keys are a bug."""
    unknown = set(fields) - set(_ENTITY_FIELDS) - set(_TRANSITION_FIELDS)
    if unknown:
        raise ValueError(f"Unknown log fields: {sorted(unknown)}")
    return {key: value for key, value in fields.items() if value is not None}


class RequestContextFilter(logging.Filter):
    """Stamp request_id and actor on records logged inside a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = getattr(g, "request_id", None)
            if getattr(record, "actor", None) is None:
                record.actor = request.headers.get("X-User")
        return True


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        for key in (*_REQUEST_FIELDS, *_ENTITY_FIELDS, *_TRANSITION_FIELDS):
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored one-liner for development, with entity tags appended."""

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"
    _TAGS = {
        "organization_id": "org",
        "application_id": "sfoc",
        "hazard_id": "fha",
        "permit_id": "permit",
        "template_id": "tpl",
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        duration = getattr(record, "duration_ms", None)
        dur_str = f" [{duration:.0f}ms]" if duration is not None else ""
        tags = " ".join(
            f"{tag}={getattr(record, field)}"
            for field, tag in self._TAGS.items()
            if getattr(record, field, None) is not None
        )
        tag_str = f" ({tags})" if tags else ""
        req = getattr(record, "request_id", None)
        req_str = f" <{req}>" if req else ""
        base = (f"{color}{ts} {record.levelname:<8}{self.RESET}{req_str} "
                f"{record.name}: {record.getMessage()}{dur_str}{tag_str}")
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def configure_logging(app):
    """
    Set up structured logging for the Flask app.

    LOG_LEVEL (env or app config) wins; otherwise DEBUG in development and
    testing, INFO in production. Production logs JSON, everything else the
    readable format.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL") or app.config.get("LOG_LEVEL") or ("INFO" if is_prod else "DEBUG")
    level = getattr(logging, str(level_name).upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    # Single handler; repeated app creation in tests must not stack them
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "flask_limiter"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if is_prod else "readable")
