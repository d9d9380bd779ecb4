"""Standardised API error responses and error classification.

Usage
-----
    from rpas_compliance.utils.errors import api_error, classify_error, E

    return api_error(E.NOT_FOUND, "SFOC application not found")
    return api_error(E.VALIDATION_REQUIRED, "organization_id is required")

    info = classify_error(exc)   # ErrorInfo(kind="conflict", status=409, ...)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import jsonify, request
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.exceptions import HTTPException

from rpas_compliance.core.exceptions import (
    ConcurrentUpdateError,
    ConfigurationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from rpas_compliance.models import db

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    CONFLICT_MODIFIED = "ERR_CONFLICT_MODIFIED"

    # Auth – HTTP 401 / 403
    AUTH_REQUIRED = "ERR_AUTH_REQUIRED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Throttling – HTTP 429
    RATE_LIMIT = "ERR_RATE_LIMIT"

    # Server – HTTP 5xx
    DATABASE = "ERR_DATABASE"
    CONFIGURATION = "ERR_CONFIGURATION"
    UNAVAILABLE = "ERR_UNAVAILABLE"
    TIMEOUT = "ERR_TIMEOUT"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.CONFLICT_MODIFIED: 409,
    E.AUTH_REQUIRED: 401,
    E.FORBIDDEN: 403,
    E.RATE_LIMIT: 429,
    E.DATABASE: 500,
    E.CONFIGURATION: 500,
    E.UNAVAILABLE: 503,
    E.TIMEOUT: 504,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
    kind: str | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, transition info, ...).
    kind : str, optional
        Error taxonomy bucket (see ``ERROR_KINDS``).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if kind:
        body["kind"] = kind
    if details:
        body["details"] = details

    return jsonify(body), http_status


# ── Error taxonomy ─────────────────────────────────────────────────────

ERROR_KINDS = (
    "network", "auth", "permission", "validation", "not_found",
    "conflict", "rate_limit", "server", "unknown",
)

RETRYABLE_KINDS = frozenset({"network", "server"})

MESSAGES = {
    "network_error": "A network error occurred. Please check your connection and try again.",
    "network_timeout": "The request timed out. Please try again.",
    "auth_required": "Please sign in to continue.",
    "permission_denied": "You do not have permission to perform this action.",
    "validation_invalid": "Invalid request. Please check your input.",
    "not_found": "The requested resource was not found.",
    "conflict_duplicate": "This item already exists.",
    "conflict_modified": "This item was modified by someone else. Please refresh and try again.",
    "conflict_state": "This action is not allowed in the item's current status.",
    "rate_limit": "Too many requests. Please wait a moment and try again.",
    "server_error": "An unexpected error occurred. Please try again later.",
    "server_maintenance": "The system is currently under maintenance. Please try again later.",
    "unknown": "Something went wrong. Please try again.",
}

# HTTP status -> (kind, message key, code)
_HTTP_STATUS_MAP = {
    400: ("validation", "validation_invalid", E.VALIDATION_INVALID),
    401: ("auth", "auth_required", E.AUTH_REQUIRED),
    403: ("permission", "permission_denied", E.FORBIDDEN),
    404: ("not_found", "not_found", E.NOT_FOUND),
    409: ("conflict", "conflict_duplicate", E.CONFLICT_DUPLICATE),
    422: ("validation", "validation_invalid", E.VALIDATION_RULE),
    429: ("rate_limit", "rate_limit", E.RATE_LIMIT),
    500: ("server", "server_error", E.INTERNAL),
    502: ("server", "server_error", E.UNAVAILABLE),
    503: ("server", "server_maintenance", E.UNAVAILABLE),
    504: ("network", "network_timeout", E.TIMEOUT),
}


@dataclass(frozen=True)
class ErrorInfo:
    kind: str
    message: str
    status: int
    code: str
    detail: str = ""

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "status": self.status,
            "code": self.code,
            "retryable": self.retryable,
        }


def _from_http_status(status: int, detail: str = "") -> ErrorInfo:
    if status in _HTTP_STATUS_MAP:
        kind, key, code = _HTTP_STATUS_MAP[status]
        return ErrorInfo(kind, MESSAGES[key], status, code, detail)
    if status >= 500:
        return ErrorInfo("server", MESSAGES["server_error"], status, E.INTERNAL, detail)
    return ErrorInfo("unknown", detail or MESSAGES["unknown"], status, E.VALIDATION_INVALID, detail)


def classify_error(exc: BaseException | None) -> ErrorInfo:
    """Map any exception onto the fixed error taxonomy with user-facing copy."""
    if exc is None:
        return ErrorInfo("unknown", MESSAGES["unknown"], 500, E.INTERNAL)

    detail = str(exc)

    if isinstance(exc, NotFoundError):
        return ErrorInfo("not_found", MESSAGES["not_found"], 404, E.NOT_FOUND, detail)
    if isinstance(exc, ValidationError):
        return ErrorInfo("validation", detail, 422, E.VALIDATION_RULE, detail)
    if isinstance(exc, InvalidTransitionError):
        return ErrorInfo("conflict", detail, 409, E.CONFLICT_STATE, detail)
    if isinstance(exc, ConflictError):
        return ErrorInfo("conflict", detail, 409, E.CONFLICT_DUPLICATE, detail)
    if isinstance(exc, (ConcurrentUpdateError, StaleDataError)):
        return ErrorInfo("conflict", MESSAGES["conflict_modified"], 409, E.CONFLICT_MODIFIED, detail)
    if isinstance(exc, ConfigurationError):
        return ErrorInfo("server", MESSAGES["server_error"], 500, E.CONFIGURATION, detail)
    if isinstance(exc, IntegrityError):
        return ErrorInfo("conflict", MESSAGES["conflict_duplicate"], 409, E.CONFLICT_DUPLICATE, detail)
    if isinstance(exc, OperationalError):
        # Lost connections, lock timeouts: transient
        return ErrorInfo("server", MESSAGES["server_maintenance"], 503, E.UNAVAILABLE, detail)
    if isinstance(exc, DBAPIError):
        return ErrorInfo("server", MESSAGES["server_error"], 500, E.DATABASE, detail)
    if isinstance(exc, HTTPException):
        return _from_http_status(exc.code or 500, exc.description or detail)
    if isinstance(exc, TimeoutError):
        return ErrorInfo("network", MESSAGES["network_timeout"], 504, E.TIMEOUT, detail)
    if isinstance(exc, ConnectionError):
        return ErrorInfo("network", MESSAGES["network_error"], 503, E.UNAVAILABLE, detail)
    if isinstance(exc, PermissionError):
        return ErrorInfo("permission", MESSAGES["permission_denied"], 403, E.FORBIDDEN, detail)

    status = getattr(exc, "status", None) or getattr(exc, "status_code", None)
    if isinstance(status, int):
        return _from_http_status(status, detail)
    if "timeout" in detail.lower():
        return ErrorInfo("network", MESSAGES["network_timeout"], 504, E.TIMEOUT, detail)
    return ErrorInfo("unknown", MESSAGES["unknown"], 500, E.INTERNAL, detail)


# ── Flask wiring ───────────────────────────────────────────────────────


def _details_for(exc: BaseException) -> dict | None:
    if isinstance(exc, ValidationError):
        return exc.details or None
    if isinstance(exc, InvalidTransitionError):
        return {"from": exc.from_status, "to": exc.to_status, "reason": exc.reason}
    if isinstance(exc, ConflictError):
        return {"field": exc.field}
    return None


def register_error_handlers(app) -> None:
    """Install app-wide handlers that render every error through api_error."""

    def _render(exc: BaseException):
        info = classify_error(exc)
        if isinstance(exc, (DBAPIError, StaleDataError)) or info.status >= 500:
            db.session.rollback()
        if info.status >= 500:
            logger.error("Unhandled error on %s %s: %s",
                         request.method, request.path, exc, exc_info=exc)
        else:
            logger.info("%s on %s %s: %s", type(exc).__name__,
                        request.method, request.path, exc)
        return api_error(info.code, info.message, status=info.status,
                         details=_details_for(exc), kind=info.kind)

    for exc_type in (
        NotFoundError,
        ValidationError,
        ConflictError,
        InvalidTransitionError,
        ConcurrentUpdateError,
        ConfigurationError,
        IntegrityError,
        StaleDataError,
        OperationalError,
    ):
        app.register_error_handler(exc_type, _render)

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        info = classify_error(exc)
        return api_error(info.code, exc.description or info.message,
                         status=exc.code, kind=info.kind)

    @app.errorhandler(Exception)
    def _unexpected(exc: Exception):
        return _render(exc)
