"""Shared input-parsing helpers used by services and blueprints.

parse_date:      lenient, returns None on bad input
parse_datetime:  lenient, returns an aware UTC datetime or None
require_date:    strict, raises ValidationError naming the field
organization_required / actor:  request scope for blueprints
"""
from datetime import date, datetime, timezone

from flask import jsonify, request

from rpas_compliance.core.exceptions import ValidationError


def parse_date(value):
    """Parse an ISO date (or datetime) string to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD
    - YYYY-MM-DDTHH:MM:SS (datetime ISO -> .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_datetime(value):
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def require_date(data: dict, field: str):
    """Strict variant: a present-but-unparseable value is a ValidationError."""
    raw = data.get(field)
    if raw in (None, ""):
        return None
    parsed = parse_date(raw)
    if parsed is None:
        raise ValidationError(f"{field} must be an ISO date", details={field: raw})
    return parsed


# ── Request scope (blueprints) ───────────────────────────────────────────────


def organization_id_from_request() -> int | None:
    """Extract organization_id from the query string or JSON body."""
    oid = request.args.get("organization_id", type=int)
    if oid:
        return oid
    data = request.get_json(silent=True) or {}
    raw = data.get("organization_id")
    try:
        return int(raw) if raw not in (None, "") else None
    except (TypeError, ValueError):
        return None


def organization_required() -> tuple[int | None, tuple | None]:
    """(organization_id, None) or (None, 400 response tuple)."""
    oid = organization_id_from_request()
    if not oid:
        return None, (jsonify({"error": "organization_id is required"}), 400)
    return oid, None


def actor() -> str:
    """Acting user from the X-User header."""
    return request.headers.get("X-User", "system")
