"""
Content-change detection for versioned hazard templates.

Only CONTENT_FIELDS participate in versioning; everything else (status,
category, publication stamps) can change without a new version.

Comparison is structural:
    - numbers compare by value (3 == 3.0), dict key order is irrelevant
    - missing text and empty text are the same
    - ``control_measures`` is ordered: reordering it is a content change
    - list values inside ``metadata`` are sets: reordering them is not
"""

import json

CONTENT_FIELDS = (
    "title",
    "description",
    "consequences",
    "likelihood",
    "severity",
    "control_measures",
    "residual_likelihood",
    "residual_severity",
    "metadata",
)

_TEXT_FIELDS = {"title", "description", "consequences"}


def _sort_key(value) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def normalize(field: str, value):
    """Canonical form of a content value for equality checks."""
    if field in _TEXT_FIELDS:
        return (value or "").strip()
    if field == "control_measures":
        return list(value or [])
    if field == "metadata":
        result = {}
        for key, item in (value or {}).items():
            if item in (None, "", [], {}):
                continue
            if isinstance(item, (list, tuple, set)):
                item = sorted(item, key=_sort_key)
            result[key] = item
        return result
    return value


def changed_content_fields(current: dict, updates: dict) -> list[str]:
    """Content fields in ``updates`` whose value differs from ``current``."""
    return [
        field
        for field in CONTENT_FIELDS
        if field in updates
        and normalize(field, updates[field]) != normalize(field, current.get(field))
    ]


def has_content_changed(current: dict, updates: dict) -> bool:
    return bool(changed_content_fields(current, updates))
