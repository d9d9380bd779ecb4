"""Tests for master hazard content-change detection."""

from rpas_compliance.services.versioning import (
    CONTENT_FIELDS,
    changed_content_fields,
    has_content_changed,
    normalize,
)

BASE = {
    "title": "Flyaway",
    "description": "Loss of control link",
    "consequences": "Uncontrolled descent",
    "likelihood": 3,
    "severity": 4,
    "control_measures": [{"type": "engineering", "description": "Return-to-home"}],
    "residual_likelihood": 2,
    "residual_severity": 3,
    "metadata": {"keywords": ["c2", "link"], "regulation": "CAR 901"},
    "status": "published",
}


def test_identical_payload_is_not_a_change():
    assert not has_content_changed(BASE, dict(BASE))


def test_status_is_not_content():
    assert "status" not in CONTENT_FIELDS
    assert not has_content_changed(BASE, {"status": "archived"})


def test_text_whitespace_and_none_are_equivalent():
    assert not has_content_changed({"consequences": None}, {"consequences": "  "})
    assert has_content_changed(BASE, {"title": "Flyaway event"})


def test_numeric_equality_by_value():
    assert not has_content_changed(BASE, {"likelihood": 3.0})
    assert changed_content_fields(BASE, {"likelihood": 4, "severity": 4}) == ["likelihood"]


def test_control_measures_order_matters():
    current = {"control_measures": [{"description": "a"}, {"description": "b"}]}
    assert has_content_changed(current, {"control_measures": [{"description": "b"}, {"description": "a"}]})


def test_metadata_list_order_ignored():
    assert not has_content_changed(BASE, {"metadata": {"regulation": "CAR 901", "keywords": ["link", "c2"]}})


def test_metadata_empty_values_dropped():
    assert normalize("metadata", {"keywords": [], "note": None}) == {}
    assert not has_content_changed({"metadata": None}, {"metadata": {"keywords": []}})


def test_changed_fields_in_canonical_order():
    updates = {"severity": 5, "title": "New", "metadata": {"keywords": ["other"]}}
    assert changed_content_fields(BASE, updates) == ["title", "severity", "metadata"]
