"""Tests for the 5x5 hazard risk matrix."""

import pytest

from rpas_compliance.core.exceptions import ValidationError
from rpas_compliance.services.risk import (
    RISK_LEVEL_RANGES,
    optional_risk_score,
    risk_level,
    risk_level_key,
    risk_profile,
    risk_score,
)


@pytest.mark.parametrize("likelihood,severity,expected", [
    (1, 1, 1), (2, 3, 6), (5, 5, 25), (4, 4, 16),
])
def test_risk_score_is_product(likelihood, severity, expected):
    assert risk_score(likelihood, severity) == expected


@pytest.mark.parametrize("score,level", [
    (1, "Low"), (4, "Low"), (5, "Medium"), (9, "Medium"),
    (10, "High"), (16, "High"), (17, "Critical"), (25, "Critical"),
])
def test_band_breakpoints(score, level):
    assert risk_level(score) == level


@pytest.mark.parametrize("bad", [0, 6, -1, 2.5, "3", True, None])
def test_out_of_range_levels_rejected(bad):
    with pytest.raises(ValidationError):
        risk_score(bad, 3)


def test_profile_carries_priority():
    assert risk_profile(5, 4) == {"score": 20, "level": "Critical", "color": "red", "priority": 1}
    assert risk_profile(1, 2)["priority"] == 4


def test_optional_score_requires_both_halves():
    assert optional_risk_score(None, 3) is None
    assert optional_risk_score(2, None) is None
    assert optional_risk_score(2, 2) == 4


def test_level_keys_line_up_with_ranges():
    for key, (low, high) in RISK_LEVEL_RANGES.items():
        assert risk_level_key(low) == key
        assert risk_level_key(high) == key
    assert risk_level_key(None) is None
