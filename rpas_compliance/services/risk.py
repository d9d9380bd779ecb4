"""
Hazard risk scoring on the 5x5 likelihood/severity matrix.

Score = likelihood * severity, banded at fixed breakpoints:
    1-4 Low | 5-9 Medium | 10-16 High | 17-25 Critical
"""

from rpas_compliance.core.exceptions import ValidationError

RISK_BANDS = (
    # (upper bound, level, color, priority)
    (4, "Low", "green", 4),
    (9, "Medium", "yellow", 3),
    (16, "High", "orange", 2),
    (25, "Critical", "red", 1),
)

RISK_LEVEL_RANGES = {
    "low": (1, 4),
    "medium": (5, 9),
    "high": (10, 16),
    "critical": (17, 25),
}

LIKELIHOOD_LEVELS = {
    1: {"label": "Rare", "description": "May occur only in exceptional circumstances"},
    2: {"label": "Unlikely", "description": "Could occur at some time"},
    3: {"label": "Possible", "description": "Might occur at some time"},
    4: {"label": "Likely", "description": "Will probably occur in most circumstances"},
    5: {"label": "Almost Certain", "description": "Expected to occur in most circumstances"},
}

SEVERITY_LEVELS = {
    1: {"label": "Negligible", "description": "No injury, minimal damage"},
    2: {"label": "Minor", "description": "First aid injury, minor damage"},
    3: {"label": "Moderate", "description": "Medical treatment, moderate damage"},
    4: {"label": "Major", "description": "Serious injury, major damage"},
    5: {"label": "Catastrophic", "description": "Fatality, total loss"},
}

CONTROL_TYPES = ("elimination", "substitution", "engineering", "administrative", "ppe")


def _check_level(name: str, value) -> int:
    # bool is an int subclass; True * True is not a risk score
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
        raise ValidationError(
            f"{name} must be an integer between 1 and 5",
            details={name: value},
        )
    return value


def risk_score(likelihood, severity) -> int:
    """Return likelihood * severity; both must be integers 1..5."""
    return _check_level("likelihood", likelihood) * _check_level("severity", severity)


def _band(score: int) -> tuple:
    for band in RISK_BANDS:
        if score <= band[0]:
            return band
    return RISK_BANDS[-1]


def risk_level(score: int) -> str:
    """Band a score into Low / Medium / High / Critical."""
    return _band(score)[1]


def risk_level_key(score: int | None) -> str | None:
    """Lower-case level key used by RISK_LEVEL_RANGES, or None without a score."""
    if score is None:
        return None
    return risk_level(score).lower()


def risk_profile(likelihood, severity) -> dict:
    score = risk_score(likelihood, severity)
    _, level, color, priority = _band(score)
    return {"score": score, "level": level, "color": color, "priority": priority}


def optional_risk_score(likelihood, severity) -> int | None:
    """Score for optional (residual) pairs: None unless both halves are set."""
    if likelihood is None or severity is None:
        return None
    return risk_score(likelihood, severity)
