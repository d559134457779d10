"""Review scoring."""

from __future__ import annotations

MIN_SCORE = 1
MAX_SCORE = 5

TIMELINESS_WEIGHT = 0.20
PACKAGING_WEIGHT = 0.25
VALUE_HONESTY_WEIGHT = 0.30
STATE_ACCURACY_WEIGHT = 0.25


def overall_score(
    timeliness: int,
    packaging: int,
    value_honesty: int,
    state_accuracy: int,
) -> float:
    """Weighted overall score of a single review."""
    return (
        timeliness * TIMELINESS_WEIGHT
        + packaging * PACKAGING_WEIGHT
        + value_honesty * VALUE_HONESTY_WEIGHT
        + state_accuracy * STATE_ACCURACY_WEIGHT
    )
