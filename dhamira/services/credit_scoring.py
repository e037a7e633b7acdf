from __future__ import annotations

from dataclasses import dataclass

from dhamira.core.settings import settings

FIVE_CS = ("character", "capacity", "capital", "collateral", "conditions")
MIN_SUB_SCORE = 1
MAX_SUB_SCORE = 5


@dataclass(frozen=True, slots=True)
class ScoreResult:
    total_score: int
    passed: bool
    threshold: int


def score(
    character: int,
    capacity: int,
    capital: int,
    collateral: int,
    conditions: int,
    *,
    threshold: int | None = None,
) -> ScoreResult:
    """Sum the 5 C's and classify against the pass threshold."""
    values = (character, capacity, capital, collateral, conditions)
    for name, value in zip(FIVE_CS, values):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{name} must be an integer")
        if not MIN_SUB_SCORE <= value <= MAX_SUB_SCORE:
            raise ValueError(f"{name} must be between {MIN_SUB_SCORE} and {MAX_SUB_SCORE}")
    limit = settings.credit_score_threshold if threshold is None else threshold
    total = sum(values)
    return ScoreResult(total_score=total, passed=total >= limit, threshold=limit)
