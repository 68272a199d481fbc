"""Rating aggregation for dishes and restaurants."""

from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class RatingSummary:
    average: float
    total: int


def summarize_ratings(values: Iterable[Optional[float]]) -> RatingSummary:
    """Average the non-null ratings, rounded to two places."""
    ratings = [float(value) for value in values if value is not None]
    if not ratings:
        return RatingSummary(average=0.0, total=0)
    return RatingSummary(average=round(sum(ratings) / len(ratings), 2), total=len(ratings))
