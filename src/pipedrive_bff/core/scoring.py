"""Deal priority scoring.

A deliberately simple heuristic: bigger, fresher deals with something
scheduled next rank first. Scores are integers in [0, 100].
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional, Union

from .models import Deal

MAX_SCORE = 100

# (threshold, points), checked in order; first match wins
VALUE_TIERS = [(50_000, 25), (10_000, 15)]
SMALL_VALUE_POINTS = 5
RECENCY_TIERS = [(7, 25), (30, 15), (90, 5)]
NEXT_ACTIVITY_POINTS = 20


def value_points(value: float) -> int:
    for threshold, points in VALUE_TIERS:
        if value >= threshold:
            return points
    if value > 0:
        return SMALL_VALUE_POINTS
    return 0


def recency_points(add_time: Optional[datetime], now: datetime) -> int:
    if add_time is None:
        return 0
    age = now - add_time
    for max_days, points in RECENCY_TIERS:
        if age <= timedelta(days=max_days):
            return points
    return 0


def score_deal(deal: Union[Deal, dict[str, Any]], now: Optional[datetime] = None) -> int:
    """Score a deal from its value, age and whether a next activity is planned."""
    if not isinstance(deal, Deal):
        deal = Deal.model_validate(deal)
    now = now or datetime.now(timezone.utc)

    score = value_points(deal.value) + recency_points(deal.add_time, now)
    if deal.has_upcoming_activity:
        score += NEXT_ACTIVITY_POINTS
    return max(0, min(MAX_SCORE, score))


def rank_deals(
    deals: Iterable[dict[str, Any]],
    now: Optional[datetime] = None,
) -> list[tuple[dict[str, Any], int]]:
    """Pair each deal with its score, highest first; ties keep input order."""
    now = now or datetime.now(timezone.utc)
    scored = [(deal, score_deal(deal, now)) for deal in deals]
    return sorted(scored, key=lambda pair: pair[1], reverse=True)
