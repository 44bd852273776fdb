"""Accuracy component (40%): recency-weighted hit rate."""
from datetime import datetime
from typing import Optional, Sequence

from scoring.outcomes import is_win
from scoring.thresholds import RECENCY_HALF_LIFE_DAYS, SCORE_MAX, SCORE_MIN
from shared.schemas import ResolvedTip, TipTimeframe


def accuracy_rate(tips: Sequence[ResolvedTip]) -> float:
    """Plain wins / total (0-1)."""
    if not tips:
        return 0.0
    return sum(1 for t in tips if is_win(t)) / len(tips)


def recency_weight(closed_at: datetime, as_of: datetime, half_life_days: float) -> float:
    """Exponential decay: a tip ``half_life_days`` old counts half as much."""
    age_days = max((as_of - closed_at).total_seconds() / 86400.0, 0.0)
    return 0.5 ** (age_days / half_life_days)


def weighted_accuracy_rate(
    tips: Sequence[ResolvedTip],
    as_of: datetime,
    half_life_days: float = RECENCY_HALF_LIFE_DAYS,
) -> float:
    total = 0.0
    hits = 0.0
    for tip in tips:
        w = recency_weight(tip.closed_at, as_of, half_life_days)
        total += w
        if is_win(tip):
            hits += w
    return hits / total if total > 0 else 0.0


def accuracy_score(
    tips: Sequence[ResolvedTip],
    as_of: datetime,
    half_life_days: float = RECENCY_HALF_LIFE_DAYS,
) -> float:
    score = weighted_accuracy_rate(tips, as_of, half_life_days) * 100.0
    return max(SCORE_MIN, min(SCORE_MAX, score))


def timeframe_accuracy(tips: Sequence[ResolvedTip]) -> dict[TipTimeframe, Optional[float]]:
    """Raw hit rate per timeframe bucket; None for an empty bucket."""
    result = {}
    for timeframe in TipTimeframe:
        bucket = [t for t in tips if t.timeframe == timeframe]
        result[timeframe] = accuracy_rate(bucket) if bucket else None
    return result
