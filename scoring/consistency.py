"""Consistency component (20%).

Blend of three signals, each 0-100:
  monthly stability  - (1 - CV) of monthly hit rates, bucketed by close month (UTC)
  return dispersion  - 100 / (1 + stddev(returns) / DISPERSION_SCALE_PCT)
  streak balance     - share of the longest win run in longest win + loss runs
"""
import statistics
from collections import defaultdict
from datetime import timezone
from typing import Sequence

from scoring.outcomes import is_win, tip_return
from scoring.streaks import longest_runs
from scoring.thresholds import (
    CONSISTENCY_MIN_MONTHS,
    CONSISTENCY_NEUTRAL,
    DISPERSION_SCALE_PCT,
    SCORE_MAX,
    SCORE_MIN,
    WEIGHT_MONTHLY_STABILITY,
    WEIGHT_RETURN_DISPERSION,
    WEIGHT_STREAK_BALANCE,
)
from shared.schemas import ResolvedTip


def _clamp(value: float) -> float:
    return max(SCORE_MIN, min(SCORE_MAX, value))


def monthly_stability(tips: Sequence[ResolvedTip]) -> float:
    months: dict[tuple[int, int], list[int]] = defaultdict(lambda: [0, 0])
    for tip in tips:
        closed = tip.closed_at.astimezone(timezone.utc) if tip.closed_at.tzinfo else tip.closed_at
        bucket = months[(closed.year, closed.month)]
        bucket[1] += 1
        if is_win(tip):
            bucket[0] += 1

    if len(months) < CONSISTENCY_MIN_MONTHS:
        return CONSISTENCY_NEUTRAL

    rates = [hits / total for hits, total in months.values()]
    mean = statistics.fmean(rates)
    if mean == 0:
        return 0.0
    cv = statistics.pstdev(rates) / mean
    return _clamp((1 - cv) * 100.0)


def return_dispersion(tips: Sequence[ResolvedTip]) -> float:
    if len(tips) < 2:
        return SCORE_MAX
    sigma = statistics.pstdev([tip_return(t) for t in tips])
    return _clamp(100.0 / (1.0 + sigma / DISPERSION_SCALE_PCT))


def streak_balance(tips: Sequence[ResolvedTip]) -> float:
    win_run, loss_run = longest_runs(tips)
    if win_run + loss_run == 0:
        return CONSISTENCY_NEUTRAL
    return 100.0 * win_run / (win_run + loss_run)


def consistency_score(tips: Sequence[ResolvedTip]) -> float:
    if not tips:
        return 0.0
    return _clamp(
        WEIGHT_MONTHLY_STABILITY * monthly_stability(tips)
        + WEIGHT_RETURN_DISPERSION * return_dispersion(tips)
        + WEIGHT_STREAK_BALANCE * streak_balance(tips)
    )
