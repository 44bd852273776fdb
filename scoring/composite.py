"""Composite RMT score over a creator's resolved tips.

Everything here is a pure function of its arguments: the same tips and
``as_of`` always produce the same CreatorScore.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from scoring.accuracy import accuracy_rate, accuracy_score, timeframe_accuracy, weighted_accuracy_rate
from scoring.consistency import consistency_score
from scoring.risk_adjusted import risk_adjusted_score
from scoring.streaks import chronological, current_streaks
from scoring.thresholds import (
    CONFIDENCE_Z,
    MAX_EXPECTED_TIPS,
    MIN_TIPS_FOR_RATING,
    RECENCY_HALF_LIFE_DAYS,
    SCORE_MAX,
    SCORE_MIN,
    TIER_THRESHOLDS,
    WEIGHT_ACCURACY,
    WEIGHT_CONSISTENCY,
    WEIGHT_RISK_ADJUSTED,
    WEIGHT_VOLUME,
)
from scoring.volume import volume_factor_score
from shared.schemas import CreatorScore, CreatorTier, ResolvedTip, TipTimeframe


@dataclass(frozen=True)
class ScoringParams:
    half_life_days: float = RECENCY_HALF_LIFE_DAYS
    min_tips_for_rating: int = MIN_TIPS_FOR_RATING
    max_expected_tips: int = MAX_EXPECTED_TIPS

    @classmethod
    def from_config(cls, config) -> "ScoringParams":
        return cls(
            half_life_days=config.RECENCY_HALF_LIFE_DAYS,
            min_tips_for_rating=config.MIN_TIPS_FOR_RATING,
            max_expected_tips=config.MAX_EXPECTED_TIPS,
        )


def composite_score(accuracy: float, risk_adjusted: float, consistency: float, volume: float) -> float:
    """Weighted composite (0-100)."""
    score = (
        WEIGHT_ACCURACY * accuracy
        + WEIGHT_RISK_ADJUSTED * risk_adjusted
        + WEIGHT_CONSISTENCY * consistency
        + WEIGHT_VOLUME * volume
    )
    return round(max(SCORE_MIN, min(SCORE_MAX, score)), 4)


def confidence_interval(total_tips: int) -> float:
    """Half-width (percentage points) of the 95% band on the hit rate.

    Uses the worst-case binomial variance p(1-p) = 0.25, so it depends only on
    the sample size and strictly narrows as tips accumulate.
    """
    if total_tips <= 0:
        return 0.0
    return round(CONFIDENCE_Z * math.sqrt(0.25 / total_tips) * 100.0, 4)


def tier_for(total_tips: int, min_tips_for_rating: int = MIN_TIPS_FOR_RATING) -> CreatorTier:
    if total_tips < min_tips_for_rating:
        return CreatorTier.UNRATED
    for name, threshold in TIER_THRESHOLDS:
        if total_tips >= threshold:
            return CreatorTier(name)
    return CreatorTier.BRONZE


def calculate_creator_score(
    creator_id: str,
    tips: Sequence[ResolvedTip],
    period_start: datetime,
    period_end: datetime,
    as_of: datetime,
    params: Optional[ScoringParams] = None,
) -> Optional[CreatorScore]:
    """Score a creator from resolved tips. Returns None when there are none."""
    params = params or ScoringParams()
    tips = tuple(chronological(tips))
    n = len(tips)
    if n == 0:
        return None

    acc = accuracy_score(tips, as_of, params.half_life_days)
    risk = risk_adjusted_score(tips)
    cons = consistency_score(tips)
    vol = volume_factor_score(n, params.max_expected_tips)
    win_streak, loss_streak = current_streaks(tips)
    by_timeframe = timeframe_accuracy(tips)

    return CreatorScore(
        creator_id=creator_id,
        accuracy_score=round(acc, 4),
        risk_adjusted_score=round(risk.score, 4),
        consistency_score=round(cons, 4),
        volume_factor_score=round(vol, 4),
        rmt_score=composite_score(acc, risk.score, cons, vol),
        confidence_interval=confidence_interval(n),
        accuracy_rate=accuracy_rate(tips),
        weighted_accuracy_rate=weighted_accuracy_rate(tips, as_of, params.half_life_days),
        avg_return_pct=risk.avg_return_pct,
        avg_risk_reward_ratio=risk.avg_risk_reward_ratio,
        win_streak=win_streak,
        loss_streak=loss_streak,
        best_tip_return_pct=risk.best_return_pct,
        worst_tip_return_pct=risk.worst_return_pct,
        intraday_accuracy=by_timeframe[TipTimeframe.INTRADAY],
        swing_accuracy=by_timeframe[TipTimeframe.SWING],
        positional_accuracy=by_timeframe[TipTimeframe.POSITIONAL],
        long_term_accuracy=by_timeframe[TipTimeframe.LONG_TERM],
        total_scored_tips=n,
        tier=tier_for(n, params.min_tips_for_rating),
        is_provisional=n < params.min_tips_for_rating,
        score_period_start=period_start,
        score_period_end=period_end,
        calculated_at=as_of,
    )
