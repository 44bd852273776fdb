"""Risk-adjusted return component (30%)."""
from dataclasses import dataclass
from typing import Optional, Sequence

from scoring.outcomes import risk_pct, tip_return
from scoring.thresholds import RISK_ADJUSTED_CEILING, RISK_ADJUSTED_FLOOR, SCORE_MAX, SCORE_MIN
from shared.schemas import ResolvedTip


@dataclass(frozen=True)
class RiskAdjustedResult:
    score: float
    avg_return_pct: float
    avg_risk_reward_ratio: float
    best_return_pct: Optional[float]
    worst_return_pct: Optional[float]


def reward_risk_ratio(tip: ResolvedTip) -> float:
    risk = risk_pct(tip)
    return tip_return(tip) / risk if risk > 0 else 0.0


def normalize_ratio(avg_ratio: float) -> float:
    """Map an average reward/risk of FLOOR..CEILING onto 0..100."""
    span = RISK_ADJUSTED_CEILING - RISK_ADJUSTED_FLOOR
    score = (avg_ratio - RISK_ADJUSTED_FLOOR) / span * 100.0
    return max(SCORE_MIN, min(SCORE_MAX, score))


def risk_adjusted_score(tips: Sequence[ResolvedTip]) -> RiskAdjustedResult:
    if not tips:
        return RiskAdjustedResult(0.0, 0.0, 0.0, None, None)

    returns = [tip_return(t) for t in tips]
    ratios = [reward_risk_ratio(t) for t in tips]
    avg_ratio = sum(ratios) / len(ratios)
    return RiskAdjustedResult(
        score=normalize_ratio(avg_ratio),
        avg_return_pct=sum(returns) / len(returns),
        avg_risk_reward_ratio=avg_ratio,
        best_return_pct=max(returns),
        worst_return_pct=min(returns),
    )
