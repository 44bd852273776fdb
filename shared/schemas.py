"""Pydantic models for all data flowing through the lifecycle and scoring jobs."""
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TipDirection(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class TipTimeframe(str, Enum):
    INTRADAY = "INTRADAY"
    SWING = "SWING"
    POSITIONAL = "POSITIONAL"
    LONG_TERM = "LONG_TERM"


class TipStatus(str, Enum):
    PENDING_REVIEW = "PENDING_REVIEW"
    ACTIVE = "ACTIVE"
    REJECTED = "REJECTED"
    TARGET_1_HIT = "TARGET_1_HIT"
    TARGET_2_HIT = "TARGET_2_HIT"
    ALL_TARGETS_HIT = "ALL_TARGETS_HIT"
    STOPLOSS_HIT = "STOPLOSS_HIT"
    EXPIRED = "EXPIRED"


# Statuses the evaluator and sweeper keep watching
EVALUABLE_STATUSES = (TipStatus.ACTIVE, TipStatus.TARGET_1_HIT, TipStatus.TARGET_2_HIT)

# Statuses that never enter scoring
UNSCORED_STATUSES = (TipStatus.PENDING_REVIEW, TipStatus.ACTIVE, TipStatus.REJECTED)

SCORED_STATUSES = tuple(s for s in TipStatus if s not in UNSCORED_STATUSES)

TARGET_HIT_STATUSES = (TipStatus.TARGET_1_HIT, TipStatus.TARGET_2_HIT, TipStatus.ALL_TARGETS_HIT)


class CreatorTier(str, Enum):
    UNRATED = "UNRATED"
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"
    DIAMOND = "DIAMOND"


class TipCreate(BaseModel):
    """A new call as submitted by the authoring workflow."""
    creator_id: str
    instrument_id: str
    direction: TipDirection
    entry_price: float = Field(gt=0)
    target1: float = Field(gt=0)
    target2: Optional[float] = Field(default=None, gt=0)
    target3: Optional[float] = Field(default=None, gt=0)
    stop_loss: float = Field(gt=0)
    timeframe: TipTimeframe = TipTimeframe.POSITIONAL
    posted_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_levels(self) -> "TipCreate":
        from lifecycle.validation import validate_tip_levels
        validate_tip_levels(
            self.direction, self.entry_price, self.target1,
            self.target2, self.target3, self.stop_loss,
        )
        return self


class Tip(BaseModel):
    """Persisted tip row."""
    id: str
    creator_id: str
    instrument_id: str
    direction: TipDirection
    entry_price: float
    target1: float
    target2: Optional[float] = None
    target3: Optional[float] = None
    stop_loss: float
    timeframe: TipTimeframe
    posted_at: datetime
    expires_at: datetime
    status: TipStatus = TipStatus.PENDING_REVIEW
    return_pct: Optional[float] = None
    exit_price: Optional[float] = None
    resolved_at: Optional[datetime] = None
    status_updated_at: Optional[datetime] = None
    stop_loss_hit_at: Optional[datetime] = None
    needs_review: bool = False
    review_reason: Optional[str] = None
    version: int = 0
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None

    @property
    def is_evaluable(self) -> bool:
        return (
            self.status in EVALUABLE_STATUSES
            and self.resolved_at is None
            and not self.needs_review
        )


class TipStatusUpdate(BaseModel):
    """One applied status change, as reported by the evaluator and sweeper."""
    tip_id: str
    creator_id: str
    old_status: TipStatus
    new_status: TipStatus
    terminal: bool
    price: float
    return_pct: Optional[float] = None
    timestamp: datetime = Field(default_factory=utcnow)


class ResolvedTip(BaseModel):
    """Immutable view of a resolved tip, the only input the scoring functions see."""
    model_config = ConfigDict(frozen=True)

    id: str
    status: TipStatus
    direction: TipDirection
    timeframe: TipTimeframe
    entry_price: float
    target1: float
    target2: Optional[float] = None
    target3: Optional[float] = None
    stop_loss: float
    exit_price: Optional[float] = None
    return_pct: Optional[float] = None
    posted_at: datetime
    closed_at: datetime


class CreatorScore(BaseModel):
    """Current score for one creator. Replaced as a whole on every recalculation."""
    model_config = ConfigDict(frozen=True)

    creator_id: str
    accuracy_score: float
    risk_adjusted_score: float
    consistency_score: float
    volume_factor_score: float
    rmt_score: float = Field(ge=0.0, le=100.0)
    confidence_interval: float = Field(ge=0.0)
    accuracy_rate: float = Field(ge=0.0, le=1.0)
    weighted_accuracy_rate: float = Field(ge=0.0, le=1.0)
    avg_return_pct: float
    avg_risk_reward_ratio: float
    win_streak: int = Field(ge=0)
    loss_streak: int = Field(ge=0)
    best_tip_return_pct: Optional[float] = None
    worst_tip_return_pct: Optional[float] = None
    intraday_accuracy: Optional[float] = None
    swing_accuracy: Optional[float] = None
    positional_accuracy: Optional[float] = None
    long_term_accuracy: Optional[float] = None
    total_scored_tips: int = Field(ge=0)
    tier: CreatorTier
    is_provisional: bool
    score_period_start: datetime
    score_period_end: datetime
    calculated_at: datetime


class ScoreSnapshot(BaseModel):
    """Daily score row for trend charts."""
    creator_id: str
    date: date
    rmt_score: float
    accuracy_rate: float
    total_scored_tips: int
    confidence_interval: float = 0.0
    created_at: datetime = Field(default_factory=utcnow)
