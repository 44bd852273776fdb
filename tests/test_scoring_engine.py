"""Tests for scoring.composite and scoring.engine."""
from datetime import timedelta

import pytest

from helpers import BASE, add_active_tip, loss, resolve_at_price, win
from scoring.composite import (
    ScoringParams,
    calculate_creator_score,
    composite_score,
    confidence_interval,
    tier_for,
)
from scoring.engine import ScoringEngine
from shared.config import Config
from shared.schemas import CreatorTier

AS_OF = BASE + timedelta(days=10)


def _score(tips, as_of=AS_OF, params=None):
    return calculate_creator_score("creator-a", tips, BASE, as_of, as_of, params)


def _days(n):
    return BASE + timedelta(days=n)


def test_no_resolved_tips_yields_none():
    assert _score([]) is None


def test_three_straight_wins():
    tips = [win("t1", 5.0, _days(0)), win("t2", 8.0, _days(1)), win("t3", 6.0, _days(2))]
    score = _score(tips)
    assert score.win_streak == 3
    assert score.loss_streak == 0
    assert score.accuracy_rate == 1.0
    assert score.total_scored_tips == 3
    assert score.best_tip_return_pct == 8.0
    assert score.worst_tip_return_pct == 5.0
    assert score.avg_return_pct == pytest.approx(19.0 / 3.0)
    assert score.is_provisional
    assert score.tier == CreatorTier.UNRATED


def test_exactly_one_streak_nonzero():
    tips = [win("t1", closed_at=_days(0)), loss("t2", closed_at=_days(1)), loss("t3", closed_at=_days(2))]
    score = _score(tips)
    assert (score.win_streak, score.loss_streak) == (0, 2)


def test_deterministic():
    tips = [win(f"w{i}", closed_at=_days(i % 7)) for i in range(8)] + [loss("l1", closed_at=_days(3))]
    assert _score(tips) == _score(list(reversed(tips)))
    assert _score(tips).calculated_at == AS_OF


def test_more_accuracy_scores_higher():
    baseline = [win("t1", closed_at=_days(0)), loss("t2", closed_at=_days(1)), win("t3", closed_at=_days(2))]
    improved = [win("t1", closed_at=_days(0)), win("t2", closed_at=_days(1)), win("t3", closed_at=_days(2))]
    assert _score(improved).rmt_score > _score(baseline).rmt_score


def test_rmt_score_bounded():
    worst = [loss(f"l{i}", return_pct=-80.0, closed_at=_days(i % 9)) for i in range(30)]
    best = [win(f"w{i}", return_pct=300.0, closed_at=_days(i % 9)) for i in range(3000)]
    assert 0.0 <= _score(worst).rmt_score <= 100.0
    assert 0.0 <= _score(best).rmt_score <= 100.0


def test_confidence_interval_shrinks_with_sample():
    assert confidence_interval(0) == 0.0
    assert confidence_interval(100) == pytest.approx(9.8)
    widths = [confidence_interval(n) for n in (1, 5, 20, 100, 1000)]
    assert widths == sorted(widths, reverse=True)
    assert len(set(widths)) == len(widths)


def test_composite_weights():
    assert composite_score(100, 0, 0, 0) == pytest.approx(40.0)
    assert composite_score(0, 100, 0, 0) == pytest.approx(30.0)
    assert composite_score(0, 0, 100, 0) == pytest.approx(20.0)
    assert composite_score(0, 0, 0, 100) == pytest.approx(10.0)
    assert composite_score(100, 100, 100, 100) == 100.0


@pytest.mark.parametrize("n,tier", [
    (19, CreatorTier.UNRATED),
    (20, CreatorTier.BRONZE),
    (49, CreatorTier.BRONZE),
    (50, CreatorTier.SILVER),
    (200, CreatorTier.GOLD),
    (500, CreatorTier.PLATINUM),
    (1000, CreatorTier.DIAMOND),
])
def test_tier_for(n, tier):
    assert tier_for(n) == tier


def test_provisional_until_minimum_sample():
    tips = [win(f"w{i}", closed_at=_days(i % 9)) for i in range(20)]
    assert _score(tips[:19]).is_provisional
    rated = _score(tips)
    assert rated.is_provisional is False
    assert rated.tier == CreatorTier.BRONZE


def test_params_from_config():
    params = ScoringParams.from_config(Config(MIN_TIPS_FOR_RATING=2, RECENCY_HALF_LIFE_DAYS=30))
    assert params.min_tips_for_rating == 2
    score = _score([win("a"), win("b", closed_at=_days(1))], params=params)
    assert score.is_provisional is False


# ---- engine ----


@pytest.mark.asyncio
async def test_recalculate_stores_score(db):
    a = await add_active_tip(db, tip_id="tip-a")
    b = await add_active_tip(db, tip_id="tip-b")
    await resolve_at_price(db, a, 115.0, _days(1))
    await resolve_at_price(db, b, 85.0, _days(2))

    score = await ScoringEngine(db).recalculate("creator-a", AS_OF)
    assert score.total_scored_tips == 2
    assert score.accuracy_rate == 0.5
    assert score.score_period_end == AS_OF
    assert await db.get_creator_score("creator-a") == score


@pytest.mark.asyncio
async def test_recalculate_without_resolved_tips_clears_score(db):
    await add_active_tip(db, tip_id="tip-open")
    engine = ScoringEngine(db)
    await db.replace_creator_score("creator-a", _score([win("old")]))

    assert await engine.recalculate("creator-a", AS_OF) is None
    assert await db.get_creator_score("creator-a") is None


@pytest.mark.asyncio
async def test_recalculate_ignores_tips_outside_lookback(db):
    tip = await add_active_tip(db, tip_id="tip-a")
    await resolve_at_price(db, tip, 115.0, _days(1))
    engine = ScoringEngine(db, lookback_days=30)
    assert await engine.recalculate("creator-a", _days(100)) is None


@pytest.mark.asyncio
async def test_recalculate_all_isolates_failures(db):
    a = await add_active_tip(db, tip_id="tip-a")
    await resolve_at_price(db, a, 115.0, _days(1))
    await add_active_tip(db, tip_id="tip-b", creator_id="creator-b")
    await add_active_tip(db, tip_id="tip-c", creator_id="creator-c")

    engine = ScoringEngine(db, concurrency=2)
    original = engine.recalculate

    async def flaky(creator_id, as_of=None):
        if creator_id == "creator-c":
            raise RuntimeError("boom")
        return await original(creator_id, as_of)

    engine.recalculate = flaky
    report = await engine.recalculate_all(AS_OF)
    assert report.scored == 1
    assert report.unrated == 1
    assert report.failed == ["creator-c"]
    assert await db.get_creator_score("creator-a") is not None
