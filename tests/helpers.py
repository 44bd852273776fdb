"""Test helpers shared across test files."""
from datetime import datetime, timedelta, timezone

from lifecycle.state_machine import PriceObserved, TipState, transition
from shared.schemas import ResolvedTip, TipCreate, TipDirection, TipStatus, TipTimeframe

BASE = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def make_tip_create(**overrides) -> TipCreate:
    """LONG SWING call on INFY: entry 100, target 110, stop 90, posted at BASE."""
    fields = dict(
        creator_id="creator-a",
        instrument_id="INFY",
        direction=TipDirection.LONG,
        entry_price=100.0,
        target1=110.0,
        stop_loss=90.0,
        timeframe=TipTimeframe.SWING,
        posted_at=BASE,
    )
    fields.update(overrides)
    return TipCreate(**fields)


async def add_active_tip(db, tip_id=None, **overrides):
    tip = await db.insert_tip(make_tip_create(**overrides), tip_id=tip_id)
    return await db.review_tip(tip.id, approve=True, at=BASE)


async def resolve_at_price(db, tip, price, at):
    """Apply one observed price to a stored tip and return the stored result."""
    result = transition(TipState.from_tip(tip), PriceObserved(price))
    return await db.apply_transition(tip, result, at)


def make_resolved(
    tip_id,
    status=TipStatus.TARGET_1_HIT,
    return_pct=10.0,
    closed_at=BASE,
    timeframe=TipTimeframe.SWING,
    direction=TipDirection.LONG,
    entry_price=100.0,
    target1=110.0,
    target2=None,
    target3=None,
    stop_loss=90.0,
    exit_price=None,
) -> ResolvedTip:
    return ResolvedTip(
        id=tip_id,
        status=status,
        direction=direction,
        timeframe=timeframe,
        entry_price=entry_price,
        target1=target1,
        target2=target2,
        target3=target3,
        stop_loss=stop_loss,
        exit_price=exit_price,
        return_pct=return_pct,
        posted_at=closed_at - timedelta(days=3),
        closed_at=closed_at,
    )


def win(tip_id, return_pct=10.0, closed_at=BASE, **kwargs) -> ResolvedTip:
    return make_resolved(tip_id, TipStatus.TARGET_1_HIT, return_pct, closed_at, **kwargs)


def loss(tip_id, return_pct=-10.0, closed_at=BASE, **kwargs) -> ResolvedTip:
    return make_resolved(tip_id, TipStatus.STOPLOSS_HIT, return_pct, closed_at, **kwargs)
