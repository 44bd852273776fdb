"""Tests for lifecycle.sweeper."""
from datetime import timedelta

import pytest

from feeds.price_feed import StaticPriceFeed
from helpers import BASE, add_active_tip, resolve_at_price
from lifecycle.sweeper import ExpirationSweeper
from shared.errors import StaleTipError
from shared.schemas import TipStatus

AFTER_EXPIRY = BASE + timedelta(days=15)


@pytest.mark.asyncio
async def test_expires_at_stored_last_price(db):
    await add_active_tip(db, tip_id="tip-1")
    await db.record_price("INFY", 105.0, BASE + timedelta(days=13))
    feed = StaticPriceFeed({"INFY": 999.0})

    report = await ExpirationSweeper(db, feed).run(AFTER_EXPIRY)
    tip = await db.get_tip("tip-1")
    assert report.expired == 1
    assert report.creator_ids == ["creator-a"]
    assert tip.status == TipStatus.EXPIRED
    assert tip.exit_price == 105.0
    assert tip.return_pct == pytest.approx(5.0)
    assert feed.calls == []


@pytest.mark.asyncio
async def test_expiry_happens_exactly_once(db):
    await add_active_tip(db, tip_id="tip-1")
    await db.record_price("INFY", 105.0, BASE)
    sweeper = ExpirationSweeper(db, StaticPriceFeed())

    first = await sweeper.run(AFTER_EXPIRY)
    second = await sweeper.run(AFTER_EXPIRY + timedelta(hours=1))
    assert first.expired == 1
    assert second.expired == 0


@pytest.mark.asyncio
async def test_falls_back_to_feed_price(db):
    await add_active_tip(db, tip_id="tip-1")
    report = await ExpirationSweeper(db, StaticPriceFeed({"INFY": 95.0})).run(AFTER_EXPIRY)
    tip = await db.get_tip("tip-1")
    assert report.expired == 1
    assert tip.return_pct == pytest.approx(-5.0)


@pytest.mark.asyncio
async def test_no_price_anywhere_skips(db):
    await add_active_tip(db, tip_id="tip-1")
    report = await ExpirationSweeper(db, StaticPriceFeed()).run(AFTER_EXPIRY)
    assert report.skipped == 1
    assert (await db.get_tip("tip-1")).status == TipStatus.ACTIVE


@pytest.mark.asyncio
async def test_missing_instrument_flags_every_tip(db):
    await add_active_tip(db, tip_id="tip-1", instrument_id="DELISTED")
    await add_active_tip(db, tip_id="tip-2", instrument_id="DELISTED")
    feed = StaticPriceFeed(missing={"DELISTED"})

    report = await ExpirationSweeper(db, feed).run(AFTER_EXPIRY)
    assert report.flagged == 2
    assert feed.calls == ["DELISTED"]
    assert (await db.get_tip("tip-1")).needs_review
    assert (await db.get_tip("tip-2")).needs_review


@pytest.mark.asyncio
async def test_unexpired_tips_untouched(db):
    await add_active_tip(db, tip_id="tip-1")
    await db.record_price("INFY", 105.0, BASE)
    report = await ExpirationSweeper(db, StaticPriceFeed()).run(BASE + timedelta(days=3))
    assert report.expired == 0
    assert (await db.get_tip("tip-1")).status == TipStatus.ACTIVE


@pytest.mark.asyncio
async def test_target_hit_tip_expires(db):
    tip = await add_active_tip(db, tip_id="tip-1", target2=120.0)
    await resolve_at_price(db, tip, 112.0, BASE + timedelta(days=1))
    await db.record_price("INFY", 114.0, BASE + timedelta(days=13))

    await ExpirationSweeper(db, StaticPriceFeed()).run(AFTER_EXPIRY)
    stored = await db.get_tip("tip-1")
    assert stored.status == TipStatus.EXPIRED
    assert stored.return_pct == pytest.approx(14.0)


@pytest.mark.asyncio
async def test_exit_price_ignores_samples_after_deadline(db):
    await add_active_tip(db, tip_id="tip-1")
    await db.record_price("INFY", 105.0, BASE + timedelta(days=13))
    await db.record_price("INFY", 120.0, BASE + timedelta(days=15))

    await ExpirationSweeper(db, StaticPriceFeed()).run(BASE + timedelta(days=16))
    tip = await db.get_tip("tip-1")
    assert tip.status == TipStatus.EXPIRED
    assert tip.exit_price == 105.0


@pytest.mark.asyncio
async def test_only_late_samples_fall_back_to_feed(db):
    await add_active_tip(db, tip_id="tip-1")
    await db.record_price("INFY", 120.0, BASE + timedelta(days=15))
    feed = StaticPriceFeed({"INFY": 98.0})

    await ExpirationSweeper(db, feed).run(BASE + timedelta(days=16))
    assert feed.calls == ["INFY"]
    assert (await db.get_tip("tip-1")).exit_price == 98.0


def _stale_for(db, monkeypatch, tip_id, times):
    """Make apply_transition lose the version race ``times`` times for one tip."""
    apply = db.apply_transition
    lost = []

    async def racing_apply(tip, result, at):
        if tip.id == tip_id and len(lost) < times:
            lost.append(tip.version)
            raise StaleTipError(tip.id, tip.version)
        return await apply(tip, result, at)

    monkeypatch.setattr(db, "apply_transition", racing_apply)
    return lost


@pytest.mark.asyncio
async def test_repeated_lost_race_keeps_sweeping(db, monkeypatch):
    await add_active_tip(db, tip_id="tip-a")
    await add_active_tip(db, tip_id="tip-b")
    await db.record_price("INFY", 105.0, BASE + timedelta(days=13))
    lost = _stale_for(db, monkeypatch, "tip-a", times=2)

    report = await ExpirationSweeper(db, StaticPriceFeed()).run(AFTER_EXPIRY)
    assert len(lost) == 2
    assert report.expired == 2
    assert (await db.get_tip("tip-a")).status == TipStatus.EXPIRED
    assert (await db.get_tip("tip-b")).status == TipStatus.EXPIRED


@pytest.mark.asyncio
async def test_tip_that_never_settles_is_skipped(db, monkeypatch):
    await add_active_tip(db, tip_id="tip-a")
    await add_active_tip(db, tip_id="tip-b")
    await db.record_price("INFY", 105.0, BASE + timedelta(days=13))
    lost = _stale_for(db, monkeypatch, "tip-a", times=100)

    report = await ExpirationSweeper(db, StaticPriceFeed(), max_stale_retries=2).run(AFTER_EXPIRY)
    assert len(lost) == 3
    assert report.expired == 1
    assert report.skipped == 1
    assert (await db.get_tip("tip-a")).status == TipStatus.ACTIVE
    assert (await db.get_tip("tip-b")).status == TipStatus.EXPIRED


@pytest.mark.asyncio
async def test_sweep_prunes_old_price_samples(db):
    await db.record_price("INFY", 100.0, BASE)
    await db.record_price("INFY", 101.0, BASE + timedelta(days=1))
    await db.record_price("INFY", 102.0, BASE + timedelta(days=40))
    await db.record_price("TCS", 3500.0, BASE)

    sweeper = ExpirationSweeper(db, StaticPriceFeed(), price_retention_days=30)
    report = await sweeper.run(BASE + timedelta(days=45))
    assert report.pruned_prices == 2
    assert await db.get_last_price("INFY", as_of=BASE + timedelta(days=2)) is None
    assert await db.get_last_price("INFY") == 102.0
    assert await db.get_last_price("TCS") == 3500.0
