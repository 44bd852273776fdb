"""Moves tips past their deadline to EXPIRED."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from feeds.price_feed import PriceFeed
from jobs.locks import EntityLocks
from lifecycle.state_machine import DeadlinePassed, TipState, transition
from shared.errors import InstrumentNotFoundError, StaleTipError
from shared.schemas import Tip, TipStatusUpdate, utcnow
from storage.db import Database

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    expired: int = 0
    skipped: int = 0
    flagged: int = 0
    pruned_prices: int = 0
    updates: list[TipStatusUpdate] = field(default_factory=list)

    @property
    def creator_ids(self) -> list[str]:
        return list(dict.fromkeys(u.creator_id for u in self.updates))


class ExpirationSweeper:
    """Expires overdue tips at the last price observed before their deadline.

    Falls back to the feed when no sample exists from before the deadline.
    Price samples older than ``price_retention_days`` are pruned after each run.
    """

    def __init__(
        self,
        db: Database,
        feed: PriceFeed,
        locks: Optional[EntityLocks] = None,
        max_stale_retries: int = 3,
        price_retention_days: int = 30,
    ):
        self.db = db
        self.feed = feed
        self.locks = locks or EntityLocks()
        self.max_stale_retries = max_stale_retries
        self.price_retention_days = price_retention_days

    async def run(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or utcnow()
        report = SweepReport()
        feed_prices: dict[str, Optional[float]] = {}
        missing: dict[str, str] = {}

        for tip in await self.db.get_expired_tips(now):
            if tip.instrument_id not in missing:
                try:
                    price = await self._exit_price(tip, feed_prices)
                except InstrumentNotFoundError as e:
                    missing[tip.instrument_id] = str(e)

            if tip.instrument_id in missing:
                async with self.locks.hold(f"tip:{tip.id}"):
                    await self.db.flag_tip(tip.id, missing[tip.instrument_id])
                report.flagged += 1
                continue

            if price is None:
                report.skipped += 1
                continue

            update = await self._expire(tip, price, now)
            if update:
                report.expired += 1
                report.updates.append(update)
            else:
                report.skipped += 1

        report.pruned_prices = await self.db.prune_prices(
            now - timedelta(days=self.price_retention_days)
        )
        logger.info(
            "Expiration sweep complete",
            extra={
                "expired": report.expired,
                "skipped": report.skipped,
                "flagged": report.flagged,
                "pruned_prices": report.pruned_prices,
            },
        )
        return report

    async def _exit_price(self, tip: Tip, feed_prices: dict[str, Optional[float]]) -> Optional[float]:
        """Last stored price at or before the deadline, else one feed lookup per instrument."""
        price = await self.db.get_last_price(tip.instrument_id, as_of=tip.expires_at)
        if price is not None:
            return price

        if tip.instrument_id not in feed_prices:
            price = await self.feed.get_last_price(tip.instrument_id)
            if price is None or price <= 0:
                logger.info(
                    "No exit price for expired tips, retrying next run",
                    extra={"instrument_id": tip.instrument_id},
                )
                price = None
            feed_prices[tip.instrument_id] = price
        return feed_prices[tip.instrument_id]

    async def _expire(self, tip: Tip, price: float, now: datetime) -> Optional[TipStatusUpdate]:
        """Expire one tip; a lost compare-and-set re-reads and tries again."""
        async with self.locks.hold(f"tip:{tip.id}"):
            for _ in range(self.max_stale_retries + 1):
                result = transition(TipState.from_tip(tip), DeadlinePassed(price))
                if not result.changed:
                    return None
                try:
                    await self.db.apply_transition(tip, result, now)
                except StaleTipError:
                    tip = await self.db.get_tip(tip.id)
                    if tip is None or not tip.is_evaluable:
                        return None
                    continue

                logger.info(
                    "Tip expired",
                    extra={"tip_id": tip.id, "exit_price": price, "return_pct": result.return_pct},
                )
                return TipStatusUpdate(
                    tip_id=tip.id,
                    creator_id=tip.creator_id,
                    old_status=tip.status,
                    new_status=result.status,
                    terminal=True,
                    price=price,
                    return_pct=result.return_pct,
                    timestamp=now,
                )

        logger.warning(
            "Tip kept changing during expiry, leaving for next run",
            extra={"tip_id": tip.id},
        )
        return None
