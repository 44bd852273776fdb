"""Tip outcome evaluator: applies live prices to evaluable tips."""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from feeds.price_feed import PriceFeed
from jobs.locks import EntityLocks
from lifecycle.state_machine import PriceObserved, TipState, transition
from shared.errors import InstrumentNotFoundError, StaleTipError
from shared.schemas import Tip, TipStatusUpdate, utcnow
from storage.db import Database

logger = logging.getLogger(__name__)


@dataclass
class EvaluationReport:
    evaluated: int = 0
    transitioned: int = 0
    skipped: int = 0
    flagged: int = 0
    updates: list[TipStatusUpdate] = field(default_factory=list)

    @property
    def creator_ids(self) -> list[str]:
        """Creators whose tips changed, in first-seen order."""
        return list(dict.fromkeys(u.creator_id for u in self.updates))


class TipOutcomeEvaluator:
    """Compares each evaluable tip against the current instrument price.

    Prices are fetched once per instrument per run. Tips past their deadline
    are not touched here; the expiration sweeper owns them.
    """

    def __init__(
        self,
        db: Database,
        feed: PriceFeed,
        locks: Optional[EntityLocks] = None,
        max_stale_retries: int = 3,
    ):
        self.db = db
        self.feed = feed
        self.locks = locks or EntityLocks()
        self.max_stale_retries = max_stale_retries

    async def run(self, now: Optional[datetime] = None) -> EvaluationReport:
        now = now or utcnow()
        report = EvaluationReport()

        by_instrument: dict[str, list[Tip]] = defaultdict(list)
        for tip in await self.db.get_evaluable_tips(now):
            by_instrument[tip.instrument_id].append(tip)

        for instrument_id, tips in by_instrument.items():
            try:
                price = await self.feed.get_last_price(instrument_id)
            except InstrumentNotFoundError as e:
                for tip in tips:
                    async with self.locks.hold(f"tip:{tip.id}"):
                        await self.db.flag_tip(tip.id, str(e))
                report.flagged += len(tips)
                continue

            if price is None or price <= 0:
                logger.info(
                    "Price unavailable, skipping instrument",
                    extra={"instrument_id": instrument_id, "tips": len(tips)},
                )
                report.skipped += len(tips)
                continue

            await self.db.record_price(instrument_id, price, now)

            for tip in tips:
                update = await self._evaluate_tip(tip, price, now)
                report.evaluated += 1
                if update:
                    report.transitioned += 1
                    report.updates.append(update)

        logger.info(
            "Evaluation run complete",
            extra={
                "instruments": len(by_instrument),
                "evaluated": report.evaluated,
                "transitioned": report.transitioned,
                "skipped": report.skipped,
                "flagged": report.flagged,
            },
        )
        return report

    async def _evaluate_tip(self, tip: Tip, price: float, now: datetime) -> Optional[TipStatusUpdate]:
        """Read-decide-write for one tip; a lost compare-and-set re-reads and decides again."""
        async with self.locks.hold(f"tip:{tip.id}"):
            for _ in range(self.max_stale_retries + 1):
                result = transition(TipState.from_tip(tip), PriceObserved(price))
                if not result.changed:
                    return None
                try:
                    await self.db.apply_transition(tip, result, now)
                except StaleTipError:
                    tip = await self.db.get_tip(tip.id)
                    if tip is None or not tip.is_evaluable:
                        return None
                    continue

                if result.stop_loss_after_target:
                    logger.info(
                        "Stop loss crossed after target, tip closed at target",
                        extra={"tip_id": tip.id, "status": result.status.value},
                    )
                logger.info(
                    "Tip transitioned",
                    extra={
                        "tip_id": tip.id,
                        "from": tip.status.value,
                        "to": result.status.value,
                        "terminal": result.terminal,
                        "price": price,
                    },
                )
                return TipStatusUpdate(
                    tip_id=tip.id,
                    creator_id=tip.creator_id,
                    old_status=tip.status,
                    new_status=result.status,
                    terminal=result.terminal,
                    price=price,
                    return_pct=result.return_pct,
                    timestamp=now,
                )

        logger.warning(
            "Tip kept changing under evaluation, leaving for next run",
            extra={"tip_id": tip.id},
        )
        return None
