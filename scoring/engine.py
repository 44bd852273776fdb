"""Scoring job: recompute and replace creator scores from stored tips."""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from jobs.locks import EntityLocks
from scoring.composite import ScoringParams, calculate_creator_score
from shared.schemas import CreatorScore, utcnow
from storage.db import Database

logger = logging.getLogger(__name__)


@dataclass
class ScoringReport:
    scored: int = 0
    unrated: int = 0
    failed: list[str] = field(default_factory=list)


class ScoringEngine:
    """Reads a creator's resolved tips and swaps in a fresh CreatorScore.

    The read and the replace share one storage transaction, so a concurrent
    tip resolution lands either wholly before or wholly after a recalculation.
    """

    def __init__(
        self,
        db: Database,
        params: Optional[ScoringParams] = None,
        lookback_days: int = 365,
        concurrency: int = 10,
        locks: Optional[EntityLocks] = None,
    ):
        self.db = db
        self.params = params or ScoringParams()
        self.lookback_days = lookback_days
        self.concurrency = concurrency
        self.locks = locks or EntityLocks()

    async def recalculate(self, creator_id: str, as_of: Optional[datetime] = None) -> Optional[CreatorScore]:
        as_of = as_of or utcnow()
        since = as_of - timedelta(days=self.lookback_days)

        async with self.locks.hold(f"creator:{creator_id}"):
            async with self.db.transaction():
                tips = await self.db.get_resolved_tips(creator_id, since, as_of)
                score = calculate_creator_score(creator_id, tips, since, as_of, as_of, self.params)
                await self.db.replace_creator_score(creator_id, score)

        if score is None:
            logger.info("Creator has no resolved tips, score cleared", extra={"creator_id": creator_id})
        else:
            logger.info(
                "Creator score recalculated",
                extra={
                    "creator_id": creator_id,
                    "rmt_score": score.rmt_score,
                    "tips": score.total_scored_tips,
                    "provisional": score.is_provisional,
                },
            )
        return score

    async def recalculate_all(self, as_of: Optional[datetime] = None) -> ScoringReport:
        """Recalculate every creator with tips; one failure never stops the sweep."""
        as_of = as_of or utcnow()
        report = ScoringReport()
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _one(creator_id: str):
            async with semaphore:
                try:
                    score = await self.recalculate(creator_id, as_of)
                except Exception as e:
                    logger.error(
                        f"Score recalculation failed: {e}",
                        extra={"creator_id": creator_id},
                    )
                    report.failed.append(creator_id)
                    return
                if score is None:
                    report.unrated += 1
                else:
                    report.scored += 1

        creator_ids = await self.db.get_creator_ids()
        await asyncio.gather(*(_one(c) for c in creator_ids))
        logger.info(
            "Score sweep complete",
            extra={"creators": len(creator_ids), "scored": report.scored,
                   "unrated": report.unrated, "failed": len(report.failed)},
        )
        return report
