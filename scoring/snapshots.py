"""Daily score snapshots for trend charts."""
import logging
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from shared.schemas import ScoreSnapshot, utcnow
from storage.db import Database

logger = logging.getLogger(__name__)


class SnapshotRecorder:
    def __init__(self, db: Database, timezone: str = "UTC"):
        self.db = db
        self.tz = ZoneInfo(timezone)

    def snapshot_date(self, as_of: datetime) -> date:
        return as_of.astimezone(self.tz).date()

    async def record(self, creator_id: str, as_of: Optional[datetime] = None) -> Optional[ScoreSnapshot]:
        """Copy the current score into today's row. No score, no snapshot."""
        as_of = as_of or utcnow()
        score = await self.db.get_creator_score(creator_id)
        if score is None:
            return None
        snapshot = ScoreSnapshot(
            creator_id=creator_id,
            date=self.snapshot_date(as_of),
            rmt_score=score.rmt_score,
            accuracy_rate=score.accuracy_rate,
            total_scored_tips=score.total_scored_tips,
            confidence_interval=score.confidence_interval,
            created_at=as_of,
        )
        await self.db.upsert_snapshot(snapshot)
        return snapshot

    async def record_all(self, as_of: Optional[datetime] = None) -> int:
        as_of = as_of or utcnow()
        count = 0
        for score in await self.db.get_all_creator_scores():
            if await self.record(score.creator_id, as_of):
                count += 1
        logger.info(
            "Daily snapshots recorded",
            extra={"count": count, "date": self.snapshot_date(as_of).isoformat()},
        )
        return count
