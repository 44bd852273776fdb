"""Job dispatch with retry for transient failures."""
import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from feeds.price_feed import PriceFeed
from jobs.locks import EntityLocks
from lifecycle.evaluator import TipOutcomeEvaluator
from lifecycle.sweeper import ExpirationSweeper
from scoring.composite import ScoringParams
from scoring.engine import ScoringEngine
from scoring.snapshots import SnapshotRecorder
from shared.config import Config
from shared.errors import TransientError, UnknownJobError
from shared.schemas import utcnow
from storage.db import Database

logger = logging.getLogger(__name__)


class JobType(str, Enum):
    EVALUATE_TIPS = "evaluate-tips"
    CHECK_EXPIRATIONS = "check-expirations"
    RECALCULATE_SCORES = "recalculate-scores"
    DAILY_SNAPSHOT = "daily-snapshot"


class JobRequest(BaseModel):
    job: JobType
    creator_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "JobRequest":
        try:
            return cls(**payload)
        except ValidationError as e:
            raise UnknownJobError(f"Bad job payload {payload!r}: {e.errors()[0]['msg']}") from e


class JobResult(BaseModel):
    job: JobType
    creator_id: Optional[str] = None
    attempts: int
    detail: dict[str, Any] = {}


class JobRunner:
    """Runs one job to completion, retrying TransientError with exponential backoff."""

    def __init__(
        self,
        db: Database,
        feed: PriceFeed,
        config: Config,
        locks: Optional[EntityLocks] = None,
        sleep=asyncio.sleep,
    ):
        self.db = db
        self.config = config
        self.locks = locks or EntityLocks()
        self._sleep = sleep

        self.evaluator = TipOutcomeEvaluator(db, feed, self.locks)
        self.sweeper = ExpirationSweeper(
            db, feed, self.locks, price_retention_days=config.PRICE_RETENTION_DAYS
        )
        self.engine = ScoringEngine(
            db,
            params=ScoringParams.from_config(config),
            lookback_days=config.SCORE_LOOKBACK_DAYS,
            concurrency=config.WORKER_CONCURRENCY,
            locks=self.locks,
        )
        self.recorder = SnapshotRecorder(db, config.SNAPSHOT_TIMEZONE)

    async def run(self, request: JobRequest, now: Optional[datetime] = None) -> JobResult:
        delays = self.config.retry_delays
        attempt = 0
        while True:
            attempt += 1
            try:
                detail = await self._dispatch(request, now or utcnow())
            except TransientError as e:
                if attempt > len(delays):
                    logger.error(
                        f"Job failed after {attempt} attempts: {e}",
                        extra={"job": request.job.value, "creator_id": request.creator_id},
                    )
                    raise
                delay = delays[attempt - 1]
                logger.warning(
                    f"Transient job failure, retrying in {delay}s: {e}",
                    extra={"job": request.job.value, "attempt": attempt},
                )
                await self._sleep(delay)
                continue

            logger.info(
                "Job complete",
                extra={"job": request.job.value, "attempts": attempt, **detail},
            )
            return JobResult(
                job=request.job, creator_id=request.creator_id,
                attempts=attempt, detail=detail,
            )

    async def _dispatch(self, request: JobRequest, now: datetime) -> dict[str, Any]:
        if request.job == JobType.EVALUATE_TIPS:
            report = await self.evaluator.run(now)
            rescored = await self._rescore(report.creator_ids, now)
            return {
                "evaluated": report.evaluated,
                "transitioned": report.transitioned,
                "skipped": report.skipped,
                "flagged": report.flagged,
                "rescored": rescored,
            }

        if request.job == JobType.CHECK_EXPIRATIONS:
            report = await self.sweeper.run(now)
            rescored = await self._rescore(report.creator_ids, now)
            return {
                "expired": report.expired,
                "skipped": report.skipped,
                "flagged": report.flagged,
                "pruned_prices": report.pruned_prices,
                "rescored": rescored,
            }

        if request.job == JobType.RECALCULATE_SCORES:
            if request.creator_id:
                score = await self.engine.recalculate(request.creator_id, now)
                return {"rated": score is not None}
            report = await self.engine.recalculate_all(now)
            return {"scored": report.scored, "unrated": report.unrated, "failed": report.failed}

        if request.job == JobType.DAILY_SNAPSHOT:
            if request.creator_id:
                snapshot = await self.recorder.record(request.creator_id, now)
                return {"recorded": 0 if snapshot is None else 1}
            return {"recorded": await self.recorder.record_all(now)}

        raise UnknownJobError(f"Unknown job: {request.job}")

    async def _rescore(self, creator_ids: list[str], now: datetime) -> list[str]:
        for creator_id in creator_ids:
            await self.engine.recalculate(creator_id, now)
        return creator_ids
