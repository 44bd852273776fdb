"""Main entry point: one-shot jobs or the scheduled lifecycle/scoring loop."""
import argparse
import asyncio
import logging
import signal
from datetime import date

from dotenv import load_dotenv

load_dotenv()

from shared.config import Config
from shared.logging import setup_logging
from shared.schemas import utcnow
from feeds.price_feed import HttpPriceFeed
from jobs.runner import JobRequest, JobRunner, JobType
from storage.db import Database
from dashboard.main import app as dashboard_app, set_database, set_runner

logger = logging.getLogger("tipscore")


class TipScoreWorker:
    """Runs the evaluation, expiration, scoring and snapshot jobs on a schedule."""

    def __init__(self, config: Config):
        self.config = config
        self._shutdown = asyncio.Event()
        self.db: Database | None = None
        self.feed: HttpPriceFeed | None = None
        self.runner: JobRunner | None = None
        self._last_snapshot_date: date | None = None

    async def setup(self):
        self.db = Database(self.config.DB_PATH)
        await self.db.init()
        self.feed = HttpPriceFeed(self.config.PRICE_FEED_URL, timeout=self.config.PRICE_FEED_TIMEOUT)
        self.runner = JobRunner(self.db, self.feed, self.config)

    async def teardown(self):
        if self.feed:
            await self.feed.close()
        if self.db:
            await self.db.close()

    async def run_once(self, job: str, creator_id: str | None = None) -> dict:
        await self.setup()
        try:
            request = JobRequest.from_payload({"job": job, "creator_id": creator_id})
            result = await self.runner.run(request)
            return result.model_dump(mode="json")
        finally:
            await self.teardown()

    async def start(self, serve_dashboard: bool = True):
        logger.info(
            "Starting tipscore worker",
            extra={
                "db_path": self.config.DB_PATH,
                "evaluation_interval": self.config.EVALUATION_INTERVAL_SECONDS,
                "expiration_interval": self.config.EXPIRATION_INTERVAL_SECONDS,
            },
        )
        await self.setup()
        set_database(self.db)
        set_runner(self.runner)

        tasks = [
            asyncio.create_task(
                self._job_loop(JobType.EVALUATE_TIPS, self.config.EVALUATION_INTERVAL_SECONDS),
                name="evaluate",
            ),
            asyncio.create_task(
                self._job_loop(JobType.CHECK_EXPIRATIONS, self.config.EXPIRATION_INTERVAL_SECONDS),
                name="expire",
            ),
            asyncio.create_task(self._snapshot_loop(), name="snapshot"),
        ]
        if serve_dashboard:
            tasks.append(asyncio.create_task(self._run_dashboard(), name="dashboard"))

        logger.info("All components started")
        await self._shutdown.wait()

        logger.info("Shutting down...")
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.teardown()
        logger.info("Shutdown complete")

    async def _job_loop(self, job: JobType, interval: int):
        while not self._shutdown.is_set():
            try:
                await self.runner.run(JobRequest(job=job))
            except Exception as e:
                logger.error(f"Scheduled job failed: {e}", extra={"job": job.value})
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def _snapshot_loop(self):
        """Full rescore and snapshot once per calendar day."""
        while not self._shutdown.is_set():
            today = self.runner.recorder.snapshot_date(utcnow())
            if today != self._last_snapshot_date:
                try:
                    await self.runner.run(JobRequest(job=JobType.RECALCULATE_SCORES))
                    await self.runner.run(JobRequest(job=JobType.DAILY_SNAPSHOT))
                    self._last_snapshot_date = today
                except Exception as e:
                    logger.error(f"Daily snapshot failed: {e}")
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=60)
            except asyncio.TimeoutError:
                pass

    async def _run_dashboard(self):
        """Run the FastAPI dashboard."""
        import uvicorn
        config = uvicorn.Config(
            dashboard_app,
            host="0.0.0.0",
            port=self.config.DASHBOARD_PORT,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        logger.info("Dashboard starting", extra={"port": self.config.DASHBOARD_PORT})
        await server.serve()

    def shutdown(self):
        self._shutdown.set()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Tip lifecycle and creator scoring worker")
    parser.add_argument(
        "--job",
        choices=[j.value for j in JobType],
        help="Run a single job and exit instead of the scheduled loop",
    )
    parser.add_argument("--creator-id", help="Limit recalculate-scores/daily-snapshot to one creator")
    parser.add_argument("--no-dashboard", action="store_true", help="Do not serve the API")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    config = Config.from_env()
    setup_logging("tipscore", config.LOG_LEVEL)
    worker = TipScoreWorker(config)

    if args.job:
        result = asyncio.run(worker.run_once(args.job, args.creator_id))
        logger.info("One-shot job finished", extra={"result": result})
        return

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig, frame):
        logger.info(f"Received signal {sig}")
        loop.call_soon_threadsafe(worker.shutdown)

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        loop.run_until_complete(worker.start(serve_dashboard=not args.no_dashboard))
    except KeyboardInterrupt:
        worker.shutdown()
        loop.run_until_complete(asyncio.sleep(1))
    finally:
        loop.close()


if __name__ == "__main__":
    main()
