"""FastAPI read API for tips, creator scores and job triggers."""
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
from typing import Optional

from jobs.runner import JobRequest, JobRunner
from shared.errors import TransientError, UnknownJobError
from storage.db import Database

app = FastAPI(title="Tipscore API")

# Shared instances (set by worker.py)
_db: Database | None = None
_runner: JobRunner | None = None


class JobTrigger(BaseModel):
    job: str
    creator_id: Optional[str] = None


def set_database(db: Database):
    global _db
    _db = db


def set_runner(runner: JobRunner):
    global _runner
    _runner = runner


def _get_db() -> Database:
    if _db is None:
        raise RuntimeError("Database not initialized")
    return _db


@app.get("/api/status")
async def api_status():
    db = _get_db()
    counts = await db.get_status_counts()
    return {
        "status": "running",
        "tips": counts,
        "total_tips": sum(counts.values()),
        "jobs_enabled": _runner is not None,
    }


@app.get("/api/tips/{tip_id}")
async def api_tip(tip_id: str):
    tip = await _get_db().get_tip(tip_id)
    if tip is None:
        raise HTTPException(status_code=404, detail="Tip not found")
    return {
        "id": tip.id,
        "creator_id": tip.creator_id,
        "instrument_id": tip.instrument_id,
        "status": tip.status.value,
        "resolved": tip.is_resolved,
        "return_pct": tip.return_pct,
        "exit_price": tip.exit_price,
        "resolved_at": tip.resolved_at,
        "expires_at": tip.expires_at,
        "needs_review": tip.needs_review,
    }


@app.get("/api/creators/{creator_id}/score")
async def api_creator_score(creator_id: str):
    score = await _get_db().get_creator_score(creator_id)
    if score is None:
        return {"creator_id": creator_id, "rated": False, "status": "unrated"}
    return {"rated": not score.is_provisional, **score.model_dump(mode="json")}


@app.get("/api/creators/{creator_id}/snapshots")
async def api_creator_snapshots(creator_id: str, limit: int = 365):
    snapshots = await _get_db().get_snapshots(creator_id, limit=limit)
    return {
        "creator_id": creator_id,
        "snapshots": [s.model_dump(mode="json") for s in snapshots],
    }


@app.get("/api/leaderboard")
async def api_leaderboard(limit: int = 50):
    scores = await _get_db().get_leaderboard(limit=limit)
    return {
        "creators": [
            {
                "rank": i + 1,
                "creator_id": s.creator_id,
                "rmt_score": s.rmt_score,
                "confidence_interval": s.confidence_interval,
                "accuracy_rate": s.accuracy_rate,
                "total_scored_tips": s.total_scored_tips,
                "tier": s.tier.value,
            }
            for i, s in enumerate(scores)
        ]
    }


@app.post("/api/jobs")
async def api_trigger_job(trigger: JobTrigger):
    if _runner is None:
        raise HTTPException(status_code=503, detail="Job runner not available")
    try:
        request = JobRequest.from_payload(trigger.model_dump())
    except UnknownJobError as e:
        raise HTTPException(status_code=400, detail=str(e))
    try:
        result = await _runner.run(request)
    except TransientError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return result.model_dump(mode="json")
