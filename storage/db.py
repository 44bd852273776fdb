"""SQLite database via aiosqlite."""
import asyncio
import logging
import os
import sqlite3
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import aiosqlite

from lifecycle.state_machine import Transition
from lifecycle.validation import compute_expires_at, validate_tip_levels
from shared.errors import StaleTipError, StorageBusyError, TipNotFoundError
from shared.schemas import (
    EVALUABLE_STATUSES,
    SCORED_STATUSES,
    CreatorScore,
    ResolvedTip,
    ScoreSnapshot,
    Tip,
    TipCreate,
    TipStatus,
    utcnow,
)
from storage.models import ALL_TABLES

logger = logging.getLogger(__name__)

_TIP_DATETIME_FIELDS = (
    "posted_at", "expires_at", "resolved_at", "status_updated_at",
    "stop_loss_hit_at", "created_at",
)
_SCORE_DATETIME_FIELDS = ("score_period_start", "score_period_end", "calculated_at")


def _ts(value: Optional[datetime]) -> Optional[str]:
    """Store datetimes as UTC ISO strings so they sort lexicographically."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _in_clause(statuses) -> str:
    return ", ".join(f"'{TipStatus(s).value}'" for s in statuses)


def _row_to_tip(row) -> Tip:
    data = dict(row)
    for key in _TIP_DATETIME_FIELDS:
        data[key] = _dt(data[key])
    data["needs_review"] = bool(data["needs_review"])
    return Tip(**data)


def _row_to_resolved(row) -> ResolvedTip:
    data = dict(row)
    return ResolvedTip(
        id=data["id"],
        status=data["status"],
        direction=data["direction"],
        timeframe=data["timeframe"],
        entry_price=data["entry_price"],
        target1=data["target1"],
        target2=data["target2"],
        target3=data["target3"],
        stop_loss=data["stop_loss"],
        exit_price=data["exit_price"],
        return_pct=data["return_pct"],
        posted_at=_dt(data["posted_at"]),
        closed_at=_dt(data["resolved_at"] or data["status_updated_at"]),
    )


def _row_to_score(row) -> CreatorScore:
    data = dict(row)
    for key in _SCORE_DATETIME_FIELDS:
        data[key] = _dt(data[key])
    data["is_provisional"] = bool(data["is_provisional"])
    return CreatorScore(**data)


class Database:
    """Async SQLite store for tips, creator scores and snapshots.

    The connection runs in autocommit mode; every write goes through
    ``transaction()``, which serialises writers on this connection and maps
    SQLite lock timeouts to ``StorageBusyError``.
    """

    def __init__(self, db_path: str = "data/tipscore.db", busy_timeout: float = 5.0):
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self._db: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()
        self._tx_owner: Optional[asyncio.Task] = None

    async def init(self):
        """Initialize database and create tables."""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._db = await aiosqlite.connect(
            self.db_path, timeout=self.busy_timeout, isolation_level=None
        )
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA journal_mode=WAL")
        for ddl in ALL_TABLES:
            await self._db.execute(ddl)
        logger.info("Database initialized", extra={"path": self.db_path})

    async def close(self):
        if self._db:
            await self._db.close()
            self._db = None

    @asynccontextmanager
    async def transaction(self):
        """Run the enclosed statements as one atomic unit.

        Nested use from the task that already owns the transaction joins it.
        """
        task = asyncio.current_task()
        if self._tx_owner is not None and self._tx_owner is task:
            yield
            return

        async with self._write_lock:
            self._tx_owner = task
            try:
                try:
                    await self._db.execute("BEGIN IMMEDIATE")
                except sqlite3.OperationalError as e:
                    raise StorageBusyError(f"Could not begin transaction: {e}") from e
                try:
                    yield
                except BaseException:
                    await self._db.execute("ROLLBACK")
                    raise
                try:
                    await self._db.execute("COMMIT")
                except sqlite3.OperationalError as e:
                    await self._db.execute("ROLLBACK")
                    raise StorageBusyError(f"Could not commit transaction: {e}") from e
            finally:
                self._tx_owner = None

    async def _fetchall(self, sql: str, params=()) -> list:
        cursor = await self._db.execute(sql, params)
        rows = await cursor.fetchall()
        await cursor.close()
        return rows

    async def _fetchone(self, sql: str, params=()):
        cursor = await self._db.execute(sql, params)
        row = await cursor.fetchone()
        await cursor.close()
        return row

    # ---- tips -------------------------------------------------------------

    async def insert_tip(self, tip: TipCreate, tip_id: Optional[str] = None) -> Tip:
        """Store a new call in PENDING_REVIEW and return the persisted row."""
        now = utcnow()
        record = Tip(
            id=tip_id or f"tip-{uuid.uuid4().hex[:12]}",
            expires_at=compute_expires_at(tip.timeframe, tip.posted_at),
            status=TipStatus.PENDING_REVIEW,
            created_at=now,
            **tip.model_dump(),
        )
        params = record.model_dump()
        params.update(
            direction=record.direction.value,
            timeframe=record.timeframe.value,
            status=record.status.value,
            needs_review=0,
        )
        for key in _TIP_DATETIME_FIELDS:
            params[key] = _ts(params[key])
        columns = ", ".join(params)
        placeholders = ", ".join(f":{k}" for k in params)
        async with self.transaction():
            await self._db.execute(
                f"INSERT INTO tips ({columns}) VALUES ({placeholders})", params
            )
        logger.debug("Tip stored", extra={"tip_id": record.id, "creator_id": record.creator_id})
        return record

    async def get_tip(self, tip_id: str) -> Optional[Tip]:
        row = await self._fetchone("SELECT * FROM tips WHERE id = ?", (tip_id,))
        return _row_to_tip(row) if row else None

    async def review_tip(self, tip_id: str, approve: bool, at: Optional[datetime] = None) -> Tip:
        """Record the review decision for a pending tip.

        Approval re-checks the levels, so an invalid call can never become
        ACTIVE. Deciding an already-decided tip is a no-op.
        """
        at = at or utcnow()
        async with self.transaction():
            tip = await self.get_tip(tip_id)
            if tip is None:
                raise TipNotFoundError(tip_id)
            if tip.status != TipStatus.PENDING_REVIEW:
                return tip
            if approve:
                validate_tip_levels(
                    tip.direction, tip.entry_price, tip.target1, tip.target2,
                    tip.target3, tip.stop_loss, tip_id=tip.id,
                )
            status = TipStatus.ACTIVE if approve else TipStatus.REJECTED
            await self._db.execute(
                """UPDATE tips SET status = ?, status_updated_at = ?, version = version + 1
                   WHERE id = ?""",
                (status.value, _ts(at), tip_id),
            )
        return await self.get_tip(tip_id)

    async def get_evaluable_tips(self, now: datetime) -> list[Tip]:
        """Unresolved tips still inside their window."""
        rows = await self._fetchall(
            f"""SELECT * FROM tips
                WHERE status IN ({_in_clause(EVALUABLE_STATUSES)})
                  AND resolved_at IS NULL AND needs_review = 0
                  AND expires_at > ?
                ORDER BY instrument_id, id""",
            (_ts(now),),
        )
        return [_row_to_tip(r) for r in rows]

    async def get_expired_tips(self, now: datetime) -> list[Tip]:
        """Unresolved tips whose deadline has passed."""
        rows = await self._fetchall(
            f"""SELECT * FROM tips
                WHERE status IN ({_in_clause(EVALUABLE_STATUSES)})
                  AND resolved_at IS NULL AND needs_review = 0
                  AND expires_at <= ?
                ORDER BY expires_at, id""",
            (_ts(now),),
        )
        return [_row_to_tip(r) for r in rows]

    async def apply_transition(self, tip: Tip, result: Transition, at: datetime) -> Tip:
        """Persist a decided transition with a compare-and-set on ``version``.

        Raises StaleTipError when another writer got there first.
        """
        if not result.changed:
            return tip
        updates = {
            "status": result.status.value,
            "status_updated_at": _ts(at),
            "version": tip.version + 1,
        }
        if result.terminal:
            updates.update(
                return_pct=result.return_pct,
                exit_price=result.exit_price,
                resolved_at=_ts(at),
            )
        if result.stop_loss_after_target:
            updates["stop_loss_hit_at"] = _ts(at)
        assignments = ", ".join(f"{k} = :{k}" for k in updates)

        async with self.transaction():
            cursor = await self._db.execute(
                f"""UPDATE tips SET {assignments}
                    WHERE id = :tip_id AND version = :expected_version
                      AND resolved_at IS NULL""",
                {**updates, "tip_id": tip.id, "expected_version": tip.version},
            )
            if cursor.rowcount == 0:
                raise StaleTipError(tip.id, tip.version)
        return await self.get_tip(tip.id)

    async def flag_tip(self, tip_id: str, reason: str):
        """Park a tip for manual resolution; it drops out of all sweeps."""
        async with self.transaction():
            await self._db.execute(
                """UPDATE tips SET needs_review = 1, review_reason = ?, version = version + 1
                   WHERE id = ? AND needs_review = 0""",
                (reason, tip_id),
            )
        logger.warning("Tip flagged for review", extra={"tip_id": tip_id, "reason": reason})

    async def get_status_counts(self) -> dict[str, int]:
        rows = await self._fetchall("SELECT status, COUNT(*) AS n FROM tips GROUP BY status")
        return {r["status"]: r["n"] for r in rows}

    async def get_creator_ids(self) -> list[str]:
        rows = await self._fetchall("SELECT DISTINCT creator_id FROM tips ORDER BY creator_id")
        return [r["creator_id"] for r in rows]

    async def get_resolved_tips(
        self, creator_id: str, since: datetime, until: datetime
    ) -> list[ResolvedTip]:
        """Resolved tips for a creator closed within [since, until], oldest first."""
        rows = await self._fetchall(
            f"""SELECT * FROM tips
                WHERE creator_id = ?
                  AND status IN ({_in_clause(SCORED_STATUSES)})
                  AND COALESCE(resolved_at, status_updated_at) >= ?
                  AND COALESCE(resolved_at, status_updated_at) <= ?
                ORDER BY COALESCE(resolved_at, status_updated_at), id""",
            (creator_id, _ts(since), _ts(until)),
        )
        return [_row_to_resolved(r) for r in rows]

    # ---- prices -----------------------------------------------------------

    async def record_price(self, instrument_id: str, price: float, at: datetime):
        """Append an observed price; a second sample at the same instant replaces the first."""
        async with self.transaction():
            await self._db.execute(
                """INSERT INTO instrument_prices (instrument_id, price_at, last_price)
                   VALUES (?, ?, ?)
                   ON CONFLICT(instrument_id, price_at) DO UPDATE SET
                     last_price = excluded.last_price""",
                (instrument_id, _ts(at), price),
            )

    async def get_last_price(
        self, instrument_id: str, as_of: Optional[datetime] = None
    ) -> Optional[float]:
        """Latest observed price, or the latest one at or before ``as_of``."""
        if as_of is None:
            row = await self._fetchone(
                """SELECT last_price FROM instrument_prices WHERE instrument_id = ?
                   ORDER BY price_at DESC LIMIT 1""",
                (instrument_id,),
            )
        else:
            row = await self._fetchone(
                """SELECT last_price FROM instrument_prices
                   WHERE instrument_id = ? AND price_at <= ?
                   ORDER BY price_at DESC LIMIT 1""",
                (instrument_id, _ts(as_of)),
            )
        return row["last_price"] if row else None

    async def prune_prices(self, before: datetime) -> int:
        """Drop price samples older than ``before``, keeping each instrument's latest."""
        async with self.transaction():
            cursor = await self._db.execute(
                """DELETE FROM instrument_prices
                   WHERE price_at < ?
                     AND price_at < (SELECT MAX(p.price_at) FROM instrument_prices p
                                     WHERE p.instrument_id = instrument_prices.instrument_id)""",
                (_ts(before),),
            )
            return cursor.rowcount

    # ---- creator scores ---------------------------------------------------

    async def replace_creator_score(self, creator_id: str, score: Optional[CreatorScore]):
        """Swap in a new score record; ``None`` removes it (creator is unrated)."""
        async with self.transaction():
            if score is None:
                await self._db.execute(
                    "DELETE FROM creator_scores WHERE creator_id = ?", (creator_id,)
                )
                return
            params = score.model_dump()
            params.update(tier=score.tier.value, is_provisional=int(score.is_provisional))
            for key in _SCORE_DATETIME_FIELDS:
                params[key] = _ts(params[key])
            columns = ", ".join(params)
            placeholders = ", ".join(f":{k}" for k in params)
            await self._db.execute(
                f"INSERT OR REPLACE INTO creator_scores ({columns}) VALUES ({placeholders})",
                params,
            )

    async def get_creator_score(self, creator_id: str) -> Optional[CreatorScore]:
        row = await self._fetchone(
            "SELECT * FROM creator_scores WHERE creator_id = ?", (creator_id,)
        )
        return _row_to_score(row) if row else None

    async def get_all_creator_scores(self) -> list[CreatorScore]:
        rows = await self._fetchall("SELECT * FROM creator_scores ORDER BY creator_id")
        return [_row_to_score(r) for r in rows]

    async def get_leaderboard(self, limit: int = 50, include_provisional: bool = False) -> list[CreatorScore]:
        where = "" if include_provisional else "WHERE is_provisional = 0"
        rows = await self._fetchall(
            f"""SELECT * FROM creator_scores {where}
                ORDER BY rmt_score DESC, total_scored_tips DESC, creator_id
                LIMIT ?""",
            (limit,),
        )
        return [_row_to_score(r) for r in rows]

    # ---- snapshots --------------------------------------------------------

    async def upsert_snapshot(self, snapshot: ScoreSnapshot):
        """Write the (creator_id, date) row, replacing a same-day earlier run."""
        async with self.transaction():
            await self._db.execute(
                """INSERT INTO score_snapshots
                   (creator_id, date, rmt_score, accuracy_rate, total_scored_tips,
                    confidence_interval, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(creator_id, date) DO UPDATE SET
                     rmt_score = excluded.rmt_score,
                     accuracy_rate = excluded.accuracy_rate,
                     total_scored_tips = excluded.total_scored_tips,
                     confidence_interval = excluded.confidence_interval,
                     created_at = excluded.created_at""",
                (
                    snapshot.creator_id, snapshot.date.isoformat(),
                    snapshot.rmt_score, snapshot.accuracy_rate,
                    snapshot.total_scored_tips, snapshot.confidence_interval,
                    _ts(snapshot.created_at),
                ),
            )

    async def get_snapshots(self, creator_id: str, limit: int = 365) -> list[ScoreSnapshot]:
        """Most recent ``limit`` snapshots, oldest first."""
        rows = await self._fetchall(
            """SELECT * FROM (
                 SELECT * FROM score_snapshots WHERE creator_id = ?
                 ORDER BY date DESC LIMIT ?
               ) ORDER BY date ASC""",
            (creator_id, limit),
        )
        snapshots = []
        for r in rows:
            data = dict(r)
            data["created_at"] = _dt(data["created_at"])
            snapshots.append(ScoreSnapshot(**data))
        return snapshots
