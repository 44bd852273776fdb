"""SQLite table definitions."""

CREATE_TIPS_TABLE = """
CREATE TABLE IF NOT EXISTS tips (
    id TEXT PRIMARY KEY,
    creator_id TEXT NOT NULL,
    instrument_id TEXT NOT NULL,
    direction TEXT NOT NULL,
    entry_price REAL NOT NULL,
    target1 REAL NOT NULL,
    target2 REAL,
    target3 REAL,
    stop_loss REAL NOT NULL,
    timeframe TEXT NOT NULL,
    posted_at TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'PENDING_REVIEW',
    return_pct REAL,
    exit_price REAL,
    resolved_at TEXT,
    status_updated_at TEXT,
    stop_loss_hit_at TEXT,
    needs_review INTEGER NOT NULL DEFAULT 0,
    review_reason TEXT,
    version INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);
"""

CREATE_TIPS_STATUS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_tips_status_expires ON tips (status, expires_at);
"""

CREATE_TIPS_CREATOR_INDEX = """
CREATE INDEX IF NOT EXISTS idx_tips_creator_status ON tips (creator_id, status);
"""

CREATE_CREATOR_SCORES_TABLE = """
CREATE TABLE IF NOT EXISTS creator_scores (
    creator_id TEXT PRIMARY KEY,
    accuracy_score REAL NOT NULL,
    risk_adjusted_score REAL NOT NULL,
    consistency_score REAL NOT NULL,
    volume_factor_score REAL NOT NULL,
    rmt_score REAL NOT NULL,
    confidence_interval REAL NOT NULL,
    accuracy_rate REAL NOT NULL,
    weighted_accuracy_rate REAL NOT NULL,
    avg_return_pct REAL NOT NULL,
    avg_risk_reward_ratio REAL NOT NULL,
    win_streak INTEGER NOT NULL DEFAULT 0,
    loss_streak INTEGER NOT NULL DEFAULT 0,
    best_tip_return_pct REAL,
    worst_tip_return_pct REAL,
    intraday_accuracy REAL,
    swing_accuracy REAL,
    positional_accuracy REAL,
    long_term_accuracy REAL,
    total_scored_tips INTEGER NOT NULL,
    tier TEXT NOT NULL,
    is_provisional INTEGER NOT NULL,
    score_period_start TEXT NOT NULL,
    score_period_end TEXT NOT NULL,
    calculated_at TEXT NOT NULL
);
"""

CREATE_SCORE_SNAPSHOTS_TABLE = """
CREATE TABLE IF NOT EXISTS score_snapshots (
    creator_id TEXT NOT NULL,
    date TEXT NOT NULL,
    rmt_score REAL NOT NULL,
    accuracy_rate REAL NOT NULL,
    total_scored_tips INTEGER NOT NULL,
    confidence_interval REAL NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    PRIMARY KEY (creator_id, date)
);
"""

CREATE_INSTRUMENT_PRICES_TABLE = """
CREATE TABLE IF NOT EXISTS instrument_prices (
    instrument_id TEXT NOT NULL,
    price_at TEXT NOT NULL,
    last_price REAL NOT NULL,
    PRIMARY KEY (instrument_id, price_at)
);
"""

ALL_TABLES = (
    CREATE_TIPS_TABLE,
    CREATE_TIPS_STATUS_INDEX,
    CREATE_TIPS_CREATOR_INDEX,
    CREATE_CREATOR_SCORES_TABLE,
    CREATE_SCORE_SNAPSHOTS_TABLE,
    CREATE_INSTRUMENT_PRICES_TABLE,
)
