"""Constants for the creator scoring layer."""

# Composite weights (sum to 1.0)
WEIGHT_ACCURACY = 0.4
WEIGHT_RISK_ADJUSTED = 0.3
WEIGHT_CONSISTENCY = 0.2
WEIGHT_VOLUME = 0.1

SCORE_MIN = 0.0
SCORE_MAX = 100.0

# Below this many resolved tips the score is provisional
MIN_TIPS_FOR_RATING = 20

# Accuracy recency decay
RECENCY_HALF_LIFE_DAYS = 90.0

# z for a 95% band
CONFIDENCE_Z = 1.96

# Tip count that saturates the volume factor
MAX_EXPECTED_TIPS = 2000

# Average reward/risk mapped linearly onto 0-100
RISK_ADJUSTED_FLOOR = -2.0
RISK_ADJUSTED_CEILING = 5.0

# Consistency blend
CONSISTENCY_MIN_MONTHS = 3
CONSISTENCY_NEUTRAL = 50.0
WEIGHT_MONTHLY_STABILITY = 0.4
WEIGHT_RETURN_DISPERSION = 0.4
WEIGHT_STREAK_BALANCE = 0.2
# Return stddev (%) at which dispersion scores 50
DISPERSION_SCALE_PCT = 10.0

# Resolved-tip count needed for each tier; first match from the top wins
TIER_THRESHOLDS = (
    ("DIAMOND", 1000),
    ("PLATINUM", 500),
    ("GOLD", 200),
    ("SILVER", 50),
    ("BRONZE", MIN_TIPS_FOR_RATING),
)
