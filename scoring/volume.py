"""Volume component (10%): log-scaled count of resolved tips."""
import math

from scoring.thresholds import MAX_EXPECTED_TIPS, SCORE_MAX, SCORE_MIN


def volume_factor_score(total_tips: int, max_expected: int = MAX_EXPECTED_TIPS) -> float:
    if total_tips <= 1:
        return 0.0
    score = math.log10(total_tips) / math.log10(max_expected) * 100.0
    return max(SCORE_MIN, min(SCORE_MAX, score))
