"""Win/loss runs over resolved tips in close order."""
from typing import Sequence

from scoring.outcomes import is_win
from shared.schemas import ResolvedTip


def chronological(tips: Sequence[ResolvedTip]) -> list[ResolvedTip]:
    """Close time, then tip id so equal timestamps order the same way every run."""
    return sorted(tips, key=lambda t: (t.closed_at, t.id))


def current_streaks(tips: Sequence[ResolvedTip]) -> tuple[int, int]:
    """(win_streak, loss_streak) counted back from the latest tip; one of them is 0."""
    ordered = chronological(tips)
    if not ordered:
        return 0, 0
    latest_win = is_win(ordered[-1])
    run = 0
    for tip in reversed(ordered):
        if is_win(tip) != latest_win:
            break
        run += 1
    return (run, 0) if latest_win else (0, run)


def longest_runs(tips: Sequence[ResolvedTip]) -> tuple[int, int]:
    """Longest win run and longest loss run anywhere in the history."""
    best_win = best_loss = 0
    run = 0
    previous = None
    for tip in chronological(tips):
        won = is_win(tip)
        run = run + 1 if won == previous else 1
        previous = won
        if won:
            best_win = max(best_win, run)
        else:
            best_loss = max(best_loss, run)
    return best_win, best_loss
