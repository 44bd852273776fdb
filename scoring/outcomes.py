"""Win/loss classification and per-tip return for resolved tips."""
from lifecycle.state_machine import compute_return_pct
from shared.schemas import TARGET_HIT_STATUSES, ResolvedTip, TipStatus


def _reached_level(tip: ResolvedTip):
    if tip.status == TipStatus.TARGET_1_HIT:
        return tip.target1
    if tip.status == TipStatus.TARGET_2_HIT:
        return tip.target2
    if tip.status == TipStatus.ALL_TARGETS_HIT:
        return tip.target3
    return None


def tip_return(tip: ResolvedTip) -> float:
    """Stored return, else the return at the furthest target reached, else at the exit price."""
    if tip.return_pct is not None:
        return tip.return_pct
    level = _reached_level(tip)
    if level is None:
        level = tip.exit_price
    if level is None:
        return 0.0
    return compute_return_pct(tip.direction, tip.entry_price, level)


def is_win(tip: ResolvedTip) -> bool:
    if tip.status in TARGET_HIT_STATUSES:
        return True
    if tip.status == TipStatus.EXPIRED:
        return tip_return(tip) > 0
    return False


def risk_pct(tip: ResolvedTip) -> float:
    return abs(tip.entry_price - tip.stop_loss) / tip.entry_price * 100.0
