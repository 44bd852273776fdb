"""Level checks and expiry computation for new tips."""
from datetime import datetime, timedelta
from typing import Optional

from shared.errors import InvalidTipError
from shared.schemas import TipDirection, TipTimeframe

TIMEFRAME_EXPIRY_DAYS = {
    TipTimeframe.INTRADAY: 1,
    TipTimeframe.SWING: 14,
    TipTimeframe.POSITIONAL: 90,
    TipTimeframe.LONG_TERM: 365,
}


def compute_expires_at(timeframe: TipTimeframe, posted_at: datetime) -> datetime:
    return posted_at + timedelta(days=TIMEFRAME_EXPIRY_DAYS[TipTimeframe(timeframe)])


def validate_tip_levels(
    direction: TipDirection,
    entry_price: float,
    target1: float,
    target2: Optional[float],
    target3: Optional[float],
    stop_loss: float,
    tip_id: Optional[str] = None,
) -> None:
    """Raise InvalidTipError unless the levels form a valid call.

    LONG:  stop_loss < entry_price < target1 < target2 < target3
    SHORT: stop_loss > entry_price > target1 > target2 > target3
    """
    if min(entry_price, target1, stop_loss) <= 0:
        raise InvalidTipError("prices must be positive", tip_id)
    if target3 is not None and target2 is None:
        raise InvalidTipError("target3 requires target2", tip_id)

    ladder = [stop_loss, entry_price, target1]
    if target2 is not None:
        ladder.append(target2)
    if target3 is not None:
        ladder.append(target3)

    if TipDirection(direction) == TipDirection.LONG:
        ordered = all(a < b for a, b in zip(ladder, ladder[1:]))
        expected = "stop_loss < entry_price < target1 < target2 < target3"
    else:
        ordered = all(a > b for a, b in zip(ladder, ladder[1:]))
        expected = "stop_loss > entry_price > target1 > target2 > target3"

    if not ordered:
        raise InvalidTipError(
            f"{TipDirection(direction).value} levels must satisfy {expected}", tip_id
        )
