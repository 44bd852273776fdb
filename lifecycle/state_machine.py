"""Tip lifecycle state machine.

One pure function, ``transition(state, signal)``, decides the next status of a
tip from its current state and a market signal. It never looks at the previous
run, so re-applying the same signal to the same state always yields the same
answer; the caller persists the result only when ``changed`` is set.

Target rule: the furthest target reached at the time of the check wins. A
single price sample beyond target2 moves an ACTIVE tip straight to
TARGET_2_HIT; no intraday path between samples is inferred.
"""
from dataclasses import dataclass
from typing import Optional, Union

from shared.schemas import EVALUABLE_STATUSES, Tip, TipDirection, TipStatus

# How many targets a status says were reached
_REACHED = {
    TipStatus.ACTIVE: 0,
    TipStatus.TARGET_1_HIT: 1,
    TipStatus.TARGET_2_HIT: 2,
    TipStatus.ALL_TARGETS_HIT: 3,
}

_STATUS_FOR_REACHED = {
    1: TipStatus.TARGET_1_HIT,
    2: TipStatus.TARGET_2_HIT,
    3: TipStatus.ALL_TARGETS_HIT,
}


@dataclass(frozen=True)
class TipState:
    direction: TipDirection
    entry_price: float
    target1: float
    target2: Optional[float]
    target3: Optional[float]
    stop_loss: float
    status: TipStatus
    resolved: bool = False

    @classmethod
    def from_tip(cls, tip: Tip) -> "TipState":
        return cls(
            direction=tip.direction,
            entry_price=tip.entry_price,
            target1=tip.target1,
            target2=tip.target2,
            target3=tip.target3,
            stop_loss=tip.stop_loss,
            status=tip.status,
            resolved=tip.is_resolved,
        )

    @property
    def targets(self) -> list[float]:
        levels = [self.target1]
        if self.target2 is not None:
            levels.append(self.target2)
            if self.target3 is not None:
                levels.append(self.target3)
        return levels


@dataclass(frozen=True)
class PriceObserved:
    """Last traded price seen by the evaluator."""
    price: float


@dataclass(frozen=True)
class DeadlinePassed:
    """The tip's expiry passed; ``last_price`` is the last known price."""
    last_price: float


MarketSignal = Union[PriceObserved, DeadlinePassed]


@dataclass(frozen=True)
class Transition:
    status: TipStatus
    changed: bool
    terminal: bool = False
    exit_price: Optional[float] = None
    return_pct: Optional[float] = None
    stop_loss_after_target: bool = False


def compute_return_pct(direction: TipDirection, entry_price: float, exit_price: float) -> float:
    """Percentage return of a call, positive when the call was right."""
    raw = (exit_price - entry_price) / entry_price * 100.0
    return -raw if direction == TipDirection.SHORT else raw


def _crossed(direction: TipDirection, price: float, level: float) -> bool:
    return price >= level if direction == TipDirection.LONG else price <= level


def _stop_hit(direction: TipDirection, price: float, stop_loss: float) -> bool:
    return price <= stop_loss if direction == TipDirection.LONG else price >= stop_loss


def furthest_target_reached(state: TipState, price: float) -> int:
    """Number of targets (in ladder order) that ``price`` has reached."""
    reached = 0
    for level in state.targets:
        if not _crossed(state.direction, price, level):
            break
        reached += 1
    return reached


def _close(state: TipState, status: TipStatus, exit_price: float, **kwargs) -> Transition:
    return Transition(
        status=status,
        changed=True,
        terminal=True,
        exit_price=exit_price,
        return_pct=compute_return_pct(state.direction, state.entry_price, exit_price),
        **kwargs,
    )


def transition(state: TipState, signal: MarketSignal) -> Transition:
    """Decide the next lifecycle status for ``state`` given ``signal``."""
    if state.resolved or state.status not in EVALUABLE_STATUSES:
        return Transition(status=state.status, changed=False)

    if isinstance(signal, DeadlinePassed):
        if signal.last_price <= 0:
            raise ValueError(f"last_price must be positive, got {signal.last_price}")
        return _close(state, TipStatus.EXPIRED, signal.last_price)

    if not isinstance(signal, PriceObserved):
        raise TypeError(f"Unknown market signal: {signal!r}")
    if signal.price <= 0:
        raise ValueError(f"price must be positive, got {signal.price}")

    already = _REACHED[state.status]
    targets = state.targets

    if _stop_hit(state.direction, signal.price, state.stop_loss):
        if already == 0:
            return _close(state, TipStatus.STOPLOSS_HIT, state.stop_loss)
        # A reached target is never downgraded; the call closes at that target.
        return _close(
            state, state.status, targets[already - 1], stop_loss_after_target=True
        )

    reached = furthest_target_reached(state, signal.price)
    if reached <= already:
        return Transition(status=state.status, changed=False)

    status = _STATUS_FOR_REACHED[reached]
    if reached == len(targets):
        return _close(state, status, targets[reached - 1])
    return Transition(status=status, changed=True)
