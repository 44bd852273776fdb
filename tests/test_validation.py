"""Tests for lifecycle.validation."""
from datetime import timedelta

import pytest

from helpers import BASE, make_tip_create
from lifecycle.validation import compute_expires_at, validate_tip_levels
from shared.errors import InvalidTipError
from shared.schemas import TipDirection, TipTimeframe


def test_valid_long_ladder():
    validate_tip_levels(TipDirection.LONG, 100, 110, 120, 130, 90)


def test_valid_short_ladder():
    validate_tip_levels(TipDirection.SHORT, 100, 90, 80, None, 110)


def test_long_target_below_entry_rejected():
    with pytest.raises(InvalidTipError):
        validate_tip_levels(TipDirection.LONG, 100, 95, None, None, 90)


def test_long_stop_above_entry_rejected():
    with pytest.raises(InvalidTipError):
        validate_tip_levels(TipDirection.LONG, 100, 110, None, None, 105)


def test_short_target_above_entry_rejected():
    with pytest.raises(InvalidTipError):
        validate_tip_levels(TipDirection.SHORT, 100, 105, None, None, 110)


def test_target2_must_extend_target1():
    with pytest.raises(InvalidTipError):
        validate_tip_levels(TipDirection.LONG, 100, 120, 115, None, 90)


def test_target3_requires_target2():
    with pytest.raises(InvalidTipError, match="target3 requires target2"):
        validate_tip_levels(TipDirection.LONG, 100, 110, None, 130, 90)


def test_error_carries_tip_id():
    with pytest.raises(InvalidTipError) as exc:
        validate_tip_levels(TipDirection.LONG, 100, 95, None, None, 90, tip_id="tip-9")
    assert exc.value.tip_id == "tip-9"
    assert "tip-9" in str(exc.value)


def test_tip_create_rejects_invalid_levels():
    with pytest.raises(InvalidTipError):
        make_tip_create(target1=95.0)


@pytest.mark.parametrize("timeframe,days", [
    (TipTimeframe.INTRADAY, 1),
    (TipTimeframe.SWING, 14),
    (TipTimeframe.POSITIONAL, 90),
    (TipTimeframe.LONG_TERM, 365),
])
def test_expiry_by_timeframe(timeframe, days):
    assert compute_expires_at(timeframe, BASE) == BASE + timedelta(days=days)
