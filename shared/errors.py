"""Error taxonomy for the tip lifecycle and scoring jobs."""
from typing import Optional


class TipScoreError(Exception):
    """Base exception for all tipscore errors."""
    pass


class TransientError(TipScoreError):
    """A failure worth retrying: the job runner backs off and tries again."""
    pass


class PriceUnavailableError(TransientError):
    """The price feed could not be reached or returned no usable quote."""

    def __init__(self, instrument_id: str, reason: str = "unavailable"):
        self.instrument_id = instrument_id
        self.reason = reason
        super().__init__(f"Price unavailable for {instrument_id}: {reason}")


class StorageBusyError(TransientError):
    """The store timed out or was locked by another writer."""
    pass


class InstrumentNotFoundError(TipScoreError):
    """The instrument no longer exists. Affected tips need manual resolution."""

    def __init__(self, instrument_id: str):
        self.instrument_id = instrument_id
        super().__init__(f"Instrument not found: {instrument_id}")


class InvalidTipError(TipScoreError):
    """Tip levels are inconsistent with its direction."""

    def __init__(self, reason: str, tip_id: Optional[str] = None):
        self.reason = reason
        self.tip_id = tip_id
        prefix = f"Invalid tip {tip_id}" if tip_id else "Invalid tip"
        super().__init__(f"{prefix}: {reason}")


class StaleTipError(TipScoreError):
    """A compare-and-set on the tip version lost against a concurrent writer."""

    def __init__(self, tip_id: str, expected_version: int):
        self.tip_id = tip_id
        self.expected_version = expected_version
        super().__init__(f"Tip {tip_id} changed since version {expected_version}")


class TipNotFoundError(TipScoreError):
    def __init__(self, tip_id: str):
        self.tip_id = tip_id
        super().__init__(f"Tip not found: {tip_id}")


class UnknownJobError(TipScoreError):
    """The trigger payload names a job type the runner does not know."""
    pass
