"""Last-price lookups for tip evaluation."""
import logging
from typing import Optional, Protocol

import httpx

from shared.errors import InstrumentNotFoundError, PriceUnavailableError

logger = logging.getLogger(__name__)


class PriceFeed(Protocol):
    async def get_last_price(self, instrument_id: str) -> Optional[float]:
        """Return the last traded price, or None when it is temporarily unavailable.

        Raises InstrumentNotFoundError when the instrument no longer exists and
        PriceUnavailableError when the feed itself cannot be reached.
        """
        ...


class HttpPriceFeed:
    """Quote endpoint client: ``GET {base_url}/quotes/{instrument_id}`` -> ``{"last_price": ...}``."""

    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def get_last_price(self, instrument_id: str) -> Optional[float]:
        client = await self._get_client()
        try:
            resp = await client.get(f"/quotes/{instrument_id}")
        except httpx.TransportError as e:
            raise PriceUnavailableError(instrument_id, f"feed unreachable: {e}") from e

        if resp.status_code == 404:
            raise InstrumentNotFoundError(instrument_id)
        if resp.status_code >= 400:
            logger.warning(
                "Price feed returned error status",
                extra={"instrument_id": instrument_id, "status_code": resp.status_code},
            )
            return None

        try:
            payload = resp.json()
            if not isinstance(payload, dict):
                raise TypeError(f"expected an object, got {type(payload).__name__}")
            price = float(payload.get("last_price") or 0)
        except (ValueError, TypeError) as e:
            logger.warning(
                f"Malformed quote payload: {e}",
                extra={"instrument_id": instrument_id},
            )
            return None
        return price if price > 0 else None

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class StaticPriceFeed:
    """In-memory feed for simulation and tests.

    Instruments in ``missing`` raise InstrumentNotFoundError; anything else
    without a price is reported as unavailable.
    """

    def __init__(self, prices: Optional[dict[str, float]] = None, missing: Optional[set[str]] = None):
        self.prices = dict(prices or {})
        self.missing = set(missing or ())
        self.calls: list[str] = []

    def set_price(self, instrument_id: str, price: float):
        self.prices[instrument_id] = price

    async def get_last_price(self, instrument_id: str) -> Optional[float]:
        self.calls.append(instrument_id)
        if instrument_id in self.missing:
            raise InstrumentNotFoundError(instrument_id)
        return self.prices.get(instrument_id)

    async def close(self):
        pass
