"""
Market Data Service

Crypto prices from a CoinGecko-compatible API
(`GET {api_url}/simple/price?ids=<coin>&vs_currencies=inr,usd`).

Prices are reported in INR. When a coin has no INR quote the USD quote
is converted with the configured fallback rate. A symbol whose lookup
fails is reported as 0 rather than failing the whole request.
"""

import math
from typing import TYPE_CHECKING, Optional

import httpx
import structlog

from src.config import get_settings
from src.models.market import MarketPrices

if TYPE_CHECKING:
    from src.audit import AuditLogger


logger = structlog.get_logger(__name__)

SUPPORTED_MARKETS = ("crypto",)


class MarketDataError(Exception):
    """The request cannot be served (e.g. unsupported market type)."""
    pass


def _positive_number(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return float(value)


class MarketDataService:
    """Price lookups, one request per symbol."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        api_url: Optional[str] = None,
        usd_to_inr_rate: Optional[float] = None,
        audit_logger: Optional["AuditLogger"] = None,
    ):
        settings = get_settings().market_data
        self._api_url = (api_url or settings.api_url).rstrip("/")
        self._timeout = settings.timeout_seconds
        self._usd_to_inr = usd_to_inr_rate or settings.usd_to_inr_rate
        self._client = client
        self._audit_logger = audit_logger

    async def get_prices(self, symbols: list[str], market: str = "crypto") -> MarketPrices:
        """
        Get prices for a market type.

        Raises:
            MarketDataError: If the market type is not supported
        """
        if market not in SUPPORTED_MARKETS:
            raise MarketDataError(f"Unsupported market type: {market}")
        return await self.get_crypto_prices(symbols)

    async def get_crypto_prices(self, symbols: list[str]) -> MarketPrices:
        prices: dict[str, float] = {}

        if self._client is not None:
            for symbol in symbols:
                prices[symbol] = await self._crypto_price(self._client, symbol)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                for symbol in symbols:
                    prices[symbol] = await self._crypto_price(client, symbol)

        return MarketPrices(prices=prices)

    async def _crypto_price(self, client: httpx.AsyncClient, symbol: str) -> float:
        coin = symbol.strip().lower()
        try:
            response = await client.get(
                f"{self._api_url}/simple/price",
                params={"ids": coin, "vs_currencies": "inr,usd"},
                timeout=self._timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("crypto_price_lookup_failed", symbol=symbol, error=str(e))
            if self._audit_logger is not None:
                await self._audit_logger.log_external_service_error("market_data", f"{symbol}: {e}")
            return 0.0

        quote = data.get(coin) if isinstance(data, dict) else None
        if not isinstance(quote, dict):
            return 0.0

        inr = _positive_number(quote.get("inr"))
        if inr is not None:
            return inr

        usd = _positive_number(quote.get("usd"))
        if usd is not None:
            return usd * self._usd_to_inr

        return 0.0
