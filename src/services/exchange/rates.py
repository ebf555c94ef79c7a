"""
Exchange Rate Service

Reads conversion rates from a public exchange-rate API
(`GET {api_url}/latest/{currency}` returning {"rates": {...}, "date": ...}).

Failures never escape as transport errors: anything that prevents a
usable rate (network error, timeout, non-200, missing rate) is raised
as ConversionDegraded. Ingestion treats that as "store unconverted";
the converter endpoint reports it as an error.
"""

import math
from typing import Optional

import httpx
import structlog

from src.config import get_settings
from src.models.market import CURRENCY_CODE_PATTERN, CurrencyConversion, ExchangeRate


logger = structlog.get_logger(__name__)

# Stablecoins quoted through the currency they track
CURRENCY_ALIASES = {
    "USDT": "USD",
}


class ConversionDegraded(Exception):
    """No usable exchange rate could be obtained."""

    def __init__(self, from_currency: str, to_currency: str, reason: str):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.reason = reason
        super().__init__(reason)


class ExchangeRateService:
    """
    Exchange-rate lookups.

    A fresh lookup is made on every call; nothing is cached between
    requests.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings().exchange_rate
        self._api_url = (api_url or settings.api_url).rstrip("/")
        self._timeout = timeout or settings.timeout_seconds
        self._client = client

    @staticmethod
    def quote_currency(currency: str) -> str:
        """The currency code actually sent to the API."""
        code = currency.strip().upper()
        return CURRENCY_ALIASES.get(code, code)

    async def _fetch_rates(self, from_currency: str) -> dict:
        url = f"{self._api_url}/latest/{from_currency}"
        if self._client is not None:
            response = await self._client.get(url, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(url)
        response.raise_for_status()
        return response.json()

    async def get_rate(self, from_currency: str, to_currency: str) -> ExchangeRate:
        """
        Get the rate to multiply a `from_currency` amount by.

        Raises:
            ConversionDegraded: If no usable rate could be obtained
        """
        source = self.quote_currency(from_currency)
        target = self.quote_currency(to_currency)
        for code in (source, target):
            # Codes end up in the request path
            if not CURRENCY_CODE_PATTERN.match(code):
                raise ConversionDegraded(from_currency, to_currency, f"Invalid currency code: {code}")

        try:
            data = await self._fetch_rates(source)
        except httpx.TimeoutException as e:
            raise ConversionDegraded(from_currency, to_currency, f"Exchange rate lookup timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            raise ConversionDegraded(
                from_currency,
                to_currency,
                f"Failed to fetch exchange rates (HTTP {e.response.status_code})",
            ) from e
        except httpx.HTTPError as e:
            raise ConversionDegraded(from_currency, to_currency, f"Failed to fetch exchange rates: {e}") from e
        except ValueError as e:
            raise ConversionDegraded(from_currency, to_currency, "Exchange rate API returned invalid JSON") from e

        rates = data.get("rates") if isinstance(data, dict) else None
        rate = rates.get(target) if isinstance(rates, dict) else None

        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or not math.isfinite(rate) or rate <= 0:
            raise ConversionDegraded(from_currency, to_currency, f"Exchange rate not found for {to_currency}")

        return ExchangeRate(
            from_currency=from_currency,
            to_currency=to_currency,
            rate=float(rate),
            last_updated=data.get("date"),
        )

    async def convert(
        self,
        from_currency: str,
        to_currency: str,
        amount: Optional[float] = None,
    ) -> CurrencyConversion:
        """
        Convert an amount, or just report the rate when no amount is given.

        Raises:
            ConversionDegraded: If no usable rate could be obtained
        """
        quote = await self.get_rate(from_currency, to_currency)
        converted = amount * quote.rate if amount else quote.rate

        logger.debug(
            "currency_converted",
            from_currency=from_currency,
            to_currency=to_currency,
            rate=quote.rate,
        )

        return CurrencyConversion(
            from_currency=from_currency,
            to_currency=to_currency,
            rate=quote.rate,
            amount=amount,
            converted_amount=converted,
            last_updated=quote.last_updated,
        )
