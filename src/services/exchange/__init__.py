"""Currency and market data services package."""

from src.services.exchange.market import MarketDataError, MarketDataService
from src.services.exchange.rates import ConversionDegraded, ExchangeRateService

__all__ = [
    "ConversionDegraded",
    "ExchangeRateService",
    "MarketDataError",
    "MarketDataService",
]
