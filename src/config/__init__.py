"""Configuration package."""

from src.config.settings import (
    AppSettings,
    AuthSettings,
    DatabaseSettings,
    ExchangeRateSettings,
    MarketDataSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "AuthSettings",
    "DatabaseSettings",
    "ExchangeRateSettings",
    "MarketDataSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
