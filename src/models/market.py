"""
Models for the helper endpoints around ingestion:
currency conversion, market prices and transaction suggestions.

Field aliases match the JSON the dashboard already consumes
(camelCase), while Python code uses snake_case names.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.models.transaction import utc_now


# ISO 4217 codes plus a few longer tickers (USDT)
CURRENCY_CODE_PATTERN = re.compile(r"^[A-Z]{3,5}$")
INVALID_CURRENCY_MESSAGE = "Currency must be a currency code such as INR or USD"


class ExchangeRate(BaseModel):
    """A single rate read from the exchange-rate API."""

    from_currency: str
    to_currency: str
    rate: float = Field(..., gt=0)
    last_updated: Optional[str] = None


class CurrencyConversionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_currency: str = Field(..., alias="from", min_length=1)
    to_currency: str = Field(..., alias="to", min_length=1)
    amount: Optional[float] = None

    @field_validator("from_currency", "to_currency")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        code = v.strip().upper()
        if not CURRENCY_CODE_PATTERN.match(code):
            raise ValueError(INVALID_CURRENCY_MESSAGE)
        return code


class CurrencyConversion(BaseModel):
    """Response of the currency converter."""
    model_config = ConfigDict(populate_by_name=True)

    from_currency: str = Field(..., alias="from")
    to_currency: str = Field(..., alias="to")
    rate: float
    amount: Optional[float] = None
    converted_amount: float = Field(..., alias="convertedAmount")
    last_updated: Optional[str] = Field(default=None, alias="lastUpdated")


class MarketDataRequest(BaseModel):
    symbols: list[str] = Field(default_factory=list)
    type: str = Field(default="crypto")

    @field_validator("type")
    @classmethod
    def normalize_type(cls, v: str) -> str:
        return v.strip().lower()


class MarketPrices(BaseModel):
    """Prices keyed by the symbol exactly as requested."""
    model_config = ConfigDict(populate_by_name=True)

    prices: dict[str, float] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=utc_now, alias="lastUpdated")


class SuggestionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category_id: Optional[str] = Field(default=None, alias="categoryId")


class TransactionSuggestion(BaseModel):
    """
    Prefill values for a new transaction in a category.

    confidence is the number of past transactions the suggestion was
    built from (0 means there was nothing to learn from).
    """
    model_config = ConfigDict(populate_by_name=True)

    merchant: str = ""
    notes: str = ""
    average_amount: int = Field(default=0, alias="averageAmount")
    confidence: int = Field(default=0, ge=0)
