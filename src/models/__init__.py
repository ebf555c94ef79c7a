"""
Data Models Package

This package contains all Pydantic models used by the finance tracker backend.
All data flowing through the system must conform to these schemas.
"""

from src.models.transaction import (
    AuthenticatedUser,
    ClientContext,
    LogEntry,
    SanitizedTransaction,
    Transaction,
    TransactionMetadata,
    TransactionSubmission,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)
from src.models.market import (
    CurrencyConversion,
    CurrencyConversionRequest,
    ExchangeRate,
    MarketDataRequest,
    MarketPrices,
    SuggestionRequest,
    TransactionSuggestion,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "AuthenticatedUser",
    "ClientContext",
    "LogEntry",
    "SanitizedTransaction",
    "Transaction",
    "TransactionMetadata",
    "TransactionSubmission",
    "TransactionType",
    "ValidationIssue",
    "ValidationResult",
    # Market / helper models
    "CurrencyConversion",
    "CurrencyConversionRequest",
    "ExchangeRate",
    "MarketDataRequest",
    "MarketPrices",
    "SuggestionRequest",
    "TransactionSuggestion",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
