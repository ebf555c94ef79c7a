"""Services package."""

from src.services.auth import (
    AuthProviderInterface,
    StaticTokenAuthProvider,
    SupabaseAuthProvider,
    Unauthorized,
    build_client_context,
    create_auth_provider,
)
from src.services.exchange import (
    ConversionDegraded,
    ExchangeRateService,
    MarketDataError,
    MarketDataService,
)
from src.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    InMemoryAuditStorage,
    InMemoryTransactionStorage,
    PersistenceError,
    SQLAuditStorage,
    SQLDatabase,
    SQLTransactionStorage,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    # Auth services
    "AuthProviderInterface",
    "StaticTokenAuthProvider",
    "SupabaseAuthProvider",
    "Unauthorized",
    "build_client_context",
    "create_auth_provider",
    # Currency and market services
    "ConversionDegraded",
    "ExchangeRateService",
    "MarketDataError",
    "MarketDataService",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "InMemoryAuditStorage",
    "InMemoryTransactionStorage",
    "PersistenceError",
    "SQLAuditStorage",
    "SQLDatabase",
    "SQLTransactionStorage",
    "StorageError",
    "TransactionStorageInterface",
]
