"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage:
an in-memory backend and a SQLAlchemy backend.
"""

from src.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    PersistenceError,
    StorageError,
    TransactionStorageInterface,
)
from src.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryTransactionStorage,
)
from src.services.storage.sql import (
    SQLAuditStorage,
    SQLDatabase,
    SQLTransactionStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "ConnectionError",
    "PersistenceError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryTransactionStorage",
    # SQLAlchemy implementation
    "SQLAuditStorage",
    "SQLDatabase",
    "SQLTransactionStorage",
]
