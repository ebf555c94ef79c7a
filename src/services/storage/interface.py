"""
Abstract Storage Interface

Business logic talks to storage through these interfaces only, so the
backend can be swapped:
1. In-memory storage for tests and local development
2. A relational database through SQLAlchemy

The interface is intentionally small: the operations ingestion and the
suggestion endpoint need, nothing more. Row-level authorization is the
store's concern; callers always pass the acting user explicitly.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from src.models.transaction import LogEntry, Transaction


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction storage operations.

    Inserts are independent: the store serializes them, and nothing here
    deduplicates. Submitting the same payload twice creates two rows.
    """

    @abstractmethod
    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        """
        Insert a transaction row.

        Args:
            transaction: The row to insert

        Returns:
            The row as stored

        Raises:
            PersistenceError: If the insert fails
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        """
        Retrieve a transaction by its ID.

        Returns:
            The transaction if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_recent_by_category(
        self,
        user_id: str,
        category_id: Optional[str],
        limit: int = 10,
    ) -> list[Transaction]:
        """
        List a user's most recent transactions in a category.

        Args:
            user_id: Owner of the transactions
            category_id: Category to filter on (None matches uncategorized rows)
            limit: Maximum number of results

        Returns:
            Transactions ordered by timestamp, newest first
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for the action log.

    The log is append-only - entries are never updated or deleted.
    """

    @abstractmethod
    async def append_log_entry(self, entry: LogEntry) -> bool:
        """
        Append an entry to the action log.

        Returns:
            True if logged successfully

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def list_log_entries(
        self,
        user_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[LogEntry]:
        """
        Get the most recent log entries, newest first.

        Args:
            user_id: Only entries for this user, if given
            limit: Maximum number of entries to return
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class PersistenceError(StorageError):
    """A write to the store failed."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
