"""
In-Memory Storage Implementation

Keeps rows in process memory. Used by the test suite and for local
development (STORAGE_BACKEND=memory). Nothing survives a restart.
"""

from typing import Optional
from uuid import UUID

from src.models.transaction import LogEntry, Transaction
from src.services.storage.interface import (
    AuditStorageInterface,
    PersistenceError,
    StorageError,
    TransactionStorageInterface,
)


class InMemoryTransactionStorage(TransactionStorageInterface):
    """Transaction rows held in a dict keyed by id."""

    def __init__(self):
        self._rows: dict[UUID, Transaction] = {}
        # Set to an exception to make the next inserts fail (for tests)
        self.fail_with: Optional[Exception] = None

    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        if self.fail_with is not None:
            raise PersistenceError(str(self.fail_with)) from self.fail_with

        if transaction.id in self._rows:
            raise PersistenceError(f"Transaction {transaction.id} already exists")
        stored = transaction.model_copy(deep=True)
        self._rows[stored.id] = stored
        return stored.model_copy(deep=True)

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        row = self._rows.get(transaction_id)
        return row.model_copy(deep=True) if row else None

    async def list_recent_by_category(
        self,
        user_id: str,
        category_id: Optional[str],
        limit: int = 10,
    ) -> list[Transaction]:
        matches = [
            row for row in self._rows.values()
            if row.user_id == user_id and row.category_id == category_id
        ]
        matches.sort(key=lambda row: row.timestamp, reverse=True)
        return [row.model_copy(deep=True) for row in matches[:limit]]

    def count(self) -> int:
        return len(self._rows)

    def all(self) -> list[Transaction]:
        return [row.model_copy(deep=True) for row in self._rows.values()]


class InMemoryAuditStorage(AuditStorageInterface):
    """Action log held in an append-only list."""

    def __init__(self):
        self._entries: list[LogEntry] = []
        self.fail_with: Optional[Exception] = None

    async def append_log_entry(self, entry: LogEntry) -> bool:
        if self.fail_with is not None:
            raise StorageError(str(self.fail_with)) from self.fail_with
        self._entries.append(entry.model_copy(deep=True))
        return True

    async def list_log_entries(
        self,
        user_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[LogEntry]:
        entries = [
            entry for entry in reversed(self._entries)
            if user_id is None or entry.user_id == user_id
        ]
        return [entry.model_copy(deep=True) for entry in entries[:limit]]

    def count(self) -> int:
        return len(self._entries)
