"""
SQLAlchemy Storage Implementation

Persists transactions and the action log to a relational database
(SQLite locally, PostgreSQL in deployment - anything SQLAlchemy speaks).

TRADEOFFS:
- The transaction insert and the log append are two separate commits.
  There is no enclosing database transaction, so a failed log append
  after a successful insert is not rolled back.
- Sessions are synchronous; every call runs in the threadpool and holds
  a session only for the duration of one statement.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    String,
    Text,
    create_engine,
    text,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from starlette.concurrency import run_in_threadpool
from tenacity import retry, stop_after_attempt, wait_exponential

from src.config import get_settings
from src.models.transaction import LogEntry, Transaction
from src.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    PersistenceError,
    StorageError,
    TransactionStorageInterface,
)


Base = declarative_base()

logger = structlog.get_logger(__name__)


class TransactionRow(Base):
    """ORM model for the transactions table."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(10), nullable=False)
    # Only 'income' and 'expense' are stored
    type = Column(String(10), nullable=False)
    merchant = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    category_id = Column(String, nullable=True, index=True)
    account_id = Column(String, nullable=True)
    family_member_id = Column(String, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    tags = Column(JSON, nullable=True)
    ip_hash = Column(String(64), nullable=False)
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)


class LogRow(Base):
    """ORM model for the append-only logs table."""

    __tablename__ = "logs"

    id = Column(String(36), primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    action = Column(String(50), nullable=False)
    ip_hash = Column(String(64), nullable=False)
    user_agent = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def transaction_to_row(transaction: Transaction) -> TransactionRow:
    return TransactionRow(
        id=str(transaction.id),
        user_id=transaction.user_id,
        amount=transaction.amount,
        currency=transaction.currency,
        type=transaction.type,
        merchant=transaction.merchant,
        notes=transaction.notes,
        category_id=transaction.category_id,
        account_id=transaction.account_id,
        family_member_id=transaction.family_member_id,
        timestamp=transaction.timestamp,
        tags=transaction.tags,
        ip_hash=transaction.ip_hash,
        metadata_=transaction.metadata,
        created_at=transaction.created_at,
    )


def row_to_transaction(row: TransactionRow) -> Transaction:
    return Transaction(
        id=UUID(row.id),
        user_id=row.user_id,
        amount=row.amount,
        currency=row.currency,
        type=row.type,
        merchant=row.merchant,
        notes=row.notes,
        category_id=row.category_id,
        account_id=row.account_id,
        family_member_id=row.family_member_id,
        timestamp=_as_utc(row.timestamp),
        tags=row.tags,
        ip_hash=row.ip_hash,
        metadata=row.metadata_ or {},
        created_at=_as_utc(row.created_at),
    )


def row_to_log_entry(row: LogRow) -> LogEntry:
    return LogEntry(
        id=UUID(row.id),
        user_id=row.user_id,
        action=row.action,
        ip_hash=row.ip_hash,
        user_agent=row.user_agent,
        metadata=row.metadata_ or {},
        created_at=_as_utc(row.created_at),
    )


class SQLDatabase:
    """
    Engine and session factory wrapper.

    Handles connection setup (with retry) and schema creation.
    """

    def __init__(self, database_url: Optional[str] = None, echo: Optional[bool] = None):
        settings = get_settings().database
        self.database_url = database_url or settings.url
        self._echo = settings.echo if echo is None else echo
        self._attempts = settings.connect_attempts
        self._session_factory: Optional[sessionmaker[Session]] = None

    def connect(self) -> sessionmaker[Session]:
        """
        Create the engine, verify it answers, and create missing tables.

        Retries transient connection failures before giving up.
        """
        if self._session_factory is not None:
            return self._session_factory

        connect_with_retry = retry(
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            reraise=True,
        )(self._connect_once)

        try:
            self._session_factory = connect_with_retry()
        except SQLAlchemyError as e:
            raise ConnectionError(f"Failed to connect to database: {e}") from e

        return self._session_factory

    def _connect_once(self) -> sessionmaker[Session]:
        connect_args = {}
        if self.database_url.startswith("sqlite"):
            # FastAPI may serve requests from a thread pool
            connect_args["check_same_thread"] = False

        engine = create_engine(self.database_url, echo=self._echo, connect_args=connect_args)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        Base.metadata.create_all(engine)
        logger.info("database_connected", dialect=engine.dialect.name)
        return sessionmaker(bind=engine, autocommit=False, autoflush=False)

    def session(self) -> Session:
        return self.connect()()


class SQLTransactionStorage(TransactionStorageInterface):
    """
    Transactions table backed by SQLAlchemy.

    Session work is blocking, so each call runs in the threadpool and
    the event loop keeps serving other requests.
    """

    def __init__(self, database: SQLDatabase):
        self._db = database

    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        return await run_in_threadpool(self._insert_transaction, transaction)

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        return await run_in_threadpool(self._get_transaction, transaction_id)

    async def list_recent_by_category(
        self,
        user_id: str,
        category_id: Optional[str],
        limit: int = 10,
    ) -> list[Transaction]:
        return await run_in_threadpool(self._list_recent_by_category, user_id, category_id, limit)

    def _insert_transaction(self, transaction: Transaction) -> Transaction:
        db = self._db.session()
        try:
            row = transaction_to_row(transaction)
            db.add(row)
            db.commit()
            db.refresh(row)
            return row_to_transaction(row)
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Failed to insert transaction: {e}") from e
        finally:
            db.close()

    def _get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        db = self._db.session()
        try:
            row = db.get(TransactionRow, str(transaction_id))
            return row_to_transaction(row) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read transaction: {e}") from e
        finally:
            db.close()

    def _list_recent_by_category(
        self,
        user_id: str,
        category_id: Optional[str],
        limit: int,
    ) -> list[Transaction]:
        db = self._db.session()
        try:
            query = db.query(TransactionRow).filter(TransactionRow.user_id == user_id)
            if category_id is None:
                query = query.filter(TransactionRow.category_id.is_(None))
            else:
                query = query.filter(TransactionRow.category_id == category_id)
            rows = (
                query
                .order_by(TransactionRow.timestamp.desc())
                .limit(limit)
                .all()
            )
            return [row_to_transaction(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list transactions: {e}") from e
        finally:
            db.close()


class SQLAuditStorage(AuditStorageInterface):
    """Logs table backed by SQLAlchemy, run in the threadpool like transactions."""

    def __init__(self, database: SQLDatabase):
        self._db = database

    async def append_log_entry(self, entry: LogEntry) -> bool:
        return await run_in_threadpool(self._append_log_entry, entry)

    async def list_log_entries(
        self,
        user_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[LogEntry]:
        return await run_in_threadpool(self._list_log_entries, user_id, limit)

    def _append_log_entry(self, entry: LogEntry) -> bool:
        db = self._db.session()
        try:
            db.add(LogRow(
                id=str(entry.id),
                user_id=entry.user_id,
                action=entry.action,
                ip_hash=entry.ip_hash,
                user_agent=entry.user_agent,
                metadata_=entry.metadata,
                created_at=entry.created_at,
            ))
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to append log entry: {e}") from e
        finally:
            db.close()

    def _list_log_entries(self, user_id: Optional[str], limit: int) -> list[LogEntry]:
        db = self._db.session()
        try:
            query = db.query(LogRow)
            if user_id is not None:
                query = query.filter(LogRow.user_id == user_id)
            rows = query.order_by(LogRow.created_at.desc()).limit(limit).all()
            return [row_to_log_entry(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list log entries: {e}") from e
        finally:
            db.close()
