"""
Main Orchestrator for the Finance Tracker backend

Ties the components together and defines the end-to-end flows:
1. Transaction ingestion (authenticate -> validate -> hash client ->
   convert -> insert -> action log)
2. Transaction suggestions
3. Market data

The orchestrator enforces the boundaries:
- Nothing is processed for an unauthenticated caller
- Nothing is written unless validation passed
- A failed conversion never blocks a write; a failed write never
  produces an action-log entry
- Every step is audited

Known gaps, kept deliberately visible:
- No idempotency: the same payload submitted twice creates two rows
- The transaction insert and the action-log append are not atomic. If
  the append fails the transaction stays and the caller still gets a
  success response.
"""

from typing import Any, Mapping, Optional
from uuid import UUID

from src.audit import AuditLogger, create_correlation_id
from src.config import get_settings
from src.models.market import MarketPrices, TransactionSuggestion
from src.models.transaction import (
    ClientContext,
    LogEntry,
    SanitizedTransaction,
    Transaction,
    TransactionMetadata,
    utc_now,
)
from src.queries import TransactionSuggestionService
from src.services.auth import (
    AuthProviderInterface,
    Unauthorized,
    build_client_context,
    create_auth_provider,
)
from src.services.exchange import (
    ConversionDegraded,
    ExchangeRateService,
    MarketDataService,
)
from src.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryTransactionStorage,
    PersistenceError,
    SQLAuditStorage,
    SQLDatabase,
    SQLTransactionStorage,
    TransactionStorageInterface,
)
from src.validation import TransactionValidator, ValidationError


CREATE_TRANSACTION_ACTION = "create_transaction"


class TransactionIngestionService:
    """
    Orchestrates transaction ingestion.

    Flow:
    1. Authenticate the bearer token
    2. Validate and sanitize the submission (savings -> expense)
    3. Hash the client address
    4. Convert to the base currency when needed (failure is non-fatal)
    5. Insert the transaction
    6. Append one action-log entry referencing it
    7. Return the stored row

    Each call is independent; no state is shared between requests.
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        auth_provider: AuthProviderInterface,
        exchange_service: Optional[ExchangeRateService] = None,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        ip_hash_salt: Optional[str] = None,
    ):
        self._storage = transaction_storage
        self._auth = auth_provider
        self._exchange = exchange_service or ExchangeRateService()
        self._validator = validator or TransactionValidator()
        self._audit_logger = audit_logger or AuditLogger()
        self._salt = ip_hash_salt if ip_hash_salt is not None else get_settings().app.ip_hash_salt

    @property
    def base_currency(self) -> str:
        return self._validator.base_currency

    def client_context(self, headers: Mapping[str, str]) -> ClientContext:
        """Reduce request headers to what we keep about the client."""
        return build_client_context(headers, self._salt)

    async def _convert(
        self,
        sanitized: SanitizedTransaction,
        correlation_id: UUID,
    ) -> Optional[tuple[float, float]]:
        """
        Look up the base-currency rate.

        Returns (rate, base_amount), or None when no conversion is needed
        or the rate could not be obtained.
        """
        if sanitized.currency == self.base_currency:
            return None

        try:
            quote = await self._exchange.get_rate(sanitized.currency, self.base_currency)
        except ConversionDegraded as e:
            await self._audit_logger.log_conversion_degraded(
                from_currency=sanitized.currency,
                to_currency=self.base_currency,
                reason=e.reason,
                correlation_id=correlation_id,
            )
            return None

        await self._audit_logger.log_conversion_completed(
            from_currency=sanitized.currency,
            to_currency=self.base_currency,
            rate=quote.rate,
            correlation_id=correlation_id,
        )
        return quote.rate, sanitized.amount * quote.rate

    def _build_metadata(
        self,
        sanitized: SanitizedTransaction,
        conversion: Optional[tuple[float, float]],
    ) -> dict[str, Any]:
        metadata = TransactionMetadata(
            original_type=sanitized.original_type.value if sanitized.was_remapped else None,
            description=sanitized.description,
            payment_source=sanitized.payment_source,
        )
        if conversion is not None:
            rate, base_amount = conversion
            metadata.exchange_rate = rate
            metadata.base_currency = self.base_currency
            metadata.base_amount = base_amount
        return metadata.to_storage_dict()

    async def ingest(
        self,
        authorization: Optional[str],
        payload: Any,
        client: ClientContext,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Run the full ingestion flow for one submission.

        Raises:
            Unauthorized: Missing or invalid bearer token
            ValidationError: Missing or malformed required fields
            PersistenceError: The transaction insert failed
        """
        correlation_id = correlation_id or create_correlation_id()

        # Step 1: Authenticate
        try:
            user = await self._auth.authenticate(authorization)
        except Unauthorized as e:
            await self._audit_logger.log_authentication_failed(
                reason=str(e),
                correlation_id=correlation_id,
            )
            raise

        # Step 2: Validate and sanitize
        try:
            sanitized = self._validator.sanitize_payload(payload)
        except ValidationError as e:
            issues = [issue.model_dump() for issue in e.result.issues] if e.result else [{"message": str(e)}]
            await self._audit_logger.log_validation_failed(
                user_id=user.id,
                issues=issues,
                correlation_id=correlation_id,
            )
            raise

        # Step 3: Currency conversion (never fatal)
        conversion = await self._convert(sanitized, correlation_id)

        # Step 4: Insert
        transaction = Transaction(
            user_id=user.id,
            amount=sanitized.amount,
            currency=sanitized.currency,
            type=sanitized.type.value,
            merchant=sanitized.merchant,
            notes=sanitized.notes,
            category_id=sanitized.category_id,
            account_id=sanitized.account_id,
            family_member_id=sanitized.family_member_id,
            timestamp=sanitized.timestamp or utc_now(),
            tags=sanitized.tags,
            ip_hash=client.ip_hash,
            metadata=self._build_metadata(sanitized, conversion),
        )

        try:
            stored = await self._storage.insert_transaction(transaction)
        except PersistenceError as e:
            await self._audit_logger.log_save_failed(
                user_id=user.id,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log_transaction_saved(
            transaction_id=stored.id,
            user_id=user.id,
            transaction_type=stored.type,
            currency=stored.currency,
            correlation_id=correlation_id,
        )

        # Step 5: Action log (failure is logged, not raised)
        await self._audit_logger.record_action(
            LogEntry(
                user_id=user.id,
                action=CREATE_TRANSACTION_ACTION,
                ip_hash=client.ip_hash,
                user_agent=client.user_agent,
                metadata={"transaction_id": str(stored.id)},
            ),
            correlation_id=correlation_id,
        )

        return stored


class SuggestionFlow:
    """Authenticated access to transaction suggestions."""

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        auth_provider: AuthProviderInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._service = TransactionSuggestionService(transaction_storage)
        self._auth = auth_provider
        self._audit_logger = audit_logger or AuditLogger()

    async def suggest(
        self,
        authorization: Optional[str],
        category_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> TransactionSuggestion:
        correlation_id = correlation_id or create_correlation_id()

        try:
            user = await self._auth.authenticate(authorization)
        except Unauthorized as e:
            await self._audit_logger.log_authentication_failed(str(e), correlation_id)
            raise

        suggestion = await self._service.suggest(user.id, category_id)

        await self._audit_logger.log_suggestion_generated(
            user_id=user.id,
            category_id=category_id,
            sample_size=suggestion.confidence,
            correlation_id=correlation_id,
        )
        return suggestion


class MarketDataFlow:
    """Authenticated access to market prices."""

    def __init__(
        self,
        auth_provider: AuthProviderInterface,
        market_service: Optional[MarketDataService] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._auth = auth_provider
        self._market = market_service or MarketDataService()
        self._audit_logger = audit_logger or AuditLogger()

    async def get_prices(
        self,
        authorization: Optional[str],
        symbols: list[str],
        market: str,
        correlation_id: Optional[UUID] = None,
    ) -> MarketPrices:
        correlation_id = correlation_id or create_correlation_id()

        try:
            user = await self._auth.authenticate(authorization)
        except Unauthorized as e:
            await self._audit_logger.log_authentication_failed(str(e), correlation_id)
            raise

        prices = await self._market.get_prices(symbols, market)

        await self._audit_logger.log_market_data_fetched(
            user_id=user.id,
            symbols=symbols,
            correlation_id=correlation_id,
        )
        return prices


class AppComponents:
    """Everything the HTTP layer needs, built once at startup."""

    def __init__(
        self,
        ingestion: TransactionIngestionService,
        suggestions: SuggestionFlow,
        market_data: MarketDataFlow,
        exchange: ExchangeRateService,
        transaction_storage: TransactionStorageInterface,
        audit_storage: AuditStorageInterface,
    ):
        self.ingestion = ingestion
        self.suggestions = suggestions
        self.market_data = market_data
        self.exchange = exchange
        self.transaction_storage = transaction_storage
        self.audit_storage = audit_storage


def create_app_components(
    transaction_storage: Optional[TransactionStorageInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    auth_provider: Optional[AuthProviderInterface] = None,
    exchange_service: Optional[ExchangeRateService] = None,
    market_service: Optional[MarketDataService] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Anything not passed in is built from settings: storage according to
    STORAGE_BACKEND, auth according to AUTH_PROVIDER.
    """
    settings = get_settings()

    if transaction_storage is None or audit_storage is None:
        if settings.app.storage_backend == "sql":
            database = SQLDatabase()
            database.connect()
            transaction_storage = transaction_storage or SQLTransactionStorage(database)
            audit_storage = audit_storage or SQLAuditStorage(database)
        else:
            transaction_storage = transaction_storage or InMemoryTransactionStorage()
            audit_storage = audit_storage or InMemoryAuditStorage()

    audit_logger = AuditLogger(audit_storage)
    auth_provider = auth_provider or create_auth_provider(audit_logger)
    exchange_service = exchange_service or ExchangeRateService()
    market_service = market_service or MarketDataService(audit_logger=audit_logger)

    ingestion = TransactionIngestionService(
        transaction_storage=transaction_storage,
        auth_provider=auth_provider,
        exchange_service=exchange_service,
        audit_logger=audit_logger,
    )
    suggestions = SuggestionFlow(
        transaction_storage=transaction_storage,
        auth_provider=auth_provider,
        audit_logger=audit_logger,
    )
    market_data = MarketDataFlow(
        auth_provider=auth_provider,
        market_service=market_service,
        audit_logger=audit_logger,
    )

    return AppComponents(
        ingestion=ingestion,
        suggestions=suggestions,
        market_data=market_data,
        exchange=exchange_service,
        transaction_storage=transaction_storage,
        audit_storage=audit_storage,
    )
