"""
Audit Logger

Every significant step of a request is logged. Two outputs:
1. Structured local log (structlog, JSON) for every AuditEvent
2. The persisted action log (one LogEntry per created transaction)

The audit logger never crashes the caller: a failed action-log write
is reported locally and returned as False.
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder
from src.models.transaction import LogEntry
from src.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events locally and appends action-log entries to storage
    when a storage backend is configured.
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Backend for the persisted action log.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("audit")

    async def log(self, event: AuditEvent) -> None:
        """Write an audit event to the local structured log."""
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    async def record_action(
        self,
        entry: LogEntry,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Append an entry to the persisted action log.

        Returns True if the write succeeded (or no storage is configured).
        A failure is logged, not raised.
        """
        if self._storage is None:
            return True

        try:
            return await self._storage.append_log_entry(entry)
        except Exception as e:
            transaction_id = entry.metadata.get("transaction_id")
            await self.log(AuditEventBuilder.action_log_failed(
                transaction_id=UUID(str(transaction_id)) if transaction_id else None,
                user_id=entry.user_id,
                error_message=str(e),
                correlation_id=correlation_id,
            ))
            return False

    async def log_authentication_failed(
        self,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.authentication_failed(
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        user_id: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            user_id=user_id,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_conversion_completed(
        self,
        from_currency: str,
        to_currency: str,
        rate: float,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.conversion_completed(
            from_currency=from_currency,
            to_currency=to_currency,
            rate=rate,
            correlation_id=correlation_id,
        ))

    async def log_conversion_degraded(
        self,
        from_currency: str,
        to_currency: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.conversion_degraded(
            from_currency=from_currency,
            to_currency=to_currency,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_transaction_saved(
        self,
        transaction_id: UUID,
        user_id: str,
        transaction_type: str,
        currency: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_saved(
            transaction_id=transaction_id,
            user_id=user_id,
            transaction_type=transaction_type,
            currency=currency,
            correlation_id=correlation_id,
        ))

    async def log_save_failed(
        self,
        user_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(
            user_id=user_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_suggestion_generated(
        self,
        user_id: str,
        category_id: Optional[str],
        sample_size: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.suggestion_generated(
            user_id=user_id,
            category_id=category_id,
            sample_size=sample_size,
            correlation_id=correlation_id,
        ))

    async def log_market_data_fetched(
        self,
        user_id: str,
        symbols: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.market_data_fetched(
            user_id=user_id,
            symbols=symbols,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking the events of one request.

    Pass it through all subsequent operations of that request.
    """
    return uuid4()
