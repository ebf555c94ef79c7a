"""
Audit Models for the Finance Tracker backend

Every significant step of a request is described by an AuditEvent and
written to the structured log. Events are append-only: they are never
modified once emitted.

These events are the local trace of a request. The persisted action
log (one LogEntry per created transaction) lives in models.transaction.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from src.models.transaction import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Authentication
    AUTHENTICATION_FAILED = "authentication_failed"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # Currency conversion
    CONVERSION_COMPLETED = "conversion_completed"
    CONVERSION_DEGRADED = "conversion_degraded"

    # Persistence
    TRANSACTION_SAVED = "transaction_saved"
    SAVE_FAILED = "save_failed"
    ACTION_LOG_FAILED = "action_log_failed"

    # Helper endpoints
    SUGGESTION_GENERATED = "suggestion_generated"
    MARKET_DATA_FETCHED = "market_data_fetched"

    # Upstream services
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Never carries a raw client address: only the salted hash may
    appear in details.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'suggestion')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - all events of one request share this
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate the events of one request"
    )

    user_id: Optional[str] = Field(
        default=None,
        description="Acting user, when known"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "user_id": self.user_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_saved(transaction_id, ...)
        event = AuditEventBuilder.conversion_degraded(currency, reason, ...)
    """

    @staticmethod
    def authentication_failed(
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTHENTICATION_FAILED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description="Request rejected: caller could not be authenticated",
            error_message=reason,
        )

    @staticmethod
    def validation_failed(
        user_id: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Transaction validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def conversion_completed(
        from_currency: str,
        to_currency: str,
        rate: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONVERSION_COMPLETED,
            severity=AuditSeverity.DEBUG,
            correlation_id=correlation_id,
            description=f"Converted {from_currency} to {to_currency} at {rate}",
            details={
                "from_currency": from_currency,
                "to_currency": to_currency,
                "exchange_rate": rate,
            },
        )

    @staticmethod
    def conversion_degraded(
        from_currency: str,
        to_currency: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONVERSION_DEGRADED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Conversion {from_currency} -> {to_currency} unavailable; storing unconverted amount",
            details={
                "from_currency": from_currency,
                "to_currency": to_currency,
            },
            error_message=reason,
        )

    @staticmethod
    def transaction_saved(
        transaction_id: UUID,
        user_id: str,
        transaction_type: str,
        currency: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            entity_type="transaction",
            entity_id=transaction_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Transaction saved: {transaction_type} in {currency}",
            details={
                "type": transaction_type,
                "currency": currency,
            },
        )

    @staticmethod
    def save_failed(
        user_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="transaction",
            user_id=user_id,
            correlation_id=correlation_id,
            description="Transaction insert failed",
            error_message=error_message,
        )

    @staticmethod
    def action_log_failed(
        transaction_id: Optional[UUID],
        user_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACTION_LOG_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="transaction",
            entity_id=transaction_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Transaction saved but its action log entry could not be written",
            error_message=error_message,
        )

    @staticmethod
    def suggestion_generated(
        user_id: str,
        category_id: Optional[str],
        sample_size: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUGGESTION_GENERATED,
            entity_type="suggestion",
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Suggestion built from {sample_size} transactions",
            details={
                "category_id": category_id,
                "sample_size": sample_size,
            },
        )

    @staticmethod
    def market_data_fetched(
        user_id: str,
        symbols: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MARKET_DATA_FETCHED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Fetched prices for {len(symbols)} symbols",
            details={"symbols": symbols},
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
