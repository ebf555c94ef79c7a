"""
Core Data Models for the Finance Tracker backend

These models define the schemas for everything flowing through
transaction ingestion:

1. TransactionSubmission - what the caller sent, untrusted and lenient
2. SanitizedTransaction - what survived validation and trimming
3. Transaction - the persisted row, as returned to the caller
4. LogEntry - the append-only audit trail row written after each insert

Amounts are plain floats: they arrive as JSON numbers (or numeric
strings) and are returned the same way.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """
    Transaction types a caller may submit.

    The store only accepts INCOME and EXPENSE. SAVINGS is persisted as
    EXPENSE and the caller's original type is kept in metadata.
    """
    INCOME = "income"
    EXPENSE = "expense"
    SAVINGS = "savings"

    @property
    def stored_type(self) -> "TransactionType":
        """The type actually written to the transactions table."""
        if self is TransactionType.SAVINGS:
            return TransactionType.EXPENSE
        return self


STORED_TRANSACTION_TYPES = (TransactionType.INCOME.value, TransactionType.EXPENSE.value)


# =============================================================================
# INBOUND
# =============================================================================

class TransactionSubmission(BaseModel):
    """
    A transaction submission exactly as received.

    Every field is optional and loosely typed: checking and coercion is the
    validator's job, so that all problems are reported the same way
    instead of surfacing as schema errors.
    """
    model_config = ConfigDict(extra="ignore")

    amount: Any = None
    currency: Any = None
    type: Any = None
    merchant: Any = None
    notes: Any = None
    description: Any = None
    category_id: Any = None
    account_id: Any = None
    family_member_id: Any = None
    timestamp: Any = None
    tags: Any = None
    payment_source: Any = None


class SanitizedTransaction(BaseModel):
    """
    A submission that passed validation.

    Strings are trimmed and truncated, the amount is a positive float
    and the type has been mapped to what the store accepts.
    """

    amount: float = Field(..., gt=0)
    currency: str = Field(..., min_length=1, max_length=10)
    type: TransactionType = Field(
        ...,
        description="Type to persist (income or expense)"
    )
    original_type: TransactionType = Field(
        ...,
        description="Type the caller submitted"
    )
    merchant: Optional[str] = None
    notes: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[str] = None
    account_id: Optional[str] = None
    family_member_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    tags: Optional[list[str]] = None
    payment_source: Optional[str] = None

    @field_validator("type")
    @classmethod
    def validate_stored_type(cls, v: TransactionType) -> TransactionType:
        if v.value not in STORED_TRANSACTION_TYPES:
            raise ValueError(f"Type '{v.value}' cannot be stored")
        return v

    @property
    def was_remapped(self) -> bool:
        return self.type != self.original_type


# =============================================================================
# PERSISTED
# =============================================================================

class TransactionMetadata(BaseModel):
    """
    Side metadata stored with a transaction.

    Conversion fields are only present when a conversion actually happened.
    """

    original_type: Optional[str] = None
    description: Optional[str] = None
    payment_source: Optional[str] = None
    exchange_rate: Optional[float] = None
    base_currency: Optional[str] = None
    base_amount: Optional[float] = None

    def to_storage_dict(self) -> dict[str, Any]:
        """Drop unset fields so absent means absent, not null."""
        return self.model_dump(exclude_none=True)


class Transaction(BaseModel):
    """
    A persisted transaction row.

    Created once per submission and never mutated by the ingestion flow.
    """

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    currency: str
    type: str = Field(..., pattern="^(income|expense)$")
    merchant: Optional[str] = None
    notes: Optional[str] = None
    category_id: Optional[str] = None
    account_id: Optional[str] = None
    family_member_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)
    tags: Optional[list[str]] = None
    ip_hash: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def base_amount(self) -> float:
        """Amount in the base currency, falling back to the raw amount."""
        value = self.metadata.get("base_amount")
        return float(value) if value is not None else self.amount


class LogEntry(BaseModel):
    """
    One row in the append-only action log.

    Records who did what, from which (hashed) address, and which row
    it produced. Never updated or deleted.
    """

    id: UUID = Field(default_factory=uuid4)
    user_id: str
    action: str
    ip_hash: str
    user_agent: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# REQUEST CONTEXT
# =============================================================================

class AuthenticatedUser(BaseModel):
    """Identity resolved from a bearer token."""

    id: str = Field(..., min_length=1)
    email: Optional[str] = None


class ClientContext(BaseModel):
    """
    What we keep about the calling client.

    Only the salted hash of the address is held here; the raw address
    never leaves the header parsing step.
    """

    ip_hash: str
    user_agent: Optional[str] = None


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'truncated')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """Result of validating one submission."""

    validated_at: datetime = Field(default_factory=utc_now)
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]

    @property
    def first_error_message(self) -> Optional[str]:
        for issue in self.issues:
            if issue.severity == "error":
                return issue.message
        return None
