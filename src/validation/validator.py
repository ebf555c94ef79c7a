"""
Transaction Submission Validation

Checks run in a fixed order so the first error reported to the caller
is predictable:

1. Required fields - amount and type must be present
2. Amount - must parse to a finite number greater than zero
3. Type - must be income, expense or savings
4. Everything else - currency code, free text, references, timestamp, tags

Free text is trimmed and truncated to fixed bounds. Truncation is
reported as an info-level issue; it never rejects a submission.

The savings -> expense remap happens here too: the store only knows
income and expense, so the caller's type travels on as original_type.
"""

import math
import re
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from src.config import get_settings
from src.models.market import CURRENCY_CODE_PATTERN, INVALID_CURRENCY_MESSAGE
from src.models.transaction import (
    SanitizedTransaction,
    TransactionSubmission,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)


MISSING_REQUIRED_MESSAGE = "Missing required fields: amount, type"
INVALID_AMOUNT_MESSAGE = "Amount must be a positive number"

# Plain decimal or scientific notation, nothing else ("1_000", "0x10", "inf" are rejected)
_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")

_DATETIME_ADAPTER = TypeAdapter(datetime)


class ValidationError(Exception):
    """A submission was rejected. The message is the first error found."""

    def __init__(self, message: str, result: Optional[ValidationResult] = None):
        self.result = result
        super().__init__(message)


def _is_blank(value: Any) -> bool:
    """Falsy-or-empty check used for required fields."""
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    return False


def parse_amount(value: Any) -> Optional[float]:
    """
    Parse an amount to a positive finite float.

    Returns None when the value is not a usable amount.
    """
    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not _NUMBER_RE.match(text):
            return None
        number = float(text)
    else:
        return None

    if not math.isfinite(number) or number <= 0:
        return None
    return number


class TransactionValidator:
    """
    Validates and sanitizes transaction submissions.

    validate() reports every issue it finds; sanitize() returns the
    cleaned transaction or raises ValidationError with the first error.
    """

    def __init__(
        self,
        base_currency: Optional[str] = None,
        max_merchant_length: Optional[int] = None,
        max_notes_length: Optional[int] = None,
        max_description_length: Optional[int] = None,
    ):
        settings = get_settings().app
        self._base_currency = (base_currency or settings.base_currency).strip().upper()
        self._limits = {
            "merchant": max_merchant_length or settings.max_merchant_length,
            "notes": max_notes_length or settings.max_notes_length,
            "description": max_description_length or settings.max_description_length,
        }

    @property
    def base_currency(self) -> str:
        return self._base_currency

    # ------------------------------------------------------------------
    # Field checks
    # ------------------------------------------------------------------

    def _check_required(self, submission: TransactionSubmission) -> list[ValidationIssue]:
        missing = [
            name for name in ("amount", "type")
            if _is_blank(getattr(submission, name))
        ]
        if not missing:
            return []
        return [ValidationIssue(
            field=",".join(missing),
            issue_type="missing",
            message=MISSING_REQUIRED_MESSAGE,
            severity="error",
        )]

    def _check_amount(self, value: Any, cleaned: dict) -> list[ValidationIssue]:
        amount = parse_amount(value)
        if amount is None:
            return [ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message=INVALID_AMOUNT_MESSAGE,
                severity="error",
            )]
        cleaned["amount"] = amount
        return []

    def _check_type(self, value: Any, cleaned: dict) -> list[ValidationIssue]:
        allowed = ", ".join(t.value for t in TransactionType)
        if not isinstance(value, str):
            return [ValidationIssue(
                field="type",
                issue_type="invalid_value",
                message=f"Transaction type must be one of: {allowed}",
                severity="error",
            )]

        try:
            original = TransactionType(value.strip().lower())
        except ValueError:
            return [ValidationIssue(
                field="type",
                issue_type="invalid_value",
                message=f"Invalid transaction type '{value.strip()}'. Must be one of: {allowed}",
                severity="error",
            )]

        cleaned["original_type"] = original
        cleaned["type"] = original.stored_type
        return []

    def _check_currency(self, value: Any, cleaned: dict) -> list[ValidationIssue]:
        if value is None or (isinstance(value, str) and not value.strip()):
            cleaned["currency"] = self._base_currency
            return []

        code = value.strip().upper() if isinstance(value, str) else None
        if code is None or not CURRENCY_CODE_PATTERN.match(code):
            return [ValidationIssue(
                field="currency",
                issue_type="invalid_format",
                message=INVALID_CURRENCY_MESSAGE,
                severity="error",
            )]

        cleaned["currency"] = code
        return []

    def _check_text(self, name: str, value: Any, cleaned: dict) -> list[ValidationIssue]:
        if value is None:
            cleaned[name] = None
            return []

        if not isinstance(value, str):
            return [ValidationIssue(
                field=name,
                issue_type="invalid_type",
                message=f"{name.capitalize()} must be text",
                severity="error",
            )]

        text = value.strip()
        limit = self._limits[name]
        issues = []
        if len(text) > limit:
            text = text[:limit]
            issues.append(ValidationIssue(
                field=name,
                issue_type="truncated",
                message=f"{name.capitalize()} was truncated to {limit} characters",
                severity="info",
            ))

        cleaned[name] = text or None
        return issues

    def _check_reference(self, name: str, value: Any, cleaned: dict) -> list[ValidationIssue]:
        if value is None:
            cleaned[name] = None
            return []

        if isinstance(value, bool) or not isinstance(value, (str, int)):
            return [ValidationIssue(
                field=name,
                issue_type="invalid_type",
                message=f"{name} must be an identifier",
                severity="error",
            )]

        reference = str(value).strip()
        cleaned[name] = reference or None
        return []

    def _check_timestamp(self, value: Any, cleaned: dict) -> list[ValidationIssue]:
        if value is None or (isinstance(value, str) and not value.strip()):
            cleaned["timestamp"] = None
            return []

        try:
            parsed = _DATETIME_ADAPTER.validate_python(value)
        except PydanticValidationError:
            return [ValidationIssue(
                field="timestamp",
                issue_type="invalid_format",
                message="Timestamp must be an ISO 8601 date-time",
                severity="error",
            )]

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        else:
            # Stores drop the offset, so keep the instant in UTC
            parsed = parsed.astimezone(timezone.utc)
        cleaned["timestamp"] = parsed
        return []

    def _check_tags(self, value: Any, cleaned: dict) -> list[ValidationIssue]:
        if value is None:
            cleaned["tags"] = None
            return []

        if not isinstance(value, list) or not all(isinstance(tag, str) for tag in value):
            return [ValidationIssue(
                field="tags",
                issue_type="invalid_type",
                message="Tags must be a list of strings",
                severity="error",
            )]

        cleaned["tags"] = [tag.strip() for tag in value if tag.strip()]
        return []

    def _check_payment_source(self, value: Any, cleaned: dict) -> list[ValidationIssue]:
        if value is None:
            cleaned["payment_source"] = None
            return []

        if not isinstance(value, str):
            return [ValidationIssue(
                field="payment_source",
                issue_type="invalid_type",
                message="Payment source must be text",
                severity="error",
            )]

        cleaned["payment_source"] = value.strip() or None
        return []

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _run(self, submission: TransactionSubmission) -> tuple[ValidationResult, dict]:
        cleaned: dict = {}
        issues = self._check_required(submission)

        # Only look at amount and type once both are present
        if not issues:
            issues.extend(self._check_amount(submission.amount, cleaned))
            issues.extend(self._check_type(submission.type, cleaned))

        issues.extend(self._check_currency(submission.currency, cleaned))
        for name in ("merchant", "notes", "description"):
            issues.extend(self._check_text(name, getattr(submission, name), cleaned))
        for name in ("category_id", "account_id", "family_member_id"):
            issues.extend(self._check_reference(name, getattr(submission, name), cleaned))
        issues.extend(self._check_timestamp(submission.timestamp, cleaned))
        issues.extend(self._check_tags(submission.tags, cleaned))
        issues.extend(self._check_payment_source(submission.payment_source, cleaned))

        return ValidationResult(issues=issues), cleaned

    def validate(self, submission: TransactionSubmission) -> ValidationResult:
        """Report every issue with a submission without raising."""
        result, _ = self._run(submission)
        return result

    def sanitize(self, submission: TransactionSubmission) -> SanitizedTransaction:
        """
        Validate and clean a submission.

        Raises:
            ValidationError: If any error-level issue was found
        """
        result, cleaned = self._run(submission)
        if result.has_errors:
            raise ValidationError(result.first_error_message, result)
        return SanitizedTransaction(**cleaned)

    def sanitize_payload(self, payload: Any) -> SanitizedTransaction:
        """
        Validate a raw decoded JSON body.

        Raises:
            ValidationError: If the body is not an object or fails validation
        """
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        return self.sanitize(TransactionSubmission.model_validate(payload))
