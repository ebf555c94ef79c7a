"""Submission validation package."""

from src.validation.validator import (
    TransactionValidator,
    ValidationError,
    parse_amount,
)

__all__ = ["TransactionValidator", "ValidationError", "parse_amount"]
