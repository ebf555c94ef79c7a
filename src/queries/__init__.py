"""Read-side query package."""

from src.queries.suggestions import TransactionSuggestionService, build_suggestion

__all__ = ["TransactionSuggestionService", "build_suggestion"]
