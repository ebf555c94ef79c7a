"""
Transaction Suggestions

Prefill values for a new transaction, derived DETERMINISTICALLY from
the caller's own recent transactions in the same category:

- merchant: the most frequent merchant (ties go to the most recent)
- notes: the first five words longer than three characters across notes
- averageAmount: mean of the base-currency amounts, rounded
- confidence: how many transactions the suggestion is based on

A request without a category gets the empty suggestion; uncategorized
history is not used.

Nothing is invented: with no history the suggestion is empty with
confidence 0.
"""

import math
from collections import Counter
from typing import Optional

from src.models.market import TransactionSuggestion
from src.models.transaction import Transaction
from src.services.storage import TransactionStorageInterface


RECENT_SAMPLE_SIZE = 10
MIN_NOTE_WORD_LENGTH = 4
MAX_NOTE_WORDS = 5


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def build_suggestion(transactions: list[Transaction]) -> TransactionSuggestion:
    """Aggregate recent transactions (newest first) into a suggestion."""
    if not transactions:
        return TransactionSuggestion()

    merchants = Counter(tx.merchant for tx in transactions if tx.merchant)
    merchant = merchants.most_common(1)[0][0] if merchants else ""

    words = " ".join(tx.notes for tx in transactions if tx.notes).split()
    notes = " ".join(
        [word for word in words if len(word) >= MIN_NOTE_WORD_LENGTH][:MAX_NOTE_WORDS]
    )

    average = sum(tx.base_amount for tx in transactions) / len(transactions)

    return TransactionSuggestion(
        merchant=merchant,
        notes=notes,
        average_amount=_round_half_up(average),
        confidence=len(transactions),
    )


class TransactionSuggestionService:
    """Builds suggestions from stored transactions."""

    def __init__(self, storage: TransactionStorageInterface):
        self._storage = storage

    async def suggest(
        self,
        user_id: str,
        category_id: Optional[str],
    ) -> TransactionSuggestion:
        # Without a category there is no history to learn from
        if category_id is None:
            return TransactionSuggestion()

        recent = await self._storage.list_recent_by_category(
            user_id=user_id,
            category_id=category_id,
            limit=RECENT_SAMPLE_SIZE,
        )
        return build_suggestion(recent)
