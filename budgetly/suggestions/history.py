"""
Suggestion History

Append-only record of every scored purchase. Suggestions are never updated
or deleted; reads return newest first.
"""

from typing import Optional

from budgetly.config import AppSettings, get_settings
from budgetly.models.suggestion import (
    PurchaseSuggestion,
    ScoreStats,
    SuggestionScore,
    SuggestionStats,
)
from budgetly.services.storage import SuggestionStorageInterface


class SuggestionLedger:
    """Query layer over a SuggestionStorageInterface."""

    def __init__(
        self,
        storage: SuggestionStorageInterface,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().app

    async def append(self, suggestion: PurchaseSuggestion) -> PurchaseSuggestion:
        """
        Record a suggestion.

        Raises:
            DuplicateError: If a suggestion with this id was already recorded
        """
        await self._storage.append(suggestion)
        return suggestion

    async def _newest_first(self, uid: str) -> list[PurchaseSuggestion]:
        suggestions = await self._storage.list_for_user(uid)
        # Insertion order breaks timestamp ties
        ordered = sorted(
            enumerate(suggestions),
            key=lambda pair: (pair[1].suggested_at, pair[0]),
            reverse=True,
        )
        return [suggestion for _, suggestion in ordered]

    async def list_by_user(self, uid: str, limit: Optional[int] = None) -> list[PurchaseSuggestion]:
        """
        Most recent suggestions of one user.

        Args:
            limit: 1..max_suggestion_limit; defaults to default_suggestion_limit

        Raises:
            ValueError: If limit is out of range
        """
        if limit is None:
            limit = self._settings.default_suggestion_limit
        if not 1 <= limit <= self._settings.max_suggestion_limit:
            raise ValueError(
                f"limit must be between 1 and {self._settings.max_suggestion_limit}, got {limit}"
            )
        return (await self._newest_first(uid))[:limit]

    async def stats_by_user(self, uid: str) -> SuggestionStats:
        """Count and summed price of the user's suggestions, per score."""
        by_score: dict[SuggestionScore, ScoreStats] = {}
        for suggestion in await self._storage.list_for_user(uid):
            stats = by_score.setdefault(suggestion.score, ScoreStats())
            stats.count += 1
            stats.total_price += suggestion.price
        return SuggestionStats(uid=uid, by_score=by_score)
