"""Purchase suggestion history."""

from budgetly.suggestions.history import SuggestionLedger

__all__ = ["SuggestionLedger"]
