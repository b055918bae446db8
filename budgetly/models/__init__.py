"""
Data Models Package

This package contains all Pydantic models used in Budgetly.
All data flowing through the system must conform to these schemas.
"""

from budgetly.models.ledger import (
    CURRENT_SCHEMA_VERSION,
    AccountDraft,
    ExpenseDraft,
    ExpenseEntry,
    ExpenseKind,
    ExpensePatch,
    IncomeDraft,
    IncomeEntry,
    IncomePatch,
    InstallmentExpense,
    InstallmentPlan,
    MonthAggregate,
    MonthlyLedger,
    OneTimeExpense,
    ProfilePatch,
    UserAccount,
    current_month_key,
    first_day_of_month,
    new_entry_id,
    normalize_entry_id,
    parse_expense,
    validate_month_key,
)
from budgetly.models.suggestion import (
    PaymentType,
    PurchaseRequest,
    PurchaseSuggestion,
    ScoredPurchase,
    ScoreStats,
    SuggestionScore,
    SuggestionStats,
)
from budgetly.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CURRENT_SCHEMA_VERSION",
    "AccountDraft",
    "ExpenseDraft",
    "ExpenseEntry",
    "ExpenseKind",
    "ExpensePatch",
    "IncomeDraft",
    "IncomeEntry",
    "IncomePatch",
    "InstallmentExpense",
    "InstallmentPlan",
    "MonthAggregate",
    "MonthlyLedger",
    "OneTimeExpense",
    "ProfilePatch",
    "UserAccount",
    "current_month_key",
    "first_day_of_month",
    "new_entry_id",
    "normalize_entry_id",
    "parse_expense",
    "validate_month_key",
    # Suggestion models
    "PaymentType",
    "PurchaseRequest",
    "PurchaseSuggestion",
    "ScoredPurchase",
    "ScoreStats",
    "SuggestionScore",
    "SuggestionStats",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
