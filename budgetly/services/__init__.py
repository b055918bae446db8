"""Services package."""

from budgetly.services.storage import (
    AccountStorageInterface,
    AuditStorageInterface,
    ConflictError,
    DuplicateError,
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsSuggestionStorage,
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemorySuggestionStorage,
    NotFoundError,
    StorageConnectionError,
    StorageError,
    SuggestionStorageInterface,
)

__all__ = [
    "AccountStorageInterface",
    "AuditStorageInterface",
    "ConflictError",
    "DuplicateError",
    "GoogleSheetsAccountStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsSuggestionStorage",
    "InMemoryAccountStorage",
    "InMemoryAuditStorage",
    "InMemorySuggestionStorage",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    "SuggestionStorageInterface",
]
