"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the hosted backend; the in-memory stores back the tests
and local runs. Both implement the same interfaces.
"""

from budgetly.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    ConflictError,
    DuplicateError,
    NotFoundError,
    StorageConnectionError,
    StorageError,
    SuggestionStorageInterface,
)
from budgetly.services.storage.memory import (
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemorySuggestionStorage,
)
from budgetly.services.storage.google_sheets import (
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsSuggestionStorage,
)

__all__ = [
    # Interfaces
    "AccountStorageInterface",
    "AuditStorageInterface",
    "SuggestionStorageInterface",
    # Exceptions
    "ConflictError",
    "DuplicateError",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAccountStorage",
    "InMemoryAuditStorage",
    "InMemorySuggestionStorage",
    # Google Sheets implementation
    "GoogleSheetsAccountStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsSuggestionStorage",
]
