"""Ledger engine: schema migration, month storage and validated mutations."""

from budgetly.ledger.gateway import MutationGateway
from budgetly.ledger.migration import LedgerMigrationError, MigrationResult, migrate_ledger
from budgetly.ledger.store import LedgerStore

__all__ = [
    "LedgerMigrationError",
    "LedgerStore",
    "MigrationResult",
    "MutationGateway",
    "migrate_ledger",
]
