"""
Ledger Store

Reads and writes one user's month ledgers through the account storage.
Every read passes the stored document through the migrator, so callers
only ever see canonical ledgers.

IMPORTANT: A write-back is a compare-and-swap on the ledger's version.
If another request wrote the month since it was read, replace() raises
ConflictError instead of overwriting that request's changes.
"""

from typing import Any, Optional
from uuid import UUID

from budgetly.audit import AuditLogger
from budgetly.ledger.migration import LedgerMigrationError, migrate_ledger
from budgetly.models.ledger import MonthlyLedger, UserAccount, validate_month_key
from budgetly.services.storage import (
    AccountStorageInterface,
    ConflictError,
    NotFoundError,
)
from budgetly.services.storage.interface import MONTHS_FIELD


class LedgerStore:
    """
    Month ledger persistence on top of an AccountStorageInterface.

    Usage:
        store = LedgerStore(InMemoryAccountStorage())
        ledger = await store.get(uid, "2024-06")
        ledger = await store.replace(uid, "2024-06", edited)
    """

    def __init__(
        self,
        storage: AccountStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()

    async def get_account(self, uid: str) -> UserAccount:
        """
        Raises:
            NotFoundError: If no account has this uid
        """
        account = await self._storage.find_by_uid(uid)
        if account is None:
            raise NotFoundError(f"Account not found: {uid}")
        return account

    async def list_month_keys(self, uid: str) -> list[str]:
        """Month keys with a stored document, oldest first."""
        account = await self.get_account(uid)
        return sorted(account.months.keys())

    async def get(
        self,
        uid: str,
        month_key: str,
        persist_migration: bool = True,
        correlation_id: Optional[UUID] = None,
    ) -> MonthlyLedger:
        """
        Load the canonical ledger for one month.

        An absent month yields an empty ledger (nothing is written).
        A legacy document is migrated and, when persist_migration is set,
        written back before returning.
        """
        month_key = validate_month_key(month_key)
        account = await self.get_account(uid)
        document = account.months.get(month_key)

        try:
            result = migrate_ledger(document, month_key)
        except LedgerMigrationError as e:
            await self._audit.log_error(
                error_type="ledger_migration_failed",
                error_message=str(e),
                details={"uid": uid, "month": month_key},
                correlation_id=correlation_id,
            )
            raise

        if not result.migrated or not persist_migration:
            return result.ledger

        try:
            ledger = await self.replace(uid, month_key, result.ledger, correlation_id=correlation_id)
        except ConflictError:
            # Someone else wrote the month first; their document is canonical
            return await self.view(uid, month_key)

        await self._audit.log_ledger_migrated(
            uid=uid,
            month=month_key,
            synthesized_income=result.synthesized_income,
            persisted=True,
            correlation_id=correlation_id,
        )
        return ledger

    async def view(self, uid: str, month_key: str) -> MonthlyLedger:
        """Read-only view: legacy documents are migrated in memory only."""
        return await self.get(uid, month_key, persist_migration=False)

    async def replace(
        self,
        uid: str,
        month_key: str,
        ledger: MonthlyLedger,
        correlation_id: Optional[UUID] = None,
    ) -> MonthlyLedger:
        """
        Write a full ledger back to its month record.

        Args:
            ledger: The edited ledger; its version must be the one that was read

        Returns:
            The ledger as stored, with its version incremented

        Raises:
            NotFoundError: If the account doesn't exist
            ConflictError: If the month was written since the ledger was read
        """
        month_key = validate_month_key(month_key)
        if ledger.month != month_key:
            raise ValueError(f"Ledger for {ledger.month} cannot be written to {month_key}")

        stored = ledger.model_copy(update={"version": ledger.version + 1})
        try:
            await self._storage.replace_field(
                uid,
                f"{MONTHS_FIELD}.{month_key}",
                stored.to_document(),
                expected_version=ledger.version,
            )
        except ConflictError:
            await self._audit.log_write_conflict(
                uid=uid,
                month=month_key,
                expected_version=ledger.version,
                correlation_id=correlation_id,
            )
            raise
        return stored

    async def update_account_field(self, uid: str, field: str, value: Any) -> UserAccount:
        """Overwrite one top-level account field, validating the result."""
        return await self._storage.replace_field(uid, field, value, validate=True)
