"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real document store later
2. Use in-memory storage for testing
3. Keep ledger logic decoupled from storage implementation

The account store is document-style: one record per user, with each month
kept as a nested document under `months.<YYYY-MM>`. The only write the
ledger engine needs is an atomic replace of one field of one record.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from budgetly.models.audit import AuditEvent
from budgetly.models.ledger import AccountDraft, MonthlyLedger, UserAccount
from budgetly.models.suggestion import PurchaseSuggestion


MONTHS_FIELD = "months"

# Top-level account fields that replace_field may overwrite
WRITABLE_ACCOUNT_FIELDS = frozenset({
    "name",
    "photo_url",
    "savings",
    "location",
    "occupation",
})


class AccountStorageInterface(ABC):
    """
    Abstract interface for account persistence.

    Any storage implementation (Google Sheets, MongoDB, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def find_by_uid(self, uid: str) -> Optional[UserAccount]:
        """
        Retrieve an account by its identity key.

        Returns:
            The account if found, None otherwise
        """
        pass

    @abstractmethod
    async def find_or_create(self, draft: AccountDraft) -> tuple[UserAccount, bool]:
        """
        Return the account for draft.uid, creating it if absent.

        Returns:
            (account, created)
        """
        pass

    @abstractmethod
    async def replace_field(
        self,
        uid: str,
        field_path: str,
        value: Any,
        *,
        expected_version: Optional[int] = None,
        validate: bool = False,
    ) -> UserAccount:
        """
        Atomically overwrite one field of one account.

        Args:
            uid: Account identity key
            field_path: A writable top-level field, or "months.<YYYY-MM>"
            value: The complete new value for that field
            expected_version: When given, the write only happens if the
                "version" of the value currently stored at field_path equals
                it (a missing value or missing version counts as 0)
            validate: Re-validate the resulting record before writing.
                Off by default: ledger write-backs are already-validated values.

        Returns:
            The account after the write

        Raises:
            NotFoundError: If the account doesn't exist
            ConflictError: If expected_version does not match
            StorageError: If the write fails
        """
        pass


class SuggestionStorageInterface(ABC):
    """
    Abstract interface for the purchase suggestion history.

    Suggestions are append-only - we never modify them.
    """

    @abstractmethod
    async def append(self, suggestion: PurchaseSuggestion) -> bool:
        """
        Append a suggestion.

        Raises:
            DuplicateError: If a suggestion with the same id exists
        """
        pass

    @abstractmethod
    async def list_for_user(self, uid: str) -> list[PurchaseSuggestion]:
        """
        All suggestions of one user, in no particular order.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
        uid: Optional[str] = None,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConflictError(StorageError):
    """The stored record changed since it was read."""

    def __init__(self, uid: str, field_path: str, expected: int, actual: int):
        self.uid = uid
        self.field_path = field_path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Version conflict on {uid}/{field_path}: "
            f"expected {expected}, found {actual}"
        )


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


def parse_field_path(field_path: str) -> tuple[str, Optional[str]]:
    """
    Split a field path into (field, month_key).

    "savings" -> ("savings", None); "months.2024-06" -> ("months", "2024-06").
    """
    if field_path.startswith(f"{MONTHS_FIELD}."):
        month_key = field_path[len(MONTHS_FIELD) + 1:]
        if not month_key:
            raise StorageError(f"Missing month key in field path: {field_path}")
        return MONTHS_FIELD, month_key
    if field_path not in WRITABLE_ACCOUNT_FIELDS:
        raise StorageError(f"Field is not writable: {field_path}")
    return field_path, None


def stored_version(value: Any) -> int:
    """Version stamp of a stored month document (0 when absent or legacy)."""
    if isinstance(value, dict):
        try:
            return int(value.get("version") or 0)
        except (TypeError, ValueError):
            return 0
    return 0


def apply_field_write(
    account: UserAccount,
    field_path: str,
    value: Any,
    *,
    expected_version: Optional[int] = None,
    validate: bool = False,
) -> UserAccount:
    """
    Compute the account that results from one replace_field call.

    Shared by the storage implementations so they agree on
    version checks and validation. The input account is not modified.
    """
    field, month_key = parse_field_path(field_path)
    data = account.model_dump()

    if month_key is not None:
        current = data[MONTHS_FIELD].get(month_key)
        if expected_version is not None:
            actual = stored_version(current)
            if actual != expected_version:
                raise ConflictError(account.uid, field_path, expected_version, actual)
        data[MONTHS_FIELD][month_key] = value
    else:
        data[field] = value

    data["updated_at"] = datetime.now(timezone.utc)

    if validate:
        if month_key is not None:
            MonthlyLedger.model_validate({**value, "month": month_key})
        return UserAccount.model_validate(data)
    return UserAccount.model_construct(**data)
