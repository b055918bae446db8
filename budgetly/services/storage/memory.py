"""
In-Memory Storage Implementation

Used by the test suite and for running the service without Google Sheets.
Each store keeps deep copies of what it is given, so callers can never
mutate stored state except through the interface.

A single asyncio.Lock per store makes every call atomic with respect to
other coroutines on the same event loop.
"""

import asyncio
import copy
from typing import Any, Optional

from budgetly.models.audit import AuditEvent
from budgetly.models.ledger import AccountDraft, UserAccount
from budgetly.models.suggestion import PurchaseSuggestion
from budgetly.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    SuggestionStorageInterface,
    apply_field_write,
)


class InMemoryAccountStorage(AccountStorageInterface):
    """Accounts held in a dict keyed by uid."""

    def __init__(self, accounts: Optional[list[UserAccount]] = None):
        self._accounts: dict[str, UserAccount] = {}
        self._lock = asyncio.Lock()
        for account in accounts or []:
            self._accounts[account.uid] = account.model_copy(deep=True)

    async def find_by_uid(self, uid: str) -> Optional[UserAccount]:
        async with self._lock:
            account = self._accounts.get(uid)
            return account.model_copy(deep=True) if account else None

    async def find_or_create(self, draft: AccountDraft) -> tuple[UserAccount, bool]:
        async with self._lock:
            existing = self._accounts.get(draft.uid)
            if existing:
                return existing.model_copy(deep=True), False
            account = UserAccount.from_draft(draft)
            self._accounts[account.uid] = account
            return account.model_copy(deep=True), True

    async def replace_field(
        self,
        uid: str,
        field_path: str,
        value: Any,
        *,
        expected_version: Optional[int] = None,
        validate: bool = False,
    ) -> UserAccount:
        async with self._lock:
            account = self._accounts.get(uid)
            if account is None:
                raise NotFoundError(f"Account not found: {uid}")

            updated = apply_field_write(
                account,
                field_path,
                copy.deepcopy(value),
                expected_version=expected_version,
                validate=validate,
            )
            self._accounts[uid] = updated
            return updated.model_copy(deep=True)


class InMemorySuggestionStorage(SuggestionStorageInterface):
    """Suggestions held in insertion order."""

    def __init__(self):
        self._suggestions: dict[str, PurchaseSuggestion] = {}
        self._lock = asyncio.Lock()

    async def append(self, suggestion: PurchaseSuggestion) -> bool:
        async with self._lock:
            if suggestion.id in self._suggestions:
                raise DuplicateError(f"Suggestion already exists: {suggestion.id}")
            # Frozen models can be shared safely
            self._suggestions[suggestion.id] = suggestion
            return True

    async def list_for_user(self, uid: str) -> list[PurchaseSuggestion]:
        return [s for s in self._suggestions.values() if s.uid == uid]


class InMemoryAuditStorage(AuditStorageInterface):
    """Audit events held in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_recent_events(
        self,
        limit: int = 100,
        uid: Optional[str] = None,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if uid is None or e.uid == uid]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
