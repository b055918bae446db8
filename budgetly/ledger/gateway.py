"""
Mutation Gateway

The only entry point for changing a user's ledgers, savings and profile.

Every ledger mutation follows the same read-modify-write cycle:
1. Load the month via LedgerStore.get (migrating legacy documents)
2. Apply the edit to an in-memory copy
3. Write the whole ledger back via LedgerStore.replace

DESIGN DECISION: Concurrent writers are resolved optimistically. The
write-back is conditioned on the version that was read; on ConflictError
the whole cycle runs again, up to `ledger_write_attempts` times. Nothing is
persisted until the final replace, so an abandoned request leaves no
partial write.
"""

from typing import Any, Callable, Optional, Union
from uuid import UUID

from pydantic import NonNegativeFloat, TypeAdapter
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from budgetly.audit import AuditLogger
from budgetly.config import AppSettings, get_settings
from budgetly.ledger.store import LedgerStore
from budgetly.models.audit import AuditEventType
from budgetly.models.ledger import (
    ExpenseDraft,
    ExpenseEntry,
    ExpenseKind,
    ExpensePatch,
    IncomeDraft,
    IncomeEntry,
    IncomePatch,
    MonthAggregate,
    MonthlyLedger,
    ProfilePatch,
    UserAccount,
    new_entry_id,
    parse_expense,
)
from budgetly.services.storage import ConflictError, NotFoundError


_savings_adapter = TypeAdapter(NonNegativeFloat)


def _fresh_id(ledger: MonthlyLedger) -> str:
    entry_id = new_entry_id()
    while ledger.has_entry_id(entry_id):
        entry_id = new_entry_id()
    return entry_id


def _with_entries(
    ledger: MonthlyLedger,
    income: Optional[list[IncomeEntry]] = None,
    expenses: Optional[list[Any]] = None,
) -> MonthlyLedger:
    """A validated copy of ledger with one of its entry lists replaced."""
    return MonthlyLedger(
        month=ledger.month,
        income=list(ledger.income) if income is None else income,
        expenses=list(ledger.expenses) if expenses is None else expenses,
        schema_version=ledger.schema_version,
        version=ledger.version,
    )


class MutationGateway:
    """
    Validated add/update/remove of income and expense entries.

    Usage:
        gateway = MutationGateway(LedgerStore(storage))
        ledger = await gateway.add_expense(uid, "2024-06", {...})
    """

    def __init__(
        self,
        store: LedgerStore,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._store = store
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app

    async def _mutate(
        self,
        uid: str,
        month_key: str,
        edit: Callable[[MonthlyLedger], MonthlyLedger],
        correlation_id: Optional[UUID] = None,
    ) -> MonthlyLedger:
        """Run one read-modify-write cycle, retrying on version conflicts."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.ledger_write_attempts),
            retry=retry_if_exception_type(ConflictError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                ledger = await self._store.get(uid, month_key, correlation_id=correlation_id)
                edited = edit(ledger)
                return await self._store.replace(
                    uid, month_key, edited, correlation_id=correlation_id
                )

    # =========================================================================
    # READS
    # =========================================================================

    async def get_account(self, uid: str) -> UserAccount:
        return await self._store.get_account(uid)

    async def get_ledger(self, uid: str, month_key: str) -> MonthlyLedger:
        return await self._store.get(uid, month_key)

    async def get_month_aggregate(
        self,
        uid: str,
        month_key: str,
        persist_migration: bool = True,
    ) -> MonthAggregate:
        """Totals for one month. Pass persist_migration=False for advisory reads."""
        ledger = await self._store.get(uid, month_key, persist_migration=persist_migration)
        return MonthAggregate.from_ledger(ledger)

    async def list_expenses(self, uid: str) -> list[tuple[str, ExpenseEntry]]:
        """Every expense of the user across all months, tagged with its month key."""
        tagged = []
        for month_key in await self._store.list_month_keys(uid):
            ledger = await self._store.view(uid, month_key)
            tagged.extend((month_key, expense) for expense in ledger.expenses)
        return tagged

    # =========================================================================
    # INCOME
    # =========================================================================

    async def add_income(
        self,
        uid: str,
        month_key: str,
        draft: Union[IncomeDraft, dict],
        correlation_id: Optional[UUID] = None,
    ) -> MonthlyLedger:
        """
        Append an income entry with a freshly assigned id.

        Raises:
            pydantic.ValidationError: If the draft is invalid
            NotFoundError: If the account doesn't exist
            ConflictError: If every write attempt lost a race
        """
        draft = IncomeDraft.model_validate(draft)
        added: dict[str, IncomeEntry] = {}

        def edit(ledger: MonthlyLedger) -> MonthlyLedger:
            entry = draft.to_entry(_fresh_id(ledger))
            added["entry"] = entry
            return _with_entries(ledger, income=[*ledger.income, entry])

        ledger = await self._mutate(uid, month_key, edit, correlation_id)
        await self._audit.log_entry_changed(
            AuditEventType.INCOME_ADDED,
            uid=uid,
            month=ledger.month,
            entry_id=added["entry"].id,
            amount=added["entry"].amount,
            correlation_id=correlation_id,
        )
        return ledger

    async def update_income(
        self,
        uid: str,
        month_key: str,
        entry_id: Any,
        patch: Union[IncomePatch, dict],
        correlation_id: Optional[UUID] = None,
    ) -> MonthlyLedger:
        """
        Merge the supplied fields into one income entry. Its id never changes.

        Raises:
            NotFoundError: If the account or the entry doesn't exist
        """
        patch = IncomePatch.model_validate(patch)

        def edit(ledger: MonthlyLedger) -> MonthlyLedger:
            idx = ledger.index_of_income(entry_id)
            if idx is None:
                raise NotFoundError(f"Income entry not found in {ledger.month}: {entry_id}")
            existing = ledger.income[idx]
            merged = IncomeEntry.model_validate(
                {**existing.model_dump(), **patch.changes(), "id": existing.id}
            )
            income = list(ledger.income)
            income[idx] = merged
            return _with_entries(ledger, income=income)

        ledger = await self._mutate(uid, month_key, edit, correlation_id)
        await self._audit.log_entry_changed(
            AuditEventType.INCOME_UPDATED,
            uid=uid,
            month=ledger.month,
            entry_id=str(entry_id),
            correlation_id=correlation_id,
        )
        return ledger

    async def remove_income(
        self,
        uid: str,
        month_key: str,
        entry_id: Any,
        correlation_id: Optional[UUID] = None,
    ) -> MonthlyLedger:
        """
        Remove exactly one income entry.

        Raises:
            NotFoundError: If the account or the entry doesn't exist
        """

        def edit(ledger: MonthlyLedger) -> MonthlyLedger:
            idx = ledger.index_of_income(entry_id)
            if idx is None:
                raise NotFoundError(f"Income entry not found in {ledger.month}: {entry_id}")
            income = list(ledger.income)
            del income[idx]
            return _with_entries(ledger, income=income)

        ledger = await self._mutate(uid, month_key, edit, correlation_id)
        await self._audit.log_entry_changed(
            AuditEventType.INCOME_REMOVED,
            uid=uid,
            month=ledger.month,
            entry_id=str(entry_id),
            correlation_id=correlation_id,
        )
        return ledger

    # =========================================================================
    # EXPENSES
    # =========================================================================

    async def add_expense(
        self,
        uid: str,
        month_key: str,
        draft: Union[ExpenseDraft, dict],
        correlation_id: Optional[UUID] = None,
    ) -> MonthlyLedger:
        """
        Append an expense entry with a freshly assigned id.

        Raises:
            pydantic.ValidationError: If the draft is invalid (including an
                installment expense without a plan)
            NotFoundError: If the account doesn't exist
            ConflictError: If every write attempt lost a race
        """
        draft = ExpenseDraft.model_validate(draft)
        added: dict[str, Any] = {}

        def edit(ledger: MonthlyLedger) -> MonthlyLedger:
            entry = draft.to_entry(_fresh_id(ledger))
            added["entry"] = entry
            return _with_entries(ledger, expenses=[*ledger.expenses, entry])

        ledger = await self._mutate(uid, month_key, edit, correlation_id)
        await self._audit.log_entry_changed(
            AuditEventType.EXPENSE_ADDED,
            uid=uid,
            month=ledger.month,
            entry_id=added["entry"].id,
            amount=added["entry"].amount,
            correlation_id=correlation_id,
        )
        return ledger

    async def update_expense(
        self,
        uid: str,
        month_key: str,
        entry_id: Any,
        patch: Union[ExpensePatch, dict],
        correlation_id: Optional[UUID] = None,
    ) -> MonthlyLedger:
        """
        Merge the supplied fields into one expense entry.

        Switching kind to "installment" requires a plan, either already on
        the entry or in the patch. Switching to "one-time" drops the plan.

        Raises:
            pydantic.ValidationError: If the merged entry is invalid
            NotFoundError: If the account or the entry doesn't exist
        """
        patch = ExpensePatch.model_validate(patch)

        def edit(ledger: MonthlyLedger) -> MonthlyLedger:
            idx = ledger.index_of_expense(entry_id)
            if idx is None:
                raise NotFoundError(f"Expense entry not found in {ledger.month}: {entry_id}")
            existing = ledger.expenses[idx]
            data = {**existing.model_dump(), **patch.changes(), "id": existing.id}
            if data["kind"] == ExpenseKind.ONE_TIME.value:
                data.pop("plan", None)
            expenses = list(ledger.expenses)
            expenses[idx] = parse_expense(data)
            return _with_entries(ledger, expenses=expenses)

        ledger = await self._mutate(uid, month_key, edit, correlation_id)
        await self._audit.log_entry_changed(
            AuditEventType.EXPENSE_UPDATED,
            uid=uid,
            month=ledger.month,
            entry_id=str(entry_id),
            correlation_id=correlation_id,
        )
        return ledger

    async def remove_expense(
        self,
        uid: str,
        month_key: str,
        entry_id: Any,
        correlation_id: Optional[UUID] = None,
    ) -> MonthlyLedger:
        """
        Remove exactly one expense entry.

        Raises:
            NotFoundError: If the account or the entry doesn't exist
        """

        def edit(ledger: MonthlyLedger) -> MonthlyLedger:
            idx = ledger.index_of_expense(entry_id)
            if idx is None:
                raise NotFoundError(f"Expense entry not found in {ledger.month}: {entry_id}")
            expenses = list(ledger.expenses)
            del expenses[idx]
            return _with_entries(ledger, expenses=expenses)

        ledger = await self._mutate(uid, month_key, edit, correlation_id)
        await self._audit.log_entry_changed(
            AuditEventType.EXPENSE_REMOVED,
            uid=uid,
            month=ledger.month,
            entry_id=str(entry_id),
            correlation_id=correlation_id,
        )
        return ledger

    # =========================================================================
    # SAVINGS
    # =========================================================================

    async def update_savings(
        self,
        uid: str,
        amount: float,
        correlation_id: Optional[UUID] = None,
    ) -> UserAccount:
        """
        Overwrite the savings balance. This is a full replacement, not an increment.

        Raises:
            pydantic.ValidationError: If amount is negative
            NotFoundError: If the account doesn't exist
        """
        amount = _savings_adapter.validate_python(amount)
        account = await self._store.update_account_field(uid, "savings", amount)
        await self._audit.log_savings_updated(
            uid=uid,
            amount=amount,
            correlation_id=correlation_id,
        )
        return account

    # =========================================================================
    # PROFILE
    # =========================================================================

    async def update_profile(
        self,
        uid: str,
        patch: Union[ProfilePatch, dict],
        correlation_id: Optional[UUID] = None,
    ) -> UserAccount:
        """
        Overwrite the supplied profile fields. Savings and months are not
        reachable from here.

        Raises:
            pydantic.ValidationError: If the patch is invalid or names an unknown field
            NotFoundError: If the account doesn't exist
        """
        patch = ProfilePatch.model_validate(patch)
        changes = patch.changes()
        if not changes:
            return await self._store.get_account(uid)

        account = None
        for field, value in changes.items():
            account = await self._store.update_account_field(uid, field, value)
        await self._audit.log_profile_updated(
            uid=uid,
            fields=sorted(changes),
            correlation_id=correlation_id,
        )
        return account
