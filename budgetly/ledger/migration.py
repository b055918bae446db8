"""
Ledger Schema Migration

Month documents written by older versions of the app come in two legacy
shapes that must never reach entry-level code:

1. `income` stored as one number instead of a list of entries
2. expenses stored with `type: "emi"` and an `emiDetails` block, and
   entries identified by a Mongo-style `_id` (often a millisecond
   timestamp, sometimes numeric)

migrate_ledger() turns any stored document into a canonical MonthlyLedger.
It is a pure function: persisting the result is the LedgerStore's job.

IMPORTANT: Migration is idempotent. A canonical document comes back
unchanged with migrated=False.
"""

from typing import Any, Optional

from pydantic import BaseModel

from budgetly.models.ledger import (
    CURRENT_SCHEMA_VERSION,
    ExpenseKind,
    IncomeEntry,
    MonthlyLedger,
    first_day_of_month,
    new_entry_id,
    normalize_entry_id,
    parse_expense,
    validate_month_key,
)
from budgetly.services.storage.interface import stored_version


LEGACY_INCOME_LABEL = "Previous Income"
LEGACY_INCOME_SOURCE = "Migration"

LEGACY_EXPENSE_KINDS = {
    "emi": ExpenseKind.INSTALLMENT.value,
    "installment": ExpenseKind.INSTALLMENT.value,
    "one-time": ExpenseKind.ONE_TIME.value,
}

LEGACY_PLAN_FIELDS = {
    "duration": "duration_months",
    "remainingMonths": "remaining_months",
    "monthlyAmount": "monthly_amount",
    "startedOn": "start_date",
}


class LedgerMigrationError(Exception):
    """A stored month document cannot be interpreted in any known shape."""
    pass


class MigrationResult(BaseModel):
    """Outcome of migrating one month document."""

    ledger: MonthlyLedger
    migrated: bool
    synthesized_income: Optional[float] = None


def _legacy_date(value: Any) -> Any:
    """Stored JS Date values arrive as full ISO timestamps; keep the date part."""
    if isinstance(value, str) and len(value) > 10 and value[10] == "T":
        return value[:10]
    return value


class _IdAllocator:
    """Hands out ids, replacing missing and colliding ones."""

    def __init__(self):
        self.seen: set[str] = set()
        self.changed = False

    def claim(self, item: dict[str, Any]) -> str:
        raw = item.get("id", item.get("_id"))
        if "id" not in item or not isinstance(item.get("id"), str):
            self.changed = True

        entry_id = normalize_entry_id(raw) if raw is not None else ""
        if not entry_id or entry_id in self.seen:
            # Legacy timestamp ids can collide when two writes share a millisecond
            entry_id = new_entry_id()
            while entry_id in self.seen:
                entry_id = new_entry_id()
            self.changed = True

        self.seen.add(entry_id)
        return entry_id


def _migrate_income(
    income: Any,
    month_key: str,
    ids: _IdAllocator,
) -> tuple[list[IncomeEntry], bool, Optional[float]]:
    """Returns (entries, legacy_shape_found, synthesized_amount)."""
    if income is None:
        return [], False, None

    if isinstance(income, (int, float)) and not isinstance(income, bool):
        if income < 0:
            raise LedgerMigrationError(f"Negative legacy income in {month_key}: {income}")
        if income == 0:
            return [], True, None
        entry = IncomeEntry(
            id=ids.claim({}),
            label=LEGACY_INCOME_LABEL,
            amount=float(income),
            source=LEGACY_INCOME_SOURCE,
            date=first_day_of_month(month_key),
        )
        return [entry], True, float(income)

    if not isinstance(income, list):
        raise LedgerMigrationError(
            f"Unrecognized income shape in {month_key}: {type(income).__name__}"
        )

    entries = []
    legacy = False
    for item in income:
        if not isinstance(item, dict):
            raise LedgerMigrationError(f"Unrecognized income entry in {month_key}: {item!r}")
        data = dict(item)
        data["id"] = ids.claim(item)
        data.pop("_id", None)
        if "date" not in data:
            data["date"] = first_day_of_month(month_key)
            legacy = True
        data["date"] = _legacy_date(data["date"])
        entries.append(IncomeEntry.model_validate(data))
    return entries, legacy, None


def _migrate_expense(item: Any, month_key: str, ids: _IdAllocator) -> tuple[Any, bool]:
    """Returns (expense, legacy_shape_found)."""
    if not isinstance(item, dict):
        raise LedgerMigrationError(f"Unrecognized expense entry in {month_key}: {item!r}")

    data = dict(item)
    legacy = False
    data["id"] = ids.claim(item)
    data.pop("_id", None)
    data["date"] = _legacy_date(data.get("date"))

    if "kind" not in data:
        legacy = True
        raw_kind = str(data.pop("type", ExpenseKind.ONE_TIME.value)).lower()
        if raw_kind not in LEGACY_EXPENSE_KINDS:
            raise LedgerMigrationError(f"Unknown expense type in {month_key}: {raw_kind}")
        data["kind"] = LEGACY_EXPENSE_KINDS[raw_kind]

    details = data.pop("emiDetails", None)
    if data["kind"] == ExpenseKind.INSTALLMENT.value and "plan" not in data:
        legacy = True
        if details:
            plan = {
                new_key: details.get(old_key)
                for old_key, new_key in LEGACY_PLAN_FIELDS.items()
            }
            plan["start_date"] = _legacy_date(plan["start_date"])
        else:
            # Installment recorded without terms: one payment of the amount
            plan = {
                "duration_months": 1,
                "remaining_months": 1,
                "monthly_amount": data.get("amount", 0),
                "start_date": data.get("date") or first_day_of_month(month_key),
            }
        data["plan"] = plan
    elif data["kind"] == ExpenseKind.ONE_TIME.value and (details or "plan" in data):
        legacy = True
        data.pop("plan", None)

    return parse_expense(data), legacy


def migrate_ledger(document: Any, month_key: str) -> MigrationResult:
    """
    Convert a stored month document to a canonical MonthlyLedger.

    Args:
        document: The raw value stored under months[month_key], a
            MonthlyLedger, or None when the month has never been written
        month_key: "YYYY-MM"

    Returns:
        MigrationResult; `migrated` is True when the stored document was in
        a legacy shape and should be written back.

    Raises:
        LedgerMigrationError: If the document is in no known shape
        pydantic.ValidationError: If an entry fails validation
    """
    month_key = validate_month_key(month_key)

    if document is None:
        return MigrationResult(ledger=MonthlyLedger.empty(month_key), migrated=False)

    if isinstance(document, MonthlyLedger):
        return MigrationResult(ledger=document, migrated=False)

    if not isinstance(document, dict):
        raise LedgerMigrationError(
            f"Unrecognized ledger document in {month_key}: {type(document).__name__}"
        )

    ids = _IdAllocator()

    income, income_legacy, synthesized = _migrate_income(document.get("income"), month_key, ids)

    expenses = []
    expenses_legacy = False
    for item in document.get("expenses") or []:
        expense, legacy = _migrate_expense(item, month_key, ids)
        expenses.append(expense)
        expenses_legacy = expenses_legacy or legacy

    schema_outdated = document.get("schema_version") != CURRENT_SCHEMA_VERSION

    ledger = MonthlyLedger(
        month=month_key,
        income=income,
        expenses=expenses,
        schema_version=CURRENT_SCHEMA_VERSION,
        version=stored_version(document),
    )

    return MigrationResult(
        ledger=ledger,
        migrated=income_legacy or expenses_legacy or ids.changed or schema_outdated,
        synthesized_income=synthesized,
    )
