"""
Ledger Data Models for Budgetly

These models define the canonical shape of a user's monthly ledger:
income entries, expense entries and the account that owns them.

DESIGN DECISION: The canonical MonthlyLedger has no scalar income field.
Legacy documents (income stored as one number) are only ever seen as raw
dicts inside UserAccount.months and are converted by the migrator before
any entry-level operation runs.

Expenses are a tagged union on `kind`. An installment expense cannot be
constructed without its plan.
"""

import datetime as dt
import re
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
    model_validator,
)


CURRENT_SCHEMA_VERSION = 2

MONTH_KEY_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"

MonthKey = Annotated[str, StringConstraints(strip_whitespace=True, pattern=MONTH_KEY_PATTERN)]

_month_key_adapter = TypeAdapter(MonthKey)


def validate_month_key(value: str) -> str:
    """Validate a "YYYY-MM" key. Raises pydantic.ValidationError."""
    return _month_key_adapter.validate_python(value)


def current_month_key(today: Optional[dt.date] = None) -> str:
    """Month key for the current calendar month (UTC)."""
    today = today or dt.datetime.now(dt.timezone.utc).date()
    return today.strftime("%Y-%m")


def first_day_of_month(month_key: str) -> dt.date:
    """First calendar day of a month key."""
    year, month = validate_month_key(month_key).split("-")
    return dt.date(int(year), int(month), 1)


def new_entry_id() -> str:
    """Random 128-bit identifier, hex encoded."""
    return uuid4().hex


def normalize_entry_id(value: Any) -> str:
    """
    Normalized string form used for id comparison.

    Numeric ids from older documents (e.g. 1718000000000) must compare
    equal to their textual form ("1718000000000").
    """
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


# =============================================================================
# ENUMS
# =============================================================================

class ExpenseKind(str, Enum):
    """Expense variants. Stored documents carry the string value."""
    ONE_TIME = "one-time"
    INSTALLMENT = "installment"


# =============================================================================
# ENTRIES
# =============================================================================

class IncomeEntry(BaseModel):
    """A single income record within one month."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., ge=0)
    source: str = Field(default="", max_length=200)
    date: dt.date


class InstallmentPlan(BaseModel):
    """Terms of an installment (EMI) expense."""

    duration_months: int = Field(
        ...,
        ge=1,
        description="Total number of monthly payments"
    )
    remaining_months: int = Field(
        ...,
        ge=0,
        description="Payments still outstanding"
    )
    monthly_amount: float = Field(
        ...,
        ge=0,
        description="Amount paid each month"
    )
    start_date: dt.date

    @model_validator(mode='after')
    def validate_remaining(self) -> 'InstallmentPlan':
        if self.remaining_months > self.duration_months:
            raise ValueError("Remaining months cannot exceed the plan duration")
        return self


class _ExpenseFields(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=100)
    date: dt.date


class OneTimeExpense(_ExpenseFields):
    """An expense paid once."""

    kind: Literal["one-time"] = ExpenseKind.ONE_TIME.value


class InstallmentExpense(_ExpenseFields):
    """An expense paid over an installment plan."""

    kind: Literal["installment"] = ExpenseKind.INSTALLMENT.value
    plan: InstallmentPlan


ExpenseEntry = Annotated[
    Union[OneTimeExpense, InstallmentExpense],
    Field(discriminator="kind"),
]

_expense_adapter = TypeAdapter(ExpenseEntry)


def parse_expense(data: dict[str, Any]) -> Union[OneTimeExpense, InstallmentExpense]:
    """Validate a dict into the matching expense variant."""
    return _expense_adapter.validate_python(data)


# =============================================================================
# DRAFTS AND PATCHES (gateway inputs)
# =============================================================================

class IncomeDraft(BaseModel):
    """Income entry as submitted by a caller, before an id is assigned."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    label: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., ge=0)
    source: str = Field(default="", max_length=200)
    date: dt.date

    def to_entry(self, entry_id: str) -> IncomeEntry:
        return IncomeEntry(id=entry_id, **self.model_dump())


class ExpenseDraft(BaseModel):
    """Expense entry as submitted by a caller, before an id is assigned."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    label: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=100)
    date: dt.date
    kind: Literal["one-time", "installment"] = ExpenseKind.ONE_TIME.value
    plan: Optional[InstallmentPlan] = None

    @model_validator(mode='after')
    def validate_plan(self) -> 'ExpenseDraft':
        if self.kind == ExpenseKind.INSTALLMENT and self.plan is None:
            raise ValueError("Installment expenses require an installment plan")
        if self.kind == ExpenseKind.ONE_TIME and self.plan is not None:
            raise ValueError("One-time expenses cannot carry an installment plan")
        return self

    def to_entry(self, entry_id: str) -> Union[OneTimeExpense, InstallmentExpense]:
        data = self.model_dump(exclude_none=True)
        return parse_expense({"id": entry_id, **data})


class IncomePatch(BaseModel):
    """Partial update for an income entry. The id itself cannot change."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    label: Optional[str] = None
    amount: Optional[float] = None
    source: Optional[str] = None
    date: Optional[dt.date] = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ExpensePatch(BaseModel):
    """Partial update for an expense entry. The id itself cannot change."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    label: Optional[str] = None
    amount: Optional[float] = None
    category: Optional[str] = None
    date: Optional[dt.date] = None
    kind: Optional[Literal["one-time", "installment"]] = None
    plan: Optional[InstallmentPlan] = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# =============================================================================
# LEDGER
# =============================================================================

class MonthlyLedger(BaseModel):
    """
    All income and expense entries of one user for one month.

    `version` is the optimistic-concurrency stamp: the store only accepts a
    write-back whose version matches the stored one, then increments it.
    """

    month: MonthKey
    income: list[IncomeEntry] = Field(default_factory=list)
    expenses: list[ExpenseEntry] = Field(default_factory=list)
    schema_version: int = Field(default=CURRENT_SCHEMA_VERSION)
    version: int = Field(default=0, ge=0)

    @model_validator(mode='after')
    def validate_unique_ids(self) -> 'MonthlyLedger':
        seen: set[str] = set()
        for entry in [*self.income, *self.expenses]:
            key = normalize_entry_id(entry.id)
            if key in seen:
                raise ValueError(f"Duplicate entry id in ledger {self.month}: {key}")
            seen.add(key)
        return self

    @classmethod
    def empty(cls, month_key: str) -> 'MonthlyLedger':
        return cls(month=month_key)

    def index_of_income(self, entry_id: Any) -> Optional[int]:
        target = normalize_entry_id(entry_id)
        for idx, entry in enumerate(self.income):
            if normalize_entry_id(entry.id) == target:
                return idx
        return None

    def index_of_expense(self, entry_id: Any) -> Optional[int]:
        target = normalize_entry_id(entry_id)
        for idx, entry in enumerate(self.expenses):
            if normalize_entry_id(entry.id) == target:
                return idx
        return None

    def has_entry_id(self, entry_id: Any) -> bool:
        return (
            self.index_of_income(entry_id) is not None
            or self.index_of_expense(entry_id) is not None
        )

    def to_document(self) -> dict[str, Any]:
        """JSON-ready document as stored under UserAccount.months[month]."""
        return self.model_dump(mode="json", exclude={"month"})


class MonthAggregate(BaseModel):
    """Totals derived from one ledger. Never stored."""

    month: str
    total_income: float = 0.0
    total_expenses: float = 0.0
    total_installments: float = 0.0
    by_category: dict[str, float] = Field(default_factory=dict)

    @property
    def expense_ratio(self) -> float:
        """Expenses as a percentage of income; 0 when there is no income."""
        if self.total_income <= 0:
            return 0.0
        return self.total_expenses / self.total_income * 100

    @classmethod
    def from_ledger(cls, ledger: MonthlyLedger) -> 'MonthAggregate':
        by_category: dict[str, float] = {}
        for expense in ledger.expenses:
            by_category[expense.category] = by_category.get(expense.category, 0.0) + expense.amount

        return cls(
            month=ledger.month,
            total_income=sum(entry.amount for entry in ledger.income),
            total_expenses=sum(expense.amount for expense in ledger.expenses),
            total_installments=sum(
                expense.amount
                for expense in ledger.expenses
                if expense.kind == ExpenseKind.INSTALLMENT
            ),
            by_category=by_category,
        )


# =============================================================================
# ACCOUNT
# =============================================================================

class AccountDraft(BaseModel):
    """Identity-linked fields used to find or create an account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    uid: str = Field(..., min_length=1, max_length=128)
    email: str = Field(..., min_length=3, max_length=320)
    name: str = Field(..., min_length=1, max_length=200)
    photo_url: Optional[str] = None
    location: Optional[str] = Field(default=None, max_length=200)
    occupation: Optional[str] = Field(default=None, max_length=200)

    @model_validator(mode='after')
    def validate_email(self) -> 'AccountDraft':
        if not re.fullmatch(r"[^@\s]+@[^@\s]+", self.email):
            raise ValueError(f"Invalid email address: {self.email}")
        return self


class ProfilePatch(BaseModel):
    """Profile fields a user may change. Only the supplied fields are written."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    photo_url: Optional[str] = None
    location: Optional[str] = Field(default=None, max_length=200)
    occupation: Optional[str] = Field(default=None, max_length=200)

    @model_validator(mode='after')
    def validate_name_kept(self) -> 'ProfilePatch':
        if "name" in self.model_fields_set and self.name is None:
            raise ValueError("name cannot be cleared")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class UserAccount(BaseModel):
    """
    A user and their raw month documents.

    `months` is kept untyped on purpose: stored documents may still be in a
    legacy shape until the migrator has seen them.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    uid: str = Field(..., min_length=1)
    email: str
    name: str
    photo_url: Optional[str] = None
    savings: float = Field(default=0.0, ge=0)
    location: Optional[str] = None
    occupation: Optional[str] = None
    created_at: dt.datetime = Field(
        default_factory=lambda: dt.datetime.now(dt.timezone.utc)
    )
    updated_at: dt.datetime = Field(
        default_factory=lambda: dt.datetime.now(dt.timezone.utc)
    )
    months: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_draft(cls, draft: AccountDraft) -> 'UserAccount':
        return cls(**draft.model_dump(), savings=0.0)
