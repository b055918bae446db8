"""
Tests for Budgetly models

Test strategy:
1. Unit tests for individual components (models, migration, scoring rules)
2. Integration tests for flows (in-memory storage, fake Gemini model)
3. No real API calls in tests
"""

import pytest
from datetime import date
from uuid import uuid4

from pydantic import ValidationError

from budgetly.models.ledger import (
    AccountDraft,
    ExpenseDraft,
    ExpensePatch,
    IncomeEntry,
    InstallmentExpense,
    InstallmentPlan,
    MonthAggregate,
    MonthlyLedger,
    OneTimeExpense,
    current_month_key,
    first_day_of_month,
    normalize_entry_id,
    parse_expense,
    validate_month_key,
)
from budgetly.models.suggestion import (
    PaymentType,
    PurchaseRequest,
    PurchaseSuggestion,
    SuggestionScore,
)
from budgetly.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


def _plan(**overrides) -> InstallmentPlan:
    data = {
        "duration_months": 12,
        "remaining_months": 10,
        "monthly_amount": 2000,
        "start_date": date(2024, 4, 1),
    }
    data.update(overrides)
    return InstallmentPlan(**data)


class TestMonthKeys:
    """Tests for month key helpers."""

    def test_valid_month_key(self):
        assert validate_month_key("2024-06") == "2024-06"

    @pytest.mark.parametrize("key", ["2024-13", "2024-6", "24-06", "2024/06", ""])
    def test_invalid_month_key_rejected(self, key):
        with pytest.raises(ValidationError):
            validate_month_key(key)

    def test_current_month_key(self):
        assert current_month_key(date(2025, 1, 31)) == "2025-01"

    def test_first_day_of_month(self):
        assert first_day_of_month("2024-06") == date(2024, 6, 1)


class TestEntryIds:
    """Numeric and textual ids must compare equal."""

    def test_integer_id_normalized(self):
        assert normalize_entry_id(1718000000000) == "1718000000000"

    def test_integral_float_id_normalized(self):
        assert normalize_entry_id(1718000000000.0) == "1718000000000"

    def test_whitespace_stripped(self):
        assert normalize_entry_id(" abc ") == "abc"


class TestExpenseModels:
    """Tests for the expense tagged union."""

    def test_parse_one_time_expense(self):
        expense = parse_expense({
            "id": "e1",
            "label": "Groceries",
            "amount": 3000,
            "category": "Food",
            "date": "2024-06-03",
            "kind": "one-time",
        })
        assert isinstance(expense, OneTimeExpense)

    def test_parse_installment_expense(self):
        expense = parse_expense({
            "id": "e2",
            "label": "Phone",
            "amount": 2000,
            "category": "Electronics",
            "date": "2024-06-05",
            "kind": "installment",
            "plan": _plan().model_dump(),
        })
        assert isinstance(expense, InstallmentExpense)
        assert expense.plan.duration_months == 12

    def test_installment_without_plan_rejected(self):
        with pytest.raises(ValidationError):
            parse_expense({
                "id": "e3",
                "label": "Phone",
                "amount": 2000,
                "category": "Electronics",
                "date": "2024-06-05",
                "kind": "installment",
            })

    def test_remaining_cannot_exceed_duration(self):
        with pytest.raises(ValidationError):
            _plan(remaining_months=13)

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            ExpenseDraft(label="Rent", amount=-1, category="Housing", date=date(2024, 6, 1))

    def test_draft_installment_requires_plan(self):
        with pytest.raises(ValidationError):
            ExpenseDraft(
                label="Laptop",
                amount=5000,
                category="Electronics",
                date=date(2024, 6, 1),
                kind="installment",
            )

    def test_draft_one_time_cannot_carry_plan(self):
        with pytest.raises(ValidationError):
            ExpenseDraft(
                label="Laptop",
                amount=5000,
                category="Electronics",
                date=date(2024, 6, 1),
                plan=_plan(),
            )

    def test_draft_to_entry_keeps_id(self):
        draft = ExpenseDraft(label="Rent", amount=15000, category="Housing", date=date(2024, 6, 1))
        entry = draft.to_entry("abc")
        assert entry.id == "abc"
        assert entry.kind == "one-time"

    def test_patch_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            ExpensePatch(id="other")

    def test_patch_changes_only_supplied_fields(self):
        assert ExpensePatch(amount=10).changes() == {"amount": 10}


class TestMonthlyLedger:
    """Tests for the canonical ledger."""

    def _income(self, entry_id="i1", amount=50000):
        return IncomeEntry(id=entry_id, label="Salary", amount=amount, date=date(2024, 6, 1))

    def _expense(self, entry_id="e1", amount=3000, category="Food"):
        return OneTimeExpense(
            id=entry_id,
            label="Groceries",
            amount=amount,
            category=category,
            date=date(2024, 6, 2),
        )

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValidationError):
            MonthlyLedger(month="2024-06", income=[self._income("x")], expenses=[self._expense("x")])

    def test_lookup_uses_normalized_ids(self):
        ledger = MonthlyLedger(month="2024-06", expenses=[self._expense("1718000000000")])
        assert ledger.index_of_expense(1718000000000) == 0
        assert ledger.has_entry_id(" 1718000000000 ")
        assert ledger.index_of_income("1718000000000") is None

    def test_to_document_excludes_month(self):
        document = MonthlyLedger(month="2024-06", income=[self._income()]).to_document()
        assert "month" not in document
        assert document["income"][0]["date"] == "2024-06-01"
        assert document["version"] == 0

    def test_aggregate_totals(self):
        installment = InstallmentExpense(
            id="e2",
            label="Phone EMI",
            amount=2000,
            category="Electronics",
            date=date(2024, 6, 5),
            plan=_plan(),
        )
        ledger = MonthlyLedger(
            month="2024-06",
            income=[self._income(amount=50000)],
            expenses=[self._expense(amount=3000), self._expense("e3", 7000), installment],
        )
        aggregate = MonthAggregate.from_ledger(ledger)

        assert aggregate.total_income == 50000
        assert aggregate.total_expenses == 12000
        assert aggregate.total_installments == 2000
        assert aggregate.by_category == {"Food": 10000, "Electronics": 2000}
        assert aggregate.expense_ratio == pytest.approx(24.0)

    def test_expense_ratio_zero_without_income(self):
        aggregate = MonthAggregate(month="2024-06", total_expenses=500)
        assert aggregate.expense_ratio == 0.0


class TestAccountModels:
    """Tests for account drafts."""

    def test_draft_strips_whitespace(self):
        draft = AccountDraft(uid=" u1 ", email="a@example.com", name="  Asha ")
        assert draft.uid == "u1"
        assert draft.name == "Asha"

    def test_invalid_email_rejected(self):
        with pytest.raises(ValidationError):
            AccountDraft(uid="u1", email="not-an-email", name="Asha")


class TestSuggestionModels:
    """Tests for purchase requests and suggestions."""

    def test_request_requires_price_or_terms(self):
        with pytest.raises(ValidationError):
            PurchaseRequest(uid="u1", product_name="TV")

    def test_request_with_monthly_but_no_duration_rejected(self):
        with pytest.raises(ValidationError):
            PurchaseRequest(uid="u1", product_name="TV", monthly_installment=1000)

    def test_zero_price_counts_as_missing(self):
        with pytest.raises(ValidationError):
            PurchaseRequest(uid="u1", product_name="TV", price=0)

    def test_price_only_is_one_time(self):
        request = PurchaseRequest(uid="u1", product_name="TV", price=30000)
        assert request.payment_type == PaymentType.ONE_TIME

    def test_positive_installment_is_installment(self):
        request = PurchaseRequest(
            uid="u1",
            product_name="TV",
            price=30000,
            monthly_installment=2500,
            duration=12,
        )
        assert request.payment_type == PaymentType.INSTALLMENT

    def test_zero_installment_with_price_is_one_time(self):
        request = PurchaseRequest(uid="u1", product_name="TV", price=30000, monthly_installment=0)
        assert request.payment_type == PaymentType.ONE_TIME

    def test_invalid_month_rejected(self):
        with pytest.raises(ValidationError):
            PurchaseRequest(uid="u1", product_name="TV", price=100, month="June")

    def test_suggestion_is_frozen(self):
        suggestion = PurchaseSuggestion(
            uid="u1",
            product_name="TV",
            price=30000,
            score=SuggestionScore.GOOD,
            reason="ok",
        )
        with pytest.raises(ValidationError):
            suggestion.price = 1


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.INCOME_ADDED,
            description="Income added",
        )
        assert event.event_type == AuditEventType.INCOME_ADDED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.SUGGESTION_SCORED,
            description="Purchase scored",
            details={"score": "Good"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "suggestion_scored"
        assert log_dict["details"]["score"] == "Good"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.LEDGER_MIGRATED,
            uid="u1",
            description="Ledger migrated",
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "ledger_migrated"  # event_type
        assert row[4] == "u1"  # uid

    def test_audit_event_builder_entry_changed(self):
        """Test AuditEventBuilder.entry_changed."""
        correlation_id = uuid4()

        event = AuditEventBuilder.entry_changed(
            AuditEventType.EXPENSE_REMOVED,
            uid="u1",
            month="2024-06",
            entry_id="e1",
            correlation_id=correlation_id,
        )

        assert event.entity_type == "expense"
        assert event.entity_id == "e1"
        assert event.correlation_id == correlation_id
        assert event.description == "Expense entry removed in 2024-06"

    def test_audit_event_builder_write_conflict_is_warning(self):
        """Test AuditEventBuilder.write_conflict."""
        event = AuditEventBuilder.write_conflict(uid="u1", month="2024-06", expected_version=3)

        assert event.event_type == AuditEventType.WRITE_CONFLICT
        assert event.severity == AuditSeverity.WARNING
        assert event.details["expected_version"] == 3
