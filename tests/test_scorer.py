"""
Tests for AffordabilityScorer.

One-time purchases are scored without the assistant; installment purchases
go through FakeGeminiModel.
"""

import pytest

from pydantic import ValidationError

from conftest import MONTH, UID, verdict_json

from budgetly.agents import (
    DerivedTerms,
    ExternalResponseInvalidError,
    ModelUnavailableError,
    QuotaExceededError,
)
from budgetly.config import AppSettings
from budgetly.models.audit import AuditEventType
from budgetly.models.suggestion import PurchaseRequest, SuggestionScore
from budgetly.scoring import (
    IncompleteDerivedValuesError,
    build_assistant_payload,
    resolve_installment_terms,
    score_one_time,
)
from budgetly.services.storage import NotFoundError


SALARY = {"label": "Salary", "amount": 100000, "date": "2024-06-01"}


async def _set_month(gateway, expenses_total: float):
    await gateway.add_income(UID, MONTH, SALARY)
    if expenses_total:
        await gateway.add_expense(UID, MONTH, {
            "label": "Living",
            "amount": expenses_total,
            "category": "Household",
            "date": "2024-06-02",
        })


class TestOneTimeRule:
    """The deterministic one-time rule."""

    def test_good(self):
        score, reason = score_one_time(8000, 100000, 60.0, AppSettings())
        assert score == SuggestionScore.GOOD
        assert reason == "small portion of savings and healthy expense ratio"

    def test_moderate(self):
        score, reason = score_one_time(25000, 100000, 75.0, AppSettings())
        assert score == SuggestionScore.MODERATE
        assert reason == "manageable portion of savings; watch monthly expenses"

    def test_risky(self):
        score, reason = score_one_time(60000, 100000, 85.0, AppSettings())
        assert score == SuggestionScore.RISKY
        assert reason == "large draw on savings or high expense ratio"

    def test_bands_are_inclusive(self):
        assert score_one_time(10000, 100000, 70.0, AppSettings())[0] == SuggestionScore.GOOD
        assert score_one_time(30000, 100000, 80.0, AppSettings())[0] == SuggestionScore.MODERATE

    def test_high_ratio_is_risky_even_when_cheap(self):
        assert score_one_time(1, 100000, 85.0, AppSettings())[0] == SuggestionScore.RISKY

    def test_thresholds_come_from_settings(self):
        strict = AppSettings(good_savings_share=0.01, moderate_savings_share=0.02)
        assert score_one_time(5000, 100000, 20.0, strict)[0] == SuggestionScore.RISKY


class TestInstallmentTerms:
    """Enforcement of the assistant's derived terms."""

    def _request(self, **kwargs) -> PurchaseRequest:
        return PurchaseRequest(uid=UID, product_name="Laptop", **kwargs)

    def test_submitted_duration_overrides_assistant(self):
        request = self._request(monthly_installment=2000, duration=12)
        terms = resolve_installment_terms(request, DerivedTerms(monthly_emi=2000, duration=6))

        assert terms.duration == 12
        assert terms.price == 24000

    def test_price_and_duration_give_monthly(self):
        request = self._request(price=24000, monthly_installment=1, duration=12)
        terms = resolve_installment_terms(request, DerivedTerms())

        assert terms.monthly_amount == 2000

    def test_assistant_values_used_when_nothing_submitted(self):
        request = self._request(price=24000, monthly_installment=3000, duration=None)
        terms = resolve_installment_terms(
            request, DerivedTerms(monthly_emi=3000, duration=8, price=24000)
        )

        assert terms == (3000, 8, 24000)

    def test_duration_computed_from_price_and_monthly(self):
        request = self._request(price=25000, monthly_installment=3000)
        terms = resolve_installment_terms(request, DerivedTerms())

        assert terms.duration == 8

    def test_non_finite_terms_are_incomplete(self):
        request = self._request(price=12000, monthly_installment=1000)
        derived = DerivedTerms.model_construct(monthly_emi=1000.0, duration=float("inf"), price=12000.0)

        terms = resolve_installment_terms(request, derived)

        assert not terms.is_complete()

    def test_nan_is_incomplete(self):
        request = self._request(price=12000, monthly_installment=1000, duration=12)
        derived = DerivedTerms.model_construct(monthly_emi=float("nan"), duration=None, price=None)

        assert not resolve_installment_terms(request, derived).is_complete()

    def test_non_finite_request_rejected(self):
        with pytest.raises(ValidationError):
            self._request(price=float("inf"))

    def test_payload_shape(self):
        request = self._request(monthly_installment=2000, duration=12, month=MONTH)
        aggregate_payload = build_assistant_payload(
            request,
            aggregate=_aggregate(),
            savings=100000,
        )

        assert aggregate_payload["paymentType"] == "installment"
        assert aggregate_payload["product"] == {
            "productName": "Laptop",
            "monthlyEMI": 2000,
            "duration": 12,
        }
        assert aggregate_payload["existingEMIs"] == 2000


def _aggregate():
    from budgetly.models.ledger import MonthAggregate

    return MonthAggregate(
        month=MONTH,
        total_income=100000,
        total_expenses=20000,
        total_installments=2000,
    )


class TestOneTimeScoring:
    """One-time purchases through the scorer."""

    async def test_good_one_time_purchase(self, scorer, gateway, fake_model, suggestions):
        """Scenario: savings 100000, ratio 60%, price 8000 scores Good."""
        await _set_month(gateway, 60000)

        result = await scorer.score({"uid": UID, "product_name": "Headphones", "price": 8000, "month": MONTH})

        suggestion = result.suggestion
        assert suggestion.score == SuggestionScore.GOOD
        assert suggestion.reason == "small portion of savings and healthy expense ratio"
        assert suggestion.installment_amount == 0
        assert suggestion.duration == 0
        assert suggestion.price == 8000
        assert "60.0%" in result.explanation
        assert fake_model.calls == []
        assert (await suggestions.list_by_user(UID))[0].id == suggestion.id

    async def test_risky_one_time_purchase(self, scorer, gateway):
        """Scenario: savings 100000, ratio 85%, price 60000 scores Risky."""
        await _set_month(gateway, 85000)

        result = await scorer.score({"uid": UID, "product_name": "Sofa", "price": 60000, "month": MONTH})

        assert result.suggestion.score == SuggestionScore.RISKY
        assert result.suggestion.reason == "large draw on savings or high expense ratio"

    async def test_no_income_means_zero_ratio(self, scorer):
        result = await scorer.score({"uid": UID, "product_name": "Book", "price": 500, "month": MONTH})
        assert result.suggestion.score == SuggestionScore.GOOD

    async def test_invalid_request_persists_nothing(self, scorer, suggestions):
        with pytest.raises(ValidationError):
            await scorer.score({"uid": UID, "product_name": "TV"})

        assert await suggestions.list_by_user(UID) == []

    async def test_unknown_account(self, scorer):
        with pytest.raises(NotFoundError):
            await scorer.score({"uid": "nobody", "product_name": "TV", "price": 100})

    async def test_scoring_does_not_write_legacy_month(self, scorer, account_storage):
        await account_storage.replace_field(UID, f"months.{MONTH}", {"income": 5000, "expenses": []})

        await scorer.score({"uid": UID, "product_name": "Book", "price": 500, "month": MONTH})

        stored = (await account_storage.find_by_uid(UID)).months[MONTH]
        assert stored["income"] == 5000


class TestInstallmentScoring:
    """Installment purchases through the assistant."""

    async def test_duration_override(self, scorer, fake_model):
        """Scenario: user gives 2000 x 12; the assistant says 6 months."""
        fake_model.replies.append(verdict_json("Moderate", "EMI fits", monthlyEMI=2000, duration=6))

        result = await scorer.score({
            "uid": UID,
            "product_name": "Phone",
            "monthly_installment": 2000,
            "duration": 12,
            "month": MONTH,
        })

        suggestion = result.suggestion
        assert suggestion.duration == 12
        assert suggestion.installment_amount == 2000
        assert suggestion.price == 24000
        assert suggestion.score == SuggestionScore.MODERATE
        assert suggestion.reason == "EMI fits"
        assert result.explanation == "EMI is a small share of income."

    async def test_payload_sent_to_assistant(self, scorer, gateway, fake_model):
        await _set_month(gateway, 20000)
        fake_model.replies.append(verdict_json(monthlyEMI=2000, duration=12, price=24000))

        await scorer.score({
            "uid": UID,
            "product_name": "Phone",
            "monthly_installment": 2000,
            "duration": 12,
            "category": "Electronics",
            "month": MONTH,
        })

        payload = fake_model.last_payload
        assert payload["monthlyIncome"] == 100000
        assert payload["monthlyExpenses"] == 20000
        assert payload["savings"] == 100000
        assert payload["month"] == MONTH
        assert payload["product"]["category"] == "Electronics"

    async def test_zero_monthly_amount_is_incomplete(self, scorer, fake_model, suggestions, audit_storage):
        """A derived monthly amount of 0 counts as missing."""
        fake_model.replies.append(verdict_json(monthlyEMI=0, price=60000))

        with pytest.raises(IncompleteDerivedValuesError):
            await scorer.score({
                "uid": UID,
                "product_name": "Bike",
                "price": 60000,
                "monthly_installment": 5000,
                "month": MONTH,
            })

        assert await suggestions.list_by_user(UID) == []
        assert any(
            e.event_type == AuditEventType.ASSISTANT_RESPONSE_REJECTED
            for e in audit_storage.events
        )

    async def test_unparseable_reply(self, scorer, fake_model, suggestions):
        fake_model.replies.append("I think it's fine!")

        with pytest.raises(ExternalResponseInvalidError):
            await scorer.score({
                "uid": UID,
                "product_name": "Phone",
                "monthly_installment": 2000,
                "duration": 12,
            })

        assert await suggestions.list_by_user(UID) == []

    async def test_quota_failure(self, scorer, fake_model, audit_storage):
        fake_model.replies.append(RuntimeError("429 Quota exceeded for this project"))

        with pytest.raises(QuotaExceededError):
            await scorer.score({
                "uid": UID,
                "product_name": "Phone",
                "monthly_installment": 2000,
                "duration": 12,
            })

        assert any(
            e.event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
            for e in audit_storage.events
        )

    async def test_model_unavailable(self, scorer, fake_model):
        fake_model.replies.append(RuntimeError("models/gemini-x is not found"))

        with pytest.raises(ModelUnavailableError):
            await scorer.score({
                "uid": UID,
                "product_name": "Phone",
                "monthly_installment": 2000,
                "duration": 12,
            })

    async def test_success_is_audited(self, scorer, fake_model, audit_storage):
        fake_model.replies.append(verdict_json(monthlyEMI=2000, duration=12, price=24000))

        await scorer.score({
            "uid": UID,
            "product_name": "Phone",
            "monthly_installment": 2000,
            "duration": 12,
        })

        scored = [e for e in audit_storage.events if e.event_type == AuditEventType.SUGGESTION_SCORED]
        assert scored[0].details == {"score": "Good", "payment_type": "installment"}

    @pytest.mark.parametrize("reply", [
        '{"suggestionScore": "Good", "reason": "ok",'
        ' "derived": {"monthlyEMI": 1000, "duration": Infinity, "price": 12000}}',
        'Verdict: {"suggestionScore": "Good", "reason": "ok",'
        ' "derived": {"monthlyEMI": NaN, "duration": 12, "price": 12000}}',
    ])
    async def test_non_finite_derived_values_rejected(
        self, scorer, fake_model, suggestions, audit_storage, reply
    ):
        fake_model.replies.append(reply)

        with pytest.raises(ExternalResponseInvalidError):
            await scorer.score({
                "uid": UID,
                "product_name": "Tablet",
                "price": 12000,
                "monthly_installment": 1000,
                "month": MONTH,
            })

        assert await suggestions.list_by_user(UID) == []
        assert any(
            e.event_type == AuditEventType.ASSISTANT_RESPONSE_REJECTED
            for e in audit_storage.events
        )
