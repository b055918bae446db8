"""
Affordability Scorer

Classifies a prospective purchase as Good, Moderate or Risky against the
user's month and savings.

Two branches:
1. ONE-TIME (a price and no positive installment amount): scored by a pure,
   deterministic rule. The assistant is never called.
2. INSTALLMENT: the assistant scores the purchase and may derive missing
   terms. Its derived values are then checked and overridden here:
   - a duration the user supplied always wins
   - a missing price is monthly amount x duration
   - any term still missing, zero or non-finite rejects the whole response

A suggestion is persisted only when scoring fully succeeds. Nothing partial
is ever written.
"""

import math
from typing import Any, NamedTuple, Optional, Union
from uuid import UUID

from budgetly.agents import (
    AffordabilityAgent,
    DerivedTerms,
    ExternalResponseInvalidError,
    ExternalServiceError,
)
from budgetly.audit import AuditLogger, create_correlation_id
from budgetly.config import AppSettings, get_settings
from budgetly.ledger import MutationGateway
from budgetly.models.ledger import MonthAggregate, current_month_key
from budgetly.models.suggestion import (
    PaymentType,
    PurchaseRequest,
    PurchaseSuggestion,
    ScoredPurchase,
    SuggestionScore,
)
from budgetly.suggestions import SuggestionLedger


ONE_TIME_REASONS = {
    SuggestionScore.GOOD: "small portion of savings and healthy expense ratio",
    SuggestionScore.MODERATE: "manageable portion of savings; watch monthly expenses",
    SuggestionScore.RISKY: "large draw on savings or high expense ratio",
}


class IncompleteDerivedValuesError(ExternalResponseInvalidError):
    """After enforcement, an installment term is still missing, zero or non-finite."""
    pass


class InstallmentTerms(NamedTuple):
    monthly_amount: Optional[float]
    duration: Optional[int]
    price: Optional[float]

    def is_complete(self) -> bool:
        return all(
            value is not None and math.isfinite(value) and value > 0
            for value in self
        )


def score_one_time(
    price: float,
    savings: float,
    expense_ratio: float,
    thresholds: Optional[AppSettings] = None,
) -> tuple[SuggestionScore, str]:
    """
    Deterministic score for a one-time purchase.

    Args:
        price: Purchase price
        savings: Current savings balance
        expense_ratio: Month expenses as a percentage of month income
        thresholds: Band limits; defaults from AppSettings

    Returns:
        (score, one-line reason)
    """
    thresholds = thresholds or get_settings().app

    if (
        price <= thresholds.good_savings_share * savings
        and expense_ratio <= thresholds.good_expense_ratio
    ):
        score = SuggestionScore.GOOD
    elif (
        price <= thresholds.moderate_savings_share * savings
        and expense_ratio <= thresholds.moderate_expense_ratio
    ):
        score = SuggestionScore.MODERATE
    else:
        score = SuggestionScore.RISKY

    return score, ONE_TIME_REASONS[score]


def resolve_installment_terms(request: PurchaseRequest, derived: DerivedTerms) -> InstallmentTerms:
    """
    Combine the assistant's derived terms with what the user submitted.

    Each term prefers the assistant's value, then the submitted one, then a
    value computed from the other two. A submitted duration overrides
    whatever the assistant said.
    """
    price = request.price
    monthly = request.monthly_installment
    duration = request.duration

    if derived.monthly_emi is not None:
        resolved_monthly = derived.monthly_emi
    elif price and duration:
        resolved_monthly = price / duration
    else:
        resolved_monthly = monthly

    if derived.duration is not None:
        resolved_duration = derived.duration
    elif duration is not None:
        resolved_duration = duration
    elif price and monthly:
        resolved_duration = max(1, round(price / monthly))
    else:
        resolved_duration = None

    if derived.price is not None:
        resolved_price = derived.price
    elif price is not None:
        resolved_price = price
    elif monthly and duration:
        resolved_price = monthly * duration
    else:
        resolved_price = None

    if duration is not None:
        resolved_duration = duration

    if not resolved_price and monthly is not None and resolved_duration is not None:
        resolved_price = monthly * resolved_duration

    if resolved_duration is not None and math.isfinite(resolved_duration):
        resolved_duration = int(round(resolved_duration))

    return InstallmentTerms(resolved_monthly, resolved_duration, resolved_price)


def build_assistant_payload(
    request: PurchaseRequest,
    aggregate: MonthAggregate,
    savings: float,
) -> dict[str, Any]:
    """Payload sent to the assistant for an installment purchase."""
    product = {
        "productName": request.product_name,
        "price": request.price,
        "monthlyEMI": request.monthly_installment,
        "duration": request.duration,
        "category": request.category,
    }
    return {
        "monthlyIncome": aggregate.total_income,
        "monthlyExpenses": aggregate.total_expenses,
        "existingEMIs": aggregate.total_installments,
        "savings": savings,
        "paymentType": PaymentType.INSTALLMENT.value,
        "product": {key: value for key, value in product.items() if value is not None},
        "month": aggregate.month,
    }


class AffordabilityScorer:
    """
    Scores purchases and records the outcome in the suggestion history.

    Usage:
        scorer = AffordabilityScorer(gateway, agent, suggestions)
        result = await scorer.score(PurchaseRequest(...))
    """

    def __init__(
        self,
        gateway: MutationGateway,
        agent: AffordabilityAgent,
        suggestions: SuggestionLedger,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._gateway = gateway
        self._agent = agent
        self._suggestions = suggestions
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app

    async def score(
        self,
        request: Union[PurchaseRequest, dict],
        correlation_id: Optional[UUID] = None,
    ) -> ScoredPurchase:
        """
        Score one purchase.

        Raises:
            pydantic.ValidationError: If the request is invalid
            NotFoundError: If the account doesn't exist
            ExternalResponseInvalidError: If the assistant reply is unusable
                (IncompleteDerivedValuesError when terms are missing)
            ExternalServiceError: (or a subclass) if the assistant call fails
        """
        request = PurchaseRequest.model_validate(request)
        correlation_id = correlation_id or create_correlation_id()
        month_key = request.month or current_month_key()

        account = await self._gateway.get_account(request.uid)
        # Advisory read: a legacy month is migrated in memory only
        aggregate = await self._gateway.get_month_aggregate(
            request.uid, month_key, persist_migration=False
        )

        if request.payment_type == PaymentType.ONE_TIME:
            suggestion, explanation = self._score_one_time(request, aggregate, account.savings)
        else:
            suggestion, explanation = await self._score_installment(
                request, aggregate, account.savings, correlation_id
            )

        await self._suggestions.append(suggestion)
        await self._audit.log_suggestion_scored(
            uid=request.uid,
            suggestion_id=suggestion.id,
            score=suggestion.score.value,
            payment_type=request.payment_type.value,
            correlation_id=correlation_id,
        )
        return ScoredPurchase(suggestion=suggestion, explanation=explanation)

    def _score_one_time(
        self,
        request: PurchaseRequest,
        aggregate: MonthAggregate,
        savings: float,
    ) -> tuple[PurchaseSuggestion, str]:
        ratio = aggregate.expense_ratio
        score, reason = score_one_time(request.price, savings, ratio, self._settings)

        suggestion = PurchaseSuggestion(
            uid=request.uid,
            product_name=request.product_name,
            price=request.price,
            installment_amount=0.0,
            duration=0,
            score=score,
            reason=reason,
        )
        explanation = (
            f"One-time purchase assessed against current savings ({savings:,.2f}) "
            f"and expense ratio ({ratio:.1f}%)."
        )
        return suggestion, explanation

    async def _score_installment(
        self,
        request: PurchaseRequest,
        aggregate: MonthAggregate,
        savings: float,
        correlation_id: UUID,
    ) -> tuple[PurchaseSuggestion, str]:
        payload = build_assistant_payload(request, aggregate, savings)

        try:
            verdict, raw = await self._agent.assess(payload)
        except ExternalServiceError as e:
            await self._audit.log_external_service_error(
                service="gemini",
                error_message=f"{type(e).__name__}: {e}",
                uid=request.uid,
                correlation_id=correlation_id,
            )
            raise
        except ExternalResponseInvalidError as e:
            await self._audit.log_assistant_response_rejected(
                uid=request.uid,
                reason=str(e),
                raw_content=e.raw_content,
                correlation_id=correlation_id,
            )
            raise

        terms = resolve_installment_terms(request, verdict.derived)
        if not terms.is_complete():
            error = IncompleteDerivedValuesError(
                f"Incomplete installment terms after enforcement: {terms._asdict()}",
                raw,
            )
            await self._audit.log_assistant_response_rejected(
                uid=request.uid,
                reason=str(error),
                raw_content=raw,
                correlation_id=correlation_id,
            )
            raise error

        suggestion = PurchaseSuggestion(
            uid=request.uid,
            product_name=request.product_name,
            price=terms.price,
            installment_amount=terms.monthly_amount,
            duration=terms.duration,
            score=verdict.suggestion_score,
            reason=verdict.reason,
        )
        return suggestion, verdict.explanation or verdict.reason
