"""
Purchase Suggestion Models

A suggestion is the persisted outcome of scoring one prospective purchase.
Once created it is never mutated (the model is frozen).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from budgetly.models.ledger import MonthKey


class SuggestionScore(str, Enum):
    """Affordability classification."""
    GOOD = "Good"
    MODERATE = "Moderate"
    RISKY = "Risky"


class PaymentType(str, Enum):
    """How the purchase would be paid for."""
    ONE_TIME = "one-time"
    INSTALLMENT = "installment"


class PurchaseRequest(BaseModel):
    """
    A purchase the user wants scored.

    Either a flat price, or a monthly installment amount together with a
    duration, must be supplied. Zero counts as not supplied.
    """
    model_config = ConfigDict(str_strip_whitespace=True, allow_inf_nan=False)

    uid: str = Field(..., min_length=1)
    product_name: str = Field(..., min_length=1, max_length=200)
    price: Optional[float] = Field(default=None, ge=0)
    monthly_installment: Optional[float] = Field(default=None, ge=0)
    duration: Optional[int] = Field(
        default=None,
        ge=0,
        description="Installment duration in months"
    )
    category: Optional[str] = Field(default=None, max_length=100)
    month: Optional[MonthKey] = Field(
        default=None,
        description="Ledger month to assess against; defaults to the current month"
    )

    @model_validator(mode='after')
    def validate_terms(self) -> 'PurchaseRequest':
        if not self.price and not (self.monthly_installment and self.duration):
            raise ValueError(
                "Provide a price or a monthly installment amount and duration"
            )
        return self

    @property
    def payment_type(self) -> PaymentType:
        """One-time when a price is given and no positive installment amount is."""
        has_installment = (
            self.monthly_installment is not None and self.monthly_installment > 0
        )
        if self.price is not None and not has_installment:
            return PaymentType.ONE_TIME
        return PaymentType.INSTALLMENT


class PurchaseSuggestion(BaseModel):
    """A scored purchase, as stored in the suggestion history."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    uid: str = Field(..., min_length=1)
    product_name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    installment_amount: float = Field(default=0.0, ge=0)
    duration: int = Field(default=0, ge=0)
    score: SuggestionScore
    reason: str = Field(..., min_length=1)
    suggested_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class ScoredPurchase(BaseModel):
    """Scoring result returned to callers. The explanation is not persisted."""

    suggestion: PurchaseSuggestion
    explanation: str


class ScoreStats(BaseModel):
    count: int = 0
    total_price: float = 0.0


class SuggestionStats(BaseModel):
    """Per-score counts and summed prices for one user."""

    uid: str
    by_score: dict[SuggestionScore, ScoreStats] = Field(default_factory=dict)

    @property
    def total_count(self) -> int:
        return sum(stats.count for stats in self.by_score.values())
