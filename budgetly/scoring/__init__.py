"""Purchase affordability scoring."""

from budgetly.scoring.scorer import (
    AffordabilityScorer,
    IncompleteDerivedValuesError,
    InstallmentTerms,
    build_assistant_payload,
    resolve_installment_terms,
    score_one_time,
)

__all__ = [
    "AffordabilityScorer",
    "IncompleteDerivedValuesError",
    "InstallmentTerms",
    "build_assistant_payload",
    "resolve_installment_terms",
    "score_one_time",
]
