"""AI Agents package."""

from budgetly.agents.ai_agents import (
    AffordabilityAgent,
    AffordabilityVerdict,
    AssistantError,
    DerivedTerms,
    ExternalResponseInvalidError,
    ExternalServiceError,
    ModelUnavailableError,
    QuotaExceededError,
    ReportAgent,
    classify_assistant_error,
    parse_verdict,
)

__all__ = [
    "AffordabilityAgent",
    "AffordabilityVerdict",
    "AssistantError",
    "DerivedTerms",
    "ExternalResponseInvalidError",
    "ExternalServiceError",
    "ModelUnavailableError",
    "QuotaExceededError",
    "ReportAgent",
    "classify_assistant_error",
    "parse_verdict",
]
