"""
AI Agents for Budgetly

CRITICAL BOUNDARIES:

1. AFFORDABILITY AGENT:
   - CAN: Classify an installment purchase as Good, Moderate or Risky
   - CAN: Derive missing installment terms (monthly amount, duration, price)
   - CANNOT: Override a duration the user supplied (enforced by the scorer)
   - CANNOT: Persist anything; the scorer decides what is stored

2. REPORT AGENT:
   - CAN: Write a short monthly report FROM the aggregated month
   - CANNOT: See individual entries or invent figures not in the payload

The assistant is treated as an untrusted collaborator. Its reply is parsed
strictly; anything that does not match the expected shape is rejected with
ExternalResponseInvalidError rather than silently repaired.

Failures are classified so callers can tell them apart:
- QuotaExceededError: the API key ran out of quota
- ModelUnavailableError: the configured model is not found or not served
- ExternalServiceError: everything else, including timeouts
"""

import asyncio
import json
from typing import Any, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from budgetly.config import GeminiSettings, get_settings
from budgetly.models.ledger import MonthAggregate
from budgetly.models.suggestion import SuggestionScore


# =============================================================================
# ERRORS
# =============================================================================

class AssistantError(Exception):
    """Base exception for assistant calls."""
    pass


class ExternalResponseInvalidError(AssistantError):
    """The assistant answered, but not in a usable shape."""

    def __init__(self, message: str, raw_content: Optional[str] = None):
        self.raw_content = raw_content
        super().__init__(message)


class ExternalServiceError(AssistantError):
    """The assistant call itself failed."""
    pass


class QuotaExceededError(ExternalServiceError):
    """The assistant API quota is exhausted."""
    pass


class ModelUnavailableError(ExternalServiceError):
    """The configured model is not found or not available."""
    pass


def classify_assistant_error(error: Exception) -> ExternalServiceError:
    """Map an exception raised by the Gemini client to our taxonomy."""
    message = str(error) or type(error).__name__
    lowered = message.lower()

    if isinstance(error, google_exceptions.ResourceExhausted) or "quota" in lowered:
        return QuotaExceededError(message)

    if isinstance(error, google_exceptions.NotFound) or (
        "model" in lowered and ("not found" in lowered or "unavailable" in lowered)
    ):
        return ModelUnavailableError(message)

    return ExternalServiceError(message)


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class DerivedTerms(BaseModel):
    """Installment terms as derived by the assistant. Any of them may be missing."""
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    monthly_emi: Optional[float] = Field(default=None, alias="monthlyEMI")
    duration: Optional[float] = None
    price: Optional[float] = None


class AffordabilityVerdict(BaseModel):
    """
    The assistant's reply for an installment purchase.

    Wire shape:
    {"suggestionScore": "Good|Moderate|Risky", "reason": "...",
     "derived": {"monthlyEMI": n, "duration": n, "price": n},
     "explanation": "..."}
    """
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    suggestion_score: SuggestionScore = Field(..., alias="suggestionScore")
    reason: str = Field(..., min_length=1)
    derived: DerivedTerms = Field(default_factory=DerivedTerms)
    explanation: Optional[str] = None


def _first_json_object(text: str) -> Optional[dict[str, Any]]:
    """First well-formed JSON object embedded in text, scanning left to right."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None


def parse_verdict(text: Optional[str]) -> AffordabilityVerdict:
    """
    Parse an assistant reply into an AffordabilityVerdict.

    Strict JSON first; failing that, one extraction pass for the first
    JSON object in the text (models sometimes wrap it in prose or fences).

    Raises:
        ExternalResponseInvalidError: If no valid verdict can be read
    """
    if not text or not text.strip():
        raise ExternalResponseInvalidError("Assistant returned an empty response", text)

    try:
        return AffordabilityVerdict.model_validate_json(text.strip())
    except ValidationError:
        pass

    candidate = _first_json_object(text)
    if candidate is None:
        raise ExternalResponseInvalidError("Assistant response contains no JSON object", text)

    try:
        return AffordabilityVerdict.model_validate(candidate)
    except ValidationError as e:
        raise ExternalResponseInvalidError(
            f"Assistant response does not match the verdict shape ({e.error_count()} errors)",
            text,
        ) from e


def response_text(response: Any) -> Optional[str]:
    """Text of a Gemini response, or None when it has none."""
    try:
        text = response.text
    except (ValueError, AttributeError):
        # .text raises when the candidate has no text parts (e.g. blocked)
        text = None

    if not text:
        parts = []
        for candidate in getattr(response, "candidates", None) or []:
            content = getattr(candidate, "content", None)
            for part in getattr(content, "parts", None) or []:
                if getattr(part, "text", None):
                    parts.append(part.text)
        text = "\n".join(parts)

    return text.strip() if text else None


# =============================================================================
# AGENTS
# =============================================================================

class _GeminiAgent:
    """Shared Gemini configuration and the bounded, classified model call."""

    response_mime_type: Optional[str] = None

    def __init__(
        self,
        model: Optional[Any] = None,
        settings: Optional[GeminiSettings] = None,
    ):
        """
        Args:
            model: Anything with an async generate_content_async(contents).
                Defaults to a genai.GenerativeModel built from settings.
            settings: Gemini settings; loaded from the environment if None.
        """
        self._settings = settings or get_settings().gemini
        self._model = model or self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        generation_config = {
            "temperature": self._settings.temperature,
            "max_output_tokens": self._settings.max_tokens,
        }
        if self.response_mime_type:
            generation_config["response_mime_type"] = self.response_mime_type
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config=generation_config,
        )

    async def _generate(self, instructions: str, payload: dict[str, Any]) -> Optional[str]:
        """
        Send instructions plus a JSON payload; return the reply text.

        Raises:
            ExternalServiceError: (or a subclass) on any call failure
        """
        contents = [instructions, json.dumps(payload)]
        timeout = self._settings.request_timeout_seconds
        try:
            response = await asyncio.wait_for(
                self._model.generate_content_async(contents),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExternalServiceError(f"Assistant did not respond within {timeout}s") from e
        except Exception as e:
            raise classify_assistant_error(e) from e

        return response_text(response)


class AffordabilityAgent(_GeminiAgent):
    """
    Scores installment purchases.

    Only installment purchases reach the assistant; one-time purchases are
    scored deterministically by the scorer.
    """

    response_mime_type = "application/json"

    INSTRUCTIONS = """Respond with ONLY strict JSON (no prose, no markdown) in exactly this shape:
{"suggestionScore":"Good|Moderate|Risky","reason":"short one-line","derived":{"monthlyEMI":number,"duration":number,"price":number},"explanation":"2-4 sentences with key trade-offs"}

Context: Indian household budget (INR). Prefer conservative advice.
Safety heuristics:
- monthlyEMI <= 25% of monthlyIncome
- existingEMIs plus the new monthlyEMI <= 40% of monthlyIncome
- monthlyExpenses <= 80% of monthlyIncome
- savings buffer > 10% of monthlyIncome

The purchase is paid in installments:
- Do NOT change a provided duration; set derived.duration to it.
- If price is missing, set derived.price = monthlyEMI * duration.
- If monthlyEMI is missing, set derived.monthlyEMI = price / duration."""

    async def assess(self, payload: dict[str, Any]) -> tuple[AffordabilityVerdict, str]:
        """
        Ask the assistant for a verdict on one purchase.

        Returns:
            (verdict, raw reply text)

        Raises:
            ExternalResponseInvalidError: If the reply is empty or malformed
            ExternalServiceError: (or a subclass) if the call fails
        """
        text = await self._generate(self.INSTRUCTIONS, payload)
        return parse_verdict(text), text


class ReportAgent(_GeminiAgent):
    """Writes a short monthly report statement from aggregated totals."""

    INSTRUCTIONS = (
        "Write a concise monthly financial report statement (3-5 sentences) "
        "for an Indian user (INR). Mention income, expenses, savings impact, "
        "EMI burden and the top overspend categories if any. Use only the "
        "figures provided. Keep it actionable, polite and neutral."
    )

    @staticmethod
    def build_payload(aggregate: MonthAggregate, savings: float) -> dict[str, Any]:
        return {
            "income": aggregate.total_income,
            "expenses": aggregate.total_expenses,
            "emis": aggregate.total_installments,
            "savingsTotal": savings,
            "expenseRatio": aggregate.expense_ratio,
            "categories": aggregate.by_category,
            "month": aggregate.month,
        }

    async def generate_insight(self, aggregate: MonthAggregate, savings: float) -> str:
        """
        Generate the report text for one month.

        Raises:
            ExternalResponseInvalidError: If the assistant returns no text
            ExternalServiceError: (or a subclass) if the call fails
        """
        text = await self._generate(self.INSTRUCTIONS, self.build_payload(aggregate, savings))
        if not text:
            raise ExternalResponseInvalidError("Assistant returned an empty report", text)
        return text
