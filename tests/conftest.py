"""
Shared fixtures.

No real API calls in tests: storage is in-memory and the Gemini model is
replaced by FakeGeminiModel, which replays canned replies.
"""

import asyncio
import json
from types import SimpleNamespace
from typing import Any

import pytest

from budgetly.agents import AffordabilityAgent, ReportAgent
from budgetly.audit import AuditLogger
from budgetly.config import AppSettings, GeminiSettings
from budgetly.ledger import LedgerStore, MutationGateway
from budgetly.models.ledger import UserAccount
from budgetly.scoring import AffordabilityScorer
from budgetly.services.storage import (
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemorySuggestionStorage,
)
from budgetly.suggestions import SuggestionLedger


UID = "user-1"
MONTH = "2024-06"


class FakeGeminiModel:
    """
    Stands in for genai.GenerativeModel.

    Each call pops the next reply: a string becomes response.text,
    an exception is raised.
    """

    def __init__(self, *replies: Any, delay: float = 0.0):
        self.replies = list(replies)
        self.calls: list[list[str]] = []
        self.delay = delay

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(text=reply, candidates=[])

    @property
    def last_payload(self) -> dict:
        """The JSON payload sent with the most recent call."""
        return json.loads(self.calls[-1][1])


def verdict_json(score: str = "Good", reason: str = "affordable", **derived) -> str:
    return json.dumps({
        "suggestionScore": score,
        "reason": reason,
        "derived": derived,
        "explanation": "EMI is a small share of income.",
    })


async def seed_month(storage: InMemoryAccountStorage, uid: str, month: str, document: dict) -> None:
    """Store a raw month document, bypassing the ledger engine."""
    await storage.replace_field(uid, f"months.{month}", document)


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings()


@pytest.fixture
def gemini_settings() -> GeminiSettings:
    return GeminiSettings(api_key="test-key", request_timeout_seconds=0.5)


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def account_storage() -> InMemoryAccountStorage:
    return InMemoryAccountStorage([
        UserAccount(uid=UID, email="asha@example.com", name="Asha", savings=100000),
    ])


@pytest.fixture
def store(account_storage, audit_logger) -> LedgerStore:
    return LedgerStore(account_storage, audit_logger=audit_logger)


@pytest.fixture
def gateway(store, audit_logger, app_settings) -> MutationGateway:
    return MutationGateway(store, audit_logger=audit_logger, settings=app_settings)


@pytest.fixture
def suggestion_storage() -> InMemorySuggestionStorage:
    return InMemorySuggestionStorage()


@pytest.fixture
def suggestions(suggestion_storage, app_settings) -> SuggestionLedger:
    return SuggestionLedger(suggestion_storage, settings=app_settings)


@pytest.fixture
def fake_model() -> FakeGeminiModel:
    return FakeGeminiModel()


@pytest.fixture
def affordability_agent(fake_model, gemini_settings) -> AffordabilityAgent:
    return AffordabilityAgent(model=fake_model, settings=gemini_settings)


@pytest.fixture
def report_agent(fake_model, gemini_settings) -> ReportAgent:
    return ReportAgent(model=fake_model, settings=gemini_settings)


@pytest.fixture
def scorer(gateway, affordability_agent, suggestions, audit_logger, app_settings) -> AffordabilityScorer:
    return AffordabilityScorer(
        gateway,
        affordability_agent,
        suggestions,
        audit_logger=audit_logger,
        settings=app_settings,
    )
