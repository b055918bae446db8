"""
Main Orchestrator for Budgetly

This module ties together all the components and exposes the caller API:
1. Accounts (find-or-create, savings)
2. Ledgers (income and expense entries per month, aggregates)
3. Purchase scoring and the suggestion history
4. Monthly insight reports

DESIGN DECISION: The orchestrator owns no business rules. It validates
nothing itself, threads one correlation id through each request and
records failures at the boundary before letting them propagate.
"""

from typing import Any, Optional, Union

import structlog

from budgetly.agents import (
    AffordabilityAgent,
    ExternalResponseInvalidError,
    ExternalServiceError,
    ReportAgent,
)
from budgetly.audit import AuditLogger, create_correlation_id
from budgetly.config import AppSettings, get_settings, validate_all_settings
from budgetly.ledger import LedgerStore, MutationGateway
from budgetly.models.ledger import (
    AccountDraft,
    ExpenseDraft,
    ExpenseEntry,
    ExpensePatch,
    IncomeDraft,
    IncomePatch,
    MonthAggregate,
    MonthlyLedger,
    ProfilePatch,
    UserAccount,
)
from budgetly.models.suggestion import (
    PurchaseRequest,
    PurchaseSuggestion,
    ScoredPurchase,
    SuggestionStats,
)
from budgetly.scoring import AffordabilityScorer
from budgetly.services.storage import (
    AccountStorageInterface,
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsSuggestionStorage,
    InMemoryAccountStorage,
    InMemorySuggestionStorage,
    SuggestionStorageInterface,
)
from budgetly.suggestions import SuggestionLedger


logger = structlog.get_logger("budgetly.orchestrator")


class BudgetService:
    """
    Caller-facing facade over the ledger engine and the scorer.

    Usage:
        service = BudgetService(InMemoryAccountStorage(), InMemorySuggestionStorage(),
                                affordability_agent=..., report_agent=...)
        account = await service.get_or_create_account({...})
        ledger = await service.add_expense(account.uid, "2024-06", {...})
        result = await service.score_purchase({...})
    """

    def __init__(
        self,
        account_storage: AccountStorageInterface,
        suggestion_storage: SuggestionStorageInterface,
        affordability_agent: Optional[AffordabilityAgent] = None,
        report_agent: Optional[ReportAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._settings = settings or get_settings().app
        self._audit = audit_logger or AuditLogger()
        self._accounts = account_storage

        self._store = LedgerStore(account_storage, audit_logger=self._audit)
        self._gateway = MutationGateway(
            self._store,
            audit_logger=self._audit,
            settings=self._settings,
        )
        self._suggestions = SuggestionLedger(suggestion_storage, settings=self._settings)
        self._scorer = AffordabilityScorer(
            self._gateway,
            affordability_agent or AffordabilityAgent(),
            self._suggestions,
            audit_logger=self._audit,
            settings=self._settings,
        )
        self._report_agent = report_agent or ReportAgent()

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def get_or_create_account(self, draft: Union[AccountDraft, dict]) -> UserAccount:
        """
        Return the account for draft.uid, creating it with zero savings if absent.
        """
        draft = AccountDraft.model_validate(draft)
        account, created = await self._accounts.find_or_create(draft)
        if created:
            await self._audit.log_account_created(uid=account.uid, email=account.email)
        return account

    async def get_account(self, uid: str) -> UserAccount:
        return await self._store.get_account(uid)

    async def update_savings(self, uid: str, amount: float) -> UserAccount:
        return await self._gateway.update_savings(uid, amount, create_correlation_id())

    async def update_profile(self, uid: str, patch: Union[ProfilePatch, dict]) -> UserAccount:
        """Change name, photo, location or occupation. Identity fields stay fixed."""
        return await self._gateway.update_profile(uid, patch, create_correlation_id())

    # =========================================================================
    # LEDGERS
    # =========================================================================

    async def get_ledger(self, uid: str, month_key: str) -> MonthlyLedger:
        return await self._gateway.get_ledger(uid, month_key)

    async def get_month_aggregate(self, uid: str, month_key: str) -> MonthAggregate:
        return await self._gateway.get_month_aggregate(uid, month_key)

    async def list_expenses(self, uid: str) -> list[tuple[str, ExpenseEntry]]:
        return await self._gateway.list_expenses(uid)

    async def add_income(
        self,
        uid: str,
        month_key: str,
        draft: Union[IncomeDraft, dict],
    ) -> MonthlyLedger:
        return await self._gateway.add_income(uid, month_key, draft, create_correlation_id())

    async def update_income(
        self,
        uid: str,
        month_key: str,
        entry_id: Any,
        patch: Union[IncomePatch, dict],
    ) -> MonthlyLedger:
        return await self._gateway.update_income(
            uid, month_key, entry_id, patch, create_correlation_id()
        )

    async def remove_income(self, uid: str, month_key: str, entry_id: Any) -> MonthlyLedger:
        return await self._gateway.remove_income(uid, month_key, entry_id, create_correlation_id())

    async def add_expense(
        self,
        uid: str,
        month_key: str,
        draft: Union[ExpenseDraft, dict],
    ) -> MonthlyLedger:
        return await self._gateway.add_expense(uid, month_key, draft, create_correlation_id())

    async def update_expense(
        self,
        uid: str,
        month_key: str,
        entry_id: Any,
        patch: Union[ExpensePatch, dict],
    ) -> MonthlyLedger:
        return await self._gateway.update_expense(
            uid, month_key, entry_id, patch, create_correlation_id()
        )

    async def remove_expense(self, uid: str, month_key: str, entry_id: Any) -> MonthlyLedger:
        return await self._gateway.remove_expense(uid, month_key, entry_id, create_correlation_id())

    # =========================================================================
    # SUGGESTIONS
    # =========================================================================

    async def score_purchase(self, request: Union[PurchaseRequest, dict]) -> ScoredPurchase:
        return await self._scorer.score(request, create_correlation_id())

    async def list_suggestions(
        self,
        uid: str,
        limit: Optional[int] = None,
    ) -> list[PurchaseSuggestion]:
        return await self._suggestions.list_by_user(uid, limit)

    async def suggestion_stats(self, uid: str) -> SuggestionStats:
        return await self._suggestions.stats_by_user(uid)

    # =========================================================================
    # REPORTS
    # =========================================================================

    async def monthly_insight(self, uid: str, month_key: str) -> str:
        """
        Assistant-written report for one month. Not persisted.

        Raises:
            NotFoundError: If the account doesn't exist
            ExternalResponseInvalidError: If the assistant returns no text
            ExternalServiceError: (or a subclass) if the assistant call fails
        """
        correlation_id = create_correlation_id()
        account = await self._store.get_account(uid)
        aggregate = await self._gateway.get_month_aggregate(
            uid, month_key, persist_migration=False
        )

        try:
            insight = await self._report_agent.generate_insight(aggregate, account.savings)
        except ExternalServiceError as e:
            await self._audit.log_external_service_error(
                service="gemini",
                error_message=f"{type(e).__name__}: {e}",
                uid=uid,
                correlation_id=correlation_id,
            )
            raise
        except ExternalResponseInvalidError as e:
            await self._audit.log_assistant_response_rejected(
                uid=uid,
                reason=str(e),
                raw_content=e.raw_content,
                correlation_id=correlation_id,
            )
            raise

        await self._audit.log_insight_generated(
            uid=uid,
            month=aggregate.month,
            correlation_id=correlation_id,
        )
        return insight


def create_app_components(
    use_storage: bool = True,
) -> tuple[BudgetService, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Settings are checked first. Without a valid Google Sheets section the
    service runs on in-memory storage.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on in-memory storage.

    Returns:
        (budget_service, sheets_client)
    """
    sheets_client = None
    account_storage: AccountStorageInterface = InMemoryAccountStorage()
    suggestion_storage: SuggestionStorageInterface = InMemorySuggestionStorage()
    audit_logger = AuditLogger()  # Local-only logging

    checks = validate_all_settings()
    for name in ("gemini", "app"):
        if not checks[name]:
            logger.warning("settings_invalid", section=name, error=checks[f"{name}_error"])

    if use_storage and not checks["google_sheets"]:
        logger.warning("storage_not_configured", error=checks["google_sheets_error"])
    elif use_storage:
        sheets_client = GoogleSheetsClient()
        account_storage = GoogleSheetsAccountStorage(sheets_client)
        suggestion_storage = GoogleSheetsSuggestionStorage(sheets_client)
        audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))

    service = BudgetService(
        account_storage,
        suggestion_storage,
        audit_logger=audit_logger,
    )

    return service, sheets_client
