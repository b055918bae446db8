"""
Audit Logger

DESIGN DECISION: Every ledger write, migration and scoring decision is logged.
This provides:
1. Complete traceability of changes to a user's months
2. Debugging capability when the assistant misbehaves
3. Observability kept at component boundaries, out of decision logic

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from budgetly.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from budgetly.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("budgetly.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                stored = await self._storage.append_event(event)
            except Exception as e:
                stored = False
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
            if not stored:
                self._logger.warning("audit_event_not_persisted", event_id=str(event.event_id))
            return stored

        return True

    async def log_account_created(self, uid: str, email: str) -> None:
        await self.log(AuditEventBuilder.account_created(uid=uid, email=email))

    async def log_savings_updated(
        self,
        uid: str,
        amount: float,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.savings_updated(
            uid=uid,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_profile_updated(
        self,
        uid: str,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.profile_updated(
            uid=uid,
            fields=fields,
            correlation_id=correlation_id,
        ))

    async def log_ledger_migrated(
        self,
        uid: str,
        month: str,
        synthesized_income: Optional[float],
        persisted: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a legacy month document being rewritten."""
        await self.log(AuditEventBuilder.ledger_migrated(
            uid=uid,
            month=month,
            synthesized_income=synthesized_income,
            persisted=persisted,
            correlation_id=correlation_id,
        ))

    async def log_entry_changed(
        self,
        event_type: AuditEventType,
        uid: str,
        month: str,
        entry_id: str,
        amount: Optional[float] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an income or expense entry being added, updated or removed."""
        await self.log(AuditEventBuilder.entry_changed(
            event_type=event_type,
            uid=uid,
            month=month,
            entry_id=entry_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_write_conflict(
        self,
        uid: str,
        month: str,
        expected_version: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.write_conflict(
            uid=uid,
            month=month,
            expected_version=expected_version,
            correlation_id=correlation_id,
        ))

    async def log_suggestion_scored(
        self,
        uid: str,
        suggestion_id: str,
        score: str,
        payment_type: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.suggestion_scored(
            uid=uid,
            suggestion_id=suggestion_id,
            score=score,
            payment_type=payment_type,
            correlation_id=correlation_id,
        ))

    async def log_assistant_response_rejected(
        self,
        uid: str,
        reason: str,
        raw_content: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.assistant_response_rejected(
            uid=uid,
            reason=reason,
            raw_content=raw_content,
            correlation_id=correlation_id,
        ))

    async def log_insight_generated(
        self,
        uid: str,
        month: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.insight_generated(
            uid=uid,
            month=month,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        uid: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            uid=uid,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a caller request (e.g., one scoring call).
    Pass it through all subsequent operations.
    """
    return uuid4()
