"""
Audit Models for Budgetly

Every ledger mutation, migration and scoring decision is recorded.
This provides:
1. Traceability of all writes to a user's months
2. Debugging information when the assistant misbehaves
3. A record of which legacy documents were rewritten, and when

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Accounts
    ACCOUNT_CREATED = "account_created"
    SAVINGS_UPDATED = "savings_updated"
    PROFILE_UPDATED = "profile_updated"

    # Ledger
    LEDGER_MIGRATED = "ledger_migrated"
    INCOME_ADDED = "income_added"
    INCOME_UPDATED = "income_updated"
    INCOME_REMOVED = "income_removed"
    EXPENSE_ADDED = "expense_added"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_REMOVED = "expense_removed"
    WRITE_CONFLICT = "write_conflict"

    # Scoring
    SUGGESTION_SCORED = "suggestion_scored"
    ASSISTANT_RESPONSE_REJECTED = "assistant_response_rejected"
    INSIGHT_GENERATED = "insight_generated"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    uid: Optional[str] = Field(
        default=None,
        description="Account the event belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'ledger', 'income', 'expense', 'suggestion')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one request)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "uid": self.uid,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, uid, entity_type,
         entity_id, correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.uid or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.ledger_migrated(uid, month, synthesized_income)
        event = AuditEventBuilder.entry_changed(AuditEventType.INCOME_ADDED, uid, month, entry_id)
    """

    _ENTRY_TYPES = {
        AuditEventType.INCOME_ADDED: ("income", "added"),
        AuditEventType.INCOME_UPDATED: ("income", "updated"),
        AuditEventType.INCOME_REMOVED: ("income", "removed"),
        AuditEventType.EXPENSE_ADDED: ("expense", "added"),
        AuditEventType.EXPENSE_UPDATED: ("expense", "updated"),
        AuditEventType.EXPENSE_REMOVED: ("expense", "removed"),
    }

    @staticmethod
    def account_created(uid: str, email: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            uid=uid,
            entity_type="account",
            entity_id=uid,
            description=f"Account created for {email}",
        )

    @staticmethod
    def savings_updated(uid: str, amount: float, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVINGS_UPDATED,
            uid=uid,
            entity_type="account",
            entity_id=uid,
            correlation_id=correlation_id,
            description=f"Savings set to {amount:,.2f}",
            details={"savings": amount},
        )

    @staticmethod
    def profile_updated(uid: str, fields: list[str], correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_UPDATED,
            uid=uid,
            entity_type="account",
            entity_id=uid,
            correlation_id=correlation_id,
            description=f"Profile updated: {', '.join(fields)}",
            details={"fields": fields},
        )

    @staticmethod
    def ledger_migrated(
        uid: str,
        month: str,
        synthesized_income: Optional[float],
        persisted: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_MIGRATED,
            uid=uid,
            entity_type="ledger",
            entity_id=month,
            correlation_id=correlation_id,
            description=f"Legacy ledger {month} rewritten to itemized form",
            details={
                "synthesized_income": synthesized_income,
                "persisted": persisted,
            },
        )

    @staticmethod
    def entry_changed(
        event_type: AuditEventType,
        uid: str,
        month: str,
        entry_id: str,
        correlation_id: Optional[UUID] = None,
        amount: Optional[float] = None,
    ) -> AuditEvent:
        entity_type, verb = AuditEventBuilder._ENTRY_TYPES[event_type]
        return AuditEvent(
            event_type=event_type,
            uid=uid,
            entity_type=entity_type,
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} entry {verb} in {month}",
            details={"month": month, "amount": amount},
        )

    @staticmethod
    def write_conflict(
        uid: str,
        month: str,
        expected_version: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_CONFLICT,
            severity=AuditSeverity.WARNING,
            uid=uid,
            entity_type="ledger",
            entity_id=month,
            correlation_id=correlation_id,
            description=f"Concurrent write detected on ledger {month}",
            details={"expected_version": expected_version},
        )

    @staticmethod
    def suggestion_scored(
        uid: str,
        suggestion_id: str,
        score: str,
        payment_type: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUGGESTION_SCORED,
            uid=uid,
            entity_type="suggestion",
            entity_id=suggestion_id,
            correlation_id=correlation_id,
            description=f"{payment_type} purchase scored {score}",
            details={"score": score, "payment_type": payment_type},
        )

    @staticmethod
    def assistant_response_rejected(
        uid: str,
        reason: str,
        raw_content: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ASSISTANT_RESPONSE_REJECTED,
            severity=AuditSeverity.WARNING,
            uid=uid,
            entity_type="suggestion",
            correlation_id=correlation_id,
            description="Assistant response rejected",
            error_message=reason,
            details={"raw_content": (raw_content or "")[:1000]},
        )

    @staticmethod
    def insight_generated(uid: str, month: str, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSIGHT_GENERATED,
            uid=uid,
            entity_type="ledger",
            entity_id=month,
            correlation_id=correlation_id,
            description=f"Monthly insight generated for {month}",
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        uid: Optional[str] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            uid=uid,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
