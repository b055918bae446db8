"""
Tests for the audit logger.
"""

from budgetly.audit import AuditLogger, create_correlation_id
from budgetly.models.audit import AuditEvent, AuditEventType, AuditSeverity
from budgetly.services.storage import AuditStorageInterface, InMemoryAuditStorage


class _BrokenAuditStorage(AuditStorageInterface):
    async def append_event(self, event):
        raise ConnectionError("sheet unavailable")

    async def get_recent_events(self, limit=100, uid=None):
        return []


class TestAuditLogger:
    """Local logging plus optional persistence."""

    async def test_event_persisted(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)

        stored = await logger.log(AuditEvent(event_type=AuditEventType.INCOME_ADDED, description="x"))

        assert stored is True
        assert len(storage.events) == 1

    async def test_without_storage_only_logs_locally(self):
        logger = AuditLogger()
        stored = await logger.log(AuditEvent(event_type=AuditEventType.SYSTEM_ERROR, description="x"))
        assert stored is True

    async def test_storage_failure_does_not_raise(self):
        logger = AuditLogger(_BrokenAuditStorage())

        stored = await logger.log(AuditEvent(event_type=AuditEventType.INCOME_ADDED, description="x"))

        assert stored is False

    async def test_helpers_carry_correlation_id(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        correlation_id = create_correlation_id()

        await logger.log_ledger_migrated(
            uid="u1",
            month="2024-06",
            synthesized_income=5000,
            persisted=True,
            correlation_id=correlation_id,
        )
        await logger.log_external_service_error(
            service="gemini",
            error_message="quota",
            uid="u1",
            correlation_id=correlation_id,
        )

        first, second = storage.events
        assert first.correlation_id == second.correlation_id == correlation_id
        assert first.details["synthesized_income"] == 5000
        assert second.severity == AuditSeverity.ERROR

    async def test_recent_events_filtered_by_user(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        await logger.log_account_created(uid="u1", email="a@example.com")
        await logger.log_account_created(uid="u2", email="b@example.com")

        events = await storage.get_recent_events(uid="u2")

        assert [e.uid for e in events] == ["u2"]

    def test_correlation_ids_are_unique(self):
        assert create_correlation_id() != create_correlation_id()
