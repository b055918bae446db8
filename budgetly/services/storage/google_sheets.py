"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the initial storage backend because:
1. Users can view their months and suggestions directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- One row per account; every month document lives as JSON in a single
  cell, so a ledger write-back is a single cell update
- No transactions: the version check in replace_field is read-then-write,
  which guards against stale writers in this process but is not a
  cross-process lock
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so we can swap
to a document database later without changing ledger logic.
"""

import json
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import gspread
from gspread.utils import rowcol_to_a1
from google.oauth2.service_account import Credentials
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from budgetly.config import GoogleSheetsSettings, get_settings
from budgetly.models.audit import AuditEvent, AuditEventType, AuditSeverity
from budgetly.models.ledger import AccountDraft, UserAccount
from budgetly.models.suggestion import PurchaseSuggestion, SuggestionScore
from budgetly.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    ConflictError,
    DuplicateError,
    NotFoundError,
    StorageConnectionError,
    StorageError,
    SuggestionStorageInterface,
    apply_field_write,
    parse_field_path,
)


ACCOUNT_COLUMNS = [
    "uid",
    "email",
    "name",
    "photo_url",
    "savings",
    "location",
    "occupation",
    "created_at",
    "updated_at",
    "months_json",
]

SUGGESTION_COLUMNS = [
    "id",
    "uid",
    "product_name",
    "price",
    "installment_amount",
    "duration",
    "score",
    "reason",
    "suggested_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "uid",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]

# Errors that retrying cannot fix
_PERMANENT_ERRORS = (ConflictError, DuplicateError, NotFoundError)

_transient_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type(_PERMANENT_ERRORS),
    reraise=True,
)


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get a worksheet, creating it with a header row if missing."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_accounts_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.accounts_sheet_name, ACCOUNT_COLUMNS)

    def get_suggestions_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.suggestions_sheet_name, SUGGESTION_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsAccountStorage(AccountStorageInterface):
    """
    Google Sheets implementation of account storage.

    One account per row. The months map is JSON-serialized into the
    last column, so month documents keep whatever shape they were
    written in (legacy documents included).
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _account_to_row(self, account: UserAccount) -> list:
        return [
            account.uid,
            account.email,
            account.name,
            account.photo_url or "",
            str(account.savings),
            account.location or "",
            account.occupation or "",
            account.created_at.isoformat(),
            account.updated_at.isoformat(),
            json.dumps(account.months, default=str),
        ]

    def _row_to_account(self, row: list) -> UserAccount:
        months_json = _safe_get(row, 9)
        return UserAccount(
            uid=_safe_get(row, 0),
            email=_safe_get(row, 1),
            name=_safe_get(row, 2),
            photo_url=_safe_get(row, 3) or None,
            savings=float(_safe_get(row, 4, "0")),
            location=_safe_get(row, 5) or None,
            occupation=_safe_get(row, 6) or None,
            created_at=datetime.fromisoformat(_safe_get(row, 7)),
            updated_at=datetime.fromisoformat(_safe_get(row, 8)),
            months=json.loads(months_json) if months_json else {},
        )

    def _find_row(self, sheet: gspread.Worksheet, uid: str) -> tuple[Optional[int], Optional[list]]:
        """Return (sheet_row_number, row) for uid; row 1 is the header."""
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if row and row[0] == uid:
                return idx, row
        return None, None

    @_transient_retry
    async def find_by_uid(self, uid: str) -> Optional[UserAccount]:
        try:
            sheet = self._client.get_accounts_sheet()
            _, row = self._find_row(sheet, uid)
            return self._row_to_account(row) if row else None
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get account: {e}")

    @_transient_retry
    async def find_or_create(self, draft: AccountDraft) -> tuple[UserAccount, bool]:
        try:
            sheet = self._client.get_accounts_sheet()
            _, row = self._find_row(sheet, draft.uid)
            if row:
                return self._row_to_account(row), False

            account = UserAccount.from_draft(draft)
            sheet.append_row(self._account_to_row(account), value_input_option="RAW")
            return account, True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to create account: {e}")

    @_transient_retry
    async def replace_field(
        self,
        uid: str,
        field_path: str,
        value: Any,
        *,
        expected_version: Optional[int] = None,
        validate: bool = False,
    ) -> UserAccount:
        try:
            sheet = self._client.get_accounts_sheet()
            row_number, row = self._find_row(sheet, uid)
            if row is None:
                raise NotFoundError(f"Account not found: {uid}")

            updated = apply_field_write(
                self._row_to_account(row),
                field_path,
                value,
                expected_version=expected_version,
                validate=validate,
            )

            # One request for both cells, so a failed write leaves the row untouched
            field, _ = parse_field_path(field_path)
            new_row = self._account_to_row(updated)
            columns = {"months_json" if field == "months" else field, "updated_at"}
            sheet.batch_update([
                {
                    "range": rowcol_to_a1(row_number, ACCOUNT_COLUMNS.index(name) + 1),
                    "values": [[new_row[ACCOUNT_COLUMNS.index(name)]]],
                }
                for name in sorted(columns)
            ])
            return updated
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update account {uid}: {e}")


class GoogleSheetsSuggestionStorage(SuggestionStorageInterface):
    """
    Google Sheets implementation of the suggestion history.

    Rows are only ever appended.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _suggestion_to_row(self, suggestion: PurchaseSuggestion) -> list:
        return [
            suggestion.id,
            suggestion.uid,
            suggestion.product_name,
            str(suggestion.price),
            str(suggestion.installment_amount),
            str(suggestion.duration),
            suggestion.score.value,
            suggestion.reason,
            suggestion.suggested_at.isoformat(),
        ]

    def _row_to_suggestion(self, row: list) -> PurchaseSuggestion:
        return PurchaseSuggestion(
            id=_safe_get(row, 0),
            uid=_safe_get(row, 1),
            product_name=_safe_get(row, 2),
            price=float(_safe_get(row, 3, "0")),
            installment_amount=float(_safe_get(row, 4, "0")),
            duration=int(float(_safe_get(row, 5, "0"))),
            score=SuggestionScore(_safe_get(row, 6)),
            reason=_safe_get(row, 7),
            suggested_at=datetime.fromisoformat(_safe_get(row, 8)),
        )

    @_transient_retry
    async def append(self, suggestion: PurchaseSuggestion) -> bool:
        try:
            sheet = self._client.get_suggestions_sheet()
            ids = sheet.col_values(1)[1:]
            if suggestion.id in ids:
                raise DuplicateError(f"Suggestion already exists: {suggestion.id}")
            sheet.append_row(self._suggestion_to_row(suggestion), value_input_option="RAW")
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save suggestion: {e}")

    async def list_for_user(self, uid: str) -> list[PurchaseSuggestion]:
        try:
            sheet = self._client.get_suggestions_sheet()
            suggestions = []
            for row in sheet.get_all_values()[1:]:
                if not row or len(row) < 2 or row[1] != uid:
                    continue
                try:
                    suggestions.append(self._row_to_suggestion(row))
                except Exception:
                    continue  # Skip malformed rows
            return suggestions
        except Exception as e:
            raise StorageError(f"Failed to list suggestions: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        correlation_id = _safe_get(row, 7)
        details_json = _safe_get(row, 9)
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            uid=_safe_get(row, 4) or None,
            entity_type=_safe_get(row, 5) or None,
            entity_id=_safe_get(row, 6) or None,
            correlation_id=UUID(correlation_id) if correlation_id else None,
            description=_safe_get(row, 8),
            details=json.loads(details_json) if details_json else {},
            error_message=_safe_get(row, 10) or None,
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Failures are reported, never raised."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception:
            # The AuditLogger records the failure locally
            return False

    async def get_recent_events(
        self,
        limit: int = 100,
        uid: Optional[str] = None,
    ) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            events = []
            for row in sheet.get_all_values()[1:]:
                if not row or not row[0]:
                    continue
                if uid is not None and _safe_get(row, 4) != uid:
                    continue
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue

            # Sort newest first
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
