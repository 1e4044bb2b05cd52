"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted storage backend because:
1. Users can view their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (we handle this with careful ordering)
- Limited query capabilities (we filter in Python)

Watermarks live in the same spreadsheet as the definitions they belong to,
so every device signed in to the same account sees the same progress.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from fintrack.config import get_settings
from fintrack.models.audit import AuditEvent, AuditEventType, AuditSeverity
from fintrack.models.budget import Budget, BudgetPeriod, BudgetUpdate
from fintrack.models.transaction import (
    DefinitionUpdate,
    ExpenseCategory,
    Frequency,
    RecurringDefinition,
    TransactionInstance,
    TransactionKind,
)
from fintrack.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    DefinitionStorageInterface,
    DuplicateError,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
    WatermarkStorageInterface,
)


logger = structlog.get_logger()


# Column mappings for Transactions sheet
TRANSACTION_COLUMNS = [
    "id",
    "owner_id",
    "kind",
    "amount",
    "description",
    "category",
    "date",
    "currency",
    "recurring_id",
]

# Column mappings for Recurring sheet
DEFINITION_COLUMNS = [
    "id",
    "owner_id",
    "kind",
    "amount",
    "description",
    "category",
    "frequency",
    "start_date",
    "end_date",
    "currency",
    "created_at",
]

# Column mappings for Watermarks sheet
WATERMARK_COLUMNS = [
    "definition_id",
    "watermark",
    "updated_at",
]

# Column mappings for Budgets sheet
BUDGET_COLUMNS = [
    "id",
    "owner_id",
    "category",
    "amount",
    "period",
    "currency",
    "created_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _cell_getter(row: list):
    """Build a safe accessor for a row that may be missing trailing columns."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

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
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

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
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create_sheet(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, 5000
        )

    def get_recurring_sheet(self) -> gspread.Worksheet:
        """Get or create the Recurring worksheet."""
        return self._get_or_create_sheet(
            self._settings.recurring_sheet_name, DEFINITION_COLUMNS, 500
        )

    def get_watermarks_sheet(self) -> gspread.Worksheet:
        """Get or create the Watermarks worksheet."""
        return self._get_or_create_sheet(
            self._settings.watermarks_sheet_name, WATERMARK_COLUMNS, 500
        )

    def get_budgets_sheet(self) -> gspread.Worksheet:
        """Get or create the Budgets worksheet."""
        return self._get_or_create_sheet(
            self._settings.budgets_sheet_name, BUDGET_COLUMNS, 200
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000
        )


def _find_row_index(all_rows: list[list], key: str) -> Optional[int]:
    """1-based sheet row number of the first data row whose first cell is `key`."""
    for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
        if row and row[0] == key:
            return idx
    return None


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)
def _append_row_once(get_sheet, row: list, attempted: set) -> None:
    """
    Append `row`, whose first cell is its id, at most once.

    An append that timed out may still have been written, so every
    retry looks for the id before appending again. The first attempt
    skips that read.
    """
    sheet = get_sheet()
    row_id = row[0]
    if row_id in attempted and _find_row_index(sheet.get_all_values(), row_id) is not None:
        return
    attempted.add(row_id)
    sheet.append_row(row, value_input_option="RAW")


class GoogleSheetsDefinitionStorage(DefinitionStorageInterface):
    """
    Google Sheets implementation of recurring definition storage.

    One definition per row in the Recurring worksheet.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _definition_to_row(self, definition: RecurringDefinition) -> list:
        """Convert a RecurringDefinition to a spreadsheet row."""
        return [
            definition.id or "",
            definition.owner_id,
            definition.kind.value,
            str(definition.amount),
            definition.description,
            definition.category.value if definition.category else "",
            definition.frequency.value,
            definition.start_date.isoformat(),
            definition.end_date.isoformat() if definition.end_date else "",
            definition.currency,
            definition.created_at.isoformat(),
        ]

    def _row_to_definition(self, row: list) -> RecurringDefinition:
        """Convert a spreadsheet row to a RecurringDefinition."""
        safe_get = _cell_getter(row)

        return RecurringDefinition(
            id=safe_get(0),
            owner_id=safe_get(1),
            kind=TransactionKind(safe_get(2)),
            amount=Decimal(safe_get(3)),
            description=safe_get(4),
            category=ExpenseCategory(safe_get(5)) if safe_get(5) else None,
            frequency=Frequency(safe_get(6)),
            start_date=date.fromisoformat(safe_get(7)),
            end_date=date.fromisoformat(safe_get(8)) if safe_get(8) else None,
            currency=safe_get(9, "EUR"),
            created_at=(
                datetime.fromisoformat(safe_get(10))
                if safe_get(10) else datetime.utcnow()
            ),
        )

    async def list_definitions(self, owner_id: str) -> list[RecurringDefinition]:
        """List an owner's definitions; malformed rows are skipped."""
        try:
            sheet = self._client.get_recurring_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list recurring definitions: {e}")

        definitions = []
        for row in all_rows:
            if not row or not row[0] or len(row) < 2 or row[1] != owner_id:
                continue
            try:
                definitions.append(self._row_to_definition(row))
            except Exception as e:
                logger.warning("malformed_definition_row", row_id=row[0], error=str(e))
        return definitions

    async def get_definition(self, definition_id: str) -> Optional[RecurringDefinition]:
        """Retrieve a definition by its ID."""
        try:
            sheet = self._client.get_recurring_sheet()
            all_rows = sheet.get_all_values()[1:]

            for row in all_rows:
                if row and row[0] == definition_id:
                    return self._row_to_definition(row)

            return None
        except Exception as e:
            raise StorageError(f"Failed to get recurring definition: {e}")

    async def create_definition(
        self,
        definition: RecurringDefinition,
        owner_id: str,
    ) -> str:
        """Append a new definition row."""
        definition_id = str(uuid4())
        stored = definition.model_copy(
            update={"id": definition_id, "owner_id": owner_id}
        )
        try:
            _append_row_once(
                self._client.get_recurring_sheet,
                self._definition_to_row(stored),
                attempted=set(),
            )
            return definition_id
        except Exception as e:
            raise StorageError(f"Failed to save recurring definition: {e}")

    async def update_definition(
        self,
        definition_id: str,
        update: DefinitionUpdate,
    ) -> RecurringDefinition:
        """Rewrite the definition's row with the update applied."""
        try:
            sheet = self._client.get_recurring_sheet()
            all_rows = sheet.get_all_values()

            idx = _find_row_index(all_rows, definition_id)
            if idx is None:
                raise NotFoundError(f"Recurring definition not found: {definition_id}")

            updated = update.apply_to(self._row_to_definition(all_rows[idx - 1]))
            for col_idx, value in enumerate(self._definition_to_row(updated), start=1):
                sheet.update_cell(idx, col_idx, value)

            return updated
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update recurring definition: {e}")

    async def delete_definition(self, definition_id: str) -> bool:
        """Delete a definition row by ID."""
        try:
            sheet = self._client.get_recurring_sheet()
            idx = _find_row_index(sheet.get_all_values(), definition_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete recurring definition: {e}")


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of transaction storage.

    One transaction per row in the Transactions worksheet.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _transaction_to_row(self, instance: TransactionInstance) -> list:
        """Convert a TransactionInstance to a spreadsheet row."""
        return [
            instance.id or "",
            instance.owner_id,
            instance.kind.value,
            str(instance.amount),
            instance.description,
            instance.category.value if instance.category else "",
            instance.date.isoformat(),
            instance.currency,
            instance.recurring_id or "",
        ]

    def _row_to_transaction(self, row: list) -> TransactionInstance:
        """Convert a spreadsheet row to a TransactionInstance."""
        safe_get = _cell_getter(row)

        return TransactionInstance(
            id=safe_get(0),
            owner_id=safe_get(1),
            kind=TransactionKind(safe_get(2)),
            amount=Decimal(safe_get(3)),
            description=safe_get(4),
            category=ExpenseCategory(safe_get(5)) if safe_get(5) else None,
            date=date.fromisoformat(safe_get(6)),
            currency=safe_get(7, "EUR"),
            recurring_id=safe_get(8) or None,
        )

    async def list_transactions(self, owner_id: str) -> list[TransactionInstance]:
        """List an owner's transactions, newest first."""
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        transactions = []
        for row in all_rows:
            if not row or not row[0] or len(row) < 2 or row[1] != owner_id:
                continue
            try:
                transactions.append(self._row_to_transaction(row))
            except Exception as e:
                logger.warning("malformed_transaction_row", row_id=row[0], error=str(e))

        transactions.sort(key=lambda t: t.date, reverse=True)
        return transactions

    async def create_transaction(
        self,
        instance: TransactionInstance,
        owner_id: str,
    ) -> str:
        """Append a new transaction row; retries never write it twice."""
        transaction_id = str(uuid4())
        stored = instance.model_copy(
            update={"id": transaction_id, "owner_id": owner_id}
        )
        try:
            _append_row_once(
                self._client.get_transactions_sheet,
                self._transaction_to_row(stored),
                attempted=set(),
            )
            return transaction_id
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def delete_transaction(self, transaction_id: str) -> bool:
        """Delete a transaction row by ID."""
        try:
            sheet = self._client.get_transactions_sheet()
            idx = _find_row_index(sheet.get_all_values(), transaction_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")


class GoogleSheetsWatermarkStorage(WatermarkStorageInterface):
    """
    Google Sheets implementation of watermark storage.

    One row per definition: [definition_id, watermark, updated_at].
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def get_watermark(self, definition_id: str) -> Optional[date]:
        try:
            sheet = self._client.get_watermarks_sheet()
            all_rows = sheet.get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to read watermark: {e}")

        idx = _find_row_index(all_rows, definition_id)
        if idx is None:
            return None

        value = _cell_getter(all_rows[idx - 1])(1)
        return date.fromisoformat(value) if value else None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def set_watermark(self, definition_id: str, value: date) -> None:
        try:
            sheet = self._client.get_watermarks_sheet()
            idx = _find_row_index(sheet.get_all_values(), definition_id)
            updated_at = datetime.utcnow().isoformat()

            if idx is None:
                sheet.append_row(
                    [definition_id, value.isoformat(), updated_at],
                    value_input_option="RAW",
                )
            else:
                sheet.update_cell(idx, 2, value.isoformat())
                sheet.update_cell(idx, 3, updated_at)
        except Exception as e:
            raise StorageError(f"Failed to write watermark: {e}")

    async def clear_watermark(self, definition_id: str) -> None:
        try:
            sheet = self._client.get_watermarks_sheet()
            idx = _find_row_index(sheet.get_all_values(), definition_id)
            if idx is not None:
                sheet.delete_rows(idx)
        except Exception as e:
            raise StorageError(f"Failed to clear watermark: {e}")


class GoogleSheetsBudgetStorage(BudgetStorageInterface):
    """
    Google Sheets implementation of budget storage.

    One budget per row in the Budgets worksheet.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _budget_to_row(self, budget: Budget) -> list:
        return [
            budget.id or "",
            budget.owner_id,
            budget.category.value,
            str(budget.amount),
            budget.period.value,
            budget.currency,
            budget.created_at.isoformat(),
        ]

    def _row_to_budget(self, row: list) -> Budget:
        safe_get = _cell_getter(row)

        return Budget(
            id=safe_get(0),
            owner_id=safe_get(1),
            category=ExpenseCategory(safe_get(2)),
            amount=Decimal(safe_get(3)),
            period=BudgetPeriod(safe_get(4, "month")),
            currency=safe_get(5, "EUR"),
            created_at=(
                datetime.fromisoformat(safe_get(6))
                if safe_get(6) else datetime.utcnow()
            ),
        )

    def _parse_rows(self, all_rows: list[list]) -> list[Budget]:
        budgets = []
        for row in all_rows[1:]:  # Skip header
            if not row or not row[0]:
                continue
            try:
                budgets.append(self._row_to_budget(row))
            except Exception as e:
                logger.warning("malformed_budget_row", row_id=row[0], error=str(e))
        return budgets

    def _check_slot(
        self,
        existing: list[Budget],
        candidate: Budget,
        ignore_id: Optional[str] = None,
    ) -> None:
        for budget in existing:
            if budget.id != ignore_id and budget.same_slot(candidate):
                raise DuplicateError(
                    f"Budget already exists for {candidate.category.value} per {candidate.period.value}"
                )

    async def list_budgets(self, owner_id: str) -> list[Budget]:
        """List an owner's budgets; malformed rows are skipped."""
        try:
            all_rows = self._client.get_budgets_sheet().get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to list budgets: {e}")

        return [b for b in self._parse_rows(all_rows) if b.owner_id == owner_id]

    async def get_budget(self, budget_id: str) -> Optional[Budget]:
        try:
            all_rows = self._client.get_budgets_sheet().get_all_values()
            idx = _find_row_index(all_rows, budget_id)
            return self._row_to_budget(all_rows[idx - 1]) if idx else None
        except Exception as e:
            raise StorageError(f"Failed to get budget: {e}")

    async def create_budget(self, budget: Budget, owner_id: str) -> str:
        """Append a new budget row unless the slot is taken."""
        budget_id = str(uuid4())
        stored = budget.model_copy(update={"id": budget_id, "owner_id": owner_id})
        try:
            sheet = self._client.get_budgets_sheet()
            self._check_slot(self._parse_rows(sheet.get_all_values()), stored)
            _append_row_once(
                self._client.get_budgets_sheet,
                self._budget_to_row(stored),
                attempted=set(),
            )
            return budget_id
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save budget: {e}")

    async def update_budget(self, budget_id: str, update: BudgetUpdate) -> Budget:
        """Rewrite the budget's row with the update applied."""
        try:
            sheet = self._client.get_budgets_sheet()
            all_rows = sheet.get_all_values()

            idx = _find_row_index(all_rows, budget_id)
            if idx is None:
                raise NotFoundError(f"Budget not found: {budget_id}")

            updated = update.apply_to(self._row_to_budget(all_rows[idx - 1]))
            self._check_slot(self._parse_rows(all_rows), updated, ignore_id=budget_id)

            for col_idx, value in enumerate(self._budget_to_row(updated), start=1):
                sheet.update_cell(idx, col_idx, value)

            return updated
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update budget: {e}")

    async def delete_budget(self, budget_id: str) -> bool:
        try:
            sheet = self._client.get_budgets_sheet()
            idx = _find_row_index(sheet.get_all_values(), budget_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete budget: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        safe_get = _cell_getter(row)

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    def _read_events(self, keep) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        all_rows = sheet.get_all_values()[1:]

        events = []
        for row in all_rows:
            if row and row[0] and keep(row):
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = self._read_events(
                lambda row: len(row) > 6 and row[6] == str(correlation_id)
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            events = self._read_events(
                lambda row: len(row) > 5 and row[4] == entity_type and row[5] == entity_id
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events, newest first."""
        try:
            events = self._read_events(lambda row: True)
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
