"""
Tests for the Google Sheets storage backend.

A fake client hands out in-memory worksheets, so no network calls are made.
"""

import pytest
from datetime import date
from decimal import Decimal
from tenacity import wait_none

from fintrack.models.audit import AuditEventBuilder
from fintrack.models.budget import Budget, BudgetPeriod, BudgetUpdate
from fintrack.models.transaction import (
    DefinitionUpdate,
    ExpenseCategory,
    Frequency,
    TransactionKind,
)
from fintrack.orchestrator import create_app_components
from fintrack.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsDefinitionStorage,
    GoogleSheetsTransactionStorage,
    GoogleSheetsWatermarkStorage,
    NotFoundError,
    StorageError,
)
from fintrack.services.storage import google_sheets
from fintrack.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    BUDGET_COLUMNS,
    DEFINITION_COLUMNS,
    TRANSACTION_COLUMNS,
    WATERMARK_COLUMNS,
)

from tests.conftest import OWNER, make_definition, run


class FakeWorksheet:
    """The subset of gspread.Worksheet the storage classes use."""

    def __init__(self, columns):
        self.rows = [list(columns)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def update_cell(self, row, col, value):
        target = self.rows[row - 1]
        while len(target) < col:
            target.append("")
        target[col - 1] = str(value)

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSheetsClient:
    def __init__(self):
        self.recurring = FakeWorksheet(DEFINITION_COLUMNS)
        self.transactions = FakeWorksheet(TRANSACTION_COLUMNS)
        self.watermarks = FakeWorksheet(WATERMARK_COLUMNS)
        self.budgets = FakeWorksheet(BUDGET_COLUMNS)
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_recurring_sheet(self):
        return self.recurring

    def get_transactions_sheet(self):
        return self.transactions

    def get_watermarks_sheet(self):
        return self.watermarks

    def get_budgets_sheet(self):
        return self.budgets

    def get_audit_sheet(self):
        return self.audit


@pytest.fixture
def client():
    return FakeSheetsClient()


class TestDefinitionStorage:
    """Recurring worksheet round trips."""

    def test_create_and_list(self, client):
        storage = GoogleSheetsDefinitionStorage(client)
        definition = make_definition(id=None, end_date=date(2024, 12, 31))

        definition_id = run(storage.create_definition(definition, OWNER))

        listed = run(storage.list_definitions(OWNER))
        assert [d.id for d in listed] == [definition_id]
        assert listed[0].amount == Decimal("500.00")
        assert listed[0].category == ExpenseCategory.HOUSING
        assert listed[0].frequency == Frequency.WEEKLY
        assert listed[0].end_date == date(2024, 12, 31)
        assert run(storage.list_definitions("someone-else")) == []

    def test_income_row_has_empty_category(self, client):
        storage = GoogleSheetsDefinitionStorage(client)
        definition = make_definition(id=None, kind=TransactionKind.INCOME, category=None)

        definition_id = run(storage.create_definition(definition, OWNER))

        assert client.recurring.rows[1][5] == ""
        assert run(storage.get_definition(definition_id)).category is None

    def test_update(self, client):
        storage = GoogleSheetsDefinitionStorage(client)
        definition_id = run(storage.create_definition(make_definition(id=None), OWNER))

        updated = run(storage.update_definition(
            definition_id, DefinitionUpdate(frequency=Frequency.MONTHLY)
        ))

        assert updated.frequency == Frequency.MONTHLY
        assert run(storage.get_definition(definition_id)).frequency == Frequency.MONTHLY

    def test_update_missing(self, client):
        storage = GoogleSheetsDefinitionStorage(client)
        with pytest.raises(NotFoundError):
            run(storage.update_definition("missing", DefinitionUpdate(description="x")))

    def test_delete(self, client):
        storage = GoogleSheetsDefinitionStorage(client)
        definition_id = run(storage.create_definition(make_definition(id=None), OWNER))

        assert run(storage.delete_definition(definition_id)) is True
        assert run(storage.delete_definition(definition_id)) is False
        assert client.recurring.rows == [DEFINITION_COLUMNS]

    def test_malformed_row_skipped(self, client):
        storage = GoogleSheetsDefinitionStorage(client)
        run(storage.create_definition(make_definition(id=None), OWNER))
        client.recurring.rows.append(["bad-id", OWNER, "expense", "abc"])

        assert len(run(storage.list_definitions(OWNER))) == 1


class TestTransactionStorage:
    """Transactions worksheet round trips."""

    def test_newest_first(self, client):
        storage = GoogleSheetsTransactionStorage(client)
        definition = make_definition()
        for on in (date(2024, 1, 8), date(2024, 1, 22), date(2024, 1, 1)):
            run(storage.create_transaction(definition.to_instance(on), OWNER))

        listed = run(storage.list_transactions(OWNER))

        assert [t.date for t in listed] == [date(2024, 1, 22), date(2024, 1, 8), date(2024, 1, 1)]
        assert all(t.recurring_id == "def-rent" for t in listed)

    def test_delete(self, client):
        storage = GoogleSheetsTransactionStorage(client)
        transaction_id = run(storage.create_transaction(
            make_definition().to_instance(date(2024, 1, 1)), OWNER
        ))

        assert run(storage.delete_transaction(transaction_id)) is True
        assert run(storage.list_transactions(OWNER)) == []


class TestWatermarkStorage:
    """Watermarks worksheet round trips."""

    def test_set_get_clear(self, client):
        storage = GoogleSheetsWatermarkStorage(client)
        assert run(storage.get_watermark("def-rent")) is None

        run(storage.set_watermark("def-rent", date(2024, 1, 8)))
        run(storage.set_watermark("def-rent", date(2024, 1, 15)))

        assert run(storage.get_watermark("def-rent")) == date(2024, 1, 15)
        assert len(client.watermarks.rows) == 2

        run(storage.clear_watermark("def-rent"))
        assert run(storage.get_watermark("def-rent")) is None

    def test_watermarks_are_per_definition(self, client):
        storage = GoogleSheetsWatermarkStorage(client)
        run(storage.set_watermark("def-a", date(2024, 1, 1)))
        run(storage.set_watermark("def-b", date(2024, 2, 1)))

        assert run(storage.get_watermark("def-a")) == date(2024, 1, 1)
        assert run(storage.get_watermark("def-b")) == date(2024, 2, 1)


class LostReplyWorksheet(FakeWorksheet):
    """Writes the first appended row but reports a timeout for it."""

    def __init__(self, columns):
        super().__init__(columns)
        self.append_calls = 0

    def append_row(self, values, value_input_option=None):
        self.append_calls += 1
        super().append_row(values, value_input_option)
        if self.append_calls == 1:
            raise TimeoutError("read timed out")


class RefusingWorksheet(FakeWorksheet):
    """Rejects the first `failures` appends without writing them."""

    def __init__(self, columns, failures):
        super().__init__(columns)
        self.failures = failures
        self.append_calls = 0

    def append_row(self, values, value_input_option=None):
        self.append_calls += 1
        if self.append_calls <= self.failures:
            raise TimeoutError("quota exceeded")
        super().append_row(values, value_input_option)


@pytest.fixture
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(google_sheets._append_row_once.retry, "wait", wait_none())


class TestAppendRetries:
    """Retried appends write each row exactly once."""

    def test_timed_out_append_is_not_written_twice(self, client, no_retry_wait):
        client.transactions = LostReplyWorksheet(TRANSACTION_COLUMNS)
        storage = GoogleSheetsTransactionStorage(client)

        transaction_id = run(storage.create_transaction(
            make_definition().to_instance(date(2024, 1, 15)), OWNER
        ))

        assert client.transactions.append_calls == 1
        assert len(client.transactions.rows) == 2
        assert client.transactions.rows[1][0] == transaction_id
        assert len(run(storage.list_transactions(OWNER))) == 1

    def test_rejected_append_is_retried(self, client, no_retry_wait):
        client.transactions = RefusingWorksheet(TRANSACTION_COLUMNS, failures=1)
        storage = GoogleSheetsTransactionStorage(client)

        transaction_id = run(storage.create_transaction(
            make_definition().to_instance(date(2024, 1, 15)), OWNER
        ))

        assert client.transactions.append_calls == 2
        assert [row[0] for row in client.transactions.rows[1:]] == [transaction_id]

    def test_gives_up_after_three_attempts(self, client, no_retry_wait):
        client.transactions = RefusingWorksheet(TRANSACTION_COLUMNS, failures=5)
        storage = GoogleSheetsTransactionStorage(client)

        with pytest.raises(StorageError):
            run(storage.create_transaction(
                make_definition().to_instance(date(2024, 1, 15)), OWNER
            ))

        assert client.transactions.append_calls == 3
        assert client.transactions.rows == [TRANSACTION_COLUMNS]

    def test_definition_append_is_not_written_twice(self, client, no_retry_wait):
        client.recurring = LostReplyWorksheet(DEFINITION_COLUMNS)
        storage = GoogleSheetsDefinitionStorage(client)

        definition_id = run(storage.create_definition(make_definition(id=None), OWNER))

        assert [d.id for d in run(storage.list_definitions(OWNER))] == [definition_id]


def make_budget(**overrides) -> Budget:
    data = {
        "owner_id": OWNER,
        "category": ExpenseCategory.FOOD,
        "amount": Decimal("300.00"),
        "period": BudgetPeriod.MONTH,
    }
    data.update(overrides)
    return Budget(**data)


class TestBudgetStorage:
    """Budgets worksheet round trips."""

    def test_create_and_list(self, client):
        storage = GoogleSheetsBudgetStorage(client)

        budget_id = run(storage.create_budget(make_budget(period=BudgetPeriod.WEEK), OWNER))

        listed = run(storage.list_budgets(OWNER))
        assert [b.id for b in listed] == [budget_id]
        assert listed[0].category == ExpenseCategory.FOOD
        assert listed[0].amount == Decimal("300.00")
        assert listed[0].period == BudgetPeriod.WEEK
        assert client.budgets.rows[1][2] == "maistas"
        assert run(storage.list_budgets("someone-else")) == []

    def test_same_slot_rejected(self, client):
        storage = GoogleSheetsBudgetStorage(client)
        run(storage.create_budget(make_budget(), OWNER))

        with pytest.raises(DuplicateError):
            run(storage.create_budget(make_budget(amount=Decimal("500.00")), OWNER))

        assert len(client.budgets.rows) == 2

    def test_update(self, client):
        storage = GoogleSheetsBudgetStorage(client)
        budget_id = run(storage.create_budget(make_budget(), OWNER))

        updated = run(storage.update_budget(budget_id, BudgetUpdate(amount=Decimal("250.00"))))

        assert updated.amount == Decimal("250.00")
        assert run(storage.get_budget(budget_id)).amount == Decimal("250.00")

    def test_update_onto_taken_slot(self, client):
        storage = GoogleSheetsBudgetStorage(client)
        run(storage.create_budget(make_budget(), OWNER))
        car_id = run(storage.create_budget(make_budget(category=ExpenseCategory.CAR), OWNER))

        with pytest.raises(DuplicateError):
            run(storage.update_budget(car_id, BudgetUpdate(category=ExpenseCategory.FOOD)))

        assert run(storage.get_budget(car_id)).category == ExpenseCategory.CAR

    def test_update_missing(self, client):
        storage = GoogleSheetsBudgetStorage(client)
        with pytest.raises(NotFoundError):
            run(storage.update_budget("missing", BudgetUpdate(amount=Decimal("1.00"))))

    def test_delete(self, client):
        storage = GoogleSheetsBudgetStorage(client)
        budget_id = run(storage.create_budget(make_budget(), OWNER))

        assert run(storage.delete_budget(budget_id)) is True
        assert run(storage.delete_budget(budget_id)) is False
        assert client.budgets.rows == [BUDGET_COLUMNS]

    def test_malformed_row_skipped(self, client):
        storage = GoogleSheetsBudgetStorage(client)
        run(storage.create_budget(make_budget(), OWNER))
        client.budgets.rows.append(["bad-id", OWNER, "not-a-category", "abc"])

        assert len(run(storage.list_budgets(OWNER))) == 1


class TestAuditStorage:
    """AuditLog worksheet."""

    def test_append_and_read_back(self, client):
        storage = GoogleSheetsAuditStorage(client)
        event = AuditEventBuilder.occurrence_failed(
            definition_id="def-rent",
            on=date(2024, 1, 15),
            error_message="quota exceeded",
            correlation_id=None,
        )

        assert run(storage.append_event(event)) is True

        events = run(storage.get_events_by_entity("definition", "def-rent"))
        assert len(events) == 1
        assert events[0].event_id == event.event_id
        assert events[0].details == {"date": "2024-01-15"}
        assert events[0].error_message == "quota exceeded"


class TestAppComponents:
    """Factory wiring without a spreadsheet."""

    def test_in_memory_components(self):
        service, budget_service, flow, sheets_client = create_app_components(use_storage=False)

        assert sheets_client is None
        definitions, result = run(service.load_view(OWNER, date(2024, 1, 22)))
        assert definitions == []
        assert result.created_count == 0

        budget = run(budget_service.create_budget(OWNER, {
            "category": ExpenseCategory.FOOD,
            "amount": Decimal("100.00"),
        }))
        assert [b.id for b in run(budget_service.list_budgets(OWNER))] == [budget.id]
