"""Tests for RecurringService (definition management and view load)."""

import pytest
from datetime import date
from decimal import Decimal

from fintrack.models.audit import AuditEventType
from fintrack.models.transaction import (
    DefinitionUpdate,
    ExpenseCategory,
    Frequency,
    MaterializationResult,
    TransactionKind,
)
from fintrack.recurring.service import (
    DefinitionRejectedError,
    RecurringService,
    view_notices,
)
from fintrack.services.storage import (
    InMemoryTransactionStorage,
    NotFoundError,
    StorageError,
)

from tests.conftest import OWNER, run


TODAY = date(2024, 1, 22)


def rent_data(**overrides) -> dict:
    data = {
        "kind": "expense",
        "amount": "500.00",
        "description": "Rent",
        "category": ExpenseCategory.HOUSING,
        "frequency": "weekly",
        "start_date": date(2024, 1, 1),
    }
    data.update(overrides)
    return data


class UnreadableTransactionStorage(InMemoryTransactionStorage):
    async def list_transactions(self, owner_id):
        raise StorageError("Spreadsheet unavailable")


@pytest.fixture
def service(definitions, transactions, watermarks, materializer, audit_logger):
    return RecurringService(
        definitions,
        transactions,
        watermarks,
        materializer=materializer,
        audit_logger=audit_logger,
    )


class TestCreateDefinition:
    """Creating definitions is an explicit user action."""

    def test_create_assigns_id(self, service, definitions):
        definition, result = run(service.create_definition(OWNER, rent_data()))

        assert definition.id
        assert definition.owner_id == OWNER
        assert definition.amount == Decimal("500.00")
        assert result.is_valid
        stored = run(definitions.list_definitions(OWNER))
        assert [d.id for d in stored] == [definition.id]

    def test_owner_comes_from_caller(self, service):
        definition, _ = run(service.create_definition(OWNER, rent_data(owner_id="intruder")))
        assert definition.owner_id == OWNER

    def test_invalid_definition_rejected(self, service, definitions, audit_storage):
        with pytest.raises(DefinitionRejectedError) as exc_info:
            run(service.create_definition(OWNER, rent_data(category=None)))

        assert exc_info.value.result.has_errors
        assert "Expense requires a category" in str(exc_info.value)
        assert run(definitions.list_definitions(OWNER)) == []

        events = run(audit_storage.get_recent_events())
        assert [e.event_type for e in events] == [AuditEventType.DEFINITION_REJECTED]

    def test_duplicate_definition_only_warns(self, service):
        run(service.create_definition(OWNER, rent_data()))

        _, result = run(service.create_definition(OWNER, rent_data()))

        assert result.is_valid
        assert any("already exists" in w for w in result.warnings)

    def test_create_is_audited(self, service, audit_storage):
        definition, _ = run(service.create_definition(OWNER, rent_data()))

        events = run(audit_storage.get_events_by_entity("definition", definition.id))
        assert [e.event_type for e in events] == [AuditEventType.DEFINITION_CREATED]
        assert events[0].is_user_action is True


class TestUpdateDefinition:
    """Tests for update_definition."""

    def test_update_amount(self, service):
        definition, _ = run(service.create_definition(OWNER, rent_data()))

        updated, _ = run(service.update_definition(
            definition.id, DefinitionUpdate(amount=Decimal("550.00"))
        ))

        assert updated.amount == Decimal("550.00")
        assert updated.description == "Rent"

    def test_update_unknown_definition(self, service):
        with pytest.raises(NotFoundError):
            run(service.update_definition("missing", DefinitionUpdate(description="x")))

    def test_invalid_merge_rejected(self, service):
        definition, _ = run(service.create_definition(OWNER, rent_data()))

        with pytest.raises(DefinitionRejectedError):
            run(service.update_definition(
                definition.id, DefinitionUpdate(end_date=date(2023, 12, 1))
            ))

    def test_update_does_not_flag_itself_as_duplicate(self, service):
        definition, _ = run(service.create_definition(OWNER, rent_data()))

        _, result = run(service.update_definition(
            definition.id, DefinitionUpdate(description="Rent")
        ))

        assert result.warnings == []

    def test_update_keeps_watermark(self, service, watermarks):
        definition, _ = run(service.create_definition(OWNER, rent_data()))
        run(service.materialize_due(OWNER, TODAY))

        run(service.update_definition(definition.id, DefinitionUpdate(amount=Decimal("600.00"))))

        assert run(watermarks.get_watermark(definition.id)) == TODAY


class TestDeleteDefinition:
    """Deleting a definition clears its watermark but keeps its transactions."""

    def test_delete_clears_watermark(self, service, watermarks, transactions):
        definition, _ = run(service.create_definition(OWNER, rent_data()))
        run(service.materialize_due(OWNER, TODAY))
        assert run(watermarks.get_watermark(definition.id)) == TODAY

        assert run(service.delete_definition(definition.id)) is True

        assert run(watermarks.get_watermark(definition.id)) is None
        assert run(service.list_definitions(OWNER)) == []
        assert len(run(transactions.list_transactions(OWNER))) == 4

    def test_delete_unknown(self, service):
        assert run(service.delete_definition("missing")) is False

    def test_recreated_definition_does_not_duplicate(self, service, transactions):
        definition, _ = run(service.create_definition(OWNER, rent_data()))
        run(service.materialize_due(OWNER, TODAY))
        run(service.delete_definition(definition.id))

        run(service.create_definition(OWNER, rent_data()))
        result = run(service.materialize_due(OWNER, TODAY))

        assert result.created_count == 0
        assert result.duplicate_count == 4
        assert len(run(transactions.list_transactions(OWNER))) == 4


class TestLoadView:
    """Opening the recurring view runs a pass."""

    def test_load_view_materializes(self, service):
        run(service.create_definition(OWNER, rent_data()))
        run(service.create_definition(OWNER, rent_data(
            kind=TransactionKind.INCOME,
            category=None,
            description="Salary",
            amount="2500.00",
            frequency=Frequency.MONTHLY,
        )))

        definitions, result = run(service.load_view(OWNER, TODAY))

        assert len(definitions) == 2
        assert result.created_count == 5
        assert result.owner_id == OWNER

    def test_read_failure_reported(self, definitions, watermarks, audit_logger, audit_storage):
        service = RecurringService(
            definitions,
            UnreadableTransactionStorage(),
            watermarks,
            audit_logger=audit_logger,
        )
        run(service.create_definition(OWNER, rent_data()))

        definitions_shown, result = run(service.load_view(OWNER, TODAY))

        assert result.read_failed is True
        assert result.created_count == 0
        assert len(definitions_shown) == 1
        events = run(audit_storage.get_recent_events())
        assert AuditEventType.EXTERNAL_SERVICE_ERROR in [e.event_type for e in events]
        assert view_notices(result) == []


class TestViewNotices:
    """What the recurring view tells the user after its pass."""

    def result(self, **fields):
        return MaterializationResult(owner_id=OWNER, today=TODAY, **fields)

    def test_nothing_to_report(self):
        assert view_notices(self.result()) == []

    def test_created(self):
        assert view_notices(self.result(created_count=3)) == [
            ("success", "Recorded 3 due transaction(s)."),
        ]

    def test_partial_failure_stays_silent(self):
        notices = view_notices(self.result(
            created_count=2,
            failed_count=1,
            failed_definitions=["def-rent"],
        ))

        assert notices == [("success", "Recorded 2 due transaction(s).")]

    def test_failure_without_progress_stays_silent(self):
        assert view_notices(self.result(failed_count=1, failed_definitions=["def-rent"])) == []

    def test_read_failure_stays_silent(self):
        assert view_notices(self.result(read_failed=True)) == []

    def test_in_flight(self):
        [(level, _)] = view_notices(self.result(skipped_in_flight=True))
        assert level == "info"

    def test_capped(self):
        notices = view_notices(self.result(created_count=100, capped_definitions=["def-rent"]))

        assert [level for level, _ in notices] == ["success", "info"]
