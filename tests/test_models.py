"""
Tests for the Finance Tracker models

Test strategy:
1. Unit tests for individual components (models, schedule, validator)
2. Flow tests against in-memory stores
3. No real API calls in tests (fake worksheets stand in for Google Sheets)
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from fintrack.models.transaction import (
    DefinitionUpdate,
    ExpenseCategory,
    Frequency,
    RecurringDefinition,
    TransactionInstance,
    TransactionKind,
    TransactionQuery,
    ValidationIssue,
    ValidationResult,
)
from fintrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

from tests.conftest import OWNER, make_definition


class TestRecurringDefinition:
    """Tests for RecurringDefinition."""

    def test_definition_creation(self):
        definition = make_definition()
        assert definition.kind == TransactionKind.EXPENSE
        assert definition.amount == Decimal("500.00")
        assert definition.currency == "EUR"
        assert definition.end_date is None

    def test_description_strips_whitespace(self):
        definition = make_definition(description="  Rent  ")
        assert definition.description == "Rent"

    def test_rejects_non_positive_amount(self):
        with pytest.raises(ValueError):
            make_definition(amount=Decimal("0"))

    def test_rejects_more_than_two_decimals(self):
        with pytest.raises(ValueError):
            make_definition(amount=Decimal("10.005"))

    def test_expense_requires_category(self):
        with pytest.raises(ValueError, match="Expense requires a category"):
            make_definition(category=None)

    def test_income_cannot_have_category(self):
        with pytest.raises(ValueError, match="Income cannot have an expense category"):
            make_definition(kind=TransactionKind.INCOME)

    def test_income_without_category(self):
        definition = make_definition(kind=TransactionKind.INCOME, category=None)
        assert definition.category is None

    def test_end_date_before_start_rejected(self):
        with pytest.raises(ValueError, match="End date cannot be before start date"):
            make_definition(end_date=date(2023, 12, 31))

    def test_end_date_equal_to_start_allowed(self):
        definition = make_definition(end_date=date(2024, 1, 1))
        assert definition.end_date == definition.start_date

    def test_datetimes_reduced_to_dates(self):
        definition = make_definition(start_date=datetime(2024, 1, 1, 23, 59))
        assert definition.start_date == date(2024, 1, 1)
        assert not isinstance(definition.start_date, datetime)

    def test_unknown_frequency_rejected(self):
        with pytest.raises(ValueError):
            make_definition(frequency="fortnightly")

    def test_to_instance_carries_definition_fields(self):
        definition = make_definition()
        instance = definition.to_instance(date(2024, 1, 8))

        assert instance.id is None
        assert instance.owner_id == OWNER
        assert instance.date == date(2024, 1, 8)
        assert instance.recurring_id == "def-rent"
        assert instance.match_key() == definition.occurrence_key(date(2024, 1, 8))


class TestDefinitionUpdate:
    """Tests for partial updates."""

    def test_apply_only_set_fields(self):
        definition = make_definition()
        updated = DefinitionUpdate(amount=Decimal("550.00")).apply_to(definition)

        assert updated.amount == Decimal("550.00")
        assert updated.description == "Rent"
        assert updated.id == definition.id

    def test_apply_revalidates(self):
        definition = make_definition()
        with pytest.raises(ValueError):
            DefinitionUpdate(end_date=date(2023, 1, 1)).apply_to(definition)


class TestTransactionInstance:
    """Tests for TransactionInstance."""

    def test_match_key_ignores_provenance(self):
        manual = TransactionInstance(
            owner_id=OWNER,
            kind=TransactionKind.EXPENSE,
            amount=Decimal("500.00"),
            description="Rent",
            category=ExpenseCategory.HOUSING,
            date=date(2024, 1, 1),
        )
        generated = manual.model_copy(update={"id": "t-2", "recurring_id": "def-rent"})
        assert manual.match_key() == generated.match_key()

    def test_amounts_compare_by_value(self):
        a = make_definition(amount=Decimal("500")).occurrence_key(date(2024, 1, 1))
        b = make_definition(amount=Decimal("500.00")).occurrence_key(date(2024, 1, 1))
        assert a == b


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.DEFINITION_CREATED,
            description="Recurring transaction created",
        )
        assert event.event_type == AuditEventType.DEFINITION_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        event = AuditEvent(
            event_type=AuditEventType.OCCURRENCE_CREATED,
            description="Recurring occurrence recorded",
            details={"definition_id": "def-rent", "date": "2024-01-01"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "occurrence_created"
        assert log_dict["details"]["definition_id"] == "def-rent"

    def test_audit_event_to_sheets_row(self):
        event = AuditEventBuilder.definition_deleted(definition_id="def-rent")
        row = event.to_sheets_row()
        assert len(row) == 11
        assert row[2] == "definition_deleted"
        assert row[5] == "def-rent"
        assert row[10] == "True"

    def test_occurrence_failed_is_warning(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.occurrence_failed(
            definition_id="def-rent",
            on=date(2024, 1, 15),
            error_message="quota exceeded",
            correlation_id=correlation_id,
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.entity_id == "def-rent"
        assert event.correlation_id == correlation_id
        assert event.details["date"] == "2024-01-15"

    def test_completed_with_failures_is_warning(self):
        event = AuditEventBuilder.materialization_completed(
            owner_id=OWNER, created=2, duplicates=0, failed=1, correlation_id=uuid4()
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.is_user_action is False


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        result = ValidationResult(
            schema_valid=False,
            semantic_valid=False,
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="missing",
                    message="Field required",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        result = ValidationResult(
            schema_valid=True,
            semantic_valid=True,
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="start_date",
                    issue_type="future_date",
                    message="Date in future",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0


class TestEnums:
    """Tests for enums."""

    def test_category_values_are_stored_tags(self):
        assert ExpenseCategory("būstas") == ExpenseCategory.HOUSING
        assert ExpenseCategory("kitos") == ExpenseCategory.OTHER
        assert len(ExpenseCategory) == 10

    def test_frequencies(self):
        assert [f.value for f in Frequency] == ["daily", "weekly", "monthly", "yearly"]

    def test_query_type_restricted(self):
        with pytest.raises(ValueError):
            TransactionQuery(owner_id=OWNER, query_type="delete")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
