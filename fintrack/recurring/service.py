"""
Recurring Definition Service

Definition management for the recurring transactions view, plus the
view-load trigger that runs a materialization pass.

DESIGN DECISION: Only explicit user actions (create, update) are blocked by
validation errors. The materialization pass never raises; failures show up
in its result and in the audit trail.
"""

from datetime import date, datetime
from typing import Any, Optional, Union

import structlog

from fintrack.audit import AuditLogger, create_correlation_id
from fintrack.models.transaction import (
    DefinitionUpdate,
    MaterializationResult,
    RecurringDefinition,
    ValidationResult,
)
from fintrack.recurring.materializer import RecurringMaterializer
from fintrack.recurring.schedule import as_calendar_date
from fintrack.services.storage import (
    DefinitionStorageInterface,
    NotFoundError,
    TransactionStorageInterface,
    WatermarkStorageInterface,
)
from fintrack.validation import DefinitionValidator


def view_notices(result: MaterializationResult) -> list[tuple[str, str]]:
    """
    (level, message) pairs to show after the view-load pass.

    Failed reads and failed occurrences are left to the log and the audit
    trail; the user only hears about what was recorded or still pending.
    """
    notices = []
    if result.skipped_in_flight:
        notices.append(("info", "Recurring transactions are being recorded, refresh in a moment."))
    elif result.created_count:
        notices.append(("success", f"Recorded {result.created_count} due transaction(s)."))
    if result.capped_definitions:
        notices.append(
            ("info", "There are more past transactions to record; open this page again to continue.")
        )
    return notices


class DefinitionRejectedError(Exception):
    """Raised when a user-entered definition fails validation."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = [i.message for i in result.issues if i.severity == "error"]
        super().__init__("; ".join(messages) or "Definition rejected")


class RecurringService:
    """
    Manages an owner's recurring definitions and keeps their transactions
    materialized.
    """

    def __init__(
        self,
        definition_storage: DefinitionStorageInterface,
        transaction_storage: TransactionStorageInterface,
        watermark_storage: WatermarkStorageInterface,
        materializer: Optional[RecurringMaterializer] = None,
        validator: Optional[DefinitionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._definitions = definition_storage
        self._transactions = transaction_storage
        self._watermarks = watermark_storage
        self._audit_logger = audit_logger
        self._materializer = materializer or RecurringMaterializer(
            transaction_storage,
            watermark_storage,
            audit_logger=audit_logger,
        )
        self._validator = validator or DefinitionValidator()
        self._logger = structlog.get_logger()

    @property
    def validator(self) -> DefinitionValidator:
        return self._validator

    async def list_definitions(self, owner_id: str) -> list[RecurringDefinition]:
        return await self._definitions.list_definitions(owner_id)

    async def create_definition(
        self,
        owner_id: str,
        data: Union[dict[str, Any], RecurringDefinition],
        correlation_id=None,
    ) -> tuple[RecurringDefinition, ValidationResult]:
        """
        Validate and save a new definition.

        Returns:
            (saved definition with its store id, validation result with any
            warnings the user should see)

        Raises:
            DefinitionRejectedError: If validation found errors
            StorageError: If the save fails
        """
        correlation_id = correlation_id or create_correlation_id()

        existing = await self._definitions.list_definitions(owner_id)
        result = self._validator.validate(data, owner_id, existing=existing)

        if not result.is_valid:
            if self._audit_logger:
                await self._audit_logger.log_definition_rejected(
                    owner_id=owner_id,
                    issues=[
                        {"field": i.field, "type": i.issue_type, "message": i.message}
                        for i in result.issues
                        if i.severity == "error"
                    ],
                    correlation_id=correlation_id,
                )
            raise DefinitionRejectedError(result)

        definition_id = await self._definitions.create_definition(result.definition, owner_id)
        definition = result.definition.model_copy(update={"id": definition_id})

        self._logger.info(
            "definition_created",
            owner_id=owner_id,
            definition_id=definition_id,
            frequency=definition.frequency.value,
        )
        if self._audit_logger:
            await self._audit_logger.log_definition_created(
                definition_id=definition_id,
                description=definition.description,
                frequency=definition.frequency.value,
                correlation_id=correlation_id,
            )

        return definition, result

    async def update_definition(
        self,
        definition_id: str,
        update: DefinitionUpdate,
        correlation_id=None,
    ) -> tuple[RecurringDefinition, ValidationResult]:
        """
        Validate the merged definition and save the change.

        The watermark is kept: occurrences already recorded stay recorded.

        Raises:
            NotFoundError: If the definition doesn't exist
            DefinitionRejectedError: If the merged definition is invalid
        """
        correlation_id = correlation_id or create_correlation_id()

        current = await self._definitions.get_definition(definition_id)
        if current is None:
            raise NotFoundError(f"Definition not found: {definition_id}")

        merged = current.model_dump()
        merged.update(update.model_dump(exclude_unset=True))

        existing = await self._definitions.list_definitions(current.owner_id)
        result = self._validator.validate(merged, current.owner_id, existing=existing)
        if not result.is_valid:
            if self._audit_logger:
                await self._audit_logger.log_definition_rejected(
                    owner_id=current.owner_id,
                    issues=[
                        {"field": i.field, "type": i.issue_type, "message": i.message}
                        for i in result.issues
                        if i.severity == "error"
                    ],
                    correlation_id=correlation_id,
                )
            raise DefinitionRejectedError(result)

        updated = await self._definitions.update_definition(definition_id, update)

        if self._audit_logger:
            await self._audit_logger.log_definition_updated(
                definition_id=definition_id,
                changed_fields=sorted(update.model_dump(exclude_unset=True)),
                correlation_id=correlation_id,
            )

        return updated, result

    async def delete_definition(self, definition_id: str, correlation_id=None) -> bool:
        """
        Delete a definition and forget its watermark.

        Transactions it already recorded are kept.
        """
        correlation_id = correlation_id or create_correlation_id()

        deleted = await self._definitions.delete_definition(definition_id)
        await self._watermarks.clear_watermark(definition_id)

        if deleted:
            self._logger.info("definition_deleted", definition_id=definition_id)
            if self._audit_logger:
                await self._audit_logger.log_definition_deleted(
                    definition_id=definition_id,
                    correlation_id=correlation_id,
                )

        return deleted

    async def materialize_due(
        self,
        owner_id: str,
        today: Optional[Union[date, datetime]] = None,
    ) -> MaterializationResult:
        """
        Record every due occurrence of the owner's definitions.

        A failed read of definitions or transactions is logged and returned
        as a result with `read_failed` set; nothing is created in that case.
        """
        today = as_calendar_date(today)

        try:
            definitions = await self._definitions.list_definitions(owner_id)
            existing = await self._transactions.list_transactions(owner_id)
        except Exception as e:
            self._logger.error("materialization_read_failed", owner_id=owner_id, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="storage",
                    error_message=str(e),
                )
            return MaterializationResult(owner_id=owner_id, today=today, read_failed=True)

        return await self._materializer.materialize(owner_id, definitions, existing, today)

    async def load_view(
        self,
        owner_id: str,
        today: Optional[Union[date, datetime]] = None,
    ) -> tuple[list[RecurringDefinition], MaterializationResult]:
        """
        Entry point for the recurring transactions view.

        Runs a pass first, then returns the definitions to display along
        with the pass result.
        """
        result = await self.materialize_due(owner_id, today)
        try:
            definitions = await self._definitions.list_definitions(owner_id)
        except Exception as e:
            self._logger.error("definitions_read_failed", owner_id=owner_id, error=str(e))
            definitions = []
        return definitions, result
