"""
Recurring Transaction Materializer

Turns recurring definitions into the concrete transactions that should
exist up to today.

GUARANTEES:
- Idempotent: a second pass on the same day creates nothing
- Occurrences of one definition are recorded in strictly increasing date order
- The watermark only advances past an occurrence once it exists in the store,
  so a failed write is retried on the next pass and never skipped
- Bounded: at most `max_iterations` occurrences are examined per definition
  per pass; the rest is picked up by later passes
- Nothing raised while processing one definition escapes the pass

Duplicate detection is content based: an occurrence counts as recorded when
a transaction with the same kind, amount, description, category and date
exists, whoever created it.
"""

from datetime import date, datetime
from typing import Optional, Union
from uuid import UUID

import structlog

from fintrack.audit import AuditLogger, create_correlation_id
from fintrack.config import get_settings
from fintrack.models.transaction import (
    MatchKey,
    MaterializationResult,
    RecurringDefinition,
    TransactionInstance,
)
from fintrack.recurring.guard import InFlightGuard
from fintrack.recurring.schedule import as_calendar_date, next_index_after, occurrence
from fintrack.services.storage import (
    TransactionStorageInterface,
    WatermarkStorageInterface,
)


class RecurringMaterializer:
    """
    Materializes due occurrences of recurring definitions.

    Stores, the in-flight guard and the audit logger are injected so the
    same component serves the UI process, tests, and any server-side job.
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        watermark_storage: WatermarkStorageInterface,
        guard: Optional[InFlightGuard] = None,
        audit_logger: Optional[AuditLogger] = None,
        max_iterations: Optional[int] = None,
    ):
        self._transactions = transaction_storage
        self._watermarks = watermark_storage
        self._guard = guard or InFlightGuard()
        self._audit_logger = audit_logger
        self._max_iterations = (
            max_iterations
            if max_iterations is not None
            else get_settings().recurring.max_iterations_per_definition
        )
        self._logger = structlog.get_logger()

    async def materialize(
        self,
        owner_id: str,
        definitions: list[RecurringDefinition],
        existing_instances: list[TransactionInstance],
        today: Optional[Union[date, datetime]] = None,
    ) -> MaterializationResult:
        """
        Record every due, not yet recorded occurrence of `definitions`.

        Args:
            owner_id: Owner whose definitions are processed
            definitions: The owner's recurring definitions
            existing_instances: The owner's transactions, used for
                duplicate detection
            today: Last day that counts as due (default: today)

        Returns:
            Counts, the created transactions and the watermark per definition.
            If a pass for the same owner is already running, nothing is done
            and `skipped_in_flight` is set.
        """
        today = as_calendar_date(today)
        result = MaterializationResult(owner_id=owner_id, today=today)

        with self._guard.claim(owner_id) as acquired:
            if not acquired:
                result.skipped_in_flight = True
                self._logger.info("materialization_in_flight", owner_id=owner_id)
                if self._audit_logger:
                    await self._audit_logger.log_materialization_skipped(
                        owner_id=owner_id,
                        reason="another pass is already running",
                    )
                return result

            correlation_id = create_correlation_id()
            seen: set[MatchKey] = {i.match_key() for i in existing_instances}

            if self._audit_logger:
                await self._audit_logger.log_materialization_started(
                    owner_id=owner_id,
                    definition_count=len(definitions),
                    today=today,
                    correlation_id=correlation_id,
                )

            for definition in definitions:
                try:
                    await self._materialize_definition(
                        definition, owner_id, today, seen, result, correlation_id
                    )
                except Exception as e:
                    definition_id = definition.id or ""
                    result.failed_definitions.append(definition_id)
                    self._logger.error(
                        "definition_failed",
                        owner_id=owner_id,
                        definition_id=definition_id,
                        error=str(e),
                    )
                    if self._audit_logger:
                        await self._audit_logger.log_definition_failed(
                            definition_id=definition_id,
                            error_message=str(e),
                            correlation_id=correlation_id,
                        )

            self._logger.info(
                "materialization_completed",
                owner_id=owner_id,
                created=result.created_count,
                duplicates=result.duplicate_count,
                failed=result.failed_count,
            )
            if self._audit_logger:
                await self._audit_logger.log_materialization_completed(
                    owner_id=owner_id,
                    created=result.created_count,
                    duplicates=result.duplicate_count,
                    failed=result.failed_count,
                    correlation_id=correlation_id,
                )

        return result

    async def _materialize_definition(
        self,
        definition: RecurringDefinition,
        owner_id: str,
        today: date,
        seen: set[MatchKey],
        result: MaterializationResult,
        correlation_id: UUID,
    ) -> None:
        """Walk one definition's occurrences from its watermark up to today."""
        definition_id = definition.id or ""

        if definition.owner_id != owner_id:
            self._logger.warning(
                "definition_owner_mismatch",
                owner_id=owner_id,
                definition_id=definition_id,
            )
            result.skipped_definitions.append(definition_id)
            return

        # Ended, or not started yet
        if definition.end_date and definition.end_date < today:
            result.skipped_definitions.append(definition_id)
            return
        if definition.start_date > today:
            result.skipped_definitions.append(definition_id)
            return

        start, frequency = definition.start_date, definition.frequency
        watermark = await self._watermarks.get_watermark(definition_id)
        if watermark is None:
            index = 0
        else:
            result.watermarks[definition_id] = watermark
            index = next_index_after(start, frequency, watermark)

        for _ in range(self._max_iterations):
            cursor = occurrence(start, frequency, index)
            if cursor > today:
                return
            if definition.end_date and definition.end_date < cursor:
                return

            key = definition.occurrence_key(cursor)
            if key in seen:
                result.duplicate_count += 1
            else:
                instance = definition.to_instance(cursor)
                try:
                    transaction_id = await self._transactions.create_transaction(
                        instance, owner_id
                    )
                except Exception as e:
                    # Later occurrences wait too, so the watermark cannot pass this one
                    result.failed_count += 1
                    self._logger.warning(
                        "occurrence_create_failed",
                        owner_id=owner_id,
                        definition_id=definition_id,
                        date=cursor.isoformat(),
                        error=str(e),
                    )
                    if self._audit_logger:
                        await self._audit_logger.log_occurrence_failed(
                            definition_id=definition_id,
                            on=cursor,
                            error_message=str(e),
                            correlation_id=correlation_id,
                        )
                    return

                seen.add(key)
                result.created.append(instance.model_copy(update={"id": transaction_id}))
                result.created_count += 1
                if self._audit_logger:
                    await self._audit_logger.log_occurrence_created(
                        transaction_id=transaction_id,
                        definition_id=definition_id,
                        on=cursor,
                        correlation_id=correlation_id,
                    )

            if not await self._advance_watermark(definition_id, cursor, result):
                return
            index += 1

        cursor = occurrence(start, frequency, index)
        if cursor <= today and not (definition.end_date and definition.end_date < cursor):
            result.capped_definitions.append(definition_id)
            self._logger.info(
                "materialization_capped",
                owner_id=owner_id,
                definition_id=definition_id,
                resume_from=cursor.isoformat(),
            )

    async def _advance_watermark(
        self,
        definition_id: str,
        value: date,
        result: MaterializationResult,
    ) -> bool:
        """Persist the watermark; False stops the definition for this pass."""
        try:
            await self._watermarks.set_watermark(definition_id, value)
        except Exception as e:
            result.failed_definitions.append(definition_id)
            self._logger.warning(
                "watermark_write_failed",
                definition_id=definition_id,
                date=value.isoformat(),
                error=str(e),
            )
            return False

        result.watermarks[definition_id] = value
        return True
