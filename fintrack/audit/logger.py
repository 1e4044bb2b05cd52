"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Complete traceability
2. Debugging capability
3. User can see which transactions were recorded automatically

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from datetime import date
from typing import Optional
from uuid import UUID, uuid4

import structlog

from fintrack.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from fintrack.services.storage import AuditStorageInterface


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
    2. Audit storage (for persistence and user visibility)
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
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_definition_created(
        self,
        definition_id: str,
        description: str,
        frequency: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log creation of a recurring definition."""
        await self.log(AuditEventBuilder.definition_created(
            definition_id=definition_id,
            description=description,
            frequency=frequency,
            correlation_id=correlation_id,
        ))

    async def log_definition_updated(
        self,
        definition_id: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.definition_updated(
            definition_id=definition_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        ))

    async def log_definition_deleted(
        self,
        definition_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.definition_deleted(
            definition_id=definition_id,
            correlation_id=correlation_id,
        ))

    async def log_definition_rejected(
        self,
        owner_id: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a definition the user tried to save but that failed validation."""
        await self.log(AuditEventBuilder.definition_rejected(
            owner_id=owner_id,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_materialization_started(
        self,
        owner_id: str,
        definition_count: int,
        today: date,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.materialization_started(
            owner_id=owner_id,
            definition_count=definition_count,
            today=today,
            correlation_id=correlation_id,
        ))

    async def log_materialization_completed(
        self,
        owner_id: str,
        created: int,
        duplicates: int,
        failed: int,
        correlation_id: UUID,
    ) -> None:
        """Log the summary of a finished pass."""
        await self.log(AuditEventBuilder.materialization_completed(
            owner_id=owner_id,
            created=created,
            duplicates=duplicates,
            failed=failed,
            correlation_id=correlation_id,
        ))

    async def log_materialization_skipped(
        self,
        owner_id: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.materialization_skipped(
            owner_id=owner_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_occurrence_created(
        self,
        transaction_id: str,
        definition_id: str,
        on: date,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.occurrence_created(
            transaction_id=transaction_id,
            definition_id=definition_id,
            on=on,
            correlation_id=correlation_id,
        ))

    async def log_occurrence_failed(
        self,
        definition_id: str,
        on: date,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.occurrence_failed(
            definition_id=definition_id,
            on=on,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_definition_failed(
        self,
        definition_id: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.definition_failed(
            definition_id=definition_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_budget_created(
        self,
        budget_id: str,
        category: str,
        period: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_created(
            budget_id=budget_id,
            category=category,
            period=period,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_budget_updated(
        self,
        budget_id: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_updated(
            budget_id=budget_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        ))

    async def log_budget_deleted(
        self,
        budget_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_deleted(
            budget_id=budget_id,
            correlation_id=correlation_id,
        ))

    async def log_query_executed(
        self,
        query_id: str,
        query_type: str,
        result_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log query execution."""
        await self.log(AuditEventBuilder.query_executed(
            query_id=query_id,
            query_type=query_type,
            result_count=result_count,
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
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action or materialization pass.
    Pass it through all subsequent operations.
    """
    return uuid4()
