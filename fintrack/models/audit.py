"""
Audit Models for the Finance Tracker

Every significant action in the system is logged for audit purposes.
This provides:
1. Complete traceability of all operations
2. Debugging information when things go wrong
3. Ability to reconstruct which pass created which transaction

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Recurring definitions (explicit user actions)
    DEFINITION_CREATED = "definition_created"
    DEFINITION_UPDATED = "definition_updated"
    DEFINITION_DELETED = "definition_deleted"
    DEFINITION_REJECTED = "definition_rejected"

    # Materialization
    MATERIALIZATION_STARTED = "materialization_started"
    MATERIALIZATION_COMPLETED = "materialization_completed"
    MATERIALIZATION_SKIPPED = "materialization_skipped"
    OCCURRENCE_CREATED = "occurrence_created"
    OCCURRENCE_FAILED = "occurrence_failed"
    DEFINITION_FAILED = "definition_failed"

    # Budgets
    BUDGET_CREATED = "budget_created"
    BUDGET_UPDATED = "budget_updated"
    BUDGET_DELETED = "budget_deleted"

    # Query operations
    QUERY_EXECUTED = "query_executed"

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

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'definition', 'transaction', 'owner')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Store identifier of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one pass)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.definition_created(definition_id, "Rent", "monthly")
        event = AuditEventBuilder.occurrence_failed(definition_id, on, error, correlation_id)
    """

    @staticmethod
    def definition_created(
        definition_id: str,
        description: str,
        frequency: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEFINITION_CREATED,
            entity_type="definition",
            entity_id=definition_id,
            correlation_id=correlation_id,
            description=f"Recurring transaction created: {description} ({frequency})",
            details={
                "description": description,
                "frequency": frequency,
            },
            is_user_action=True,
        )

    @staticmethod
    def definition_updated(
        definition_id: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEFINITION_UPDATED,
            entity_type="definition",
            entity_id=definition_id,
            correlation_id=correlation_id,
            description=f"Recurring transaction updated: {', '.join(changed_fields)}",
            details={
                "changed_fields": changed_fields,
            },
            is_user_action=True,
        )

    @staticmethod
    def definition_deleted(
        definition_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEFINITION_DELETED,
            entity_type="definition",
            entity_id=definition_id,
            correlation_id=correlation_id,
            description="Recurring transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def definition_rejected(
        owner_id: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEFINITION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="owner",
            entity_id=owner_id,
            correlation_id=correlation_id,
            description=f"Recurring transaction rejected with {len(issues)} issues",
            details={
                "issues": issues,
            },
            is_user_action=True,
        )

    @staticmethod
    def materialization_started(
        owner_id: str,
        definition_count: int,
        today: date,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MATERIALIZATION_STARTED,
            entity_type="owner",
            entity_id=owner_id,
            correlation_id=correlation_id,
            description=f"Materialization started for {definition_count} definitions",
            details={
                "definition_count": definition_count,
                "today": today.isoformat(),
            },
        )

    @staticmethod
    def materialization_completed(
        owner_id: str,
        created: int,
        duplicates: int,
        failed: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MATERIALIZATION_COMPLETED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            entity_type="owner",
            entity_id=owner_id,
            correlation_id=correlation_id,
            description=(
                f"Materialization completed: {created} created, "
                f"{duplicates} already recorded, {failed} failed"
            ),
            details={
                "created": created,
                "duplicates": duplicates,
                "failed": failed,
            },
        )

    @staticmethod
    def materialization_skipped(
        owner_id: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MATERIALIZATION_SKIPPED,
            entity_type="owner",
            entity_id=owner_id,
            correlation_id=correlation_id,
            description=f"Materialization skipped: {reason}",
            details={
                "reason": reason,
            },
        )

    @staticmethod
    def occurrence_created(
        transaction_id: str,
        definition_id: str,
        on: date,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCCURRENCE_CREATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Recurring occurrence recorded for {on.isoformat()}",
            details={
                "definition_id": definition_id,
                "date": on.isoformat(),
            },
        )

    @staticmethod
    def occurrence_failed(
        definition_id: str,
        on: date,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCCURRENCE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="definition",
            entity_id=definition_id,
            correlation_id=correlation_id,
            description=f"Could not record occurrence for {on.isoformat()}; will retry",
            error_message=error_message,
            details={
                "date": on.isoformat(),
            },
        )

    @staticmethod
    def definition_failed(
        definition_id: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEFINITION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="definition",
            entity_id=definition_id,
            correlation_id=correlation_id,
            description="Recurring transaction skipped: cannot be processed",
            error_message=error_message,
        )

    @staticmethod
    def budget_created(
        budget_id: str,
        category: str,
        period: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_CREATED,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget created: {category} {amount} per {period}",
            details={
                "category": category,
                "period": period,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def budget_updated(
        budget_id: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_UPDATED,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget updated: {', '.join(changed_fields)}",
            details={
                "changed_fields": changed_fields,
            },
            is_user_action=True,
        )

    @staticmethod
    def budget_deleted(
        budget_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_DELETED,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description="Budget deleted",
            is_user_action=True,
        )

    @staticmethod
    def query_executed(
        query_id: str,
        query_type: str,
        result_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUERY_EXECUTED,
            entity_type="query",
            entity_id=query_id,
            correlation_id=correlation_id,
            description=f"Query executed: {query_type} returned {result_count} results",
            details={
                "query_type": query_type,
                "result_count": result_count,
            },
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
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
