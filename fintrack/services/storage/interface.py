"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Add caching layers transparently
4. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Every collection is scoped by owner; the materializer only needs each call
to either succeed or raise StorageError.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from fintrack.models.audit import AuditEvent
from fintrack.models.budget import Budget, BudgetUpdate
from fintrack.models.transaction import (
    DefinitionUpdate,
    RecurringDefinition,
    TransactionInstance,
)


class DefinitionStorageInterface(ABC):
    """Abstract interface for recurring definition storage."""

    @abstractmethod
    async def list_definitions(self, owner_id: str) -> list[RecurringDefinition]:
        """
        List all recurring definitions belonging to an owner.

        Returns:
            Definitions in creation order
        """
        pass

    @abstractmethod
    async def get_definition(self, definition_id: str) -> Optional[RecurringDefinition]:
        """
        Retrieve a definition by its ID.

        Returns:
            The definition if found, None otherwise
        """
        pass

    @abstractmethod
    async def create_definition(
        self,
        definition: RecurringDefinition,
        owner_id: str,
    ) -> str:
        """
        Persist a new definition for an owner.

        Args:
            definition: The definition to save (its id is ignored)
            owner_id: Owner the definition belongs to

        Returns:
            The store-assigned definition ID

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def update_definition(
        self,
        definition_id: str,
        update: DefinitionUpdate,
    ) -> RecurringDefinition:
        """
        Apply a partial update to a definition.

        Returns:
            The updated definition

        Raises:
            NotFoundError: If definition doesn't exist
            StorageError: If update fails
        """
        pass

    @abstractmethod
    async def delete_definition(self, definition_id: str) -> bool:
        """
        Delete a definition by ID.

        Returns:
            True if a definition was deleted
        """
        pass


class TransactionStorageInterface(ABC):
    """Abstract interface for transaction storage."""

    @abstractmethod
    async def list_transactions(self, owner_id: str) -> list[TransactionInstance]:
        """
        List all transactions belonging to an owner.

        Returns:
            Transactions ordered by date, newest first
        """
        pass

    @abstractmethod
    async def create_transaction(
        self,
        instance: TransactionInstance,
        owner_id: str,
    ) -> str:
        """
        Persist a new transaction for an owner.

        Returns:
            The store-assigned transaction ID

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: str) -> bool:
        """
        Delete a transaction by ID.

        Returns:
            True if a transaction was deleted
        """
        pass


class WatermarkStorageInterface(ABC):
    """
    Abstract interface for per-definition progress markers.

    A watermark is the date of the most recently materialized occurrence
    of a definition. There is at most one per definition; setting it
    replaces the previous value.
    """

    @abstractmethod
    async def get_watermark(self, definition_id: str) -> Optional[date]:
        """Return the watermark, or None if nothing was materialized yet."""
        pass

    @abstractmethod
    async def set_watermark(self, definition_id: str, value: date) -> None:
        """
        Store the watermark for a definition.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def clear_watermark(self, definition_id: str) -> None:
        """Remove the watermark of a deleted definition."""
        pass


class BudgetStorageInterface(ABC):
    """
    Abstract interface for budget storage.

    An owner has at most one budget per category and period.
    """

    @abstractmethod
    async def list_budgets(self, owner_id: str) -> list[Budget]:
        """List an owner's budgets in creation order."""
        pass

    @abstractmethod
    async def get_budget(self, budget_id: str) -> Optional[Budget]:
        pass

    @abstractmethod
    async def create_budget(self, budget: Budget, owner_id: str) -> str:
        """
        Persist a new budget for an owner.

        Returns:
            The store-assigned budget ID

        Raises:
            DuplicateError: If the owner already has a budget for the
                same category and period
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def update_budget(self, budget_id: str, update: BudgetUpdate) -> Budget:
        """
        Apply a partial update to a budget.

        Raises:
            NotFoundError: If budget doesn't exist
            DuplicateError: If the update moves it onto another budget's
                category and period
        """
        pass

    @abstractmethod
    async def delete_budget(self, budget_id: str) -> bool:
        """Returns True if a budget was deleted."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one materialization pass).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
