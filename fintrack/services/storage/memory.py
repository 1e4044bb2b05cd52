"""
In-Memory Storage Implementation

Used by the test suite and as the fallback when no spreadsheet is
configured. Data lives only as long as the process.

Stored models are copied on the way in and on the way out so callers
can never mutate what the store holds.
"""

from datetime import date
from typing import Optional
from uuid import UUID, uuid4

from fintrack.models.audit import AuditEvent
from fintrack.models.budget import Budget, BudgetUpdate
from fintrack.models.transaction import (
    DefinitionUpdate,
    RecurringDefinition,
    TransactionInstance,
)
from fintrack.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    DefinitionStorageInterface,
    DuplicateError,
    NotFoundError,
    TransactionStorageInterface,
    WatermarkStorageInterface,
)


def _new_id() -> str:
    return str(uuid4())


class InMemoryDefinitionStorage(DefinitionStorageInterface):
    """Recurring definitions kept in a dict, in insertion order."""

    def __init__(self):
        self._definitions: dict[str, RecurringDefinition] = {}

    async def list_definitions(self, owner_id: str) -> list[RecurringDefinition]:
        return [
            definition.model_copy()
            for definition in self._definitions.values()
            if definition.owner_id == owner_id
        ]

    async def get_definition(self, definition_id: str) -> Optional[RecurringDefinition]:
        definition = self._definitions.get(definition_id)
        return definition.model_copy() if definition else None

    async def create_definition(
        self,
        definition: RecurringDefinition,
        owner_id: str,
    ) -> str:
        definition_id = _new_id()
        self._definitions[definition_id] = definition.model_copy(
            update={"id": definition_id, "owner_id": owner_id}
        )
        return definition_id

    async def update_definition(
        self,
        definition_id: str,
        update: DefinitionUpdate,
    ) -> RecurringDefinition:
        current = self._definitions.get(definition_id)
        if current is None:
            raise NotFoundError(f"Recurring definition not found: {definition_id}")

        updated = update.apply_to(current)
        self._definitions[definition_id] = updated
        return updated.model_copy()

    async def delete_definition(self, definition_id: str) -> bool:
        return self._definitions.pop(definition_id, None) is not None


class InMemoryTransactionStorage(TransactionStorageInterface):
    """Transactions kept in a dict keyed by ID."""

    def __init__(self):
        self._transactions: dict[str, TransactionInstance] = {}

    async def list_transactions(self, owner_id: str) -> list[TransactionInstance]:
        owned = [
            instance.model_copy()
            for instance in self._transactions.values()
            if instance.owner_id == owner_id
        ]
        owned.sort(key=lambda t: t.date, reverse=True)
        return owned

    async def create_transaction(
        self,
        instance: TransactionInstance,
        owner_id: str,
    ) -> str:
        transaction_id = _new_id()
        self._transactions[transaction_id] = instance.model_copy(
            update={"id": transaction_id, "owner_id": owner_id}
        )
        return transaction_id

    async def delete_transaction(self, transaction_id: str) -> bool:
        return self._transactions.pop(transaction_id, None) is not None


class InMemoryWatermarkStorage(WatermarkStorageInterface):
    """One date per definition ID."""

    def __init__(self):
        self._watermarks: dict[str, date] = {}

    async def get_watermark(self, definition_id: str) -> Optional[date]:
        return self._watermarks.get(definition_id)

    async def set_watermark(self, definition_id: str, value: date) -> None:
        self._watermarks[definition_id] = value

    async def clear_watermark(self, definition_id: str) -> None:
        self._watermarks.pop(definition_id, None)


class InMemoryBudgetStorage(BudgetStorageInterface):
    """Budgets kept in a dict, in insertion order."""

    def __init__(self):
        self._budgets: dict[str, Budget] = {}

    def _check_slot(self, candidate: Budget, ignore_id: Optional[str] = None) -> None:
        for budget_id, budget in self._budgets.items():
            if budget_id != ignore_id and budget.same_slot(candidate):
                raise DuplicateError(
                    f"Budget already exists for {candidate.category.value} per {candidate.period.value}"
                )

    async def list_budgets(self, owner_id: str) -> list[Budget]:
        return [
            budget.model_copy()
            for budget in self._budgets.values()
            if budget.owner_id == owner_id
        ]

    async def get_budget(self, budget_id: str) -> Optional[Budget]:
        budget = self._budgets.get(budget_id)
        return budget.model_copy() if budget else None

    async def create_budget(self, budget: Budget, owner_id: str) -> str:
        stored = budget.model_copy(update={"id": _new_id(), "owner_id": owner_id})
        self._check_slot(stored)
        self._budgets[stored.id] = stored
        return stored.id

    async def update_budget(self, budget_id: str, update: BudgetUpdate) -> Budget:
        current = self._budgets.get(budget_id)
        if current is None:
            raise NotFoundError(f"Budget not found: {budget_id}")

        updated = update.apply_to(current)
        self._check_slot(updated, ignore_id=budget_id)
        self._budgets[budget_id] = updated
        return updated.model_copy()

    async def delete_budget(self, budget_id: str) -> bool:
        return self._budgets.pop(budget_id, None) is not None


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
