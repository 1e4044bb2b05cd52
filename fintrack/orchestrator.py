"""
Main Orchestrator for the Finance Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Recurring transactions (view load → materialize → display)
2. Budgets (limits → spending from stored transactions → display)
3. Statistics (structured query → execute → display)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Stores, guard and audit logger are created once and injected
- Statistics only ever come from stored data
- Every step is audited
"""

from typing import Optional

import structlog

from fintrack.audit import AuditLogger, create_correlation_id
from fintrack.budgets import BudgetService
from fintrack.config import get_settings
from fintrack.models.transaction import QueryResult, TransactionQuery
from fintrack.queries import TransactionQueryExecutor
from fintrack.recurring import InFlightGuard, RecurringMaterializer
from fintrack.recurring.service import RecurringService
from fintrack.services.storage import (
    BudgetStorageInterface,
    DefinitionStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsDefinitionStorage,
    GoogleSheetsTransactionStorage,
    GoogleSheetsWatermarkStorage,
    InMemoryBudgetStorage,
    InMemoryDefinitionStorage,
    InMemoryTransactionStorage,
    InMemoryWatermarkStorage,
    TransactionStorageInterface,
    WatermarkStorageInterface,
)

logger = structlog.get_logger()


class StatisticsFlow:
    """
    Orchestrates the statistics flow.

    Query → Execute on storage (deterministic) → Audit
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._executor = TransactionQueryExecutor(transaction_storage)
        self._audit_logger = audit_logger

    async def run(self, query: TransactionQuery) -> QueryResult:
        correlation_id = create_correlation_id()

        result = await self._executor.execute(query)

        if self._audit_logger and not result.success:
            await self._audit_logger.log_error(
                error_type="query_failed",
                error_message=result.error_message or "unknown error",
                details={"query_id": query.query_id, "query_type": query.query_type},
                correlation_id=correlation_id,
            )

        if self._audit_logger:
            await self._audit_logger.log_query_executed(
                query_id=query.query_id,
                query_type=query.query_type,
                result_count=result.result_count,
                correlation_id=correlation_id,
            )

        return result


def _build_stores(
    use_storage: bool,
) -> tuple[
    DefinitionStorageInterface,
    TransactionStorageInterface,
    WatermarkStorageInterface,
    BudgetStorageInterface,
    AuditLogger,
    Optional[GoogleSheetsClient],
]:
    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            sheets_client.connect()
            return (
                GoogleSheetsDefinitionStorage(sheets_client),
                GoogleSheetsTransactionStorage(sheets_client),
                GoogleSheetsWatermarkStorage(sheets_client),
                GoogleSheetsBudgetStorage(sheets_client),
                AuditLogger(GoogleSheetsAuditStorage(sheets_client)),
                sheets_client,
            )
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))

    return (
        InMemoryDefinitionStorage(),
        InMemoryTransactionStorage(),
        InMemoryWatermarkStorage(),
        InMemoryBudgetStorage(),
        AuditLogger(),  # Local-only logging
        None,
    )


def create_app_components(
    use_storage: bool = True,
) -> tuple[
    RecurringService,
    BudgetService,
    StatisticsFlow,
    Optional[GoogleSheetsClient],
]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run entirely in memory.

    Returns:
        (recurring_service, budget_service, statistics_flow, sheets_client)
    """
    definitions, transactions, watermarks, budgets, audit_logger, sheets_client = (
        _build_stores(use_storage)
    )

    materializer = RecurringMaterializer(
        transactions,
        watermarks,
        guard=InFlightGuard(),
        audit_logger=audit_logger,
        max_iterations=get_settings().recurring.max_iterations_per_definition,
    )

    recurring_service = RecurringService(
        definitions,
        transactions,
        watermarks,
        materializer=materializer,
        audit_logger=audit_logger,
    )

    budget_service = BudgetService(budgets, transactions, audit_logger=audit_logger)

    statistics_flow = StatisticsFlow(transactions, audit_logger=audit_logger)

    return recurring_service, budget_service, statistics_flow, sheets_client
