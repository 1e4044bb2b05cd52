"""
Budget Service

Category budgets and how much of each has been spent. Spending is the sum
of the owner's expenses in the budget's category within the period that
contains `today`:

- week:  the seven days before today, and today
- month: the calendar month
- year:  the calendar year

Amounts are summed as stored; budgets do not convert currencies.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import structlog
from dateutil.relativedelta import relativedelta

from fintrack.audit import AuditLogger
from fintrack.models.budget import Budget, BudgetPeriod, BudgetStatus, BudgetUpdate
from fintrack.models.transaction import TransactionKind, TransactionQuery
from fintrack.queries import filter_transactions
from fintrack.services.storage import (
    BudgetStorageInterface,
    NotFoundError,
    TransactionStorageInterface,
)

logger = structlog.get_logger()


def period_window(period: BudgetPeriod, today: date) -> tuple[date, date]:
    """First and last day (inclusive) of the period containing `today`."""
    if period == BudgetPeriod.WEEK:
        return today - timedelta(days=7), today
    if period == BudgetPeriod.YEAR:
        return date(today.year, 1, 1), date(today.year, 12, 31)
    # relativedelta clamps day=31 to the last day of the month
    return today.replace(day=1), today + relativedelta(day=31)


class BudgetService:
    """Create, change and delete budgets, and report spending against them."""

    def __init__(
        self,
        budget_storage: BudgetStorageInterface,
        transaction_storage: TransactionStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._budgets = budget_storage
        self._transactions = transaction_storage
        self._audit_logger = audit_logger

    async def list_budgets(self, owner_id: str) -> list[Budget]:
        return await self._budgets.list_budgets(owner_id)

    async def create_budget(
        self,
        owner_id: str,
        data: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> Budget:
        """
        Validate and store a new budget.

        Raises:
            pydantic.ValidationError: If the data is not a valid budget
            DuplicateError: If the category already has a budget for the period
        """
        budget = Budget.model_validate({**data, "owner_id": owner_id})
        budget_id = await self._budgets.create_budget(budget, owner_id)
        budget = budget.model_copy(update={"id": budget_id})

        if self._audit_logger:
            await self._audit_logger.log_budget_created(
                budget_id=budget_id,
                category=budget.category.value,
                period=budget.period.value,
                amount=str(budget.amount),
                correlation_id=correlation_id,
            )

        return budget

    async def update_budget(
        self,
        budget_id: str,
        update: BudgetUpdate,
        correlation_id: Optional[UUID] = None,
    ) -> Budget:
        """
        Raises:
            NotFoundError: If the budget does not exist
            DuplicateError: If the change collides with another budget
        """
        if await self._budgets.get_budget(budget_id) is None:
            raise NotFoundError(f"Budget not found: {budget_id}")

        updated = await self._budgets.update_budget(budget_id, update)

        if self._audit_logger:
            await self._audit_logger.log_budget_updated(
                budget_id=budget_id,
                changed_fields=sorted(update.model_dump(exclude_unset=True)),
                correlation_id=correlation_id,
            )

        return updated

    async def delete_budget(
        self,
        budget_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        deleted = await self._budgets.delete_budget(budget_id)
        if deleted and self._audit_logger:
            await self._audit_logger.log_budget_deleted(
                budget_id=budget_id,
                correlation_id=correlation_id,
            )
        return deleted

    async def budget_status(
        self,
        owner_id: str,
        today: Optional[date] = None,
    ) -> list[BudgetStatus]:
        """Spending against each of the owner's budgets, in budget order."""
        today = today or date.today()

        budgets = await self._budgets.list_budgets(owner_id)
        if not budgets:
            return []

        transactions = await self._transactions.list_transactions(owner_id)

        statuses = []
        for budget in budgets:
            start, end = period_window(budget.period, today)
            spending = filter_transactions(transactions, TransactionQuery(
                owner_id=owner_id,
                kind_filter=TransactionKind.EXPENSE,
                category_filter=budget.category,
                date_from=start,
                date_to=end,
            ))
            status = BudgetStatus(
                budget=budget,
                period_start=start,
                period_end=end,
                spent=sum((t.amount for t in spending), Decimal("0")),
                transaction_count=len(spending),
            )
            if status.over_limit:
                logger.info(
                    "budget_exceeded",
                    budget_id=budget.id,
                    category=budget.category.value,
                    spent=str(status.spent),
                    limit=str(budget.amount),
                )
            statuses.append(status)

        return statuses
