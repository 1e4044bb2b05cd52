"""
Budget Models

A budget is a spending limit for one expense category over a calendar
period. Spending is never stored; it is recomputed from the owner's
transactions each time a budget is shown.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from fintrack.models.transaction import ExpenseCategory


class BudgetPeriod(str, Enum):
    """Window the spending is measured over."""
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class Budget(BaseModel):
    """Spending limit for one category and period."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = Field(
        default=None,
        description="Store-assigned identifier"
    )
    owner_id: str = Field(..., min_length=1)
    category: ExpenseCategory
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Limit for the period"
    )
    period: BudgetPeriod = BudgetPeriod.MONTH
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def same_slot(self, other: 'Budget') -> bool:
        """An owner keeps at most one budget per category and period."""
        return (
            self.owner_id == other.owner_id
            and self.category == other.category
            and self.period == other.period
        )


class BudgetUpdate(BaseModel):
    """Partial update of a budget; only explicitly set fields are applied."""

    category: Optional[ExpenseCategory] = None
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    period: Optional[BudgetPeriod] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)

    def apply_to(self, budget: Budget) -> Budget:
        merged = budget.model_dump()
        merged.update(self.model_dump(exclude_unset=True))
        return Budget.model_validate(merged)


class BudgetStatus(BaseModel):
    """Spending against one budget in the period containing `today`."""

    budget: Budget
    period_start: date
    period_end: date
    spent: Decimal = Field(default=Decimal("0"), ge=0)
    transaction_count: int = Field(default=0, ge=0)

    @property
    def remaining(self) -> Decimal:
        """Negative once the limit is exceeded."""
        return self.budget.amount - self.spent

    @property
    def percent_used(self) -> float:
        return float(self.spent / self.budget.amount * 100)

    @property
    def over_limit(self) -> bool:
        return self.spent > self.budget.amount
