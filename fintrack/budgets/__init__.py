"""Category budgets and spending against them."""

from fintrack.budgets.service import BudgetService, period_window

__all__ = ["BudgetService", "period_window"]
