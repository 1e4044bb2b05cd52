"""Query execution package."""

from fintrack.queries.executor import (
    QueryExecutionError,
    TransactionQueryExecutor,
    filter_transactions,
)

__all__ = ["QueryExecutionError", "TransactionQueryExecutor", "filter_transactions"]
