"""
Query Execution Engine

DESIGN DECISION: Statistics are computed DETERMINISTICALLY from the
stored transactions. The views never keep their own running totals;
every number shown is recomputed from what the store returns.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from fintrack.models.transaction import (
    QueryResult,
    TransactionInstance,
    TransactionKind,
    TransactionQuery,
)
from fintrack.services.storage import TransactionStorageInterface


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


def filter_transactions(
    transactions: list[TransactionInstance],
    query: TransactionQuery,
) -> list[TransactionInstance]:
    """Apply the query's filters, newest first. Budgets reuse this for spending."""
    matching = []
    for t in transactions:
        if query.kind_filter and t.kind != query.kind_filter:
            continue
        if query.category_filter and t.category != query.category_filter:
            continue
        if (
            query.description_filter
            and query.description_filter.lower() not in t.description.lower()
        ):
            continue
        if query.date_from and t.date < query.date_from:
            continue
        if query.date_to and t.date > query.date_to:
            continue
        matching.append(t)

    matching.sort(key=lambda t: t.date, reverse=True)
    return matching


class TransactionQueryExecutor:
    """
    Executes structured queries against transaction storage.

    GUARANTEES:
    - Only returns real data from storage
    - Never invents or estimates
    - Clear "no data found" if nothing matches
    """

    def __init__(self, storage: TransactionStorageInterface):
        self._storage = storage

    async def execute(self, query: TransactionQuery) -> QueryResult:
        """Execute a structured query; failures come back as success=False."""
        try:
            transactions = filter_transactions(
                await self._storage.list_transactions(query.owner_id), query
            )

            if query.query_type == "list":
                return self._execute_list(query, transactions)
            elif query.query_type == "aggregate":
                return self._execute_aggregate(query, transactions)
            elif query.query_type == "balance":
                return self._execute_balance(query, transactions)
            elif query.query_type == "exists":
                return self._execute_exists(query, transactions)
            raise QueryExecutionError(f"Unsupported query type: {query.query_type}")

        except Exception as e:
            return QueryResult(
                query_id=query.query_id,
                success=False,
                error_message=str(e),
                data_found=False,
                result_count=0,
                query_description=f"Query failed: {str(e)}",
            )

    def _execute_list(
        self,
        query: TransactionQuery,
        transactions: list[TransactionInstance],
    ) -> QueryResult:
        """List matching transactions."""
        results = [self._transaction_to_dict(t) for t in transactions[:query.limit]]

        return QueryResult(
            query_id=query.query_id,
            success=True,
            data_found=len(results) > 0,
            result_count=len(results),
            results=results,
            query_description=self._describe("Listing transactions", query),
        )

    def _execute_aggregate(
        self,
        query: TransactionQuery,
        transactions: list[TransactionInstance],
    ) -> QueryResult:
        """Execute an aggregate query (sum, count, average, etc.)."""
        if not transactions:
            return QueryResult(
                query_id=query.query_id,
                success=True,
                data_found=False,
                result_count=0,
                query_description="No transactions found for aggregation",
            )

        amounts = [t.amount for t in transactions]
        aggregation_result = self._aggregate(amounts, query.aggregation_type)

        if query.group_by:
            aggregation_result["breakdown"] = self._grouped_aggregate(
                transactions, query.group_by, query.aggregation_type
            )

        verb = f"Calculating {query.aggregation_type or 'sum'}"
        if query.group_by:
            verb = f"{verb} grouped by {query.group_by}"

        return QueryResult(
            query_id=query.query_id,
            success=True,
            data_found=True,
            result_count=len(transactions),
            aggregation_result=aggregation_result,
            query_description=self._describe(verb, query),
        )

    def _aggregate(self, amounts: list[Decimal], aggregation_type: Optional[str]) -> dict:
        if aggregation_type == "count":
            return {"count": len(amounts)}
        if aggregation_type == "average":
            return {
                "average_amount": float(sum(amounts) / len(amounts)),
                "transaction_count": len(amounts),
            }
        if aggregation_type == "min":
            return {"minimum_amount": float(min(amounts))}
        if aggregation_type == "max":
            return {"maximum_amount": float(max(amounts))}
        return {
            "total_amount": float(sum(amounts)),
            "transaction_count": len(amounts),
        }

    def _grouped_aggregate(
        self,
        transactions: list[TransactionInstance],
        group_by: str,
        aggregation_type: Optional[str],
    ) -> dict:
        """Calculate aggregation grouped by a field."""
        groups: dict[str, list[Decimal]] = {}

        for t in transactions:
            if group_by == "kind":
                key = t.kind.value
            elif group_by == "category":
                key = t.category.value if t.category else "none"
            elif group_by == "month":
                key = t.date.strftime("%Y-%m")
            elif group_by == "year":
                key = str(t.date.year)
            else:
                raise QueryExecutionError(f"Cannot group by {group_by}")

            groups.setdefault(key, []).append(t.amount)

        result = {}
        for key, amounts in groups.items():
            if aggregation_type == "count":
                result[key] = len(amounts)
            elif aggregation_type == "average":
                result[key] = float(sum(amounts) / len(amounts))
            elif aggregation_type == "min":
                result[key] = float(min(amounts))
            elif aggregation_type == "max":
                result[key] = float(max(amounts))
            else:  # Default to sum
                result[key] = float(sum(amounts))

        return result

    def _execute_balance(
        self,
        query: TransactionQuery,
        transactions: list[TransactionInstance],
    ) -> QueryResult:
        """Income, expenses and their difference over the range."""
        income = sum(
            (t.amount for t in transactions if t.kind == TransactionKind.INCOME),
            Decimal("0"),
        )
        expenses = sum(
            (t.amount for t in transactions if t.kind == TransactionKind.EXPENSE),
            Decimal("0"),
        )

        return QueryResult(
            query_id=query.query_id,
            success=True,
            data_found=len(transactions) > 0,
            result_count=len(transactions),
            aggregation_result={
                "income": float(income),
                "expenses": float(expenses),
                "balance": float(income - expenses),
            },
            query_description=self._describe("Calculating balance", query),
        )

    def _execute_exists(
        self,
        query: TransactionQuery,
        transactions: list[TransactionInstance],
    ) -> QueryResult:
        """Execute an exists query (yes/no check)."""
        exists = len(transactions) > 0

        result_data = [{"exists": exists, "answer": "yes" if exists else "no"}]
        if exists:
            # Include the newest match for context
            result_data.append(self._transaction_to_dict(transactions[0]))

        return QueryResult(
            query_id=query.query_id,
            success=True,
            data_found=exists,
            result_count=1 if exists else 0,
            results=result_data,
            query_description=self._describe("Checking for transactions", query),
        )

    def _transaction_to_dict(self, t: TransactionInstance) -> dict:
        """Convert a transaction to a dictionary for results."""
        return {
            "id": t.id,
            "kind": t.kind.value,
            "amount": float(t.amount),
            "description": t.description,
            "category": t.category.value if t.category else None,
            "date": t.date.isoformat(),
            "currency": t.currency,
            "recurring_id": t.recurring_id,
        }

    def _describe(self, verb: str, query: TransactionQuery) -> str:
        parts = [verb]
        if query.kind_filter:
            parts.append(f"kind: {query.kind_filter.value}")
        if query.category_filter:
            parts.append(f"category: {query.category_filter.value}")
        if query.description_filter:
            parts.append(f"matching: {query.description_filter}")
        if query.date_from or query.date_to:
            parts.append(self._date_range_str(query.date_from, query.date_to))
        return " | ".join(parts)

    def _date_range_str(
        self,
        date_from: Optional[date],
        date_to: Optional[date],
    ) -> str:
        """Format date range for description."""
        if date_from and date_to:
            if date_from == date_to:
                return f"on {date_from.strftime('%d %b %Y')}"
            elif date_from.month == date_to.month and date_from.year == date_to.year:
                return f"in {date_from.strftime('%B %Y')}"
            elif date_from.year == date_to.year:
                return f"from {date_from.strftime('%b')} to {date_to.strftime('%b %Y')}"
            else:
                return f"from {date_from.strftime('%b %Y')} to {date_to.strftime('%b %Y')}"
        elif date_from:
            return f"from {date_from.strftime('%d %b %Y')}"
        elif date_to:
            return f"until {date_to.strftime('%d %b %Y')}"
        return ""
