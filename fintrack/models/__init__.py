"""
Data Models Package

This package contains all Pydantic models used in the Finance Tracker.
All data flowing through the system must conform to these schemas.
"""

from fintrack.models.transaction import (
    DefinitionUpdate,
    ExpenseCategory,
    Frequency,
    MatchKey,
    MaterializationResult,
    QueryResult,
    RecurringDefinition,
    TransactionInstance,
    TransactionKind,
    TransactionQuery,
    ValidationIssue,
    ValidationResult,
)
from fintrack.models.budget import (
    Budget,
    BudgetPeriod,
    BudgetStatus,
    BudgetUpdate,
)
from fintrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "DefinitionUpdate",
    "ExpenseCategory",
    "Frequency",
    "MatchKey",
    "MaterializationResult",
    "QueryResult",
    "RecurringDefinition",
    "TransactionInstance",
    "TransactionKind",
    "TransactionQuery",
    "ValidationIssue",
    "ValidationResult",
    # Budget models
    "Budget",
    "BudgetPeriod",
    "BudgetStatus",
    "BudgetUpdate",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
