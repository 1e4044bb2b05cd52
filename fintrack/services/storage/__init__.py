"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the hosted backend; the in-memory backend serves tests and
runs without configuration.
"""

from fintrack.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    DefinitionStorageInterface,
    DuplicateError,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
    WatermarkStorageInterface,
)
from fintrack.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryDefinitionStorage,
    InMemoryTransactionStorage,
    InMemoryWatermarkStorage,
)
from fintrack.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsDefinitionStorage,
    GoogleSheetsTransactionStorage,
    GoogleSheetsWatermarkStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "DefinitionStorageInterface",
    "TransactionStorageInterface",
    "WatermarkStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryBudgetStorage",
    "InMemoryDefinitionStorage",
    "InMemoryTransactionStorage",
    "InMemoryWatermarkStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBudgetStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDefinitionStorage",
    "GoogleSheetsTransactionStorage",
    "GoogleSheetsWatermarkStorage",
]
