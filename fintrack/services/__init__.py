"""Services package."""

from fintrack.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    DefinitionStorageInterface,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsDefinitionStorage,
    GoogleSheetsTransactionStorage,
    GoogleSheetsWatermarkStorage,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryDefinitionStorage,
    InMemoryTransactionStorage,
    InMemoryWatermarkStorage,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
    WatermarkStorageInterface,
)

__all__ = [
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "ConnectionError",
    "DefinitionStorageInterface",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBudgetStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDefinitionStorage",
    "GoogleSheetsTransactionStorage",
    "GoogleSheetsWatermarkStorage",
    "InMemoryAuditStorage",
    "InMemoryBudgetStorage",
    "InMemoryDefinitionStorage",
    "InMemoryTransactionStorage",
    "InMemoryWatermarkStorage",
    "NotFoundError",
    "StorageError",
    "TransactionStorageInterface",
    "WatermarkStorageInterface",
]
