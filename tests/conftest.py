"""Shared fixtures for the Finance Tracker tests."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from fintrack.audit import AuditLogger
from fintrack.config import get_settings
from fintrack.models.transaction import (
    ExpenseCategory,
    Frequency,
    RecurringDefinition,
    TransactionKind,
)
from fintrack.recurring import InFlightGuard, RecurringMaterializer
from fintrack.services.storage import (
    InMemoryAuditStorage,
    InMemoryDefinitionStorage,
    InMemoryTransactionStorage,
    InMemoryWatermarkStorage,
)


OWNER = "owner-1"


def run(coro):
    """Drive a coroutine to completion from a synchronous test."""
    return asyncio.run(coro)


def make_definition(**overrides) -> RecurringDefinition:
    data = {
        "id": "def-rent",
        "owner_id": OWNER,
        "kind": TransactionKind.EXPENSE,
        "amount": Decimal("500.00"),
        "description": "Rent",
        "category": ExpenseCategory.HOUSING,
        "frequency": Frequency.WEEKLY,
        "start_date": date(2024, 1, 1),
    }
    data.update(overrides)
    return RecurringDefinition(**data)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def definitions():
    return InMemoryDefinitionStorage()


@pytest.fixture
def transactions():
    return InMemoryTransactionStorage()


@pytest.fixture
def watermarks():
    return InMemoryWatermarkStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def materializer(transactions, watermarks, audit_logger):
    return RecurringMaterializer(
        transactions,
        watermarks,
        guard=InFlightGuard(),
        audit_logger=audit_logger,
        max_iterations=100,
    )
