"""
Core Data Models for the Finance Tracker

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: Every date that takes part in scheduling or duplicate
detection is a calendar date. Datetimes coming from the UI or storage are
reduced to their date on input, so time-of-day never influences a comparison.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionKind(str, Enum):
    """Direction of money flow."""
    INCOME = "income"
    EXPENSE = "expense"


class ExpenseCategory(str, Enum):
    """
    Supported expense categories.

    The values are the tags already stored in users' data, so they are
    kept as-is; member names are the English meaning.
    """
    HOUSING = "būstas"
    TAXES = "mokesčiai"
    FOOD = "maistas"
    CLOTHING = "drabužiai"
    CAR = "automobilis"
    ENTERTAINMENT = "pramogos"
    HEALTH = "sveikata"
    BEAUTY = "grožis"
    CHILD = "vaikas"
    OTHER = "kitos"


class Frequency(str, Enum):
    """How often a recurring definition produces an occurrence."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


MatchKey = tuple[TransactionKind, Decimal, str, Optional[ExpenseCategory], date]


def _to_calendar_date(value: Any) -> Any:
    """Reduce datetimes to their calendar date; leave everything else to pydantic."""
    if isinstance(value, datetime):
        return value.date()
    return value


def _check_category(kind: TransactionKind, category: Optional[ExpenseCategory]) -> None:
    if kind == TransactionKind.INCOME and category is not None:
        raise ValueError("Income cannot have an expense category")
    if kind == TransactionKind.EXPENSE and category is None:
        raise ValueError("Expense requires a category")


# =============================================================================
# RECURRING DEFINITIONS
# =============================================================================

class RecurringDefinition(BaseModel):
    """
    A template that produces one transaction per frequency step.

    `id` is assigned by the definition store on creation and is None
    before that.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = Field(
        default=None,
        description="Store-assigned identifier"
    )
    owner_id: str = Field(
        ...,
        min_length=1,
        description="Owning user; every query is scoped by it"
    )
    kind: TransactionKind
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Positive magnitude; currency is stored separately"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Free-text label, compared verbatim for duplicates"
    )
    category: Optional[ExpenseCategory] = Field(
        default=None,
        description="Only for expenses"
    )
    frequency: Frequency
    start_date: date = Field(
        ...,
        description="First occurrence"
    )
    end_date: Optional[date] = Field(
        default=None,
        description="No occurrence is materialized after this date"
    )
    currency: str = Field(
        default="EUR",
        min_length=3,
        max_length=3
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    @field_validator('start_date', 'end_date', mode='before')
    @classmethod
    def normalize_dates(cls, v: Any) -> Any:
        return _to_calendar_date(v)

    @model_validator(mode='after')
    def validate_definition(self) -> 'RecurringDefinition':
        """Validate category and date relationships."""
        _check_category(self.kind, self.category)

        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")

        return self

    def occurrence_key(self, on: date) -> MatchKey:
        """Duplicate-detection key of the occurrence dated `on`."""
        return (self.kind, self.amount, self.description, self.category, on)

    def to_instance(self, on: date) -> 'TransactionInstance':
        """Build the (not yet persisted) transaction for the occurrence dated `on`."""
        return TransactionInstance(
            owner_id=self.owner_id,
            kind=self.kind,
            amount=self.amount,
            description=self.description,
            category=self.category,
            date=on,
            currency=self.currency,
            recurring_id=self.id,
        )


class DefinitionUpdate(BaseModel):
    """
    Partial update of a recurring definition.

    Only fields that were explicitly set are applied.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    kind: Optional[TransactionKind] = None
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[ExpenseCategory] = None
    frequency: Optional[Frequency] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)

    @field_validator('start_date', 'end_date', mode='before')
    @classmethod
    def normalize_dates(cls, v: Any) -> Any:
        return _to_calendar_date(v)

    def apply_to(self, definition: RecurringDefinition) -> RecurringDefinition:
        """Return a re-validated copy of `definition` with this update applied."""
        merged = definition.model_dump()
        merged.update(self.model_dump(exclude_unset=True))
        return RecurringDefinition.model_validate(merged)


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionInstance(BaseModel):
    """
    A concrete income or expense on a specific date.

    Created either by the user directly or by the materializer.
    The materializer never modifies or deletes an instance.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = Field(
        default=None,
        description="Store-assigned identifier"
    )
    owner_id: str = Field(..., min_length=1)
    kind: TransactionKind
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=200)
    category: Optional[ExpenseCategory] = None
    date: date
    currency: str = Field(default="EUR", min_length=3, max_length=3)

    # Set for instances created from a recurring definition
    recurring_id: Optional[str] = None

    @field_validator('date', mode='before')
    @classmethod
    def normalize_date(cls, v: Any) -> Any:
        return _to_calendar_date(v)

    @model_validator(mode='after')
    def validate_category(self) -> 'TransactionInstance':
        _check_category(self.kind, self.category)
        return self

    def match_key(self) -> MatchKey:
        """Fields that identify an occurrence for duplicate detection."""
        return (self.kind, self.amount, self.description, self.category, self.date)


class MaterializationResult(BaseModel):
    """Outcome of one materialization pass for one owner."""

    owner_id: str
    run_at: datetime = Field(default_factory=datetime.utcnow)
    today: date

    created_count: int = Field(default=0, ge=0)
    duplicate_count: int = Field(default=0, ge=0)
    failed_count: int = Field(default=0, ge=0)

    created: list[TransactionInstance] = Field(default_factory=list)
    watermarks: dict[str, date] = Field(
        default_factory=dict,
        description="Latest materialized occurrence per definition id"
    )

    skipped_definitions: list[str] = Field(
        default_factory=list,
        description="Definitions ended or not started yet"
    )
    failed_definitions: list[str] = Field(
        default_factory=list,
        description="Definitions abandoned for this pass due to an error"
    )
    capped_definitions: list[str] = Field(
        default_factory=list,
        description="Definitions that hit the iteration cap"
    )

    skipped_in_flight: bool = Field(
        default=False,
        description="Another pass for the same owner was already running"
    )
    read_failed: bool = Field(
        default=False,
        description="Definitions or transactions could not be read"
    )


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation of a user-entered definition.

    Stage 1: Schema validation (types, required fields)
    Stage 2: Semantic validation (logic checks)
    """

    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    # The parsed definition, when stage 1 passed
    definition: Optional[RecurringDefinition] = None

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")


# =============================================================================
# QUERY MODELS (statistics views)
# =============================================================================

class TransactionQuery(BaseModel):
    """A structured, deterministic query over one owner's transactions."""

    query_id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str = Field(..., min_length=1)

    query_type: str = Field(
        default="list",
        pattern="^(list|aggregate|balance|exists)$"
    )

    # Filters
    kind_filter: Optional[TransactionKind] = None
    category_filter: Optional[ExpenseCategory] = None
    description_filter: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    # For aggregations
    aggregation_type: Optional[str] = Field(
        default=None,
        pattern="^(sum|count|average|min|max)$"
    )
    group_by: Optional[str] = Field(
        default=None,
        pattern="^(kind|category|month|year)$"
    )

    limit: int = Field(
        default=50,
        ge=1,
        le=1000
    )


class QueryResult(BaseModel):
    """Result of executing a TransactionQuery."""

    query_id: str
    executed_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    success: bool
    error_message: Optional[str] = None

    data_found: bool
    result_count: int = Field(ge=0)
    results: list[dict] = Field(default_factory=list)
    aggregation_result: Optional[dict] = None

    query_description: str = Field(
        ...,
        description="Human-readable description of what was queried"
    )
