"""
Two-Stage Validation of Recurring Definitions

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking
- Required field presence
- Category allowed only for expenses
- End date not before start date

STAGE 2 - SEMANTIC VALIDATION:
- Start date far in the future
- Definition already ended (will never record anything)
- Backlog larger than one pass catches up
- Absurd amount detection
- Duplicate definition detection

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the user can correct the form.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import ValidationError

from fintrack.config import get_settings
from fintrack.models.transaction import (
    RecurringDefinition,
    ValidationIssue,
    ValidationResult,
)
from fintrack.recurring.schedule import next_index_after


class DefinitionValidator:
    """
    Validates user-entered recurring definitions through a two-stage pipeline.

    Stage 1: Schema validation (pydantic model)
    Stage 2: Semantic validation (business rules, needs the owner's
             existing definitions for duplicate checks)
    """

    def __init__(self, max_iterations: Optional[int] = None):
        settings = get_settings()
        self._settings = settings.app
        self._max_iterations = (
            max_iterations
            if max_iterations is not None
            else settings.recurring.max_iterations_per_definition
        )

    def _validate_schema(
        self,
        data: Union[dict[str, Any], RecurringDefinition],
        owner_id: str,
    ) -> tuple[Optional[RecurringDefinition], list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (definition or None, list_of_issues)
        """
        if isinstance(data, RecurringDefinition):
            payload = data.model_dump()
        else:
            payload = dict(data)
        payload["owner_id"] = owner_id

        try:
            return RecurringDefinition.model_validate(payload), []
        except ValidationError as e:
            issues = []
            for error in e.errors():
                field = ".".join(str(part) for part in error["loc"]) or "definition"
                issues.append(ValidationIssue(
                    field=field,
                    issue_type=error["type"],
                    message=error["msg"],
                    severity="error",
                ))
            return None, issues

    def _validate_semantic(
        self,
        definition: RecurringDefinition,
        today: date,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        max_future_date = today + timedelta(days=self._settings.future_start_tolerance_days)
        if definition.start_date > max_future_date:
            issues.append(ValidationIssue(
                field="start_date",
                issue_type="future_date",
                message=f"Start date ({definition.start_date}) is far in the future",
                severity="warning",
                suggested_fix="Please verify the start date is correct",
            ))

        if definition.end_date and definition.end_date < today:
            issues.append(ValidationIssue(
                field="end_date",
                issue_type="already_ended",
                message=(
                    f"End date ({definition.end_date}) has passed; "
                    "no transactions will be recorded"
                ),
                severity="warning",
                suggested_fix="Clear the end date or pick a later one",
            ))
        elif definition.start_date <= today:
            due = next_index_after(definition.start_date, definition.frequency, today)
            if due > self._max_iterations:
                issues.append(ValidationIssue(
                    field="start_date",
                    issue_type="large_backlog",
                    message=(
                        f"{due} past occurrences are due; they will be recorded "
                        f"{self._max_iterations} at a time over several visits"
                    ),
                    severity="info",
                ))

        max_amount = Decimal(str(self._settings.max_amount))
        if definition.amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({definition.amount:,.2f} {definition.currency}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def _check_duplicates(
        self,
        definition: RecurringDefinition,
        existing: list[RecurringDefinition],
    ) -> list[ValidationIssue]:
        """Flag an existing definition that would record the same transactions."""
        for other in existing:
            if other.id is not None and other.id == definition.id:
                continue
            if (
                other.kind == definition.kind
                and other.amount == definition.amount
                and other.description == definition.description
                and other.category == definition.category
                and other.frequency == definition.frequency
            ):
                return [ValidationIssue(
                    field="duplicate",
                    issue_type="potential_duplicate",
                    message=(
                        f"A {definition.frequency.value} recurring transaction "
                        f"'{definition.description}' already exists"
                    ),
                    severity="warning",
                    suggested_fix="Transactions on the same dates are only recorded once",
                )]
        return []

    def validate(
        self,
        data: Union[dict[str, Any], RecurringDefinition],
        owner_id: str,
        existing: Optional[list[RecurringDefinition]] = None,
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            data: Form data or an already built definition
            owner_id: Owner the definition will belong to
            existing: The owner's current definitions, for duplicate checks
            today: Reference date (default: today)

        Returns:
            ValidationResult with all issues found and, if stage 1 passed,
            the parsed definition
        """
        today = today or date.today()
        all_issues = []

        definition, schema_issues = self._validate_schema(data, owner_id)
        all_issues.extend(schema_issues)
        schema_valid = definition is not None

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if definition is not None:
            semantic_valid, semantic_issues = self._validate_semantic(definition, today)
            all_issues.extend(semantic_issues)
            all_issues.extend(self._check_duplicates(definition, existing or []))

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            definition=definition,
            issues=all_issues,
            warnings=warnings,
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """Summary shown next to the recurring transaction form."""
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append("❌ The recurring transaction could not be saved:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.field}: {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
