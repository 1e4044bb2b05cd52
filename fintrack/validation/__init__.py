"""Validation package."""

from fintrack.validation.validator import DefinitionValidator

__all__ = ["DefinitionValidator"]
