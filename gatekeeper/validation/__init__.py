"""Declared field-rule validation."""

from gatekeeper.validation.rules import FieldRule, RuleKind, ValidationError, validate_fields

__all__ = ["FieldRule", "RuleKind", "ValidationError", "validate_fields"]
