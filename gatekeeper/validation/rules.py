"""Declarative field rules evaluated against a request payload.

Endpoints declare a list of FieldRule descriptors; ``validate_fields`` runs
every rule (no short-circuit across rules or fields) and returns one
ValidationError per failing rule, in declaration order.
"""

from __future__ import annotations

import enum
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

# Syntax-only address check (no DNS lookup)
_EMAIL = TypeAdapter(EmailStr)
_INTEGER_RE = re.compile(r"^[+-]?\d+$")

_MISSING = object()


class RuleKind(str, enum.Enum):
    required = "required"
    length = "length"
    email = "email"
    one_of = "one_of"
    integer = "integer"


@dataclass(frozen=True, slots=True)
class FieldRule:
    """One check on one field.

    ``optional`` skips the check when the field is absent or null.
    """

    field: str
    kind: RuleKind
    message: str | None = None
    optional: bool = False
    min_length: int = 0
    max_length: int | None = None
    choices: tuple[Any, ...] = ()
    minimum: int | None = None
    maximum: int | None = None


@dataclass(frozen=True, slots=True)
class ValidationError:
    field: str
    message: str
    value: Any = None

    def as_dict(self) -> dict[str, Any]:
        return {"field": self.field, "message": self.message, "value": self.value}


def required(field: str, message: str | None = None) -> FieldRule:
    return FieldRule(field, RuleKind.required, message)


def length(
    field: str,
    min_length: int = 0,
    max_length: int | None = None,
    message: str | None = None,
    *,
    optional: bool = False,
) -> FieldRule:
    return FieldRule(
        field, RuleKind.length, message, optional=optional,
        min_length=min_length, max_length=max_length,
    )


def email(field: str, message: str | None = None, *, optional: bool = False) -> FieldRule:
    return FieldRule(field, RuleKind.email, message, optional=optional)


def one_of(
    field: str, choices: Iterable[Any], message: str | None = None, *, optional: bool = False
) -> FieldRule:
    return FieldRule(field, RuleKind.one_of, message, optional=optional, choices=tuple(choices))


def integer(
    field: str,
    minimum: int | None = None,
    maximum: int | None = None,
    message: str | None = None,
    *,
    optional: bool = False,
) -> FieldRule:
    return FieldRule(
        field, RuleKind.integer, message, optional=optional,
        minimum=minimum, maximum=maximum,
    )


def _is_empty(value: Any) -> bool:
    return value is _MISSING or value is None or value == "" or value == [] or value == {}


def _check_length(rule: FieldRule, value: Any) -> bool:
    if not isinstance(value, str):
        return False
    if len(value) < rule.min_length:
        return False
    return rule.max_length is None or len(value) <= rule.max_length


def _is_email(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        _EMAIL.validate_python(value)
    except PydanticValidationError:
        return False
    return True


def _check_integer(rule: FieldRule, value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and _INTEGER_RE.match(value):
        number = int(value)
    else:
        return False
    if rule.minimum is not None and number < rule.minimum:
        return False
    return rule.maximum is None or number <= rule.maximum


def _passes(rule: FieldRule, value: Any) -> bool:
    if rule.kind is RuleKind.required:
        return not _is_empty(value)
    if rule.kind is RuleKind.length:
        return _check_length(rule, value)
    if rule.kind is RuleKind.email:
        return _is_email(value)
    if rule.kind is RuleKind.one_of:
        return value in rule.choices
    if rule.kind is RuleKind.integer:
        return _check_integer(rule, value)
    raise ValueError(f"Unknown rule kind: {rule.kind}")


def default_message(rule: FieldRule) -> str:
    if rule.kind is RuleKind.required:
        return f"{rule.field} is required"
    if rule.kind is RuleKind.length:
        if rule.max_length is None:
            return f"{rule.field} must be at least {rule.min_length} characters"
        return f"{rule.field} must be between {rule.min_length} and {rule.max_length} characters"
    if rule.kind is RuleKind.email:
        return f"{rule.field} must be a valid email"
    if rule.kind is RuleKind.one_of:
        return f"{rule.field} must be one of: {', '.join(str(c) for c in rule.choices)}"
    bounds = []
    if rule.minimum is not None:
        bounds.append(f">= {rule.minimum}")
    if rule.maximum is not None:
        bounds.append(f"<= {rule.maximum}")
    suffix = f" ({' and '.join(bounds)})" if bounds else ""
    return f"{rule.field} must be an integer{suffix}"


def validate_fields(payload: Mapping[str, Any], rules: Iterable[FieldRule]) -> list[ValidationError]:
    """Evaluate every rule against ``payload``; return all failures in order."""
    errors: list[ValidationError] = []
    for rule in rules:
        value = payload.get(rule.field, _MISSING)
        if rule.optional and (value is _MISSING or value is None):
            continue
        if _passes(rule, value):
            continue
        errors.append(ValidationError(
            field=rule.field,
            message=rule.message or default_message(rule),
            value=None if value is _MISSING else value,
        ))
    return errors
