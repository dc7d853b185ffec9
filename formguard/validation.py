"""Field and form validation for FormGuard.

The ValidationEngine runs a field's ordered rule list through a RuleEvaluator,
stopping at the first failing rule, and fans that out concurrently over every
configured field to validate a whole form.

Every field in a form pass reads from the same read-only snapshot of values,
so cross-field rules (``match``, ``custom``) never observe a partially
updated form.
"""

import asyncio
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from formguard.errors import FieldError
from formguard.rules import RuleEvaluator
from formguard.types import FieldDescriptor


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating every field of a form.

    Attributes:
        is_valid: True iff no field failed
        errors: Field name -> message, failing fields only
        field_errors: Detailed FieldError records, in field declaration order

    Examples:
        >>> result = ValidationResult(is_valid=True, errors={})
        >>> result.error_count
        0
    """
    is_valid: bool
    errors: Dict[str, str]
    field_errors: List[FieldError] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "isValid": self.is_valid,
            "errors": dict(self.errors),
            "errorCount": self.error_count,
            "fieldErrors": [e.to_dict() for e in self.field_errors],
        }


def freeze_snapshot(values: Mapping[str, Any]) -> Mapping[str, Any]:
    """Copy values into a read-only mapping."""
    return MappingProxyType(dict(values))


class ValidationEngine:
    """Validates single fields and whole forms against field descriptors.

    Attributes:
        fields: The configured field descriptors, in declaration order
        evaluator: RuleEvaluator used for every rule

    Examples:
        >>> import asyncio
        >>> engine = ValidationEngine([
        ...     FieldDescriptor(name="password", validators=[{"type": "minLength", "value": 8}]),
        ... ])
        >>> asyncio.run(engine.validate_field("password", "short", {}))
        'This field must be at least 8 characters'
        >>> asyncio.run(engine.validate_field("password", "longenough1", {}))
        ''
    """

    def __init__(
        self,
        fields: Iterable[FieldDescriptor],
        evaluator: Optional[RuleEvaluator] = None,
    ) -> None:
        self.evaluator = evaluator if evaluator is not None else RuleEvaluator()
        self.fields: Tuple[FieldDescriptor, ...] = tuple(fields)
        self._by_name: Dict[str, FieldDescriptor] = {f.name: f for f in self.fields}
        for descriptor in self.fields:
            self.evaluator.check_rules(descriptor.validators, descriptor.name)

    def descriptor(self, field_name: str) -> Optional[FieldDescriptor]:
        return self._by_name.get(field_name)

    async def _first_failure(
        self,
        descriptor: FieldDescriptor,
        value: Any,
        sibling_values: Mapping[str, Any],
    ) -> Optional[Tuple[str, str]]:
        # Rules run strictly in order; an async rule is awaited before the next starts
        for rule in descriptor.validators:
            result = await self.evaluator.evaluate(value, rule, sibling_values)
            if not result.is_valid:
                return result.message, rule.kind
        return None

    async def validate_field(
        self,
        field_name: str,
        value: Any,
        sibling_values: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Validate one field value.

        Args:
            field_name: Name of the configured field
            value: Value to validate
            sibling_values: Snapshot of all form values for cross-field rules

        Returns:
            Message of the first failing rule, or "" when the value is valid
            (also "" for unconfigured fields and fields without rules)
        """
        descriptor = self._by_name.get(field_name)
        if descriptor is None or not descriptor.validators:
            return ""
        failure = await self._first_failure(
            descriptor, value, sibling_values if sibling_values is not None else {}
        )
        return failure[0] if failure else ""

    async def validate_form(self, values: Mapping[str, Any]) -> ValidationResult:
        """Validate every configured field concurrently.

        Args:
            values: Current form values; a frozen copy is taken before any
                rule runs

        Returns:
            ValidationResult containing only the failing fields
        """
        snapshot = freeze_snapshot(values)
        outcomes = await asyncio.gather(
            *(self._first_failure(d, snapshot.get(d.name), snapshot) for d in self.fields)
        )

        errors: Dict[str, str] = {}
        field_errors: List[FieldError] = []
        for descriptor, failure in zip(self.fields, outcomes):
            if failure is None or not failure[0]:
                continue
            message, kind = failure
            errors[descriptor.name] = message
            field_errors.append(FieldError(field_name=descriptor.name, message=message, kind=kind))

        return ValidationResult(is_valid=not errors, errors=errors, field_errors=field_errors)


async def validate_form(
    values: Mapping[str, Any],
    fields: Iterable[FieldDescriptor],
    evaluator: Optional[RuleEvaluator] = None,
) -> Dict[str, str]:
    """Validate values against field descriptors and return the error map.

    Convenience wrapper over ValidationEngine.validate_form.
    """
    result = await ValidationEngine(fields, evaluator).validate_form(values)
    return result.errors


def sanitize_values(
    values: Mapping[str, Any],
    fields: Sequence[FieldDescriptor],
) -> Dict[str, Any]:
    """Trim string values and map empty strings to None.

    Empty password fields stay empty strings.

    Examples:
        >>> sanitize_values({"name": "  Ann ", "nick": ""}, [FieldDescriptor(name="name")])
        {'name': 'Ann', 'nick': None}
    """
    types = {f.name: f.type for f in fields}
    sanitized: Dict[str, Any] = {}
    for key, value in values.items():
        if not isinstance(value, str):
            sanitized[key] = value
        elif value == "" and types.get(key) != "password":
            sanitized[key] = None
        else:
            sanitized[key] = value.strip()
    return sanitized


__all__ = [
    "ValidationEngine",
    "ValidationResult",
    "validate_form",
    "sanitize_values",
    "freeze_snapshot",
]
