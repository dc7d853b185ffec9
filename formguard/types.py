"""Core type definitions for FormGuard.

This module defines the fundamental types used throughout the FormGuard engine:
- RuleKind: Built-in validation rule kinds
- ValidationMode: Which interactions trigger automatic validation
- EventType: Event types emitted by the state machine and submission controller
- ValidationRule: A single declarative validation check
- FieldDescriptor: Static configuration of one form field

Field descriptors and rules are immutable for the lifetime of a form instance.
They are owned by the caller; the engine only reads them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple, Union


class RuleKind(str, Enum):
    """Built-in validation rule kinds.

    Rule kinds are free-form strings on ValidationRule; this enum only names
    the kinds the default registry knows how to evaluate.
    """
    REQUIRED = "required"
    EMAIL = "email"
    MIN_LENGTH = "minLength"
    MAX_LENGTH = "maxLength"
    PATTERN = "pattern"
    MATCH = "match"
    NUMBER = "number"
    URL = "url"
    PHONE = "phone"
    CUSTOM = "custom"


class ValidationMode(str, Enum):
    """Selects which transitions trigger automatic validation."""
    ON_CHANGE = "on-change"
    ON_BLUR = "on-blur"
    ON_SUBMIT = "on-submit"

    @classmethod
    def parse(cls, value: Union[str, "ValidationMode"]) -> "ValidationMode":
        """Accept enum members, hyphenated values and camelCase aliases.

        Examples:
            >>> ValidationMode.parse("onChange")
            <ValidationMode.ON_CHANGE: 'on-change'>
        """
        if isinstance(value, cls):
            return value
        aliases = {"onChange": cls.ON_CHANGE, "onBlur": cls.ON_BLUR, "onSubmit": cls.ON_SUBMIT}
        if value in aliases:
            return aliases[value]
        return cls(value)


class EventType(str, Enum):
    """Event types emitted while a form is in use."""
    FIELD_CHANGED = "field.changed"
    VALUES_SET = "values.set"
    FIELD_TOUCHED = "field.touched"
    FIELD_VALIDATED = "field.validated"
    FORM_VALIDATED = "form.validated"
    FORM_RESET = "form.reset"
    FIELDS_CONFIGURED = "fields.configured"
    SUBMISSION_STARTED = "submission.started"
    SUBMISSION_REJECTED = "submission.rejected"
    SUBMISSION_SUCCEEDED = "submission.succeeded"
    SUBMISSION_FAILED = "submission.failed"
    FORM_DISPOSED = "form.disposed"


Predicate = Callable[[Any, Mapping[str, Any]], Union[bool, Awaitable[bool]]]
"""Signature of a custom rule predicate: ``(value, sibling_values) -> bool``.

The predicate may return an awaitable resolving to a bool.
"""


@dataclass(frozen=True)
class ValidationRule:
    """One declarative validation check against a single field value.

    Attributes:
        kind: Rule kind (see RuleKind); unknown kinds are accepted
        message: Optional explicit error message, overrides the default template
        parameter: Kind-specific configuration (length bound, regex, ...)
        match_field: Name of the sibling field a ``match`` rule compares against
        predicate: Function used by ``custom`` rules

    Examples:
        >>> rule = ValidationRule(kind=RuleKind.MIN_LENGTH, parameter=8)
        >>> rule.kind
        'minLength'
    """
    kind: str
    message: Optional[str] = None
    parameter: Any = None
    match_field: Optional[str] = None
    predicate: Optional[Predicate] = field(default=None, compare=False)

    def __post_init__(self):
        # Store plain strings so unknown kinds and enum members compare alike
        if isinstance(self.kind, RuleKind):
            object.__setattr__(self, "kind", self.kind.value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization (predicates are omitted)."""
        result: Dict[str, Any] = {"type": self.kind}
        if self.message is not None:
            result["message"] = self.message
        if self.parameter is not None:
            parameter = self.parameter
            result["value"] = getattr(parameter, "pattern", parameter)
        if self.match_field is not None:
            result["matchField"] = self.match_field
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ValidationRule":
        """Create a ValidationRule from a dict.

        Both the short keys (``type``, ``value``, ``matchField``, ``custom``)
        and the long keys (``kind``, ``parameter``, ``matchFieldName``,
        ``predicate``) are accepted.
        """
        kind = data.get("kind", data.get("type"))
        if kind is None:
            raise ValueError("Validation rule requires a 'type' or 'kind'")
        return cls(
            kind=kind,
            message=data.get("message"),
            parameter=data.get("parameter", data.get("value")),
            match_field=data.get("matchFieldName", data.get("matchField")),
            predicate=data.get("predicate", data.get("custom")),
        )


RuleSpec = Union[str, ValidationRule, Mapping[str, Any]]
"""Any accepted rule shape: bare kind string, dict, or ValidationRule."""


@dataclass(frozen=True)
class FieldDescriptor:
    """Static configuration of one form field.

    Attributes:
        name: Unique field name, used as key everywhere
        type: Semantic type tag (free-form, e.g. "email", "password")
        required: Descriptive flag for the presentation layer; does not add a rule
        default_value: Value restored on creation and reset
        validators: Ordered rules, evaluated first to last
        label: Optional display text

    Examples:
        >>> fd = FieldDescriptor(name="email", validators=("required", "email"))
        >>> [r.kind for r in fd.validators]
        ['required', 'email']
    """
    name: str
    type: str = "text"
    required: bool = False
    default_value: Any = ""
    validators: Tuple[ValidationRule, ...] = ()
    label: Optional[str] = None

    def __post_init__(self):
        # Rules may be given in shorthand; keep a single canonical tuple
        object.__setattr__(
            self, "validators", tuple(normalize_rule(r) for r in self.validators)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "required": self.required,
            "defaultValue": self.default_value,
            "validators": [r.to_dict() for r in self.validators],
        }
        if self.label is not None:
            result["label"] = self.label
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FieldDescriptor":
        """Create a FieldDescriptor from a dict with camelCase keys."""
        return cls(
            name=data["name"],
            type=data.get("type", "text"),
            required=data.get("required", False),
            default_value=data.get("defaultValue", ""),
            validators=tuple(data.get("validators") or ()),
            label=data.get("label"),
        )


def normalize_rule(rule: RuleSpec) -> ValidationRule:
    """Map any accepted rule shape to the canonical ValidationRule.

    Examples:
        >>> normalize_rule("email")
        ValidationRule(kind='email', message=None, parameter=None, match_field=None, predicate=None)
    """
    if isinstance(rule, ValidationRule):
        return rule
    if isinstance(rule, str):
        return ValidationRule(kind=rule)
    if isinstance(rule, Mapping):
        return ValidationRule.from_dict(rule)
    raise TypeError(f"Unsupported rule shape: {type(rule).__name__}")


__all__ = [
    "RuleKind",
    "ValidationMode",
    "EventType",
    "Predicate",
    "ValidationRule",
    "RuleSpec",
    "FieldDescriptor",
    "normalize_rule",
]
