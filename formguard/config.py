"""Configuration loading for FormGuard.

Forms can be configured from plain data (for example JSON shipped alongside a
page). This module validates that data against JSON Schema definitions and
builds the typed FormConfig and FieldDescriptor objects the engine uses.

Every problem found is collected into a single InvalidFormConfigError so a
caller can fix a configuration in one pass.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from jsonschema import Draft7Validator

from formguard.errors import InvalidFormConfigError
from formguard.scheduler import DEFAULT_DEBOUNCE_MS, DEFAULT_THROTTLE_MS
from formguard.submission import INVALID_FORM_MESSAGE, SUBMIT_FAILURE_MESSAGE
from formguard.types import FieldDescriptor, RuleKind, ValidationMode, ValidationRule, normalize_rule


_LENGTH_KINDS = [RuleKind.MIN_LENGTH.value, RuleKind.MAX_LENGTH.value]

RULE_SCHEMA: Dict[str, Any] = {
    "oneOf": [
        {"type": "string", "minLength": 1},
        {
            "type": "object",
            "properties": {
                "type": {"type": "string", "minLength": 1},
                "kind": {"type": "string", "minLength": 1},
                "message": {"type": "string"},
                "matchField": {"type": "string", "minLength": 1},
                "matchFieldName": {"type": "string", "minLength": 1},
            },
            "anyOf": [{"required": ["type"]}, {"required": ["kind"]}],
            "allOf": [
                {
                    "if": {"properties": {key: {"enum": _LENGTH_KINDS}}, "required": [key]},
                    "then": {
                        "properties": {
                            "value": {"type": "integer", "minimum": 0},
                            "parameter": {"type": "integer", "minimum": 0},
                        }
                    },
                }
                for key in ("type", "kind")
            ],
        },
    ]
}

FIELD_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "type": {"type": "string"},
        "required": {"type": "boolean"},
        "label": {"type": "string"},
        "validators": {"type": "array", "items": RULE_SCHEMA},
    },
    "required": ["name"],
}

FIELD_LIST_SCHEMA: Dict[str, Any] = {
    "type": "array",
    "items": FIELD_SCHEMA,
}

FORM_CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "validationMode": {
            "enum": [m.value for m in ValidationMode] + ["onChange", "onBlur", "onSubmit"]
        },
        "debounceMs": {"type": "number", "minimum": 0},
        "throttleMs": {"type": "number", "minimum": 0},
        "strictRules": {"type": "boolean"},
        "sanitizeOnSubmit": {"type": "boolean"},
        "invalidSubmitMessage": {"type": "string"},
        "submitFailureMessage": {"type": "string"},
    },
    "additionalProperties": False,
}


def _schema_problems(schema: Dict[str, Any], data: Any, prefix: str = "") -> List[str]:
    problems = []
    for error in sorted(Draft7Validator(schema).iter_errors(data), key=lambda e: list(map(str, e.path))):
        path = ".".join(str(p) for p in error.path)
        location = ".".join(part for part in (prefix, path) if part) or "<root>"
        problems.append(f"{location}: {error.message}")
    return problems


@dataclass(frozen=True)
class FormConfig:
    """Behavioral knobs for one form.

    Attributes:
        validation_mode: Which transitions trigger automatic validation
        debounce_ms: Quiet window for on-change validation
        throttle_ms: Cooldown window for submissions
        strict_rules: Reject unknown rule kinds when the form is created
        sanitize_on_submit: Trim strings and map "" to None before submitting
        invalid_submit_message: submit_error shown when validation fails
        submit_failure_message: submit_error used for failures without a description

    Examples:
        >>> FormConfig.from_dict({"validationMode": "onChange", "debounceMs": 150}).debounce_ms
        150
    """
    validation_mode: ValidationMode = ValidationMode.ON_BLUR
    debounce_ms: float = DEFAULT_DEBOUNCE_MS
    throttle_ms: float = DEFAULT_THROTTLE_MS
    strict_rules: bool = False
    sanitize_on_submit: bool = False
    invalid_submit_message: str = INVALID_FORM_MESSAGE
    submit_failure_message: str = SUBMIT_FAILURE_MESSAGE

    def __post_init__(self):
        object.__setattr__(self, "validation_mode", ValidationMode.parse(self.validation_mode))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "validationMode": self.validation_mode.value,
            "debounceMs": self.debounce_ms,
            "throttleMs": self.throttle_ms,
            "strictRules": self.strict_rules,
            "sanitizeOnSubmit": self.sanitize_on_submit,
            "invalidSubmitMessage": self.invalid_submit_message,
            "submitFailureMessage": self.submit_failure_message,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FormConfig":
        """Create a FormConfig from camelCase keys, validating them first.

        Raises:
            InvalidFormConfigError: If the data does not match FORM_CONFIG_SCHEMA
        """
        problems = _schema_problems(FORM_CONFIG_SCHEMA, dict(data), "config")
        if problems:
            raise InvalidFormConfigError(problems)
        defaults = cls()
        return cls(
            validation_mode=data.get("validationMode", defaults.validation_mode),
            debounce_ms=data.get("debounceMs", defaults.debounce_ms),
            throttle_ms=data.get("throttleMs", defaults.throttle_ms),
            strict_rules=data.get("strictRules", defaults.strict_rules),
            sanitize_on_submit=data.get("sanitizeOnSubmit", defaults.sanitize_on_submit),
            invalid_submit_message=data.get("invalidSubmitMessage", defaults.invalid_submit_message),
            submit_failure_message=data.get("submitFailureMessage", defaults.submit_failure_message),
        )


def _resolve_rule(
    spec: Any,
    location: str,
    predicates: Mapping[str, Callable[..., Any]],
    problems: List[str],
) -> Optional[ValidationRule]:
    rule = normalize_rule(spec)
    predicate = rule.predicate
    if predicate is None or callable(predicate):
        return rule
    if isinstance(predicate, str):
        if predicate in predicates:
            return ValidationRule(
                kind=rule.kind,
                message=rule.message,
                parameter=rule.parameter,
                match_field=rule.match_field,
                predicate=predicates[predicate],
            )
        problems.append(f"{location}: unknown predicate '{predicate}'")
        return None
    problems.append(f"{location}: predicate must be a callable or a registered name")
    return None


def load_fields(
    data: Sequence[Mapping[str, Any]],
    predicates: Optional[Mapping[str, Callable[..., Any]]] = None,
) -> List[FieldDescriptor]:
    """Validate plain field configuration and build FieldDescriptors.

    Args:
        data: List of field dicts (``name``, ``type``, ``required``,
            ``defaultValue``, ``validators``, ``label``)
        predicates: Named predicates that ``custom`` rules may reference by
            passing a string as their ``predicate``

    Returns:
        FieldDescriptors in the given order

    Raises:
        InvalidFormConfigError: On schema violations, duplicate names or
            unresolvable predicate names

    Examples:
        >>> fields = load_fields([{"name": "email", "validators": ["required", "email"]}])
        >>> fields[0].validators[1].kind
        'email'
    """
    predicates = predicates or {}
    problems = _schema_problems(FIELD_LIST_SCHEMA, list(data), "fields")
    if problems:
        raise InvalidFormConfigError(problems)

    seen = set()
    descriptors: List[FieldDescriptor] = []
    for index, item in enumerate(data):
        name = item["name"]
        if name in seen:
            problems.append(f"fields.{index}: duplicate field name '{name}'")
            continue
        seen.add(name)

        rules = []
        for position, spec in enumerate(item.get("validators") or ()):
            rule = _resolve_rule(spec, f"fields.{index}.validators.{position}", predicates, problems)
            if rule is not None:
                rules.append(rule)
        descriptors.append(FieldDescriptor.from_dict({**item, "validators": rules}))

    if problems:
        raise InvalidFormConfigError(problems)
    return descriptors


__all__ = [
    "FormConfig",
    "load_fields",
    "RULE_SCHEMA",
    "FIELD_SCHEMA",
    "FIELD_LIST_SCHEMA",
    "FORM_CONFIG_SCHEMA",
]
