"""FormGuard form state and validation engine.

FormGuard tracks the values, touched flags and validation errors of a form
described by a declarative list of field descriptors. It provides:
- Ordered rule evaluation with first-failure short-circuit, sync and async rules
- Concurrent whole-form validation against a consistent value snapshot
- Debounced on-change validation and throttled submission
- A form state machine whose stale validation results never overwrite fresh ones
- A typed event stream for the presentation layer

Basic usage:
    >>> import asyncio
    >>> from formguard import FormRuntime
    >>> async def main():
    ...     form = FormRuntime(
    ...         [{"name": "password", "validators": [{"type": "minLength", "value": 8}]}],
    ...         on_submit=lambda values: None,
    ...     )
    ...     form.set_field_value("password", "short")
    ...     ok = await form.validate_all()
    ...     form.dispose()
    ...     return ok
    >>> asyncio.run(main())
    False
"""

__version__ = "0.1.0"
__author__ = "FormGuard Team"

# Version info
VERSION = (0, 1, 0)

# Core exports
from formguard.config import FormConfig, load_fields
from formguard.errors import (
    FieldError,
    FormDisposedError,
    FormGuardError,
    InvalidFormConfigError,
    UnknownFieldError,
    UnknownRuleKindError,
)
from formguard.events import EventEmitter, FormEvent
from formguard.rules import DEFAULT_REGISTRY, RuleEvaluator, RuleRegistry, RuleResult, is_empty
from formguard.runtime import FormRuntime
from formguard.scheduler import Debouncer, Throttler, UpdateScheduler, debounce, throttle
from formguard.state_machine import FormState, FormStateMachine
from formguard.submission import SubmissionController, SubmissionState
from formguard.types import EventType, FieldDescriptor, RuleKind, ValidationMode, ValidationRule
from formguard.validation import ValidationEngine, ValidationResult, sanitize_values, validate_form

# Package metadata
__all__ = [
    "__version__",
    "VERSION",
    "FormRuntime",
    "FormConfig",
    "load_fields",
    "FieldDescriptor",
    "ValidationRule",
    "RuleKind",
    "ValidationMode",
    "EventType",
    "RuleRegistry",
    "RuleEvaluator",
    "RuleResult",
    "DEFAULT_REGISTRY",
    "is_empty",
    "ValidationEngine",
    "ValidationResult",
    "validate_form",
    "sanitize_values",
    "Debouncer",
    "Throttler",
    "UpdateScheduler",
    "debounce",
    "throttle",
    "FormState",
    "FormStateMachine",
    "SubmissionController",
    "SubmissionState",
    "FormEvent",
    "EventEmitter",
    "FieldError",
    "FormGuardError",
    "UnknownFieldError",
    "UnknownRuleKindError",
    "FormDisposedError",
    "InvalidFormConfigError",
]
