"""Form state machine for FormGuard.

This module owns the canonical form state (values, errors, touched flags and
the in-flight validation flag) and the transitions that mutate it:

- set_field_value: record a value; in on-change mode, schedule a debounced
  single-field validation
- set_field_touched: mark a field touched (blur); in on-blur mode, validate it
- validate_all: validate every field and replace the error map
- reset_form: restore defaults and clear errors and touched flags
- set_field_values: bulk-merge values without validating

Per-field state is derived rather than stored: a field is untouched and
unvalidated, touched and valid, or touched and invalid.

Validations are never cancelled once started. Instead every field carries a
monotonically increasing attempt number and every full pass a pass number;
results from superseded attempts are discarded so a slow, stale validation
can never overwrite a fresher one.

Usage:
    >>> import asyncio
    >>> from formguard.types import FieldDescriptor
    >>> sm = FormStateMachine([FieldDescriptor(name="email", validators=("required", "email"))])
    >>> sm.set_field_values({"email": "not-an-email"})
    >>> asyncio.run(sm.validate_all())
    False
    >>> sm.state.errors["email"]
    'Please enter a valid email address'
"""

from copy import deepcopy
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
import logging

from formguard.errors import FormDisposedError, InvalidFormConfigError, UnknownFieldError
from formguard.events import EventEmitter, FormEvent
from formguard.rules import RuleEvaluator, is_empty
from formguard.scheduler import UpdateScheduler
from formguard.types import EventType, FieldDescriptor, ValidationMode
from formguard.validation import ValidationEngine, freeze_snapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FormState:
    """Read-only snapshot of a form's state.

    The mappings are read-only views over copies taken when the snapshot was
    made; later transitions do not change an existing snapshot.

    Attributes:
        values: Field name -> current raw value, in field declaration order
        errors: Field name -> message, currently failing fields only
        touched: Field name -> whether the user has interacted with it
        is_validating: True while a full-form validation pass is in flight
        is_valid: True iff no configured field currently has an error
    """
    values: Mapping[str, Any] = field(default_factory=dict)
    errors: Mapping[str, str] = field(default_factory=dict)
    touched: Mapping[str, bool] = field(default_factory=dict)
    is_validating: bool = False
    is_valid: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization.

        Examples:
            >>> FormState().to_dict()
            {'values': {}, 'errors': {}, 'touched': {}, 'isValid': True, 'isValidating': False}
        """
        return {
            "values": dict(self.values),
            "errors": dict(self.errors),
            "touched": dict(self.touched),
            "isValid": self.is_valid,
            "isValidating": self.is_validating,
        }


class FormStateMachine:
    """Owns a form's state and the transitions that change it.

    Attributes:
        form_id: Identifier stamped on every emitted event
        validation_mode: Which transitions trigger automatic validation
        scheduler: UpdateScheduler owning the debounce timers
        emitter: EventEmitter receiving a FormEvent per transition
        engine: ValidationEngine for the current field descriptors

    Examples:
        >>> sm = FormStateMachine(
        ...     [FieldDescriptor(name="name", default_value="Ann")],
        ...     validation_mode="onChange",
        ... )
        >>> sm.state.values["name"]
        'Ann'
        >>> sm.validation_mode
        <ValidationMode.ON_CHANGE: 'on-change'>
    """

    def __init__(
        self,
        fields: Iterable[FieldDescriptor],
        *,
        evaluator: Optional[RuleEvaluator] = None,
        scheduler: Optional[UpdateScheduler] = None,
        validation_mode: Union[ValidationMode, str] = ValidationMode.ON_BLUR,
        emitter: Optional[EventEmitter] = None,
        form_id: str = "form",
    ) -> None:
        self.form_id = form_id
        self.validation_mode = ValidationMode.parse(validation_mode)
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler if scheduler is not None else UpdateScheduler()
        self.emitter = emitter if emitter is not None else EventEmitter()
        self._evaluator = evaluator if evaluator is not None else RuleEvaluator()
        self._disposed = False

        self._field_seq: Dict[str, int] = {}
        self._form_seq = 0
        self._values: Dict[str, Any] = {}
        self._errors: Dict[str, str] = {}
        self._touched: Dict[str, bool] = {}
        self._is_validating = False
        self._is_valid = True

        self._configure(fields)

    # -- read side --------------------------------------------------------

    @property
    def state(self) -> FormState:
        """Snapshot of the current form state."""
        return FormState(
            values=MappingProxyType(dict(self._values)),
            errors=MappingProxyType(dict(self._errors)),
            touched=MappingProxyType(dict(self._touched)),
            is_validating=self._is_validating,
            is_valid=self._is_valid,
        )

    @property
    def values(self) -> Dict[str, Any]:
        """Copy of the current values."""
        return dict(self._values)

    @property
    def fields(self) -> Tuple[FieldDescriptor, ...]:
        return self.engine.fields

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    # -- transitions ------------------------------------------------------

    def set_field_value(self, field_name: str, value: Any) -> None:
        """Record a new value for one field.

        In on-change mode this schedules a debounced validation of the field;
        an event loop must be running in that case.

        Raises:
            UnknownFieldError: If the field is not configured
            FormDisposedError: If the form has been disposed
        """
        self._ensure_active()
        self._require_field(field_name)
        self._values[field_name] = value
        self.emit(EventType.FIELD_CHANGED, {"field": field_name, "values": dict(self._values)})

        if self.validation_mode is ValidationMode.ON_CHANGE:
            debounced = self.scheduler.debounced(("validate", field_name), self._validate_after_change)
            debounced(field_name, value)

    async def set_field_touched(self, field_name: str) -> None:
        """Mark a field touched (blur); in on-blur mode, validate it right away.

        Raises:
            UnknownFieldError: If the field is not configured
            FormDisposedError: If the form has been disposed
        """
        self._ensure_active()
        self._require_field(field_name)
        self._touched[field_name] = True
        self.emit(EventType.FIELD_TOUCHED, {"field": field_name})

        if self.validation_mode is ValidationMode.ON_BLUR:
            value = self._values[field_name]
            outcome = await self._validate_latest(field_name, value)
            if outcome is not None:
                self._apply_field_result(field_name, outcome)

    async def validate_single_field(self, field_name: str, value: Any) -> str:
        """Validate ``value`` as the value of one field without changing state.

        Sibling rules see the current values with ``value`` substituted for
        the field.

        Returns:
            The first failing rule's message, or "" when valid
        """
        self._ensure_active()
        siblings = freeze_snapshot({**self._values, field_name: value})
        return await self.engine.validate_field(field_name, value, siblings)

    async def validate_all(self) -> bool:
        """Validate every field against one snapshot and replace the error map.

        Fields whose single-field validation started after this pass began
        keep their fresher result. A pass superseded by a newer pass, a reset
        or new field descriptors leaves the state alone.

        Returns:
            Whether every field passed in this pass
        """
        self._ensure_active()
        self._form_seq += 1
        pass_seq = self._form_seq
        started = {name: self._next_field_seq(name) for name in self._values}
        self._is_validating = True

        result = await self.engine.validate_form(self._values)

        if self._disposed or pass_seq != self._form_seq:
            logger.debug("Discarding superseded validation pass %d of %s", pass_seq, self.form_id)
            return result.is_valid

        errors: Dict[str, str] = {}
        for name in self._values:
            if self._field_seq.get(name) != started.get(name):
                if name in self._errors:
                    errors[name] = self._errors[name]
            elif name in result.errors:
                errors[name] = result.errors[name]

        self._errors = errors
        self._is_valid = not errors
        self._is_validating = False
        self.emit(EventType.FORM_VALIDATED, {"errors": dict(errors), "isValid": self._is_valid})
        return result.is_valid

    def reset_form(self) -> None:
        """Restore defaults, clear errors and touched flags, drop pending validations."""
        self._ensure_active()
        self.scheduler.cancel_debounced()
        self._init_state()
        self.emit(EventType.FORM_RESET, {"values": dict(self._values), "errors": {}})

    def set_field_values(self, values: Mapping[str, Any]) -> None:
        """Merge several values at once without touching errors or touched flags.

        Raises:
            UnknownFieldError: If any key is not a configured field; no value
                is applied in that case
        """
        self._ensure_active()
        for name in values:
            self._require_field(name)
        self._values.update(values)
        self.emit(EventType.VALUES_SET, {"fields": list(values), "values": dict(self._values)})

    def set_fields(self, fields: Iterable[FieldDescriptor]) -> None:
        """Replace the field descriptors and rebuild the state from their defaults."""
        self._ensure_active()
        self.scheduler.cancel_debounced()
        self._configure(fields)
        self.emit(
            EventType.FIELDS_CONFIGURED,
            {
                "fields": [f.name for f in self.engine.fields],
                "values": dict(self._values),
                "errors": {},
            },
        )

    def dispose(self) -> None:
        """Tear the form down. Pending callbacks become inert; later calls raise."""
        if self._disposed:
            return
        self._disposed = True
        if self._owns_scheduler:
            self.scheduler.dispose()
        else:
            self.scheduler.cancel_debounced()
        self.emit(EventType.FORM_DISPOSED, None)

    async def join(self) -> None:
        """Wait for scheduled validations to fire and finish."""
        await self.scheduler.join()

    def emit(self, event_type: EventType, payload: Optional[Dict[str, Any]]) -> None:
        self.emitter.emit(FormEvent.create(event_type, self.form_id, payload))

    # -- internals --------------------------------------------------------

    def _configure(self, fields: Iterable[FieldDescriptor]) -> None:
        fields = tuple(fields)
        seen: Dict[str, int] = {}
        for descriptor in fields:
            seen[descriptor.name] = seen.get(descriptor.name, 0) + 1
        duplicates: List[str] = [name for name, count in seen.items() if count > 1]
        if duplicates:
            raise InvalidFormConfigError([f"Duplicate field name '{name}'" for name in duplicates])

        self.engine = ValidationEngine(fields, self._evaluator)
        self._init_state()

    def _init_state(self) -> None:
        self._values = {
            f.name: "" if f.default_value is None else deepcopy(f.default_value)
            for f in self.engine.fields
        }
        self._errors = {}
        self._touched = {name: False for name in self._values}
        self._is_validating = False
        self._is_valid = True
        # Supersede everything in flight
        self._form_seq += 1
        for name in self._values:
            self._next_field_seq(name)

    def _ensure_active(self) -> None:
        if self._disposed:
            raise FormDisposedError(f"Form '{self.form_id}' has been disposed")

    def _require_field(self, field_name: str) -> None:
        if field_name not in self._values:
            raise UnknownFieldError(field_name)

    def _next_field_seq(self, field_name: str) -> int:
        seq = self._field_seq.get(field_name, 0) + 1
        self._field_seq[field_name] = seq
        return seq

    async def _validate_latest(self, field_name: str, value: Any) -> Optional[str]:
        """Validate one field; return None if the attempt was superseded."""
        seq = self._next_field_seq(field_name)
        siblings = freeze_snapshot({**self._values, field_name: value})
        error = await self.engine.validate_field(field_name, value, siblings)
        if self._disposed or self._field_seq.get(field_name) != seq:
            logger.debug("Discarding stale validation of %s (attempt %d)", field_name, seq)
            return None
        return error

    async def _validate_after_change(self, field_name: str, value: Any) -> None:
        outcome = await self._validate_latest(field_name, value)
        if outcome is None:
            return
        # Only flag the field once there is content that fails; an empty
        # field being typed into for the first time stays untouched
        if outcome and not is_empty(value):
            self._touched[field_name] = True
        self._apply_field_result(field_name, outcome)

    def _apply_field_result(self, field_name: str, error: str) -> None:
        if error:
            self._errors[field_name] = error
        else:
            self._errors.pop(field_name, None)
        self._is_valid = not self._errors
        self.emit(
            EventType.FIELD_VALIDATED,
            {
                "field": field_name,
                "error": error,
                "errors": dict(self._errors),
                "isValid": self._is_valid,
            },
        )


__all__ = [
    "FormState",
    "FormStateMachine",
]
