"""FormRuntime orchestrator for FormGuard.

FormRuntime wires one form together: a RuleEvaluator over a RuleRegistry, an
UpdateScheduler owning all timers, the FormStateMachine and the
SubmissionController. It exposes the operations a presentation layer calls
and the read-only state snapshots it renders from.

Usage:
    >>> import asyncio
    >>> from formguard.runtime import FormRuntime
    >>> submitted = []
    >>> async def main():
    ...     form = FormRuntime(
    ...         [{"name": "email", "validators": ["required", "email"]}],
    ...         on_submit=submitted.append,
    ...     )
    ...     form.set_field_value("email", "ann@example.com")
    ...     form.submit()
    ...     await form.join()
    ...     form.dispose()
    >>> asyncio.run(main())
    >>> submitted
    [{'email': 'ann@example.com'}]
"""

import logging
import uuid
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple, Union

from formguard.config import FormConfig, load_fields
from formguard.events import EventEmitter, FormEvent
from formguard.rules import RuleEvaluator, RuleRegistry
from formguard.scheduler import UpdateScheduler
from formguard.state_machine import FormState, FormStateMachine
from formguard.submission import SubmissionController, SubmissionState, SubmitHandler
from formguard.types import EventType, FieldDescriptor

logger = logging.getLogger(__name__)

ValuesCallback = Callable[[Dict[str, Any]], None]
ErrorsCallback = Callable[[Dict[str, str]], None]

_VALUE_EVENTS = frozenset({
    EventType.FIELD_CHANGED,
    EventType.VALUES_SET,
    EventType.FORM_RESET,
    EventType.FIELDS_CONFIGURED,
})
_ERROR_EVENTS = frozenset({
    EventType.FIELD_VALIDATED,
    EventType.FORM_VALIDATED,
    EventType.FORM_RESET,
    EventType.FIELDS_CONFIGURED,
})


class FormRuntime:
    """One live form: state, validation, scheduling and submission.

    Attributes:
        form_id: Identifier stamped on every event
        config: Behavioral knobs (mode, debounce/throttle windows, ...)
        emitter: EventEmitter receiving every FormEvent
        evaluator: RuleEvaluator shared by all fields
        scheduler: UpdateScheduler owning every timer
        state_machine: The FormStateMachine
        submission: The SubmissionController

    Examples:
        >>> form = FormRuntime([FieldDescriptor(name="name")], on_submit=print)
        >>> form.form_state.values
        mappingproxy({'name': ''})
    """

    def __init__(
        self,
        fields: Iterable[Union[FieldDescriptor, Mapping[str, Any]]],
        on_submit: SubmitHandler,
        config: Optional[FormConfig] = None,
        *,
        registry: Optional[RuleRegistry] = None,
        form_id: Optional[str] = None,
        emitter: Optional[EventEmitter] = None,
        on_values_change: Optional[ValuesCallback] = None,
        on_error: Optional[ErrorsCallback] = None,
    ) -> None:
        """Initialize the runtime.

        Args:
            fields: Field descriptors, or plain dicts accepted by
                FieldDescriptor.from_dict
            on_submit: Callback receiving the values snapshot of a valid
                submission; may be a coroutine function
            config: Behavioral knobs, defaults to FormConfig()
            registry: Rule registry, defaults to the built-in one
            form_id: Identifier for events, generated when omitted
            emitter: EventEmitter to publish on, created when omitted
            on_values_change: Called with a copy of the values whenever they change
            on_error: Called with a copy of the error map whenever validation
                updates it

        Raises:
            UnknownRuleKindError: In strict mode, if a rule kind is unknown
            InvalidFormConfigError: If field names are not unique
        """
        self.config = config if config is not None else FormConfig()
        self.form_id = form_id or f"form_{uuid.uuid4().hex[:12]}"
        self.emitter = emitter if emitter is not None else EventEmitter()
        self.evaluator = RuleEvaluator(registry, strict=self.config.strict_rules)
        self.scheduler = UpdateScheduler(self.config.debounce_ms, self.config.throttle_ms)

        self._on_values_change = on_values_change
        self._on_error = on_error
        self.emitter.on_any(self._notify)

        self.state_machine = FormStateMachine(
            [f if isinstance(f, FieldDescriptor) else FieldDescriptor.from_dict(f) for f in fields],
            evaluator=self.evaluator,
            scheduler=self.scheduler,
            validation_mode=self.config.validation_mode,
            emitter=self.emitter,
            form_id=self.form_id,
        )
        self.submission = SubmissionController(
            self.state_machine,
            on_submit,
            invalid_message=self.config.invalid_submit_message,
            failure_message=self.config.submit_failure_message,
            sanitize=self.config.sanitize_on_submit,
        )
        logger.debug(
            "Created form %s with %d fields (%s)",
            self.form_id,
            len(self.state_machine.fields),
            self.config.validation_mode.value,
        )

    @classmethod
    def from_config(
        cls,
        data: Mapping[str, Any],
        on_submit: SubmitHandler,
        *,
        predicates: Optional[Mapping[str, Callable[..., Any]]] = None,
        **kwargs: Any,
    ) -> "FormRuntime":
        """Build a runtime from ``{"fields": [...], "config": {...}}``.

        Raises:
            InvalidFormConfigError: If either section fails validation
        """
        fields = load_fields(data.get("fields") or [], predicates)
        config = FormConfig.from_dict(data.get("config") or {})
        return cls(fields, on_submit, config, **kwargs)

    # -- state ------------------------------------------------------------

    @property
    def form_state(self) -> FormState:
        return self.state_machine.state

    @property
    def submission_state(self) -> SubmissionState:
        return self.submission.state

    @property
    def fields(self) -> Tuple[FieldDescriptor, ...]:
        return self.state_machine.fields

    @property
    def is_disposed(self) -> bool:
        return self.state_machine.is_disposed

    # -- operations -------------------------------------------------------

    def set_field_value(self, field_name: str, value: Any) -> None:
        self.state_machine.set_field_value(field_name, value)

    async def set_field_touched(self, field_name: str) -> None:
        await self.state_machine.set_field_touched(field_name)

    async def validate_all(self) -> bool:
        return await self.state_machine.validate_all()

    async def validate_single_field(self, field_name: str, value: Any) -> str:
        return await self.state_machine.validate_single_field(field_name, value)

    def reset_form(self) -> None:
        self.state_machine.reset_form()

    def set_field_values(self, values: Mapping[str, Any]) -> None:
        self.state_machine.set_field_values(values)

    def set_fields(self, fields: Iterable[Union[FieldDescriptor, Mapping[str, Any]]]) -> None:
        self.state_machine.set_fields(
            f if isinstance(f, FieldDescriptor) else FieldDescriptor.from_dict(f) for f in fields
        )

    def submit(self, trigger: Any = None) -> None:
        self.submission.submit(trigger)

    async def join(self) -> None:
        """Wait for pending debounced validations and submissions to settle."""
        await self.scheduler.join()

    def dispose(self) -> None:
        """Dispose the form: cancel every timer and task, reject later calls."""
        if self.state_machine.is_disposed:
            return
        self.state_machine.dispose()
        self.scheduler.dispose()
        self.emitter.off_any(self._notify)
        logger.debug("Disposed form %s", self.form_id)

    def _notify(self, event: FormEvent) -> None:
        payload = event.payload or {}
        if self._on_values_change is not None and event.type in _VALUE_EVENTS:
            self._on_values_change(dict(payload.get("values", {})))
        if self._on_error is not None and event.type in _ERROR_EVENTS:
            self._on_error(dict(payload.get("errors", {})))


__all__ = [
    "FormRuntime",
]
