"""Submission controller for FormGuard.

Each admitted call to SubmissionController.submit() runs
"validate, then invoke the external submit callback, then settle":

1. Suppress the trigger's default side effect (``trigger.prevent_default()``)
2. Mark the form submitting and clear the previous submission error
3. Validate every field
4. Invalid form: record a generic error, do not open the throttle window
5. Valid form: open the throttle window, call the submit callback with the
   current values, capture any failure it raises

Calls to submit() are throttled: at most one attempt starts per window, and
calls made inside a window collapse into one trailing attempt. The public
``is_throttled`` flag is separate from ``is_submitting``. It is raised only
when a valid submission begins and always clears after the fixed window,
however long the callback takes.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from formguard.errors import FormDisposedError
from formguard.scheduler import Throttler
from formguard.state_machine import FormStateMachine
from formguard.types import EventType
from formguard.validation import sanitize_values

logger = logging.getLogger(__name__)

INVALID_FORM_MESSAGE = "Please fix the errors in the form"
SUBMIT_FAILURE_MESSAGE = "An error occurred during submission"

SubmitHandler = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]

_WINDOW_TIMER = "submission-window"


@dataclass(frozen=True)
class SubmissionState:
    """Read-only snapshot of submission state.

    Attributes:
        is_submitting: True while an attempt is validating or awaiting the callback
        is_throttled: True for the fixed window after a valid submission begins
        submit_error: Form-level error from the last attempt, if any
    """
    is_submitting: bool = False
    is_throttled: bool = False
    submit_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "isSubmitting": self.is_submitting,
            "isThrottled": self.is_throttled,
            "submitError": self.submit_error,
        }


class SubmissionController:
    """Orchestrates validated, throttled submissions of one form.

    Attributes:
        machine: The form state machine supplying validation and values
        invalid_message: submit_error used when the form fails validation
        failure_message: submit_error used when a failure has no description
        sanitize: Pass sanitized values to the callback instead of raw ones
    """

    def __init__(
        self,
        machine: FormStateMachine,
        on_submit: SubmitHandler,
        *,
        invalid_message: str = INVALID_FORM_MESSAGE,
        failure_message: str = SUBMIT_FAILURE_MESSAGE,
        sanitize: bool = False,
    ) -> None:
        self.machine = machine
        self.invalid_message = invalid_message
        self.failure_message = failure_message
        self.sanitize = sanitize
        self._on_submit = on_submit
        self._scheduler = machine.scheduler
        self._throttler: Throttler = self._scheduler.throttled("submit", self._begin_attempt)

        self._attempt_seq = 0
        self._is_submitting = False
        self._is_throttled = False
        self._submit_error: Optional[str] = None

    @property
    def state(self) -> SubmissionState:
        return SubmissionState(
            is_submitting=self._is_submitting,
            is_throttled=self._is_throttled,
            submit_error=self._submit_error,
        )

    def submit(self, trigger: Any = None) -> None:
        """Request a submission. Returns immediately; the attempt runs as a task.

        Args:
            trigger: Optional UI event; its ``prevent_default()`` is called
                when the attempt starts

        Raises:
            FormDisposedError: If the form has been disposed
        """
        if self.machine.is_disposed:
            raise FormDisposedError(f"Form '{self.machine.form_id}' has been disposed")
        self._throttler(trigger)

    def clear_error(self) -> None:
        self._submit_error = None

    async def join(self) -> None:
        """Wait for the running attempt and any trailing attempt to settle."""
        await self._throttler.join()

    def _begin_attempt(self, trigger: Any) -> Awaitable[None]:
        # Called synchronously by the throttler, inside the window it just opened
        return self._attempt(trigger, self._throttler.window)

    async def _attempt(self, trigger: Any, window: int) -> None:
        """Run one submission attempt.

        Only the most recently started attempt writes ``is_submitting`` and
        ``submit_error``; an older attempt that settles late leaves them alone.
        """
        if self.machine.is_disposed:
            return
        prevent_default = getattr(trigger, "prevent_default", None)
        if callable(prevent_default):
            prevent_default()

        self._attempt_seq += 1
        seq = self._attempt_seq
        self._is_submitting = True
        self._submit_error = None
        self.machine.emit(EventType.SUBMISSION_STARTED, None)

        try:
            is_valid = await self.machine.validate_all()
            if not is_valid:
                self._reject(seq, window)
                return

            self._open_window()
            values = self.machine.values
            if self.sanitize:
                values = sanitize_values(values, self.machine.fields)
            logger.info("Submitting form %s", self.machine.form_id)
            outcome = self._on_submit(values)
            if inspect.isawaitable(outcome):
                await outcome
        except FormDisposedError:
            return
        except Exception as exc:
            error = self._describe(exc)
            logger.warning("Submit handler for %s failed: %s", self.machine.form_id, error)
            if seq == self._attempt_seq:
                self._submit_error = error
            self._emit_settled(EventType.SUBMISSION_FAILED, {"error": error})
        else:
            logger.info("Form %s submitted", self.machine.form_id)
            self._emit_settled(EventType.SUBMISSION_SUCCEEDED, None)
        finally:
            if seq == self._attempt_seq:
                self._is_submitting = False

    def _reject(self, seq: int, window: int) -> None:
        if seq == self._attempt_seq:
            self._submit_error = self.invalid_message
        logger.info("Submission of %s rejected: form is invalid", self.machine.form_id)
        self._emit_settled(
            EventType.SUBMISSION_REJECTED,
            {"error": self.invalid_message, "errors": dict(self.machine.state.errors)},
        )
        # An invalid attempt does not count against the retry budget, but it
        # may only close the window it started in
        self._throttler.release(window)

    def _open_window(self) -> None:
        self._is_throttled = True
        self._scheduler.call_later(_WINDOW_TIMER, self._scheduler.throttle_ms, self._close_window)

    def _close_window(self) -> None:
        self._is_throttled = False

    def _describe(self, exc: BaseException) -> str:
        return str(exc) or self.failure_message

    def _emit_settled(self, event_type: EventType, payload: Optional[Mapping[str, Any]]) -> None:
        if not self.machine.is_disposed:
            self.machine.emit(event_type, dict(payload) if payload is not None else None)


__all__ = [
    "SubmissionController",
    "SubmissionState",
    "SubmitHandler",
    "INVALID_FORM_MESSAGE",
    "SUBMIT_FAILURE_MESSAGE",
]
