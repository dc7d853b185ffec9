"""Error records and exception types for FormGuard.

Rule failures are expected outcomes, not exceptions: they surface as message
strings in the form's error map, and as FieldError records in a
ValidationResult. The exception classes below are reserved for misuse of the
API (unknown field names, operating on a disposed form, malformed
configuration) and are raised synchronously to the caller.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dateutil.parser import isoparse


@dataclass(frozen=True)
class FieldError:
    """Per-field validation failure.

    Attributes:
        field_name: Name of the failing field
        message: Human-readable error text (resolved rule message)
        kind: Kind of the rule that failed first
        timestamp: UTC time the failure was recorded

    Examples:
        >>> err = FieldError(field_name="email", message="Please enter a valid email address", kind="email")
        >>> err.to_dict()["fieldName"]
        'email'
    """
    field_name: str
    message: str
    kind: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "fieldName": self.field_name,
            "message": self.message,
            "type": self.kind,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldError":
        """Create FieldError from dict."""
        ts = data.get("timestamp")
        if isinstance(ts, str):
            ts = isoparse(ts)
        return cls(
            field_name=data["fieldName"],
            message=data["message"],
            kind=data["type"],
            timestamp=ts or datetime.now(timezone.utc),
        )


class FormGuardError(Exception):
    """Base class for all FormGuard exceptions."""


class UnknownFieldError(FormGuardError, KeyError):
    """Raised when an operation names a field that is not configured.

    Attributes:
        field_name: The unknown field name
    """

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Unknown field '{field_name}'")

    def __str__(self) -> str:
        return self.args[0]


class UnknownRuleKindError(FormGuardError, ValueError):
    """Raised in strict mode when a rule names a kind the registry does not know.

    Attributes:
        kind: The unrecognized rule kind
        field_name: Field the rule is attached to, when known
    """

    def __init__(self, kind: str, field_name: Optional[str] = None):
        self.kind = kind
        self.field_name = field_name
        where = f" on field '{field_name}'" if field_name else ""
        super().__init__(f"Unknown validation rule kind '{kind}'{where}")


class FormDisposedError(FormGuardError, RuntimeError):
    """Raised when a transition is attempted on a disposed form."""


class InvalidFormConfigError(FormGuardError, ValueError):
    """Raised when field or form configuration fails validation.

    Attributes:
        problems: Every problem found, one message per entry
    """

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__(
            "Invalid form configuration: " + "; ".join(self.problems)
        )


__all__ = [
    "FieldError",
    "FormGuardError",
    "UnknownFieldError",
    "UnknownRuleKindError",
    "FormDisposedError",
    "InvalidFormConfigError",
]
