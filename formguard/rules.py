"""Rule evaluation for FormGuard.

A RuleEvaluator checks one value against one ValidationRule and produces a
RuleResult. Evaluation is side-effect free; custom predicates may be
asynchronous, so evaluate() is a coroutine.

Built-in checkers and default messages live in a RuleRegistry. Registries are
immutable and passed to the evaluator at construction, so two forms in the
same process can use different rule sets or message locales:

    >>> registry = DEFAULT_REGISTRY.with_messages({"required": "Pflichtfeld"})
    >>> evaluator = RuleEvaluator(registry)
"""

import inspect
import logging
import math
import re
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional, Set, Union
from urllib.parse import urlsplit

from formguard.errors import UnknownRuleKindError
from formguard.types import RuleKind, RuleSpec, ValidationRule, normalize_rule

logger = logging.getLogger(__name__)


Checker = Callable[[Any, ValidationRule, Mapping[str, Any]], Union[bool, Awaitable[bool]]]
"""Signature of a registry checker: ``(value, rule, sibling_values) -> bool``."""


@dataclass(frozen=True)
class RuleResult:
    """Outcome of evaluating one rule.

    Attributes:
        is_valid: Whether the value passed the rule
        message: Resolved error message ("" for unknown kinds)
    """
    is_valid: bool
    message: str


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+\Z")
PHONE_RE = re.compile(r"^[0-9]{10}\Z")
SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*\Z")
AUTHORITY_SCHEMES = frozenset({"http", "https", "ftp", "ws", "wss"})

_EMPTY_COLLECTIONS = (list, tuple, set, frozenset, Mapping)


def is_empty(value: Any) -> bool:
    """Return True if value counts as empty.

    None, whitespace-only strings and empty collections are empty. Every
    other value (including 0 and False) is not.

    Examples:
        >>> is_empty("   ")
        True
        >>> is_empty(0)
        False
    """
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, _EMPTY_COLLECTIONS):
        return len(value) == 0
    return False


def _check_required(value: Any, rule: ValidationRule, siblings: Mapping[str, Any]) -> bool:
    return not is_empty(value)


def _check_email(value: Any, rule: ValidationRule, siblings: Mapping[str, Any]) -> bool:
    return isinstance(value, str) and EMAIL_RE.match(value) is not None


def _check_min_length(value: Any, rule: ValidationRule, siblings: Mapping[str, Any]) -> bool:
    if not isinstance(value, str):
        return False
    bound = rule.parameter if rule.parameter is not None else 0
    return len(value) >= bound


def _check_max_length(value: Any, rule: ValidationRule, siblings: Mapping[str, Any]) -> bool:
    if not isinstance(value, str):
        return False
    bound = rule.parameter if rule.parameter is not None else math.inf
    return len(value) <= bound


def _check_pattern(value: Any, rule: ValidationRule, siblings: Mapping[str, Any]) -> bool:
    pattern = rule.parameter
    if not pattern:
        return True
    if not isinstance(value, str):
        return False
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    return regex.search(value) is not None


def _check_match(value: Any, rule: ValidationRule, siblings: Mapping[str, Any]) -> bool:
    if rule.match_field is None:
        # Without a sibling reference the rule degrades to a pattern check
        return _check_pattern(value, rule, siblings)
    if rule.match_field not in siblings:
        return False
    other = siblings[rule.match_field]
    return type(other) is type(value) and other == value


def _check_number(value: Any, rule: ValidationRule, siblings: Mapping[str, Any]) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float, Decimal)):
        return math.isfinite(value)
    if isinstance(value, str):
        text = value.strip()
        # float() also takes digit separators and non-ASCII digits
        if not text or "_" in text or not text.isascii():
            return False
        try:
            return math.isfinite(float(text))
        except ValueError:
            return False
    return False


def _check_url(value: Any, rule: ValidationRule, siblings: Mapping[str, Any]) -> bool:
    if not isinstance(value, str) or not value or any(c.isspace() for c in value):
        return False
    try:
        parts = urlsplit(value)
        parts.port  # raises ValueError on a malformed port
    except ValueError:
        return False
    if not parts.scheme or not SCHEME_RE.match(parts.scheme):
        return False
    if parts.scheme.lower() in AUTHORITY_SCHEMES:
        return bool(parts.hostname)
    return bool(parts.netloc or parts.path)


def _check_phone(value: Any, rule: ValidationRule, siblings: Mapping[str, Any]) -> bool:
    return isinstance(value, str) and PHONE_RE.match(value) is not None


async def _check_custom(value: Any, rule: ValidationRule, siblings: Mapping[str, Any]) -> bool:
    if rule.predicate is None:
        return True
    outcome = rule.predicate(value, siblings)
    if inspect.isawaitable(outcome):
        outcome = await outcome
    return bool(outcome)


DEFAULT_CHECKERS: Dict[str, Checker] = {
    RuleKind.REQUIRED.value: _check_required,
    RuleKind.EMAIL.value: _check_email,
    RuleKind.MIN_LENGTH.value: _check_min_length,
    RuleKind.MAX_LENGTH.value: _check_max_length,
    RuleKind.PATTERN.value: _check_pattern,
    RuleKind.MATCH.value: _check_match,
    RuleKind.NUMBER.value: _check_number,
    RuleKind.URL.value: _check_url,
    RuleKind.PHONE.value: _check_phone,
    RuleKind.CUSTOM.value: _check_custom,
}

DEFAULT_MESSAGES: Dict[str, str] = {
    RuleKind.REQUIRED.value: "This field is required",
    RuleKind.EMAIL.value: "Please enter a valid email address",
    RuleKind.MIN_LENGTH.value: "This field must be at least {value} characters",
    RuleKind.MAX_LENGTH.value: "This field must not exceed {value} characters",
    RuleKind.PATTERN.value: "This field format is invalid",
    RuleKind.MATCH.value: "This field does not match the required pattern",
    RuleKind.NUMBER.value: "Please enter a valid number",
    RuleKind.URL.value: "Please enter a valid URL",
    RuleKind.PHONE.value: "Please enter a valid phone number",
    RuleKind.CUSTOM.value: "This field is invalid",
}


class RuleRegistry:
    """Immutable table of rule checkers and default message templates.

    Registries never change after construction; ``with_rule`` and
    ``with_messages`` return new registries.

    Examples:
        >>> registry = DEFAULT_REGISTRY.with_rule(
        ...     "zip", lambda v, rule, siblings: isinstance(v, str) and len(v) == 5,
        ...     "Enter a 5 digit ZIP code",
        ... )
        >>> "zip" in registry
        True
        >>> "zip" in DEFAULT_REGISTRY
        False
    """

    def __init__(
        self,
        checkers: Mapping[str, Checker],
        messages: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._checkers = MappingProxyType(dict(checkers))
        self._messages = MappingProxyType(dict(messages or {}))

    def __contains__(self, kind: object) -> bool:
        return kind in self._checkers

    @property
    def kinds(self) -> Set[str]:
        return set(self._checkers)

    def checker(self, kind: str) -> Optional[Checker]:
        return self._checkers.get(kind)

    def message(self, kind: str) -> str:
        return self._messages.get(kind, "")

    def with_rule(self, kind: str, checker: Checker, message: str = "") -> "RuleRegistry":
        """Return a new registry with ``kind`` added or replaced."""
        checkers = dict(self._checkers)
        checkers[kind] = checker
        messages = dict(self._messages)
        messages[kind] = message
        return RuleRegistry(checkers, messages)

    def with_messages(self, overrides: Mapping[str, str]) -> "RuleRegistry":
        """Return a new registry with some default messages replaced."""
        messages = dict(self._messages)
        messages.update(overrides)
        return RuleRegistry(self._checkers, messages)


DEFAULT_REGISTRY = RuleRegistry(DEFAULT_CHECKERS, DEFAULT_MESSAGES)


def render_parameter(parameter: Any) -> str:
    """Render a rule parameter for ``{value}`` substitution."""
    if isinstance(parameter, re.Pattern):
        return parameter.pattern
    return str(parameter)


class RuleEvaluator:
    """Evaluates ValidationRules against values using a RuleRegistry.

    Unknown rule kinds pass silently. With ``strict=True``, ``check_rules``
    rejects them up front so configuration typos surface at form creation.

    Attributes:
        registry: The registry providing checkers and messages
        strict: Whether unknown kinds are rejected by check_rules

    Examples:
        >>> import asyncio
        >>> evaluator = RuleEvaluator()
        >>> rule = ValidationRule(kind="minLength", parameter=8)
        >>> asyncio.run(evaluator.evaluate("short", rule, {}))
        RuleResult(is_valid=False, message='This field must be at least 8 characters')
    """

    def __init__(self, registry: Optional[RuleRegistry] = None, strict: bool = False) -> None:
        self.registry = registry if registry is not None else DEFAULT_REGISTRY
        self.strict = strict
        self._reported_kinds: Set[str] = set()

    def check_rules(self, rules: Iterable[RuleSpec], field_name: Optional[str] = None) -> None:
        """Raise UnknownRuleKindError for unknown kinds when in strict mode."""
        if not self.strict:
            return
        for spec in rules:
            rule = normalize_rule(spec)
            if rule.kind not in self.registry:
                raise UnknownRuleKindError(rule.kind, field_name)

    def resolve_message(self, rule: ValidationRule) -> str:
        """Resolve the error message for a rule.

        The explicit message wins over the registry template. Every
        ``{value}`` placeholder is replaced with the rendered parameter.
        """
        if rule.kind == RuleKind.MATCH.value and rule.match_field is not None and not rule.message:
            return f"This field must match {rule.match_field}"
        message = rule.message or self.registry.message(rule.kind)
        if rule.parameter is not None:
            message = message.replace("{value}", render_parameter(rule.parameter))
        return message

    async def evaluate(
        self,
        value: Any,
        rule: RuleSpec,
        sibling_values: Optional[Mapping[str, Any]] = None,
    ) -> RuleResult:
        """Evaluate one rule against a value.

        Args:
            value: The field value under test
            rule: The rule, in any accepted shape
            sibling_values: Snapshot of every field value in the form

        Returns:
            RuleResult with the pass/fail flag and resolved message
        """
        rule = normalize_rule(rule)
        siblings = sibling_values if sibling_values is not None else {}

        checker = self.registry.checker(rule.kind)
        if checker is None:
            if rule.kind not in self._reported_kinds:
                self._reported_kinds.add(rule.kind)
                logger.warning("Unknown validation rule kind %r treated as passing", rule.kind)
            return RuleResult(is_valid=True, message="")

        message = self.resolve_message(rule)
        try:
            outcome = checker(value, rule, siblings)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception:
            logger.warning("Rule %r raised during evaluation; treating as failed", rule.kind, exc_info=True)
            return RuleResult(is_valid=False, message=message)

        return RuleResult(is_valid=bool(outcome), message=message)


__all__ = [
    "Checker",
    "RuleResult",
    "RuleRegistry",
    "RuleEvaluator",
    "DEFAULT_REGISTRY",
    "DEFAULT_CHECKERS",
    "DEFAULT_MESSAGES",
    "is_empty",
    "render_parameter",
]
