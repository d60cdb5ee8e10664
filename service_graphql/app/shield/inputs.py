"""
Input rules: declarative validation of field arguments.

An input rule runs before the field's resolver and checks its arguments
against a set of constraints keyed by dotted argument path. Every violated
constraint is collected, so the caller sees all problems at once:

    is_not_already_registered = InputRule("is_not_already_registered", {
        "input.name": FieldSpec(required=True, type=str),
        "input.email": FieldSpec(
            required=True, type=str, format="email",
            unique=UniqueCheck(store.email_exists, "A user exists with this email."),
        ),
    })
"""

import inspect
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Sequence, Tuple, Union

from shared.errors import ConfigurationError

from .outcomes import RuleOutcome
from .rules import CacheMode, Rule


FORMATS = {
    "email": re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$"),
    "uuid": re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"),
    "url": re.compile(r"^https?://[^\s/$.?#][^\s]*$"),
}

_MISSING = object()


@dataclass(frozen=True)
class Check:
    """Custom predicate; ``message`` is reported when it returns falsy."""
    predicate: Callable[[Any], Union[bool, Awaitable[bool]]]
    message: str


@dataclass(frozen=True)
class UniqueCheck:
    """``exists`` is looked up at evaluation time and must return True when the value is taken."""
    exists: Callable[[Any], Awaitable[bool]]
    message: str = "{path} is already taken"


@dataclass(frozen=True)
class FieldSpec:
    """Constraints on one argument value."""
    required: bool = False
    type: Optional[Union[type, Tuple[type, ...]]] = None
    format: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    choices: Optional[Sequence[Any]] = None
    checks: Tuple[Check, ...] = ()
    unique: Optional[UniqueCheck] = None

    def __post_init__(self):
        if self.format is not None and self.format not in FORMATS:
            raise ConfigurationError(f"Unknown format '{self.format}'", {"formats": sorted(FORMATS)})


@dataclass(frozen=True)
class Violation:
    path: str
    message: str


def _lookup(args: Any, path: str) -> Any:
    value = args
    for part in path.split("."):
        if isinstance(value, Mapping) and part in value:
            value = value[part]
        else:
            return _MISSING
    return value


async def _call(func: Callable, value: Any) -> Any:
    result = func(value)
    if inspect.isawaitable(result):
        result = await result
    return result


class InputRule(Rule):
    """Rule that denies with ``VALIDATION_FAILED`` when arguments violate constraints.

    Not memoized by default: uniqueness lookups must see writes made by
    earlier mutations of the same request.
    """

    def __init__(self, name: str, fields: Mapping[str, FieldSpec], cache: CacheMode = CacheMode.NO_CACHE):
        if not fields:
            raise ConfigurationError(f"Input rule '{name}' has no fields")
        super().__init__(name, cache)
        self.fields = dict(fields)

    @property
    def identity(self) -> str:
        return f"input:{self._name}"

    async def _resolve(self, parent, args, context, info) -> RuleOutcome:
        violations = await self.validate(args or {})
        if violations:
            return RuleOutcome.validation_failed([v.message for v in violations], rule=self.identity)
        return RuleOutcome.allow(rule=self.identity)

    async def validate(self, args: Mapping[str, Any]) -> List[Violation]:
        """Return every violated constraint, in field declaration order."""
        violations: List[Violation] = []
        for path, spec in self.fields.items():
            message = await self._check_field(path, spec, _lookup(args, path))
            if message:
                violations.append(Violation(path, message))
        return violations

    async def _check_field(self, path: str, spec: FieldSpec, value: Any) -> Optional[str]:
        # First failing constraint wins for a given field.
        if value is _MISSING or value is None or value == "":
            return f"{path} is a required field" if spec.required else None

        if spec.type is not None and not isinstance(value, spec.type):
            expected = spec.type.__name__ if isinstance(spec.type, type) else "/".join(t.__name__ for t in spec.type)
            return f"{path} must be of type {expected}"

        if spec.format is not None and not FORMATS[spec.format].match(str(value)):
            return f"{path} must be a valid {spec.format}"

        if spec.min_length is not None and len(value) < spec.min_length:
            return f"{path} must be at least {spec.min_length} characters"

        if spec.max_length is not None and len(value) > spec.max_length:
            return f"{path} must be at most {spec.max_length} characters"

        if spec.choices is not None and value not in spec.choices:
            return f"{path} must be one of: {', '.join(map(str, spec.choices))}"

        for check in spec.checks:
            if not await _call(check.predicate, value):
                return check.message.format(path=path, value=value)

        if spec.unique is not None and await _call(spec.unique.exists, value):
            return spec.unique.message.format(path=path, value=value)

        return None
