"""
Rule outcomes.

Every rule evaluation ends in exactly one of three outcomes:

- ALLOW: access granted.
- DENY: the rule ran cleanly and refused access. Input rules deny with the
  ``VALIDATION_FAILED`` code and one message per violated constraint.
- ERROR: the rule itself failed (raised, lookup failure...). Treated as a
  denial in the response but reported separately.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


FORBIDDEN = "FORBIDDEN"
VALIDATION_FAILED = "VALIDATION_FAILED"


class OutcomeKind(str, Enum):
    """Outcome tags."""
    ALLOW = "allow"
    DENY = "deny"
    ERROR = "error"


@dataclass(frozen=True)
class RuleOutcome:
    """Result of evaluating a rule."""
    kind: OutcomeKind
    reason: Optional[str] = None
    code: str = FORBIDDEN
    messages: Tuple[str, ...] = ()
    cause: Optional[BaseException] = None
    rule: Optional[str] = None

    @classmethod
    def allow(cls, rule: Optional[str] = None) -> "RuleOutcome":
        return cls(OutcomeKind.ALLOW, rule=rule)

    @classmethod
    def deny(
        cls,
        reason: Optional[str] = None,
        rule: Optional[str] = None,
        code: str = FORBIDDEN,
        messages: Tuple[str, ...] = ()
    ) -> "RuleOutcome":
        return cls(OutcomeKind.DENY, reason=reason, code=code, messages=tuple(messages), rule=rule)

    @classmethod
    def validation_failed(cls, messages, rule: Optional[str] = None) -> "RuleOutcome":
        messages = tuple(messages)
        return cls.deny(
            reason="; ".join(messages) or "Validation failed",
            rule=rule,
            code=VALIDATION_FAILED,
            messages=messages
        )

    @classmethod
    def error(cls, cause: BaseException, rule: Optional[str] = None) -> "RuleOutcome":
        return cls(OutcomeKind.ERROR, reason=str(cause) or type(cause).__name__, cause=cause, rule=rule)

    @property
    def allowed(self) -> bool:
        return self.kind is OutcomeKind.ALLOW

    @property
    def denied(self) -> bool:
        return self.kind is OutcomeKind.DENY

    @property
    def is_error(self) -> bool:
        return self.kind is OutcomeKind.ERROR

    def inverted(self, rule: Optional[str] = None) -> "RuleOutcome":
        """Swap ALLOW and DENY. Errors are returned unchanged."""
        if self.is_error:
            return self
        if self.allowed:
            return RuleOutcome.deny(rule=rule)
        return RuleOutcome.allow(rule=rule)
