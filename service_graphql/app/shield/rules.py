"""
Rules and rule combinators.

A rule is an asynchronous predicate over ``(parent, args, context, info)``.
Rules form a tree: atomic rules at the leaves, ``and_``/``or_``/``not_`` on
the inner nodes. Every node has a deterministic identity used as the
per-request cache key, so two structurally identical compositions share
cached outcomes.

    @rule()
    async def is_authenticated(parent, args, context, info):
        return context.user_id is not None

    users_rule = and_(is_authenticated, is_admin)
"""

import asyncio
import inspect
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Tuple

from shared.errors import ConfigurationError, RuleFault
from shared.logging import get_logger

from .cache import CacheKey, fingerprint
from .outcomes import RuleOutcome


logger = get_logger("graphql.shield.rules")


class CacheMode(str, Enum):
    """How a rule's outcome is memoized within a request."""
    STRICT = "strict"          # keyed on parent and arguments
    CONTEXTUAL = "contextual"  # keyed on arguments only
    NO_CACHE = "no_cache"


class Rule:
    """Base class for all rules."""

    def __init__(self, name: str, cache: CacheMode = CacheMode.STRICT):
        if not name:
            raise ConfigurationError("Rules need a non-empty name")
        self._name = name
        self._cache = CacheMode(cache)

    @property
    def identity(self) -> str:
        return self._name

    @property
    def cache_mode(self) -> CacheMode:
        return self._cache

    @property
    def cacheable(self) -> bool:
        return self._cache is not CacheMode.NO_CACHE

    def cache_key(self, parent: Any, args: Any) -> CacheKey:
        parent_fp = fingerprint(parent) if self._cache is CacheMode.STRICT else ""
        return CacheKey(self.identity, parent_fp, fingerprint(args or {}))

    async def evaluate(self, parent: Any, args: Any, context, info) -> RuleOutcome:
        """Evaluate through the request cache. Never raises except on cancellation."""
        cache = getattr(context, "cache", None)
        if self.cacheable and cache is not None:
            try:
                key = self.cache_key(parent, args)
            except (TypeError, ValueError, RecursionError) as e:
                logger.warning("Cannot fingerprint rule inputs; evaluating uncached", rule=self.identity, error=str(e))
            else:
                return await cache.get_or_compute(key, lambda: self._evaluate_safely(parent, args, context, info))
        return await self._evaluate_safely(parent, args, context, info)

    async def _evaluate_safely(self, parent, args, context, info) -> RuleOutcome:
        try:
            return await self._resolve(parent, args, context, info)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Rule raised during evaluation", rule=self.identity, error=str(e), exc_info=True)
            self._record_fault(e, context, info)
            return RuleOutcome.error(e, rule=self.identity)

    def _record_fault(self, cause: Exception, context, info) -> None:
        # Runs once per computed evaluation, so a memoized fault is reported once.
        record = getattr(context, "record_fault", None)
        if record is None:
            return
        locator = getattr(info, "locator", None)
        record(RuleFault(self.identity, cause, field=str(locator) if locator is not None else None))

    async def _resolve(self, parent, args, context, info) -> RuleOutcome:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.identity}>"


def _normalize(result: Any, rule: str) -> RuleOutcome:
    """Map what a rule function returned onto an outcome."""
    if isinstance(result, RuleOutcome):
        return result
    if result is True:
        return RuleOutcome.allow(rule=rule)
    if result is False or result is None:
        return RuleOutcome.deny(rule=rule)
    if isinstance(result, str):
        return RuleOutcome.deny(result, rule=rule)
    if isinstance(result, Exception):
        return RuleOutcome.deny(str(result) or None, rule=rule)
    raise TypeError(f"Rule '{rule}' returned unsupported value {result!r}")


class AtomicRule(Rule):
    """Rule backed by a plain (sync or async) function."""

    def __init__(self, func: Callable[..., Any], name: Optional[str] = None,
                 cache: CacheMode = CacheMode.STRICT):
        if not callable(func):
            raise ConfigurationError("Rule function must be callable", {"rule": name})
        super().__init__(name or func.__name__, cache)
        self.func = func

    async def _resolve(self, parent, args, context, info) -> RuleOutcome:
        result = self.func(parent, args, context, info)
        if inspect.isawaitable(result):
            result = await result
        return _normalize(result, self.identity)


def rule(name: Optional[str] = None, cache: CacheMode = CacheMode.STRICT) -> Callable[[Callable], AtomicRule]:
    """Decorator turning a function into an :class:`AtomicRule`."""
    def decorator(func: Callable) -> AtomicRule:
        return AtomicRule(func, name=name, cache=cache)
    return decorator


class _ConstantRule(Rule):

    def __init__(self, name: str, allowed: bool):
        super().__init__(name, CacheMode.NO_CACHE)
        self._allowed = allowed

    async def _resolve(self, parent, args, context, info) -> RuleOutcome:
        if self._allowed:
            return RuleOutcome.allow(rule=self.identity)
        return RuleOutcome.deny(rule=self.identity)


allow = _ConstantRule("allow", True)
deny = _ConstantRule("deny", False)


class LogicRule(Rule):
    """Rule composed of child rules.

    Uncached when any child other than ``allow``/``deny`` is uncached, so a
    composite never replays a decision its child must recompute.
    """

    operator = ""

    def __init__(self, rules: Iterable[Rule], cache: CacheMode = CacheMode.STRICT):
        children: Tuple[Rule, ...] = tuple(rules)
        if not children:
            raise ConfigurationError(f"'{self.operator}' needs at least one rule")
        for child in children:
            if not isinstance(child, Rule):
                raise ConfigurationError(
                    f"'{self.operator}' got a non-rule argument",
                    {"argument": repr(child)}
                )
        self.rules = children
        if any(not child.cacheable and not isinstance(child, _ConstantRule) for child in children):
            cache = CacheMode.NO_CACHE
        super().__init__(f"{self.operator}({','.join(r.identity for r in children)})", cache)


class AndRule(LogicRule):
    """Allows only if every child allows; stops at the first deny or error."""

    operator = "and"

    async def _resolve(self, parent, args, context, info) -> RuleOutcome:
        for child in self.rules:
            outcome = await child.evaluate(parent, args, context, info)
            if not outcome.allowed:
                return outcome
        return RuleOutcome.allow(rule=self.identity)


class OrRule(LogicRule):
    """Allows as soon as one child allows; denies when none does."""

    operator = "or"

    async def _resolve(self, parent, args, context, info) -> RuleOutcome:
        first_denial: Optional[RuleOutcome] = None
        for child in self.rules:
            outcome = await child.evaluate(parent, args, context, info)
            if outcome.allowed:
                return outcome
            if outcome.denied and first_denial is None:
                first_denial = outcome
        # Child errors were recorded as faults where they were raised.
        return first_denial or RuleOutcome.deny(rule=self.identity)


class NotRule(LogicRule):
    """Inverts allow and deny. Errors pass through."""

    operator = "not"

    def __init__(self, rule: Rule, cache: CacheMode = CacheMode.STRICT):
        super().__init__([rule], cache)

    async def _resolve(self, parent, args, context, info) -> RuleOutcome:
        outcome = await self.rules[0].evaluate(parent, args, context, info)
        return outcome.inverted(rule=self.identity)


def and_(*rules: Rule) -> AndRule:
    return AndRule(rules)


def or_(*rules: Rule) -> OrRule:
    return OrRule(rules)


def not_(rule: Rule) -> NotRule:
    return NotRule(rule)


def chain(*rules: Rule) -> AndRule:
    """Sequential checks; same semantics (and identity) as :func:`and_`."""
    return AndRule(rules)
