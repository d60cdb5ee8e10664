"""
Field-level authorization engine ("shield").

Rules decide, per field and per request, whether the caller may access a
field. They compose with ``and_``/``or_``/``not_``/``chain``, are bound to
fields through a ``PermissionMap`` and enforced by ``Shield``, a graphql-core
middleware that memoizes rule outcomes for the lifetime of one request.

Modules of interest:
- rules: Rule base class, ``rule`` decorator, combinators, ``allow``/``deny``.
- inputs: Declarative argument validation (``InputRule``).
- permission_map: (type, field) -> rule binding with fallbacks.
- cache: Per-request, in-flight aware outcome cache.
- middleware: ``Shield`` enforcement.
"""

from .cache import CacheKey, RequestCache, fingerprint
from .context import EvaluationContext, FieldInfo, FieldLocator
from .inputs import Check, FieldSpec, InputRule, UniqueCheck, Violation
from .middleware import Shield
from .outcomes import FORBIDDEN, VALIDATION_FAILED, OutcomeKind, RuleOutcome
from .permission_map import GraphQLSchemaFields, PermissionMap, SchemaFields
from .rules import (
    AndRule, AtomicRule, CacheMode, LogicRule, NotRule, OrRule, Rule,
    allow, and_, chain, deny, not_, or_, rule
)

__all__ = [
    "CacheKey", "RequestCache", "fingerprint",
    "EvaluationContext", "FieldInfo", "FieldLocator",
    "Check", "FieldSpec", "InputRule", "UniqueCheck", "Violation",
    "Shield",
    "FORBIDDEN", "VALIDATION_FAILED", "OutcomeKind", "RuleOutcome",
    "GraphQLSchemaFields", "PermissionMap", "SchemaFields",
    "AndRule", "AtomicRule", "CacheMode", "LogicRule", "NotRule", "OrRule", "Rule",
    "allow", "and_", "chain", "deny", "not_", "or_", "rule",
]
