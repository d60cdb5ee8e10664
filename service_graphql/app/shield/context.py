"""
Request-scoped evaluation context and field metadata.
"""

import uuid
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Tuple

from shared.errors import RuleFault

from .cache import RequestCache


@dataclass(frozen=True)
class FieldLocator:
    """(parent type, field) pair; the permission map's key."""
    type_name: str
    field_name: str

    @property
    def is_introspection(self) -> bool:
        return self.type_name.startswith("__") or self.field_name.startswith("__")

    def __str__(self) -> str:
        return f"{self.type_name}.{self.field_name}"


@dataclass(frozen=True)
class FieldInfo:
    """Metadata about the field being resolved, handed to every rule."""
    locator: FieldLocator
    path: Tuple[Any, ...] = ()
    return_type: Optional[str] = None
    raw: Any = field(default=None, compare=False, repr=False)

    @classmethod
    def from_resolve_info(cls, info) -> "FieldInfo":
        """Build from graphql-core's ``GraphQLResolveInfo``."""
        return cls(
            locator=FieldLocator(info.parent_type.name, info.field_name),
            path=tuple(info.path.as_list()),
            return_type=str(info.return_type),
            raw=info
        )


@dataclass(frozen=True)
class EvaluationContext:
    """Per-request context passed to every rule.

    ``headers`` is the transport's request metadata, passed through
    untouched apart from lower-casing the keys. The cache belongs to this
    request only; call :meth:`close` (or use the context as a context
    manager) once the request is finished.
    """
    headers: Mapping[str, str] = field(default_factory=dict)
    claims: Mapping[str, Any] = field(default_factory=dict)
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    cache: RequestCache = field(default_factory=RequestCache, compare=False, repr=False)
    faults: List[RuleFault] = field(default_factory=list, compare=False, repr=False)

    def __post_init__(self):
        headers = {str(k).lower(): v for k, v in dict(self.headers).items()}
        object.__setattr__(self, "headers", MappingProxyType(headers))
        object.__setattr__(self, "claims", MappingProxyType(dict(self.claims)))

    @classmethod
    def create(
        cls,
        headers: Optional[Mapping[str, str]] = None,
        claims: Optional[Mapping[str, Any]] = None,
        request_id: Optional[str] = None
    ) -> "EvaluationContext":
        kwargs = {"headers": headers or {}, "claims": claims or {}}
        if request_id:
            kwargs["request_id"] = request_id
        return cls(**kwargs)

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)

    @property
    def user_id(self) -> Optional[str]:
        """Caller id from claims, falling back to the ``user-id`` header."""
        return self.claims.get("user_id") or self.header("user-id") or None

    def record_fault(self, fault: RuleFault) -> None:
        self.faults.append(fault)

    def drain_faults(self) -> List[RuleFault]:
        """Faults recorded since the last drain, each returned exactly once."""
        drained = list(self.faults)
        self.faults.clear()
        return drained

    @property
    def closed(self) -> bool:
        return self.cache.closed

    def close(self) -> None:
        """Drop every cached decision and cancel in-flight rule evaluations."""
        self.cache.close()

    def __enter__(self) -> "EvaluationContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
