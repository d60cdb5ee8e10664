"""
Permission map: which rule guards which field.

Lookup precedence for ``resolve(type, field)``:

1. a rule bound to exactly that field (``bind``)
2. the type's fallback rule (``bind_type``)
3. the global default rule (``bind_default``)
4. ``None``: no authorization, the field resolves for everyone.

The last level means the map is *allow by default*. Any field you forget to
bind is public. Bind a global ``deny`` default (and open up what should be
public explicitly) if that is not what you want.
"""

from typing import Dict, Iterator, Mapping, Optional, Protocol, Union

from graphql import GraphQLInterfaceType, GraphQLObjectType, GraphQLSchema

from shared.errors import ConfigurationError
from shared.logging import get_logger

from .context import FieldLocator
from .rules import Rule


class SchemaFields(Protocol):
    """The schema collaborator the map validates bindings against."""

    def has_type(self, type_name: str) -> bool: ...

    def has_field(self, type_name: str, field_name: str) -> bool: ...

    def iter_fields(self) -> Iterator[FieldLocator]: ...


class GraphQLSchemaFields:
    """:class:`SchemaFields` over a graphql-core schema."""

    def __init__(self, schema: GraphQLSchema):
        self.schema = schema

    def _fields_of(self, type_name: str):
        gql_type = self.schema.type_map.get(type_name)
        if isinstance(gql_type, (GraphQLObjectType, GraphQLInterfaceType)):
            return gql_type.fields
        return None

    def has_type(self, type_name: str) -> bool:
        return self._fields_of(type_name) is not None

    def has_field(self, type_name: str, field_name: str) -> bool:
        fields = self._fields_of(type_name)
        return fields is not None and field_name in fields

    def iter_fields(self) -> Iterator[FieldLocator]:
        for type_name, gql_type in self.schema.type_map.items():
            if type_name.startswith("__") or not isinstance(gql_type, GraphQLObjectType):
                continue
            for field_name in gql_type.fields:
                yield FieldLocator(type_name, field_name)


class PermissionMap:
    """Binds rules to fields. Read-only once frozen."""

    def __init__(self, schema: Optional[SchemaFields] = None):
        self.logger = get_logger("graphql.shield.permission_map")
        self.schema = schema
        self._fields: Dict[FieldLocator, Rule] = {}
        self._types: Dict[str, Rule] = {}
        self._default: Optional[Rule] = None
        self._frozen = False

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[str, Union[Rule, Mapping[str, Rule]]],
        schema: Optional[SchemaFields] = None,
        default: Optional[Rule] = None
    ) -> "PermissionMap":
        """Build from ``{"Query": {"users": rule}, "User": type_rule}``.

        A type mapped straight to a rule becomes that type's fallback.
        """
        permissions = cls(schema)
        for type_name, value in mapping.items():
            if isinstance(value, Rule):
                permissions.bind_type(type_name, value)
                continue
            if not isinstance(value, Mapping):
                raise ConfigurationError(
                    f"Permissions for '{type_name}' must be a rule or a field mapping",
                    {"type": type_name}
                )
            for field_name, field_rule in value.items():
                permissions.bind(type_name, field_name, field_rule)
        if default is not None:
            permissions.bind_default(default)
        return permissions

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def default(self) -> Optional[Rule]:
        return self._default

    def _check_writable(self):
        if self._frozen:
            raise ConfigurationError("Permission map is frozen")

    def _check_rule(self, rule: Rule, target: str):
        if not isinstance(rule, Rule):
            raise ConfigurationError(f"Binding for {target} is not a rule", {"target": target})

    def bind(self, type_name: str, field_name: str, rule: Rule) -> "PermissionMap":
        """Guard exactly ``type_name.field_name`` with ``rule``."""
        self._check_writable()
        locator = FieldLocator(type_name, field_name)
        self._check_rule(rule, str(locator))
        if self.schema is not None and not self.schema.has_field(type_name, field_name):
            raise ConfigurationError(f"Unknown field {locator}", {"field": str(locator)})
        if locator in self._fields:
            raise ConfigurationError(f"Duplicate binding for {locator}", {"field": str(locator)})
        self._fields[locator] = rule
        return self

    def bind_type(self, type_name: str, rule: Rule) -> "PermissionMap":
        """Guard every field of ``type_name`` that has no binding of its own."""
        self._check_writable()
        self._check_rule(rule, type_name)
        if self.schema is not None and not self.schema.has_type(type_name):
            raise ConfigurationError(f"Unknown type {type_name}", {"type": type_name})
        if type_name in self._types:
            raise ConfigurationError(f"Duplicate type fallback for {type_name}", {"type": type_name})
        self._types[type_name] = rule
        return self

    def bind_default(self, rule: Rule) -> "PermissionMap":
        """Guard every field with no field or type binding."""
        self._check_writable()
        self._check_rule(rule, "default")
        if self._default is not None:
            raise ConfigurationError("Default rule already bound", {"rule": self._default.identity})
        self._default = rule
        return self

    def resolve(self, type_name: str, field_name: str) -> Optional[Rule]:
        """Rule guarding the field, or None when the field is unguarded."""
        rule = self._fields.get(FieldLocator(type_name, field_name))
        if rule is not None:
            return rule
        rule = self._types.get(type_name)
        if rule is not None:
            return rule
        return self._default

    def unguarded_fields(self) -> Iterator[FieldLocator]:
        """Schema fields that resolve to no rule. Needs a schema."""
        if self.schema is None:
            return iter(())
        return (
            locator for locator in self.schema.iter_fields()
            if self.resolve(locator.type_name, locator.field_name) is None
        )

    def freeze(self) -> "PermissionMap":
        if self._frozen:
            return self
        self._frozen = True
        unguarded = [str(locator) for locator in self.unguarded_fields()]
        if unguarded:
            self.logger.warning(
                "Fields without a rule are allowed for every caller",
                fields=unguarded
            )
        self.logger.info(
            "Permission map frozen",
            field_rules=len(self._fields),
            type_rules=len(self._types),
            default=self._default.identity if self._default else None
        )
        return self

    def __len__(self) -> int:
        return len(self._fields)
