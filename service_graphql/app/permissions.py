"""
Rules and permission map for the GraphQL service.

Callers identify themselves with a ``User-Id`` header.
"""

from graphql import GraphQLSchema

from .shield import (
    FieldSpec, GraphQLSchemaFields, InputRule, PermissionMap, UniqueCheck,
    allow, and_, deny, rule
)
from .users import Role, UserStore


def build_rules(store: UserStore):
    """Rules bound to ``store``. Returns a dict keyed by rule name."""

    @rule(name="is_authenticated")
    async def is_authenticated(parent, args, context, info):
        return context.user_id is not None

    @rule(name="is_admin")
    async def is_admin(parent, args, context, info):
        user = await store.get(context.user_id)
        return user is not None and user.role == Role.ADMIN

    is_not_already_registered = InputRule("is_not_already_registered", {
        "input.name": FieldSpec(required=True, type=str),
        "input.email": FieldSpec(
            required=True,
            type=str,
            format="email",
            unique=UniqueCheck(store.email_exists, "A user exists with this email. Choose another.")
        ),
    })

    return {
        "is_authenticated": is_authenticated,
        "is_admin": is_admin,
        "is_not_already_registered": is_not_already_registered,
    }


def build_permissions(store: UserStore, schema: GraphQLSchema, default_rule: str = "allow") -> PermissionMap:
    """Permission map for the service schema.

    ``default_rule`` guards every field without a field or type rule;
    "allow" leaves such fields public.
    """
    rules = build_rules(store)
    return PermissionMap.from_mapping(
        {
            "Query": {
                "users": and_(rules["is_authenticated"], rules["is_admin"]),
                "me": rules["is_authenticated"],
            },
            "Mutation": {
                "createUser": rules["is_not_already_registered"],
            },
            "User": allow,
        },
        schema=GraphQLSchemaFields(schema),
        default=deny if default_rule == "deny" else None
    )
