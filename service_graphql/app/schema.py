"""
GraphQL schema and business resolvers.
"""

from graphql import GraphQLSchema, build_schema

from .users import UserStore


TYPE_DEFS = """
  type Query {
    me: User
    users: [User!]!
  }

  type Mutation {
    createUser(input: CreateUserInput): User
  }

  type User {
    id: ID!
    name: String!
    email: String!
    role: Role
  }

  input CreateUserInput {
    name: String!
    email: String!
  }

  enum Role {
    USER
    ADMIN
  }
"""


class Resolvers:
    """Resolvers for Query and Mutation; User fields use the default resolver."""

    def __init__(self, store: UserStore):
        self.store = store

    async def users(self, parent, info):
        return [user.model_dump(mode="json") for user in await self.store.list()]

    async def me(self, parent, info):
        user = await self.store.get(info.context.user_id)
        return user.model_dump(mode="json") if user else None

    async def create_user(self, parent, info, input=None):
        input = input or {}
        user = await self.store.create(name=input["name"], email=input["email"])
        return user.model_dump(mode="json")


def build_graphql_schema(store: UserStore) -> GraphQLSchema:
    """Build the executable schema with resolvers bound to ``store``."""
    schema = build_schema(TYPE_DEFS)
    resolvers = Resolvers(store)
    schema.query_type.fields["users"].resolve = resolvers.users
    schema.query_type.fields["me"].resolve = resolvers.me
    schema.mutation_type.fields["createUser"].resolve = resolvers.create_user
    return schema
