"""
GraphQL service package for the Access Shield.

Serves a GraphQL API in which every field is guarded by the shield:

- app.main: FastAPI surface (POST /graphql, health, metrics).
- app.shield: Rule model, combinators, input validation, permission map
  and the enforcement middleware.
- app.schema: Schema definition and business resolvers.
- app.permissions: The service's rules and their bindings.
- app.users: Injected user store used by resolvers and rules.

Guidelines:
- Rules receive their data collaborators explicitly; no module-level state.
- The permission map is frozen before the first request.
- Rule outcomes are cached per request only and never shared.
"""
