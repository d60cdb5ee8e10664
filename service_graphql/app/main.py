"""
GraphQL service for the Access Shield.
"""

import asyncio
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from graphql import graphql
from pydantic import BaseModel, ConfigDict, Field

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import RequestTimeoutError, ShieldException
from shared.logging import clear_context, set_request_id, set_user_context

from .permissions import build_permissions
from .schema import build_graphql_schema
from .shield import EvaluationContext, Shield
from .users import UserStore, sample_users


class GraphQLRequest(BaseModel):
    """GraphQL-over-HTTP request body."""
    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., description="GraphQL document")
    variables: Optional[Dict[str, Any]] = Field(None, description="Variable values")
    operation_name: Optional[str] = Field(None, alias="operationName", description="Operation to run")


class GraphQLService(BaseService):
    """GraphQL service with field-level authorization."""

    def __init__(self, store: Optional[UserStore] = None, config: Optional[ServiceConfig] = None):
        super().__init__("graphql", 4000, config=config)

        self.store = store if store is not None else UserStore(sample_users())
        self.schema = build_graphql_schema(self.store)
        self.permissions = build_permissions(
            self.store,
            self.schema,
            default_rule=self.config.shield_default_rule
        )
        self.shield = Shield(
            self.permissions,
            fallback_error=self.config.shield_fallback_error,
            debug=self.config.shield_debug,
            metrics=self.metrics
        )

        self._setup_graphql_routes()

    def _setup_graphql_routes(self):
        """Set up GraphQL routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "graphql",
                "message": "Access Shield - GraphQL Service",
                "version": "1.0.0",
                "capabilities": ["graphql", "field_authorization", "input_validation"]
            }

        @self.app.post("/graphql")
        async def execute_graphql(body: GraphQLRequest, request: Request):
            """Execute a GraphQL operation with the shield applied to every field."""
            request_id = set_request_id(request.headers.get("x-request-id"))
            context = EvaluationContext.create(headers=dict(request.headers), request_id=request_id)
            set_user_context(context.user_id)
            try:
                return await self.execute(body, context)
            finally:
                context.close()
                clear_context()

    async def execute(self, body: GraphQLRequest, context: EvaluationContext) -> JSONResponse:
        """Run one operation; the caller owns ``context`` and closes it."""
        try:
            result = await asyncio.wait_for(
                graphql(
                    self.schema,
                    body.query,
                    context_value=context,
                    variable_values=body.variables,
                    operation_name=body.operation_name,
                    middleware=[self.shield]
                ),
                timeout=self.config.request_timeout_seconds
            )
        except asyncio.TimeoutError:
            self.logger.warning(
                "GraphQL request timed out",
                timeout_seconds=self.config.request_timeout_seconds,
                cache=context.cache.stats()
            )
            raise RequestTimeoutError(self.config.request_timeout_seconds)

        self.logger.debug("Shield cache", **context.cache.stats())
        # Parse and validation errors carry no path; field errors always do.
        request_failed = result.data is None and result.errors and all(e.path is None for e in result.errors)
        return JSONResponse(status_code=400 if request_failed else 200, content=result.formatted)

    def _status_for(self, exc: ShieldException) -> int:
        if isinstance(exc, RequestTimeoutError):
            return 504
        return super()._status_for(exc)


def create_app():
    """Create GraphQL service application."""
    service = GraphQLService()
    return service.app


if __name__ == "__main__":
    service = GraphQLService()
    service.run()
