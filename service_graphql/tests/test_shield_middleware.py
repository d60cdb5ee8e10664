"""
Unit tests for the Shield enforcement middleware.
"""

import asyncio

import pytest
from unittest.mock import MagicMock
from graphql import build_schema, graphql

from service_graphql.app.shield import (
    EvaluationContext, FieldInfo, FieldLocator, FieldSpec, InputRule, PermissionMap,
    GraphQLSchemaFields, Shield, allow, deny, or_, rule
)
from shared.errors import RuleFault
from shared.metrics import MetricsCollector


TYPE_DEFS = """
  type Query {
    a: String
    b: String
    secret: String
    open: String
    broken: String
    failing: String
    echo(value: String): String
  }
"""


class Root:
    """Root value; every field resolves from an attribute or method."""

    a = "A"
    b = "B"
    secret = "classified"
    open = "public"
    broken = "never shown"

    def failing(self, info):
        raise ValueError("resolver exploded")

    def echo(self, info, value=None):
        return value


def counting_rule(name, result, delay=0.0):
    calls = []

    @rule(name=name)
    async def _rule(parent, args, context, info):
        calls.append(info.locator)
        await asyncio.sleep(delay)
        if isinstance(result, BaseException):
            raise result
        return result

    return _rule, calls


def mixed_keys():
    return {1: "a", "b": 2}


def self_referencing():
    parent = {}
    parent["self"] = parent
    return parent


class TestShieldExecution:
    """Test cases for Shield running inside graphql-core."""

    @pytest.fixture
    def schema(self):
        return build_schema(TYPE_DEFS)

    @pytest.fixture
    def permissions(self, schema):
        return PermissionMap(GraphQLSchemaFields(schema))

    async def execute(self, schema, shield, query, headers=None):
        with EvaluationContext.create(headers=headers or {}) as context:
            return await graphql(
                schema,
                query,
                root_value=Root(),
                context_value=context,
                middleware=[shield]
            )

    @pytest.mark.asyncio
    async def test_sibling_fields_share_one_evaluation(self, schema, permissions):
        shared_rule, calls = counting_rule("shared", True, delay=0.01)
        permissions.bind("Query", "a", shared_rule)
        permissions.bind("Query", "b", shared_rule)

        result = await self.execute(schema, Shield(permissions), "{ a b }")

        assert result.errors is None
        assert result.data == {"a": "A", "b": "B"}
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_denied_field_is_nulled_siblings_unaffected(self, schema, permissions):
        permissions.bind("Query", "secret", deny)
        permissions.bind("Query", "open", allow)

        result = await self.execute(schema, Shield(permissions), "{ secret open }")

        assert result.data == {"secret": None, "open": "public"}
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.message == "Not Authorised!"
        assert error.path == ["secret"]
        assert error.extensions == {"code": "FORBIDDEN", "field": "Query.secret"}

    @pytest.mark.asyncio
    async def test_deny_reason_becomes_message(self, schema, permissions):
        admins_only, _ = counting_rule("admins_only", "Admins only")
        permissions.bind("Query", "secret", admins_only)

        result = await self.execute(schema, Shield(permissions), "{ secret }")

        assert result.errors[0].message == "Admins only"

    @pytest.mark.asyncio
    async def test_unmapped_field_proceeds(self, schema, permissions):
        permissions.bind("Query", "secret", deny)

        result = await self.execute(schema, Shield(permissions), "{ open }")

        assert result.errors is None
        assert result.data == {"open": "public"}

    @pytest.mark.asyncio
    async def test_default_rule_guards_unmapped_fields(self, schema, permissions):
        permissions.bind("Query", "open", allow)
        permissions.bind_default(deny)

        result = await self.execute(schema, Shield(permissions), "{ open a __typename }")

        assert result.data == {"open": "public", "a": None, "__typename": "Query"}
        assert [e.path for e in result.errors] == [["a"]]

    @pytest.mark.asyncio
    async def test_rule_fault_denies_and_is_reported(self, schema, permissions):
        broken_rule, _ = counting_rule("broken_rule", RuntimeError("db unavailable"))
        permissions.bind("Query", "broken", broken_rule)
        on_fault = MagicMock()
        shield = Shield(permissions, on_fault=on_fault)

        result = await self.execute(schema, shield, "{ broken open }")

        assert result.data == {"broken": None, "open": "public"}
        assert result.errors[0].message == "Not Authorised!"
        assert result.errors[0].extensions["code"] == "FORBIDDEN"
        on_fault.assert_called_once()
        fault = on_fault.call_args[0][0]
        assert isinstance(fault, RuleFault)
        assert fault.rule == "broken_rule"
        assert fault.details["field"] == "Query.broken"
        assert isinstance(fault.cause, RuntimeError)

    @pytest.mark.asyncio
    async def test_debug_exposes_fault_cause(self, schema, permissions):
        broken_rule, _ = counting_rule("broken_rule", RuntimeError("db unavailable"))
        permissions.bind("Query", "broken", broken_rule)

        result = await self.execute(schema, Shield(permissions, debug=True), "{ broken }")

        assert result.errors[0].message == "Not Authorised! (db unavailable)"

    @pytest.mark.asyncio
    async def test_validation_failure_is_typed(self, schema, permissions):
        permissions.bind("Query", "echo", InputRule("echo_input", {
            "value": FieldSpec(required=True, format="email"),
        }))

        result = await self.execute(schema, Shield(permissions), '{ echo(value: "nope") }')

        assert result.data == {"echo": None}
        assert result.errors[0].extensions == {
            "code": "VALIDATION_FAILED",
            "field": "Query.echo",
            "messages": ["value must be a valid email"],
        }

    @pytest.mark.asyncio
    async def test_allowed_field_passes_arguments_through(self, schema, permissions):
        permissions.bind("Query", "echo", allow)

        result = await self.execute(schema, Shield(permissions), '{ echo(value: "hello") }')

        assert result.data == {"echo": "hello"}

    @pytest.mark.asyncio
    async def test_resolver_errors_pass_through(self, schema, permissions):
        permissions.bind("Query", "failing", allow)

        result = await self.execute(schema, Shield(permissions), "{ failing }")

        assert result.data == {"failing": None}
        assert result.errors[0].message == "resolver exploded"
        assert isinstance(result.errors[0].original_error, ValueError)

    @pytest.mark.asyncio
    async def test_decisions_are_counted(self, schema, permissions):
        permissions.bind("Query", "secret", deny)
        permissions.bind("Query", "open", allow)
        metrics = MetricsCollector("graphql")

        await self.execute(schema, Shield(permissions, metrics=metrics), "{ secret open }")

        assert metrics.registry.get_sample_value("shield_decisions_total", {"outcome": "deny"}) == 1.0
        assert metrics.registry.get_sample_value("shield_decisions_total", {"outcome": "allow"}) == 1.0

    @pytest.mark.asyncio
    async def test_fault_masked_by_or_is_reported_once(self, schema, permissions):
        broken_rule, calls = counting_rule("broken_rule", RuntimeError("db unavailable"))
        guarded = or_(broken_rule, allow)
        permissions.bind("Query", "a", guarded)
        permissions.bind("Query", "b", guarded)
        on_fault = MagicMock()
        metrics = MetricsCollector("graphql")
        shield = Shield(permissions, metrics=metrics, on_fault=on_fault)

        result = await self.execute(schema, shield, "{ a b }")

        assert result.errors is None
        assert result.data == {"a": "A", "b": "B"}
        assert len(calls) == 1
        on_fault.assert_called_once()
        assert on_fault.call_args[0][0].rule == "broken_rule"
        assert metrics.registry.get_sample_value("shield_rule_faults_total", {"rule": "broken_rule"}) == 1.0

    def test_shield_freezes_permissions(self, permissions):
        Shield(permissions)

        assert permissions.frozen


class TestShieldAuthorize:
    """Test cases for engine-agnostic authorization."""

    @pytest.mark.asyncio
    async def test_no_rule_returns_none(self):
        shield = Shield(PermissionMap())

        outcome = await shield.authorize(None, {}, EvaluationContext.create(), FieldInfo(FieldLocator("Query", "x")))

        assert outcome is None

    @pytest.mark.asyncio
    async def test_concurrent_authorizations_share_evaluation(self):
        shared_rule, calls = counting_rule("shared", True, delay=0.01)
        permissions = PermissionMap().bind("Query", "a", shared_rule).bind("Query", "b", shared_rule)
        shield = Shield(permissions)
        context = EvaluationContext.create()

        outcomes = await asyncio.gather(
            shield.authorize(None, {}, context, FieldInfo(FieldLocator("Query", "a"))),
            shield.authorize(None, {}, context, FieldInfo(FieldLocator("Query", "b"))),
        )

        assert all(outcome.allowed for outcome in outcomes)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_introspection_never_guarded(self):
        shield = Shield(PermissionMap().bind_default(deny))

        outcome = await shield.authorize(
            None, {}, EvaluationContext.create(), FieldInfo(FieldLocator("Query", "__typename"))
        )

        assert outcome is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("make_parent", [mixed_keys, self_referencing])
    async def test_unfingerprintable_parent_evaluates_uncached(self, make_parent):
        parent = make_parent()
        checked, calls = counting_rule("checked", True)
        on_fault = MagicMock()
        shield = Shield(PermissionMap().bind("Query", "x", checked), on_fault=on_fault)
        context = EvaluationContext.create()

        outcome = await shield.authorize(parent, {}, context, FieldInfo(FieldLocator("Query", "x")))

        assert outcome.allowed
        assert len(calls) == 1
        assert len(context.cache) == 0
        on_fault.assert_not_called()
