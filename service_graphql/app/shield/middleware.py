"""
Enforcement middleware.

Wraps field resolution: looks up the field's rule, evaluates it through the
request cache and either calls the real resolver or replaces the field's
value with a typed authorization error. Each field is decided on its own;
a denied field never fails its siblings.
"""

import inspect
import time
from typing import Any, Callable, Mapping, Optional

from opentelemetry import trace

from shared.errors import FieldAuthorizationError, FieldValidationError, RuleFault, ShieldException
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from .context import FieldInfo
from .outcomes import VALIDATION_FAILED, RuleOutcome
from .permission_map import PermissionMap


tracer = trace.get_tracer(__name__)


class Shield:
    """Field-level authorization for graphql-core.

    Pass the instance in graphql-core's ``middleware`` list; the
    ``context_value`` of every execution must be an ``EvaluationContext``.
    """

    def __init__(
        self,
        permissions: PermissionMap,
        *,
        fallback_error: str = "Not Authorised!",
        debug: bool = False,
        metrics: Optional[MetricsCollector] = None,
        on_fault: Optional[Callable[[RuleFault], None]] = None
    ):
        self.permissions = permissions.freeze()
        self.fallback_error = fallback_error
        self.debug = debug
        self.metrics = metrics
        self.on_fault = on_fault
        self.logger = get_logger("graphql.shield.middleware")

    async def authorize(self, parent: Any, args: Mapping[str, Any], context, info: FieldInfo) -> Optional[RuleOutcome]:
        """Decide one field. Returns None when no rule guards it."""
        locator = info.locator
        if locator.is_introspection:
            return None

        rule = self.permissions.resolve(locator.type_name, locator.field_name)
        if rule is None:
            return None

        start_time = time.time()
        with tracer.start_as_current_span("shield.authorize") as span:
            span.set_attribute("shield.field", str(locator))
            span.set_attribute("shield.rule", rule.identity)
            outcome = await rule.evaluate(parent, args, context, info)
            span.set_attribute("shield.outcome", outcome.kind.value)

        if self.metrics:
            self.metrics.record_decision(outcome.kind.value, time.time() - start_time)

        for fault in context.drain_faults():
            self._report_fault(fault)

        if outcome.is_error:
            self.logger.warning("Field denied by rule fault", field=str(locator), rule=outcome.rule or rule.identity)
        elif outcome.denied:
            self.logger.info(
                "Field denied",
                field=str(locator),
                rule=outcome.rule or rule.identity,
                code=outcome.code,
                reason=outcome.reason
            )
        return outcome

    def _report_fault(self, fault: RuleFault) -> None:
        self.logger.error(
            "Rule fault",
            field=fault.details.get("field"),
            rule=fault.rule,
            error=str(fault.cause)
        )
        if self.metrics:
            self.metrics.record_rule_fault(fault.rule)
        if self.on_fault:
            self.on_fault(fault)

    def rejection(self, outcome: RuleOutcome, field: str) -> ShieldException:
        """Typed error that replaces a rejected field's value."""
        if outcome.code == VALIDATION_FAILED:
            return FieldValidationError(field, list(outcome.messages))
        if outcome.is_error:
            message = self.fallback_error
            if self.debug:
                message = f"{message} ({outcome.reason})"
            return FieldAuthorizationError(field, message)
        return FieldAuthorizationError(field, outcome.reason or self.fallback_error)

    async def resolve(self, next_, root, info, **args):
        """graphql-core middleware hook."""
        field_info = FieldInfo.from_resolve_info(info)
        outcome = await self.authorize(root, args, info.context, field_info)
        if outcome is not None and not outcome.allowed:
            raise self.rejection(outcome, str(field_info.locator))

        result = next_(root, info, **args)
        if inspect.isawaitable(result):
            result = await result
        return result
