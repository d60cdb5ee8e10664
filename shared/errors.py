"""
Shared error handling for the Access Shield services.
"""

from typing import Dict, Any, List, Optional

from opentelemetry import trace
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


def current_trace_id() -> Optional[str]:
    """Return the active trace id as hex, if a recording span exists."""
    current_span = trace.get_current_span()
    if current_span and current_span.is_recording():
        span_context = current_span.get_span_context()
        if span_context.trace_id != 0:
            return f"{span_context.trace_id:032x}"
    return None


class ShieldException(Exception):
    """Base exception for Access Shield services."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def extensions(self) -> Dict[str, Any]:
        """GraphQL error extensions; graphql-core copies these onto located errors."""
        return {"code": self.code, **self.details}

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            trace_id=current_trace_id(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(ShieldException):
    """Invalid rule or permission map setup. Raised at startup, never per request."""

    def __init__(self, message: str = "Invalid shield configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class FieldAuthorizationError(ShieldException):
    """A field was denied by its bound rule."""

    def __init__(self, field: str, message: str = "Not Authorised!", details: Optional[Dict[str, Any]] = None):
        super().__init__("FORBIDDEN", message, {"field": field, **(details or {})})
        self.field = field


class FieldValidationError(ShieldException):
    """An input rule found constraint violations on a field's arguments."""

    def __init__(self, field: str, messages: List[str], details: Optional[Dict[str, Any]] = None):
        message = "; ".join(messages) if messages else "Validation failed"
        super().__init__(
            "VALIDATION_FAILED",
            message,
            {"field": field, "messages": list(messages), **(details or {})}
        )
        self.field = field
        self.messages = list(messages)


class RuleFault(ShieldException):
    """A rule raised while being evaluated."""

    def __init__(self, rule: str, cause: BaseException, field: Optional[str] = None):
        details: Dict[str, Any] = {"rule": rule, "cause": repr(cause)}
        if field:
            details["field"] = field
        super().__init__("RULE_FAULT", f"Rule '{rule}' failed: {cause}", details)
        self.rule = rule
        self.cause = cause


class RequestTimeoutError(ShieldException):
    """A GraphQL request exceeded its time budget and was cancelled."""

    def __init__(self, timeout_seconds: float, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            "TIMEOUT",
            f"Request exceeded {timeout_seconds:g}s and was cancelled",
            {"timeout_seconds": timeout_seconds, **(details or {})}
        )
