"""
Custom exception hierarchy for CareNav.

All exceptions inherit from CareNavError and include:
- code: ErrorCode for categorization
- message: Human-readable error message
- details: Optional additional context
- recoverable: Whether a retry can succeed
- context: Additional key-value pairs for debugging
"""

from typing import Any, Optional
from .codes import ErrorCode


class CareNavError(Exception):
    """Base exception for all CareNav errors.

    Attributes:
        code: The ErrorCode categorizing this error
        message: Human-readable error message
        details: Optional additional context for the user
        recoverable: Whether the error can be resolved by retrying
        context: Additional debugging information
    """

    code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED
    recoverable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        recoverable: Optional[bool] = None,
        **context: Any,
    ):
        self.message = message
        self.details = details
        self.context = context if context else None

        if code is not None:
            self.code = code
        if recoverable is not None:
            self.recoverable = recoverable

        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message

    def to_dict(self) -> dict:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
        }


class ValidationError(CareNavError):
    """Error during input or tool-argument validation."""

    code = ErrorCode.VALIDATION_MISSING_PARAM
    recoverable = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        parameter: Optional[str] = None,
        error_type: Optional[str] = None,
        **context: Any,
    ):
        if error_type == "type":
            code = ErrorCode.VALIDATION_INVALID_TYPE
        elif error_type == "length":
            code = ErrorCode.VALIDATION_TOO_LONG
        elif error_type == "unsafe":
            code = ErrorCode.VALIDATION_UNSAFE_CONTENT
        else:
            code = ErrorCode.VALIDATION_MISSING_PARAM

        ctx = {**context}
        if parameter:
            ctx["parameter"] = parameter
        super().__init__(message, details, code=code, **ctx)


class NotFoundError(CareNavError):
    """Error when a route or tool cannot be resolved."""

    code = ErrorCode.NOT_FOUND_ROUTE
    recoverable = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        **context: Any,
    ):
        code = ErrorCode.NOT_FOUND_TOOL if resource_type == "tool" else ErrorCode.NOT_FOUND_ROUTE

        ctx = {**context}
        if resource_type:
            ctx["resource_type"] = resource_type
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message, details, code=code, **ctx)


class LLMError(CareNavError):
    """Error while requesting or reading the model stream.

    Timeouts, HTTP failures and unreadable bodies are recoverable and retried
    by the orchestrator. Cancellation is not.
    """

    code = ErrorCode.LLM_UNAVAILABLE
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        model: Optional[str] = None,
        error_type: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        recoverable = True
        if error_type == "timeout":
            code = ErrorCode.LLM_TIMEOUT
        elif error_type == "http":
            code = ErrorCode.LLM_HTTP_ERROR
        elif error_type == "parse":
            code = ErrorCode.LLM_PARSE_FAILED
        elif error_type == "cancelled":
            code = ErrorCode.LLM_CANCELLED
            recoverable = False
        else:
            code = ErrorCode.LLM_UNAVAILABLE

        ctx = {**context}
        if model:
            ctx["model"] = model
        if status_code:
            ctx["status_code"] = status_code
        super().__init__(message, details, code=code, recoverable=recoverable, **ctx)


class ExternalServiceError(CareNavError):
    """Error with a collaborator service (health endpoint, router)."""

    code = ErrorCode.EXTERNAL_NETWORK_ERROR
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        service: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        if service == "health":
            code = ErrorCode.EXTERNAL_HEALTH_FAILED
        elif service == "router":
            code = ErrorCode.EXTERNAL_ROUTER_FAILED
        else:
            code = ErrorCode.EXTERNAL_NETWORK_ERROR

        ctx = {**context}
        if service:
            ctx["service"] = service
        if status_code:
            ctx["status_code"] = status_code
        super().__init__(message, details, code=code, **ctx)


class ToolError(CareNavError):
    """Error raised by a tool executor."""

    code = ErrorCode.TOOL_EXECUTION_FAILED
    recoverable = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        tool: Optional[str] = None,
        error_type: Optional[str] = None,
        **context: Any,
    ):
        if error_type == "not_allowed":
            code = ErrorCode.TOOL_NOT_ALLOWED
        elif error_type == "cooldown":
            code = ErrorCode.TOOL_COOLDOWN
        else:
            code = ErrorCode.TOOL_EXECUTION_FAILED

        ctx = {**context}
        if tool:
            ctx["tool"] = tool
        super().__init__(message, details, code=code, **ctx)
