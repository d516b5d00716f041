"""
CareNav Error Handling Module

Provides standardized error codes, exceptions, and response builders
for consistent error handling across the assistant.

Usage:
    from errors import (
        ErrorCode,
        CareNavError,
        ValidationError,
        NotFoundError,
        LLMError,
        ExternalServiceError,
        ToolError,
        error_response,
        success_response,
        handle_async_tool_errors,
        log_error,
    )

Example:
    from errors import handle_async_tool_errors, NotFoundError

    @handle_async_tool_errors("nav")
    async def execute_nav(arguments):
        route = catalog.resolve(arguments.get("key", ""))
        if route is None:
            raise NotFoundError("Unknown screen", resource_id=arguments.get("key"))
        ...
        return success_response(url=route.full_url)
"""

from .codes import ErrorCode
from .exceptions import (
    CareNavError,
    ValidationError,
    NotFoundError,
    LLMError,
    ExternalServiceError,
    ToolError,
)
from .response import (
    error_response,
    success_response,
)
from .handlers import (
    handle_async_tool_errors,
    log_error,
)

__all__ = [
    "ErrorCode",
    "CareNavError",
    "ValidationError",
    "NotFoundError",
    "LLMError",
    "ExternalServiceError",
    "ToolError",
    "error_response",
    "success_response",
    "handle_async_tool_errors",
    "log_error",
]
