"""
Standard response builders for CareNav.

Tool executors and the WebSocket surface return plain dicts in these shapes.
"""

from typing import Any, Optional, Union
from .codes import ErrorCode
from .exceptions import CareNavError


def error_response(error: Union[CareNavError, Exception], tool: Optional[str] = None, include_context: bool = True) -> dict:
    """Build a standard error response dictionary.

    Args:
        error: The exception to convert to a response
        tool: Optional tool name for context
        include_context: Whether to include the context dict

    Returns:
        Standard error response dict with success=False

    Example:
        >>> err = NotFoundError("Unknown screen", resource_id="reports/x")
        >>> error_response(err, tool="nav")["error"]["code"]
        'NOT_FOUND_ROUTE'
    """
    if isinstance(error, CareNavError):
        return {
            "success": False,
            "error": {
                "code": error.code.value,
                "message": error.message,
                "details": error.details,
                "tool": tool,
                "recoverable": error.recoverable,
                "context": error.context if include_context else None,
            },
        }

    return {
        "success": False,
        "error": {
            "code": ErrorCode.INTERNAL_UNEXPECTED.value,
            "message": str(error),
            "details": None,
            "tool": tool,
            "recoverable": False,
            "context": None,
        },
    }


def success_response(data: Optional[dict] = None, **kwargs: Any) -> dict:
    """Build a standard success response dictionary.

    Example:
        >>> success_response(mode="dark")
        {"success": True, "mode": "dark"}
    """
    response = {"success": True}

    if data:
        response.update(data)
    if kwargs:
        response.update(kwargs)

    return response
