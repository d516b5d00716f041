"""
Error handling decorators and utilities for CareNav.

Tool executors never raise into the orchestrator; the decorators below turn
any exception into a standard error response.
"""

import logging
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from .exceptions import CareNavError
from .response import error_response

F = TypeVar("F", bound=Callable[..., Any])


def handle_async_tool_errors(tool_name: str, logger: Optional[logging.Logger] = None):
    """Decorator that catches exceptions from an async tool executor.

    Expected tool failures (CareNavError) are logged at WARNING without a
    traceback; anything else is logged with the stack trace.

    Args:
        tool_name: Name of the tool for error response context
        logger: Optional logger instance (defaults to tool-specific logger)

    Returns:
        Decorated async function that returns error_response on exception
    """

    def decorator(func: F) -> F:
        log = logger or logging.getLogger(f"carenav.tools.{tool_name}")

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> dict:
            try:
                return await func(*args, **kwargs)
            except CareNavError as e:
                log.warning(f"[{tool_name}] {e.code.value}: {e.message}")
                return error_response(e, tool=tool_name)
            except Exception as e:
                log.error(f"[{tool_name}] Unexpected error: {e}", exc_info=True)
                return error_response(e, tool=tool_name)

        return wrapper  # type: ignore

    return decorator


def log_error(
    logger: logging.Logger, error: Exception, context: Optional[str] = None, include_traceback: bool = True
) -> None:
    """Log an error with consistent formatting.

    Example:
        >>> log_error(logger, err, context="stream")
        # Logs: "[stream] LLM_TIMEOUT: Model did not answer in time"
    """
    if isinstance(error, CareNavError):
        message = f"{error.code.value}: {error.message}"
    else:
        message = str(error)

    if context:
        message = f"[{context}] {message}"

    logger.error(message, exc_info=include_traceback)
