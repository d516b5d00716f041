"""
Error codes for the CareNav assistant.

Provides a standardized taxonomy of error codes organized by category.
Input rejections and rate-limit notices are not errors and have no code here;
they are ordinary assistant replies.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for CareNav.

    Categories:
    - VALIDATION_*: Input and tool-argument validation errors
    - NOT_FOUND_*: Resource not found errors
    - LLM_*: Model stream errors
    - EXTERNAL_*: External service errors
    - TOOL_*: Tool execution errors
    - INTERNAL_*: Internal/unexpected errors
    """

    # Validation errors (input checking)
    VALIDATION_MISSING_PARAM = "VALIDATION_MISSING_PARAM"
    VALIDATION_INVALID_TYPE = "VALIDATION_INVALID_TYPE"
    VALIDATION_TOO_LONG = "VALIDATION_TOO_LONG"
    VALIDATION_UNSAFE_CONTENT = "VALIDATION_UNSAFE_CONTENT"

    # Not found errors (missing resources)
    NOT_FOUND_ROUTE = "NOT_FOUND_ROUTE"
    NOT_FOUND_TOOL = "NOT_FOUND_TOOL"

    # LLM errors (model interactions)
    LLM_UNAVAILABLE = "LLM_UNAVAILABLE"
    LLM_TIMEOUT = "LLM_TIMEOUT"
    LLM_HTTP_ERROR = "LLM_HTTP_ERROR"
    LLM_PARSE_FAILED = "LLM_PARSE_FAILED"
    LLM_CANCELLED = "LLM_CANCELLED"

    # External service errors
    EXTERNAL_HEALTH_FAILED = "EXTERNAL_HEALTH_FAILED"
    EXTERNAL_ROUTER_FAILED = "EXTERNAL_ROUTER_FAILED"
    EXTERNAL_NETWORK_ERROR = "EXTERNAL_NETWORK_ERROR"

    # Tool errors (side effects)
    TOOL_NOT_ALLOWED = "TOOL_NOT_ALLOWED"
    TOOL_EXECUTION_FAILED = "TOOL_EXECUTION_FAILED"
    TOOL_COOLDOWN = "TOOL_COOLDOWN"

    # Internal errors (unexpected failures)
    INTERNAL_UNEXPECTED = "INTERNAL_UNEXPECTED"
    INTERNAL_STATE_ERROR = "INTERNAL_STATE_ERROR"
