"""
Tests for the CareNav error handling module.
"""

import asyncio
import logging

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


class TestErrorCodes:
    """Test error code enum."""

    def test_error_codes_are_strings(self):
        """Error codes should be string values."""
        assert ErrorCode.LLM_TIMEOUT.value == "LLM_TIMEOUT"
        assert ErrorCode.NOT_FOUND_ROUTE.value == "NOT_FOUND_ROUTE"

    def test_error_codes_have_categories(self):
        """Error codes should follow category naming convention."""
        llm_codes = [c for c in ErrorCode if c.value.startswith("LLM_")]
        assert len(llm_codes) >= 4

        validation_codes = [c for c in ErrorCode if c.value.startswith("VALIDATION_")]
        assert len(validation_codes) >= 3


class TestCareNavError:
    """Test base CareNavError exception."""

    def test_basic_creation(self):
        """Create basic error with message."""
        err = CareNavError("Test error")
        assert err.message == "Test error"
        assert err.details is None
        assert err.code == ErrorCode.INTERNAL_UNEXPECTED
        assert err.recoverable is False

    def test_with_details(self):
        """Details are appended to str()."""
        err = CareNavError("Test error", details="More info")
        assert str(err) == "Test error - More info"

    def test_with_context(self):
        """Create error with additional context."""
        err = CareNavError("Test error", foo="bar", count=42)
        assert err.context == {"foo": "bar", "count": 42}

    def test_to_dict(self):
        """Convert error to dictionary."""
        err = CareNavError("Test error", details="Details", key="value")
        d = err.to_dict()
        assert d["code"] == "INTERNAL_UNEXPECTED"
        assert d["message"] == "Test error"
        assert d["details"] == "Details"
        assert d["context"] == {"key": "value"}


class TestSpecificErrors:
    """Test the error subclasses pick the right code."""

    def test_validation_error_types(self):
        """error_type selects the validation code."""
        assert ValidationError("x").code == ErrorCode.VALIDATION_MISSING_PARAM
        assert ValidationError("x", error_type="type").code == ErrorCode.VALIDATION_INVALID_TYPE
        assert ValidationError("x", error_type="length").code == ErrorCode.VALIDATION_TOO_LONG
        assert ValidationError("x", error_type="unsafe").code == ErrorCode.VALIDATION_UNSAFE_CONTENT

    def test_validation_error_parameter(self):
        """Parameter name is kept in context."""
        err = ValidationError("Missing key", parameter="key")
        assert err.context == {"parameter": "key"}

    def test_not_found_error(self):
        """Routes and tools have distinct codes."""
        assert NotFoundError("x", resource_type="route", resource_id="a").code == ErrorCode.NOT_FOUND_ROUTE
        assert NotFoundError("x", resource_type="tool").code == ErrorCode.NOT_FOUND_TOOL

    def test_llm_error_recoverable(self):
        """Transport errors are retried, cancellation is not."""
        assert LLMError("x", error_type="timeout").recoverable is True
        assert LLMError("x", error_type="http", status_code=502).code == ErrorCode.LLM_HTTP_ERROR
        assert LLMError("x", error_type="parse").code == ErrorCode.LLM_PARSE_FAILED

        cancelled = LLMError("x", error_type="cancelled")
        assert cancelled.code == ErrorCode.LLM_CANCELLED
        assert cancelled.recoverable is False

    def test_external_service_error(self):
        """Service name selects the code."""
        assert ExternalServiceError("x", service="health").code == ErrorCode.EXTERNAL_HEALTH_FAILED
        assert ExternalServiceError("x", service="router").code == ErrorCode.EXTERNAL_ROUTER_FAILED
        assert ExternalServiceError("x").code == ErrorCode.EXTERNAL_NETWORK_ERROR

    def test_tool_error(self):
        """Tool errors carry the tool name."""
        err = ToolError("x", tool="theme", error_type="cooldown")
        assert err.code == ErrorCode.TOOL_COOLDOWN
        assert err.context == {"tool": "theme"}


class TestResponses:
    """Test response builders."""

    def test_error_response_from_carenav_error(self):
        """CareNavError keeps its code."""
        err = NotFoundError("Unknown screen", resource_id="reports/x")
        response = error_response(err, tool="nav")
        assert response["success"] is False
        assert response["error"]["code"] == "NOT_FOUND_ROUTE"
        assert response["error"]["tool"] == "nav"

    def test_error_response_from_generic_exception(self):
        """Other exceptions map to INTERNAL_UNEXPECTED."""
        response = error_response(ValueError("boom"))
        assert response["error"]["code"] == "INTERNAL_UNEXPECTED"
        assert response["error"]["message"] == "boom"

    def test_error_response_without_context(self):
        """Context can be omitted."""
        err = ValidationError("x", parameter="key")
        assert error_response(err, include_context=False)["error"]["context"] is None

    def test_success_response(self):
        """Success merges data and keyword arguments."""
        assert success_response({"a": 1}, b=2) == {"success": True, "a": 1, "b": 2}
        assert success_response() == {"success": True}


class TestHandleAsyncToolErrors:
    """Test the executor decorator."""

    def test_returns_result_on_success(self):
        """Successful executors pass through."""

        @handle_async_tool_errors("nav")
        async def executor():
            return success_response(key="home")

        assert asyncio.run(executor()) == {"success": True, "key": "home"}

    def test_catches_carenav_error(self):
        """Expected failures become error responses."""

        @handle_async_tool_errors("nav")
        async def executor():
            raise NotFoundError("Unknown screen")

        result = asyncio.run(executor())
        assert result["success"] is False
        assert result["error"]["code"] == "NOT_FOUND_ROUTE"

    def test_catches_unexpected_error(self, caplog):
        """Unexpected failures are logged with a traceback."""

        @handle_async_tool_errors("theme")
        async def executor():
            raise RuntimeError("broken")

        with caplog.at_level(logging.ERROR):
            result = asyncio.run(executor())
        assert result["error"]["code"] == "INTERNAL_UNEXPECTED"
        assert any("Unexpected error" in r.message for r in caplog.records)


class TestLogError:
    """Test log_error formatting."""

    def test_formats_code_and_context(self, caplog):
        """Context prefix and error code are included."""
        logger = logging.getLogger("test.errors")
        with caplog.at_level(logging.ERROR, logger="test.errors"):
            log_error(logger, LLMError("Model timed out", error_type="timeout"), context="stream",
                      include_traceback=False)
        assert caplog.records[-1].message == "[stream] LLM_TIMEOUT: Model timed out"
