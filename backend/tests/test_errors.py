"""
Tests for the Querypilot error handling module.
"""

import asyncio
import logging

import pytest

from errors import (
    ErrorCode,
    QuerypilotError,
    ValidationError,
    LLMError,
    ExternalServiceError,
    ProviderAPIError,
    RetryError,
    ToolExecutionError,
    ChannelClosed,
    error_response,
    success_response,
    format_error_for_llm,
    handle_async_tool_errors,
    http_status_for,
)


class TestErrorCodes:
    """Test error code enum."""

    def test_error_codes_are_strings(self):
        """Error codes should be string values."""
        assert ErrorCode.VALIDATION_PARTIAL_OVERRIDE.value == "VALIDATION_PARTIAL_OVERRIDE"
        assert ErrorCode.LLM_RETRIES_EXHAUSTED.value == "LLM_RETRIES_EXHAUSTED"

    def test_error_codes_have_categories(self):
        """Error codes should follow category naming convention."""
        validation_codes = [c for c in ErrorCode if c.value.startswith("VALIDATION_")]
        assert len(validation_codes) >= 3

        stream_codes = [c for c in ErrorCode if c.value.startswith("STREAM_")]
        assert len(stream_codes) == 2


class TestQuerypilotError:
    """Test base QuerypilotError exception."""

    def test_basic_creation(self):
        err = QuerypilotError("Test error")
        assert err.message == "Test error"
        assert err.details is None
        assert err.code == ErrorCode.INTERNAL_UNEXPECTED
        assert err.recoverable is False

    def test_with_context(self):
        err = QuerypilotError("Test error", foo="bar", count=42)
        assert err.context == {"foo": "bar", "count": 42}

    def test_str_representation(self):
        assert str(QuerypilotError("Test error", details="More info")) == "Test error - More info"
        assert str(QuerypilotError("Test error")) == "Test error"

    def test_to_dict(self):
        d = QuerypilotError("Test error", details="More info", key="value").to_dict()
        assert d["code"] == ErrorCode.INTERNAL_UNEXPECTED.value
        assert d["details"] == "More info"
        assert d["recoverable"] is False
        assert d["context"] == {"key": "value"}


class TestValidationError:
    def test_parameter_context(self):
        err = ValidationError("Messages are required", parameter="messages", expected="non-empty list")
        assert err.code == ErrorCode.VALIDATION_MISSING_PARAM
        assert err.recoverable is True
        assert err.context == {"parameter": "messages", "expected": "non-empty list"}

    def test_code_override(self):
        err = ValidationError("Partial model", code=ErrorCode.VALIDATION_PARTIAL_OVERRIDE)
        assert err.code == ErrorCode.VALIDATION_PARTIAL_OVERRIDE


class TestLLMError:
    def test_error_types_select_codes(self):
        assert LLMError("x", error_type="timeout").code == ErrorCode.LLM_TIMEOUT
        assert LLMError("x", error_type="parse").code == ErrorCode.LLM_PARSE_FAILED
        assert LLMError("x", error_type="invalid").code == ErrorCode.LLM_RESPONSE_INVALID
        assert LLMError("x").code == ErrorCode.LLM_UNAVAILABLE

    def test_model_context(self):
        assert LLMError("x", model="gpt-4o-mini").context == {"model": "gpt-4o-mini"}


class TestExternalErrors:
    def test_network_vs_provider(self):
        assert ExternalServiceError("down").code == ErrorCode.EXTERNAL_NETWORK_ERROR
        assert ExternalServiceError("bad", status_code=502).code == ErrorCode.EXTERNAL_PROVIDER_ERROR

    def test_provider_api_error_keeps_body(self):
        err = ProviderAPIError("Bad request", status_code=400, response_body='{"message": "nope"}', service="openai")
        assert err.status_code == 400
        assert err.response_body == '{"message": "nope"}'
        assert err.recoverable is False
        assert err.context["service"] == "openai"


class TestRetryError:
    def test_keeps_every_attempt(self):
        first, second = TimeoutError("t1"), ConnectionError("c2")
        err = RetryError("Failed after 2 attempts", errors=[first, second], model="m")
        assert err.code == ErrorCode.LLM_RETRIES_EXHAUSTED
        assert err.errors == [first, second]
        assert err.last_error is second
        assert err.context["attempts"] == 2

    def test_empty(self):
        assert RetryError("none", errors=[]).last_error is None


class TestErrorResponse:
    def test_querypilot_error(self):
        err = ToolExecutionError("Model returned no SQL", tool="generate_sql")
        resp = error_response(err, tool="generate_sql")
        assert resp["success"] is False
        assert resp["error"]["code"] == "TOOL_EXECUTION_FAILED"
        assert resp["error"]["tool"] == "generate_sql"
        assert resp["error"]["recoverable"] is True

    def test_foreign_exception(self):
        resp = error_response(ValueError("boom"))
        assert resp["error"]["code"] == ErrorCode.INTERNAL_UNEXPECTED.value
        assert resp["error"]["message"] == "boom"

    def test_without_context(self):
        resp = error_response(ValidationError("x", parameter="messages"), include_context=False)
        assert resp["error"]["context"] is None

    def test_success_response(self):
        assert success_response({"sql": "SELECT 1"}, usage=None) == {"success": True, "sql": "SELECT 1", "usage": None}


class TestFormatErrorForLLM:
    def test_with_tool(self):
        text = format_error_for_llm(ToolExecutionError("Unknown tool: x", details="try again"), "x")
        assert text.startswith("Error in x: Unknown tool: x")
        assert "Details: try again" in text
        assert "recoverable" in text

    def test_foreign(self):
        assert format_error_for_llm(RuntimeError("bad")) == "Error: bad"


class TestHttpStatus:
    def test_mapping(self):
        assert http_status_for(ValidationError("x")) == 400
        assert http_status_for(LLMError("no models")) == 503
        assert http_status_for(LLMError("slow", error_type="timeout")) == 504
        assert http_status_for(ExternalServiceError("reset")) == 503
        assert http_status_for(ChannelClosed("gone")) == 500
        assert http_status_for(KeyError("x")) == 500


class TestHandleAsyncToolErrors:
    def test_passes_results_through(self):
        @handle_async_tool_errors("generate_sql")
        async def tool(args, context):
            return {"success": True, "sql": "SELECT 1"}

        assert asyncio.run(tool({}, None)) == {"success": True, "sql": "SELECT 1"}

    def test_recoverable_becomes_response(self, caplog):
        @handle_async_tool_errors("generate_sql")
        async def tool(args, context):
            raise ToolExecutionError("Model returned no SQL")

        with caplog.at_level(logging.WARNING):
            result = asyncio.run(tool({}, None))
        assert result["success"] is False
        assert result["error"]["message"] == "Model returned no SQL"
        assert "generate_sql" in caplog.text

    def test_non_recoverable_propagates(self):
        @handle_async_tool_errors("generate_sql")
        async def tool(args, context):
            raise LLMError("Provider down")

        with pytest.raises(LLMError):
            asyncio.run(tool({}, None))

    def test_foreign_exceptions_propagate(self):
        @handle_async_tool_errors("generate_sql")
        async def tool(args, context):
            raise KeyError("sql")

        with pytest.raises(KeyError):
            asyncio.run(tool({}, None))
