"""
Error codes for Querypilot.

Provides a standardized taxonomy of error codes organized by category.
Use these codes consistently across all error responses.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for Querypilot.

    Categories:
    - VALIDATION_*: Inbound request validation errors
    - LLM_*: Language model errors
    - EXTERNAL_*: Provider / network errors
    - STREAM_*: Turn streaming errors
    - TOOL_*: Server-side tool execution errors
    - INTERNAL_*: Internal/unexpected errors
    """

    # Validation errors (rejected before a stream opens)
    VALIDATION_MISSING_PARAM = "VALIDATION_MISSING_PARAM"
    VALIDATION_INVALID_TYPE = "VALIDATION_INVALID_TYPE"
    VALIDATION_INVALID_FORMAT = "VALIDATION_INVALID_FORMAT"
    VALIDATION_PARTIAL_OVERRIDE = "VALIDATION_PARTIAL_OVERRIDE"
    VALIDATION_UNKNOWN_PROVIDER = "VALIDATION_UNKNOWN_PROVIDER"

    # LLM errors (model interactions)
    LLM_UNAVAILABLE = "LLM_UNAVAILABLE"
    LLM_TIMEOUT = "LLM_TIMEOUT"
    LLM_PARSE_FAILED = "LLM_PARSE_FAILED"
    LLM_RESPONSE_INVALID = "LLM_RESPONSE_INVALID"
    LLM_RETRIES_EXHAUSTED = "LLM_RETRIES_EXHAUSTED"

    # External service errors
    EXTERNAL_PROVIDER_ERROR = "EXTERNAL_PROVIDER_ERROR"
    EXTERNAL_NETWORK_ERROR = "EXTERNAL_NETWORK_ERROR"

    # Streaming errors
    STREAM_CHANNEL_CLOSED = "STREAM_CHANNEL_CLOSED"
    STREAM_INVALID_STATE = "STREAM_INVALID_STATE"

    # Tool errors
    TOOL_EXECUTION_FAILED = "TOOL_EXECUTION_FAILED"
    TOOL_UNKNOWN = "TOOL_UNKNOWN"

    # Internal errors (unexpected failures)
    INTERNAL_UNEXPECTED = "INTERNAL_UNEXPECTED"
    INTERNAL_CONFIG_ERROR = "INTERNAL_CONFIG_ERROR"
