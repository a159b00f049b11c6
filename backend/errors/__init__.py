"""
Querypilot Error Handling Module

Provides standardized error codes, exceptions, response builders and the
stream error normalizer.

Usage:
    from errors import (
        # Error codes
        ErrorCode,

        # Exceptions
        QuerypilotError,
        ValidationError,
        LLMError,
        ExternalServiceError,
        ProviderAPIError,
        RetryError,
        ToolExecutionError,
        ChannelClosed,
        InvalidStateTransition,

        # Response builders
        error_response,
        success_response,
        format_error_for_llm,

        # Stream errors
        normalize_error,
    )

Example:
    from errors import ValidationError

    if not messages:
        raise ValidationError(
            "Messages are required",
            details="Send at least one message",
            parameter="messages",
        )
"""

from .codes import ErrorCode
from .exceptions import (
    QuerypilotError,
    ValidationError,
    LLMError,
    ExternalServiceError,
    ProviderAPIError,
    RetryError,
    ToolExecutionError,
    ChannelClosed,
    InvalidStateTransition,
)
from .response import (
    error_response,
    success_response,
    format_error_for_llm,
    http_status_for,
)
from .handlers import (
    handle_async_tool_errors,
    log_error,
)
from .normalizer import (
    ErrorKind,
    GENERIC_ERROR_MESSAGE,
    classify_error,
    normalize_error,
)

__all__ = [
    # Error codes
    "ErrorCode",
    # Exceptions
    "QuerypilotError",
    "ValidationError",
    "LLMError",
    "ExternalServiceError",
    "ProviderAPIError",
    "RetryError",
    "ToolExecutionError",
    "ChannelClosed",
    "InvalidStateTransition",
    # Response builders
    "error_response",
    "success_response",
    "format_error_for_llm",
    "http_status_for",
    # Decorators
    "handle_async_tool_errors",
    "log_error",
    # Stream errors
    "ErrorKind",
    "GENERIC_ERROR_MESSAGE",
    "classify_error",
    "normalize_error",
]
