"""
Custom exception hierarchy for Querypilot.

All exceptions inherit from QuerypilotError and include:
- code: ErrorCode for categorization
- message: Human-readable error message
- details: Optional additional context
- recoverable: Whether the user can retry/fix the issue
- context: Additional key-value pairs for debugging
"""

from typing import Any, Optional, Sequence
from .codes import ErrorCode


class QuerypilotError(Exception):
    """Base exception for all Querypilot errors.

    Attributes:
        code: The ErrorCode categorizing this error
        message: Human-readable error message
        details: Optional additional context for the user
        recoverable: Whether the error can be resolved by user action
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

        # Allow overriding class defaults
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


class ValidationError(QuerypilotError):
    """Inbound turn submission failed validation."""

    code = ErrorCode.VALIDATION_MISSING_PARAM
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        parameter: Optional[str] = None,
        expected: Optional[str] = None,
        received: Optional[str] = None,
        **context: Any,
    ):
        ctx = {**context}
        if parameter:
            ctx["parameter"] = parameter
        if expected:
            ctx["expected"] = expected
        if received:
            ctx["received"] = received
        super().__init__(message, details, **ctx)


class LLMError(QuerypilotError):
    """Error during LLM interactions."""

    code = ErrorCode.LLM_UNAVAILABLE
    recoverable = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        model: Optional[str] = None,
        error_type: Optional[str] = None,
        **context: Any,
    ):
        # Set appropriate code based on error type
        if error_type == "timeout":
            code = ErrorCode.LLM_TIMEOUT
        elif error_type == "parse":
            code = ErrorCode.LLM_PARSE_FAILED
        elif error_type == "invalid":
            code = ErrorCode.LLM_RESPONSE_INVALID
        else:
            code = ErrorCode.LLM_UNAVAILABLE

        ctx = {**context}
        if model:
            ctx["model"] = model
        super().__init__(message, details, code=code, **ctx)


class ExternalServiceError(QuerypilotError):
    """Error talking to a model provider or other remote service."""

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
        code = ErrorCode.EXTERNAL_PROVIDER_ERROR if status_code else ErrorCode.EXTERNAL_NETWORK_ERROR

        ctx = {**context}
        if service:
            ctx["service"] = service
        if status_code:
            ctx["status_code"] = status_code
        super().__init__(message, details, code=code, **ctx)
        self.status_code = status_code


class ProviderAPIError(ExternalServiceError):
    """A provider answered with an HTTP error.

    Keeps the raw response body so the user-facing message can be pulled
    out of the provider's own error payload.
    """

    recoverable = False

    def __init__(
        self,
        message: str,
        status_code: int,
        response_body: Optional[str] = None,
        service: Optional[str] = None,
        **context: Any,
    ):
        super().__init__(message, service=service, status_code=status_code, **context)
        self.response_body = response_body


class RetryError(LLMError):
    """Every attempt of a retried model call failed.

    Attributes:
        errors: The exception raised by each attempt, oldest first
        last_error: The final attempt's exception
    """

    def __init__(self, message: str, errors: Sequence[BaseException], model: Optional[str] = None):
        super().__init__(message, model=model, attempts=len(errors))
        self.code = ErrorCode.LLM_RETRIES_EXHAUSTED
        self.errors = list(errors)

    @property
    def last_error(self) -> Optional[BaseException]:
        return self.errors[-1] if self.errors else None


class ToolExecutionError(QuerypilotError):
    """A server-side tool failed."""

    code = ErrorCode.TOOL_EXECUTION_FAILED
    recoverable = True

    def __init__(self, message: str, details: Optional[str] = None, tool: Optional[str] = None, **context: Any):
        ctx = {**context}
        if tool:
            ctx["tool"] = tool
        super().__init__(message, details, **ctx)


class ChannelClosed(QuerypilotError):
    """The outbound event channel is closed; the consumer went away."""

    code = ErrorCode.STREAM_CHANNEL_CLOSED
    recoverable = False


class InvalidStateTransition(QuerypilotError):
    """A turn tried to move between states in an order that is not allowed."""

    code = ErrorCode.STREAM_INVALID_STATE
    recoverable = False
