"""
Standard error response builders for Querypilot.

Provides consistent response formats for HTTP errors and server-side tool
results.
"""

from typing import Any, Optional
from .codes import ErrorCode
from .exceptions import QuerypilotError


def error_response(error: QuerypilotError | Exception, tool: Optional[str] = None, include_context: bool = True) -> dict:
    """Build a standard error response dictionary.

    Args:
        error: The exception to convert to a response
        tool: Optional tool name for context
        include_context: Whether to include the context dict (disable for privacy)

    Returns:
        Standard error response dict with success=False

    Example:
        >>> from errors import ValidationError, error_response
        >>> err = ValidationError("Missing parameter", parameter="messages")
        >>> error_response(err)
        {
            "success": False,
            "error": {
                "code": "VALIDATION_MISSING_PARAM",
                "message": "Missing parameter",
                "details": None,
                "tool": None,
                "recoverable": True,
                "context": {"parameter": "messages"}
            }
        }
    """
    if isinstance(error, QuerypilotError):
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

    # Fallback for foreign exceptions
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
        >>> success_response(rows=3)
        {"success": True, "rows": 3}
    """
    response = {"success": True}

    if data:
        response.update(data)
    if kwargs:
        response.update(kwargs)

    return response


def format_error_for_llm(error: QuerypilotError | Exception, tool: Optional[str] = None) -> str:
    """Format an error so the model can read it back as a tool result."""
    prefix = f"Error in {tool}" if tool else "Error"
    if isinstance(error, QuerypilotError):
        parts = [f"{prefix}: {error.message}"]
        if error.details:
            parts.append(f"Details: {error.details}")
        if error.recoverable:
            parts.append("This error may be recoverable by the user.")
        return " ".join(parts)

    return f"{prefix}: {str(error)}"


def http_status_for(error: QuerypilotError | Exception) -> int:
    """Map an error to the HTTP status used when it escapes a route."""
    if not isinstance(error, QuerypilotError):
        return 500
    code = error.code.value
    if code.startswith("VALIDATION_"):
        return 400
    if error.code in (ErrorCode.LLM_UNAVAILABLE, ErrorCode.EXTERNAL_NETWORK_ERROR):
        return 503
    if error.code is ErrorCode.LLM_TIMEOUT:
        return 504
    return 500
