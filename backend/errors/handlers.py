"""
Error handling decorators and utilities for Querypilot.

Provides a decorator for server-side tool executors and a consistent
error logger.
"""

import logging
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from .exceptions import QuerypilotError
from .response import error_response

# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., Any])


def handle_async_tool_errors(tool_name: str, logger: Optional[logging.Logger] = None):
    """Decorator that turns recoverable tool failures into error responses.

    The agent runner reports a result with ``success`` False as a
    ``tool-output-error`` event and lets the model react to it. Failures
    that are not recoverable propagate and end the turn with an error.

    Args:
        tool_name: Name of the tool for error response context
        logger: Optional logger instance (defaults to tool-specific logger)

    Example:
        >>> @handle_async_tool_errors("generate_sql")
        ... async def generate_sql(args, context):
        ...     raise ToolExecutionError("Model returned no SQL")  # -> success False
    """

    def decorator(func: F) -> F:
        log = logger or logging.getLogger(f"querypilot.tools.{tool_name}")

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> dict:
            try:
                return await func(*args, **kwargs)
            except QuerypilotError as e:
                if not e.recoverable:
                    raise
                log.warning(f"[{tool_name}] {e.code.value}: {e.message}")
                return error_response(e, tool=tool_name)

        return wrapper  # type: ignore

    return decorator


def log_error(
    logger: logging.Logger, error: BaseException, context: Optional[str] = None, include_traceback: bool = True
) -> None:
    """Log an error with consistent formatting.

    Example:
        >>> log_error(logger, err, context="Turn 0192...")
        # Logs: "[Turn 0192...] LLM_TIMEOUT: Model call timed out"
    """
    if isinstance(error, QuerypilotError):
        message = f"{error.code.value}: {error.message}"
    else:
        message = str(error) or type(error).__name__

    if context:
        message = f"[{context}] {message}"

    logger.error(message, exc_info=(type(error), error, error.__traceback__) if include_traceback else False)
