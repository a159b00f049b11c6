"""
Error normalization for the chat stream.

Every failure that reaches the end of a turn, whatever shape it has, is
reduced to one user-facing string for the ``error`` event.

Classification happens once, in a fixed order:

    RETRY              retry wrapper; unwrap to the last attempt and recurse
    PROVIDER_RESPONSE  status code + raw response body from a provider
    MESSAGE            anything with a string ``message`` (or an Exception)
    TEXT               a plain string
    UNKNOWN            everything else

Usage:
    from errors.normalizer import normalize_error

    try:
        ...
    except Exception as e:
        await channel.send({"type": "error", "errorText": normalize_error(e)})
"""

import json
import logging
from enum import Enum
from typing import Any, Optional

import httpx

from .exceptions import RetryError

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Sorry, I encountered an error. Please try again."

# Retry wrappers are unwrapped at most this many times
_MAX_UNWRAP_DEPTH = 5


class ErrorKind(str, Enum):
    RETRY = "retry"
    PROVIDER_RESPONSE = "provider_response"
    MESSAGE = "message"
    TEXT = "text"
    UNKNOWN = "unknown"


def _status_code(error: Any) -> Optional[int]:
    for attr in ("status_code", "statusCode"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _response_body(error: Any) -> Optional[str]:
    for attr in ("response_body", "responseBody"):
        value = getattr(error, attr, None)
        if value is not None:
            return value if isinstance(value, str) else None
    # openai.APIStatusError keeps the httpx response
    response = getattr(error, "response", None)
    try:
        text = getattr(response, "text", None)
    except httpx.ResponseNotRead:
        return None
    return text if isinstance(text, str) else None


def _message_of(error: Any) -> Optional[str]:
    if isinstance(error, dict):
        message = error.get("message")
        return message if isinstance(message, str) else None
    message = getattr(error, "message", None)
    if isinstance(message, str):
        return message
    if isinstance(error, BaseException):
        return str(error) or None
    return None


def _is_retry_wrapper(error: Any) -> bool:
    if isinstance(error, RetryError):
        return True
    return isinstance(error, BaseException) and hasattr(error, "last_error")


def classify_error(error: Any) -> ErrorKind:
    """Decide which shape ``error`` has. Never raises."""
    if _is_retry_wrapper(error):
        return ErrorKind.RETRY
    if _status_code(error) is not None and _response_body(error) is not None:
        return ErrorKind.PROVIDER_RESPONSE
    if _message_of(error) is not None:
        return ErrorKind.MESSAGE
    if isinstance(error, str):
        return ErrorKind.TEXT
    return ErrorKind.UNKNOWN


def message_from_provider_body(body: Optional[str], fallback: Optional[str] = None) -> Optional[str]:
    """Pull the most specific message out of a provider's JSON error body.

    Preference: ``error.metadata.raw``, ``error.message``, ``message``,
    then ``fallback``. Bodies that are not JSON objects yield ``fallback``.
    """
    if not body or not isinstance(body, str):
        return fallback
    try:
        parsed = json.loads(body)
    except ValueError:
        return fallback
    if not isinstance(parsed, dict):
        return fallback

    inner = parsed.get("error")
    if isinstance(inner, dict):
        metadata = inner.get("metadata")
        if isinstance(metadata, dict) and isinstance(metadata.get("raw"), str) and metadata["raw"]:
            return metadata["raw"]
        if isinstance(inner.get("message"), str) and inner["message"]:
            return inner["message"]
    if isinstance(parsed.get("message"), str) and parsed["message"]:
        return parsed["message"]
    return fallback


def _normalize(error: Any, depth: int) -> str:
    kind = classify_error(error)

    if kind is ErrorKind.RETRY:
        last = getattr(error, "last_error", None)
        if last is None or depth >= _MAX_UNWRAP_DEPTH:
            return _message_of(error) or GENERIC_ERROR_MESSAGE
        return _normalize(last, depth + 1)

    if kind is ErrorKind.PROVIDER_RESPONSE:
        return message_from_provider_body(_response_body(error), _message_of(error)) or GENERIC_ERROR_MESSAGE

    if kind is ErrorKind.MESSAGE:
        return _message_of(error) or GENERIC_ERROR_MESSAGE

    if kind is ErrorKind.TEXT:
        return error or GENERIC_ERROR_MESSAGE

    return GENERIC_ERROR_MESSAGE


def normalize_error(error: Any) -> str:
    """Map any failure to the text shown to the user. Never raises."""
    try:
        return _normalize(error, 0)
    except Exception as e:
        logger.warning(f"Error normalization failed: {e}")
        return GENERIC_ERROR_MESSAGE
