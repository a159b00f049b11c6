"""
Turn identity and continuation tracking.

A turn can span several HTTP requests: when the model asks the client to
run a tool, the client runs it and resubmits the history with the result
appended. That resubmission is a continuation; it keeps the turn id and
the intent chosen for the original request.

Previous intents are read back from planner tool results, which clients
and older server versions have encoded in several ways. Decoders are tried
in a fixed order and the first one that produces an intent wins.
"""

import json
import logging
import os
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional

from .messages import PLANNER_TOOL_NAMES, ChatMessage, iter_tool_parts, tool_part
from .usage import TokenUsage

logger = logging.getLogger(__name__)

DEFAULT_INTENT = "general"

# Output states that mean a tool round trip finished on the client
_OUTPUT_AVAILABLE = "output-available"


def uuid7() -> uuid.UUID:
    """Time-ordered UUID (version 7): 48-bit ms timestamp, then random bits."""
    unix_ms = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")
    value = (unix_ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76  # version
    value |= ((rand >> 62) & 0xFFF) << 64  # rand_a, 12 bits
    value |= 0b10 << 62  # variant
    value |= rand & ((1 << 62) - 1)  # rand_b
    return uuid.UUID(int=value)


def new_turn_id() -> str:
    return str(uuid7())


@dataclass(frozen=True)
class TurnIdentity:
    is_continuation: bool
    turn_id: str
    # Usage already recorded on the message being continued
    continued_usage: Optional[TokenUsage] = None


def _last_part_output_available(message: ChatMessage) -> bool:
    if not message.parts:
        return False
    parsed = tool_part(message.parts[-1])
    return parsed is not None and parsed.state == _OUTPUT_AVAILABLE


def _ends_with_tool_result(message: ChatMessage) -> bool:
    if message.role == "tool":
        return True
    if message.parts:
        last = message.parts[-1]
        return isinstance(last, dict) and last.get("type") == "tool-result"
    return False


def is_continuation(messages: List[ChatMessage]) -> bool:
    """True when the latest message carries a finished tool round trip."""
    if not messages:
        return False
    last = messages[-1]
    if _ends_with_tool_result(last):
        return True
    return last.role == "assistant" and _last_part_output_available(last)


def _continued_assistant(messages: List[ChatMessage]) -> Optional[ChatMessage]:
    for message in reversed(messages):
        if message.role == "assistant":
            return message
        if message.role == "user":
            return None
    return None


def resolve_turn(messages: List[ChatMessage]) -> TurnIdentity:
    """Decide whether this request continues a turn and which id it carries.

    Never raises: shapes that cannot be read are treated as a new turn.
    """
    try:
        continuing = is_continuation(messages)
    except (AttributeError, TypeError, KeyError) as e:
        logger.warning(f"Unreadable message history, starting a new turn: {e}")
        continuing = False

    if not continuing:
        return TurnIdentity(is_continuation=False, turn_id=new_turn_id())

    assistant = _continued_assistant(messages)
    if assistant is None or not assistant.id:
        logger.warning("Continuation without an assistant message id, assigning a new turn id")
        return TurnIdentity(is_continuation=True, turn_id=new_turn_id())

    usage = None
    if isinstance(assistant.metadata, dict):
        usage = TokenUsage.from_any(assistant.metadata.get("usage"))
    return TurnIdentity(is_continuation=True, turn_id=assistant.id, continued_usage=usage)


# =============================================================================
# Previous intent decoding
# =============================================================================

Decoder = Callable[[Any], Optional[str]]


def _intent_from_object(value: Any) -> Optional[str]:
    if not isinstance(value, dict):
        return None
    intent = value.get("intent")
    if isinstance(intent, str) and intent:
        return intent
    # Older planner results named the agent instead of the intent
    agent_name = value.get("agentName")
    if isinstance(agent_name, str) and agent_name:
        return agent_name.lower()
    return None


def decode_typed_wrapper(payload: Any) -> Optional[str]:
    """``{"type": "json" | "text", "value": ...}``"""
    if not isinstance(payload, dict) or "type" not in payload or "value" not in payload:
        return None
    value = payload["value"]
    if isinstance(value, str):
        return decode_encoded_json(value)
    return _intent_from_object(value)


def decode_bare_object(payload: Any) -> Optional[str]:
    """``{"intent": ...}`` or legacy ``{"agentName": ...}``"""
    return _intent_from_object(payload)


def decode_encoded_json(payload: Any) -> Optional[str]:
    """JSON text, either a string or a list of text parts."""
    if isinstance(payload, list):
        texts = [p.get("text") for p in payload if isinstance(p, dict) and isinstance(p.get("text"), str)]
        if not texts:
            return None
        payload = "".join(texts)
    if not isinstance(payload, str):
        return None
    try:
        parsed = json.loads(payload)
    except ValueError:
        return None
    return decode_typed_wrapper(parsed) or decode_bare_object(parsed)


INTENT_DECODERS: tuple[Decoder, ...] = (
    decode_typed_wrapper,
    decode_bare_object,
    decode_encoded_json,
)


def decode_intent(payload: Any, decoders: Iterable[Decoder] = INTENT_DECODERS) -> Optional[str]:
    """First successful decode wins; None when no decoder matches."""
    for decoder in decoders:
        intent = decoder(payload)
        if intent:
            return intent
    return None


def _normalize_known(intent: str, known_intents: Optional[Iterable[str]]) -> str:
    if known_intents is None:
        return intent
    known = list(known_intents)
    if intent in known:
        return intent
    # Legacy agent names such as "visualization-agent"
    for candidate in known:
        if candidate in intent:
            return candidate
    return intent


def find_previous_intent(
    messages: List[ChatMessage],
    known_intents: Optional[Iterable[str]] = None,
) -> Optional[str]:
    """Most recent intent recorded in the history, newest first."""
    for message in reversed(messages):
        for tp in iter_tool_parts(message):
            if tp.tool_name not in PLANNER_TOOL_NAMES or tp.output is None:
                continue
            intent = decode_intent(tp.output)
            if intent:
                return _normalize_known(intent, known_intents)

        if message.role == "assistant" and isinstance(message.metadata, dict):
            planner = message.metadata.get("planner")
            intent = _intent_from_object(planner)
            if intent:
                return _normalize_known(intent, known_intents)

    return None


def resolve_previous_intent(
    messages: List[ChatMessage],
    known_intents: Optional[Iterable[str]] = None,
) -> str:
    """Intent recorded for the turn being continued, or "general"."""
    return find_previous_intent(messages, known_intents) or DEFAULT_INTENT
