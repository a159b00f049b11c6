"""
Chat message model and part helpers.

Messages arrive from the web client in UI form: an ordered list of parts
(text, reasoning, tool parts in several spellings). Parts are kept as plain
dicts so an unfamiliar shape never fails validation; the helpers below
check every key they read.

Tool part spellings recognised:
    {"type": "tool-<name>", "toolCallId", "state", "input", "output"}
    {"type": "dynamic-tool", "toolName", "toolCallId", "state", ...}
    {"type": "tool-call", "toolName", "toolCallId", "input"}
    {"type": "tool-result", "toolName", "toolCallId", "output"}
    role "tool" messages with top-level toolName / output
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_TOOL_CALL_ID_LENGTH = 40

# Synthetic planning tools; UI status only, never replayed to a model
PLANNER_TOOL_NAMES = ("plan", "identify_intent")

# Part types that are not tool parts even though they start with "tool"
_NON_TOOL_TYPES = {"tool-call", "tool-result"}


class ChatMessage(BaseModel):
    """One message of the conversation, as sent by the client."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    role: str
    parts: List[Dict[str, Any]] = Field(default_factory=list)
    content: Any = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def extras(self) -> Dict[str, Any]:
        return self.model_extra or {}


@dataclass(frozen=True)
class ToolPart:
    """Normalized view of a tool part (or a role "tool" message)."""
    tool_name: Optional[str]
    tool_call_id: Optional[str]
    state: Optional[str]
    input: Any
    output: Any
    kind: str  # "call", "result" or "ui" (call and result in one part)


def bound_tool_call_id(call_id: str) -> str:
    """Keep tool call ids within MAX_TOOL_CALL_ID_LENGTH characters.

    Long ids are shortened to a prefix plus a stable hash so distinct ids
    stay distinct.
    """
    if len(call_id) <= MAX_TOOL_CALL_ID_LENGTH:
        return call_id
    digest = hashlib.sha1(call_id.encode("utf-8")).hexdigest()[:12]
    return f"{call_id[:MAX_TOOL_CALL_ID_LENGTH - 13]}_{digest}"


def message_text(message: ChatMessage) -> str:
    """Concatenate the text parts; fall back to string content."""
    texts = [
        p["text"]
        for p in message.parts
        if isinstance(p, dict) and p.get("type") == "text" and isinstance(p.get("text"), str)
    ]
    if texts:
        return "".join(texts)
    if isinstance(message.content, str):
        return message.content
    if isinstance(message.content, list):
        return "".join(
            c["text"] for c in message.content
            if isinstance(c, dict) and c.get("type") == "text" and isinstance(c.get("text"), str)
        )
    return ""


def tool_part(part: Any) -> Optional[ToolPart]:
    """Interpret one part as a tool part, or None if it is not one."""
    if not isinstance(part, dict):
        return None
    part_type = part.get("type")
    if not isinstance(part_type, str):
        return None

    if part_type == "tool-call":
        return ToolPart(part.get("toolName"), part.get("toolCallId"), None, part.get("input", part.get("args")), None, "call")
    if part_type == "tool-result":
        return ToolPart(
            part.get("toolName"), part.get("toolCallId"), "output-available",
            None, part.get("output", part.get("result")), "result",
        )
    if part_type == "dynamic-tool":
        name = part.get("toolName")
    elif part_type.startswith("tool-") and part_type not in _NON_TOOL_TYPES:
        name = part_type[len("tool-"):]
    else:
        return None
    return ToolPart(
        name if isinstance(name, str) else None,
        part.get("toolCallId"),
        part.get("state"),
        part.get("input"),
        part.get("output"),
        "ui",
    )


def iter_tool_parts(message: ChatMessage) -> Iterator[ToolPart]:
    """Tool parts of a message, including top-level fields of role "tool" messages."""
    if message.role == "tool":
        extras = message.extras
        if "toolName" in extras or "output" in extras or "result" in extras:
            yield ToolPart(
                extras.get("toolName"),
                extras.get("toolCallId"),
                "output-available",
                None,
                extras.get("output", extras.get("result")),
                "result",
            )
        if isinstance(message.content, list):
            for item in message.content:
                parsed = tool_part(item)
                if parsed is not None:
                    yield parsed
    for part in message.parts:
        parsed = tool_part(part)
        if parsed is not None:
            yield parsed


def last_user_message(messages: List[ChatMessage]) -> Optional[ChatMessage]:
    for message in reversed(messages):
        if message.role == "user":
            return message
    return None


def is_first_user_message(messages: List[ChatMessage]) -> bool:
    """True when the conversation holds exactly one user message and no reply yet."""
    users = sum(1 for m in messages if m.role == "user")
    assistants = sum(1 for m in messages if m.role == "assistant")
    return users == 1 and assistants == 0


def _json_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def to_model_messages(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    """Convert UI messages into the chat-completion message list.

    Assistant tool parts become ``tool_calls`` followed by one ``tool``
    message per available result. Reasoning and step markers are dropped.
    """
    converted: List[Dict[str, Any]] = []
    for message in messages:
        if message.role in ("user", "system"):
            converted.append({"role": message.role, "content": message_text(message)})
            continue

        if message.role == "tool":
            for tp in iter_tool_parts(message):
                if tp.tool_name in PLANNER_TOOL_NAMES:
                    continue
                if tp.kind == "result" or tp.output is not None:
                    converted.append({
                        "role": "tool",
                        "tool_call_id": bound_tool_call_id(tp.tool_call_id or "call_0"),
                        "content": _json_text(tp.output),
                    })
            continue

        # assistant
        text = message_text(message)
        calls: List[Dict[str, Any]] = []
        results: List[Dict[str, Any]] = []
        for index, tp in enumerate(iter_tool_parts(message)):
            if not tp.tool_name or tp.tool_name in PLANNER_TOOL_NAMES:
                continue
            call_id = bound_tool_call_id(tp.tool_call_id or f"call_{index}")
            completed = tp.state in ("output-available", "output-error")
            # A UI tool part that never got a result has nothing to replay
            if tp.kind == "call" or (tp.kind == "ui" and completed):
                calls.append({"id": call_id, "function": {"name": tp.tool_name, "arguments": tp.input or {}}})
            if tp.kind == "result" or completed:
                output = tp.output
                if tp.state == "output-error":
                    output = {"error": output if output is not None else "Tool failed"}
                results.append({"role": "tool", "tool_call_id": call_id, "content": _json_text(output)})

        if not text and not calls:
            continue
        entry: Dict[str, Any] = {"role": "assistant", "content": text}
        if calls:
            entry["tool_calls"] = calls
        converted.append(entry)
        converted.extend(results)

    return converted
