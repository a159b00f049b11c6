"""
Message Pruner - compacts history before it reaches an expert.

Policies are small, pure and independent. Each receives the history
without its most recent message (that one is never touched) and returns a
new list; messages a policy leaves without parts are dropped. Anything a
policy cannot classify with certainty is kept.

Default policies:
- PlannerToolPolicy: the synthetic planning tool parts are UI status only
- SupersededValidationPolicy: inside one assistant message, only the last
  finished validate_sql round trip matters; earlier attempts were rejected
  drafts of the same query

Usage:
    pruner = MessagePruner.default()
    history = pruner.prune(messages, agent_context)
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from .messages import PLANNER_TOOL_NAMES, ChatMessage, tool_part

logger = logging.getLogger(__name__)

VALIDATE_SQL_TOOL = "validate_sql"
_FINISHED_STATES = ("output-available", "output-error")


class PruningPolicy(ABC):
    """One removal rule. Must be pure and idempotent."""

    name: str = "policy"

    def enabled(self, agent_context: Dict[str, Any]) -> bool:
        return True

    @abstractmethod
    def apply(self, messages: List[ChatMessage]) -> List[ChatMessage]:
        pass


def _with_parts(message: ChatMessage, parts: List[Dict[str, Any]]) -> Optional[ChatMessage]:
    """Copy of message with new parts; None when nothing is left of it."""
    if not parts and message.parts and not message.content:
        return None
    return message.model_copy(update={"parts": parts})


class PlannerToolPolicy(PruningPolicy):
    """Drop planner status parts and planner tool messages."""

    name = "planner_tools"

    def apply(self, messages: List[ChatMessage]) -> List[ChatMessage]:
        result = []
        for message in messages:
            if message.role == "tool" and message.extras.get("toolName") in PLANNER_TOOL_NAMES:
                continue
            kept = []
            for part in message.parts:
                parsed = tool_part(part)
                if parsed is not None and parsed.tool_name in PLANNER_TOOL_NAMES:
                    continue
                kept.append(part)
            if len(kept) != len(message.parts):
                message = _with_parts(message, kept)
            if message is not None:
                result.append(message)
        return result


class SupersededValidationPolicy(PruningPolicy):
    """Keep only the last finished validate_sql round trip per assistant message.

    Parts without a tool call id or without a finished state are kept.
    """

    name = "superseded_validation"

    def enabled(self, agent_context: Dict[str, Any]) -> bool:
        return not agent_context.get("keepValidationHistory", False)

    def apply(self, messages: List[ChatMessage]) -> List[ChatMessage]:
        result = []
        for message in messages:
            if message.role != "assistant":
                result.append(message)
                continue

            finished: List[int] = []
            call_ids: Dict[int, str] = {}
            for index, part in enumerate(message.parts):
                parsed = tool_part(part)
                if parsed is None or parsed.tool_name != VALIDATE_SQL_TOOL or not parsed.tool_call_id:
                    continue
                call_ids[index] = parsed.tool_call_id
                if parsed.kind == "ui" and parsed.state in _FINISHED_STATES:
                    finished.append(index)
                elif parsed.kind == "result":
                    finished.append(index)

            if len(finished) < 2:
                result.append(message)
                continue

            superseded_ids = {call_ids[i] for i in finished[:-1]}
            superseded_ids.discard(call_ids[finished[-1]])
            kept = [
                part for index, part in enumerate(message.parts)
                if call_ids.get(index) not in superseded_ids
            ]
            pruned = _with_parts(message, kept)
            if pruned is not None:
                result.append(pruned)
        return result


class MessagePruner:
    def __init__(self, policies: Sequence[PruningPolicy]):
        self.policies = tuple(policies)

    @classmethod
    def default(cls) -> "MessagePruner":
        return cls([PlannerToolPolicy(), SupersededValidationPolicy()])

    def prune(self, messages: List[ChatMessage], agent_context: Optional[Dict[str, Any]] = None) -> List[ChatMessage]:
        """Pruned copy of messages. The most recent message is returned unchanged."""
        if len(messages) < 2:
            return list(messages)

        agent_context = agent_context or {}
        head, last = list(messages[:-1]), messages[-1]
        before = sum(len(m.parts) for m in head)

        for policy in self.policies:
            if not policy.enabled(agent_context):
                continue
            head = policy.apply(head)

        removed = before - sum(len(m.parts) for m in head)
        if removed:
            logger.debug(f"Pruned {removed} parts from {len(messages)} messages")
        return head + [last]

