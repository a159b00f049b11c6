"""
Chat Orchestration - the turn pipeline behind POST /api/chat.

Components:
- TurnMultiplexer: runs one turn and writes its ordered event stream
- IntentClassifier: keyword -> heuristic -> model routing to an intent
- SubAgentRegistry: immutable intent -> sub-agent lookup, built at startup
- MessagePruner: pluggable history pruning before delegation
- TitleGenerator: optional conversation title, bounded by a soft timeout
- EventChannel: backpressured handoff to the HTTP response

Routing Architecture:
    A new turn is planned once; the plan is streamed to the client as a
    synthetic "plan" tool call. When the sub-agent asks the browser to run
    a tool, the client resubmits the conversation with the result; that
    continuation reuses the turn id and the intent recorded in the plan
    output, so the expert does not change mid-turn.

    FALLBACK LOGIC:
    1. Model classification error  -> general
    2. Unknown intent              -> general
    3. Unreadable plan output      -> general
"""

from .agents import SubAgent, SubAgentRegistry, ToolSpec, build_default_registry
from .channel import EventChannel
from .continuation import TurnIdentity, find_previous_intent, resolve_previous_intent, resolve_turn
from .messages import ChatMessage
from .multiplexer import TurnMultiplexer, TurnOutcome, TurnRequest, TurnState
from .planner import IntentClassifier, PlanResult
from .pruner import MessagePruner, PruningPolicy
from .title import TitleGenerator, derive_title
from .usage import TokenUsage, sum_usage
from .wire import MEDIA_TYPE, encode_event

__all__ = [
    "SubAgent",
    "SubAgentRegistry",
    "ToolSpec",
    "build_default_registry",
    "EventChannel",
    "TurnIdentity",
    "find_previous_intent",
    "resolve_previous_intent",
    "resolve_turn",
    "ChatMessage",
    "TurnMultiplexer",
    "TurnOutcome",
    "TurnRequest",
    "TurnState",
    "IntentClassifier",
    "PlanResult",
    "MessagePruner",
    "PruningPolicy",
    "TitleGenerator",
    "derive_title",
    "TokenUsage",
    "sum_usage",
    "MEDIA_TYPE",
    "encode_event",
]
