"""
Turn Multiplexer - one chat turn from request to finish/error.

Merges planning, sub-agent delegation and usage accounting into a single
ordered event stream written to an EventChannel:

    start
    tool-input-available  (plan)     new turns only
    tool-output-available (plan)     new turns only
    ...sub-agent events, forwarded unchanged...
    finish | error

Exactly one of finish or error ends every stream that reaches the client.
A closed channel is a disconnect, not an error: the turn stops pulling
upstream events and returns quietly.

Usage:
    multiplexer = TurnMultiplexer(registry)
    await multiplexer.run(channel, TurnRequest(messages, model_config))
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from config import runtime_config, RuntimeConfig
from errors import ChannelClosed, InvalidStateTransition, log_error, normalize_error
from logging_config import log_message_in, log_plan, log_stream_out
from services.llm_config import ModelConfig
from utils.llm import get_llm_client
from .agents.registry import SubAgentRegistry
from .channel import EventChannel
from .continuation import find_previous_intent, resolve_previous_intent, resolve_turn, uuid7
from .messages import ChatMessage, is_first_user_message, last_user_message, message_text
from .planner import IntentClassifier, PlanResult
from .pruner import MessagePruner
from .title import TitleGenerator, TitleResult
from .usage import sum_usage

logger = logging.getLogger(__name__)

PLAN_TOOL_NAME = "plan"
PLAN_CALL_PREFIX = "router-"


class TurnState(str, Enum):
    NEW = "new"
    CLASSIFYING = "classifying"
    DISPATCHED = "dispatched"
    STREAMING = "streaming"
    FINISHED = "finished"
    ERRORED = "errored"


_TRANSITIONS = {
    TurnState.NEW: {TurnState.CLASSIFYING, TurnState.DISPATCHED},
    TurnState.CLASSIFYING: {TurnState.DISPATCHED, TurnState.ERRORED},
    TurnState.DISPATCHED: {TurnState.STREAMING, TurnState.ERRORED},
    TurnState.STREAMING: {TurnState.FINISHED, TurnState.ERRORED},
    TurnState.FINISHED: set(),
    TurnState.ERRORED: set(),
}


@dataclass
class TurnRequest:
    """A validated turn submission."""
    messages: List[ChatMessage]
    model_config: ModelConfig
    context: Dict[str, Any] = field(default_factory=dict)
    generate_title: Optional[bool] = None
    agent_context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TurnOutcome:
    """What a finished run() did; handy for logs and tests."""
    turn_id: str
    state: TurnState = TurnState.NEW
    intent: Optional[str] = None
    error: Optional[str] = None

    def advance(self, target: TurnState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidStateTransition(
                f"Turn {self.turn_id} cannot move from {self.state.value} to {target.value}",
                from_state=self.state.value,
                to_state=target.value,
            )
        self.state = target


def plan_call_id() -> str:
    """Synthetic tool call id for the plan step; 39 characters."""
    return f"{PLAN_CALL_PREFIX}{uuid7().hex}"


class TurnMultiplexer:
    """Runs turns against a shared, read-only registry."""

    def __init__(
        self,
        registry: SubAgentRegistry,
        classifier: Optional[IntentClassifier] = None,
        pruner: Optional[MessagePruner] = None,
        title_generator: Optional[TitleGenerator] = None,
        llm_factory: Optional[Callable] = None,
        config: Optional[RuntimeConfig] = None,
    ):
        self.registry = registry
        self._config = config or runtime_config
        self._llm_factory = llm_factory or get_llm_client
        self.classifier = classifier or IntentClassifier(registry, self._llm_factory, self._config)
        self.pruner = pruner or MessagePruner.default()
        self.title_generator = title_generator or TitleGenerator(self._llm_factory)

    def _start_title(self, request: TurnRequest) -> Optional["asyncio.Task[Optional[TitleResult]]"]:
        wanted = request.generate_title if request.generate_title is not None else self._config.generate_title
        if not wanted or not is_first_user_message(request.messages):
            return None
        return asyncio.create_task(
            self.title_generator.generate(request.messages, request.model_config, self._config.title_timeout_s)
        )

    async def _plan(self, channel: EventChannel, request: TurnRequest) -> PlanResult:
        call_id = plan_call_id()
        await channel.send({
            "type": "tool-input-available",
            "toolCallId": call_id,
            "toolName": PLAN_TOOL_NAME,
            "input": {},
            "dynamic": True,
        })
        previous = find_previous_intent(request.messages, self.registry.ids())
        plan = await self.classifier.classify(request.messages, request.model_config, previous)
        await channel.send({"type": "tool-output-available", "toolCallId": call_id, "output": plan.to_output()})
        return plan

    async def run(self, channel: EventChannel, request: TurnRequest) -> TurnOutcome:
        """Drive one turn into the channel. Never raises for turn failures."""
        turn = resolve_turn(request.messages)
        outcome = TurnOutcome(turn_id=turn.turn_id)
        user = last_user_message(request.messages)
        log_message_in(
            logger,
            message_text(user) if user else "",
            turn=turn.turn_id,
            continuation=turn.is_continuation,
            messages=len(request.messages),
            model=request.model_config.label,
        )

        title_task = None
        started = time.monotonic()
        try:
            await channel.send({"type": "start", "turnId": turn.turn_id, "messageId": turn.turn_id})

            if turn.is_continuation:
                outcome.advance(TurnState.DISPATCHED)
                intent = resolve_previous_intent(request.messages, self.registry.ids())
                plan = PlanResult(intent=intent, stage="continuation")
                log_plan(logger, intent, "continuation", turn=turn.turn_id)
            else:
                outcome.advance(TurnState.CLASSIFYING)
                title_task = self._start_title(request)
                plan = await self._plan(channel, request)
                outcome.advance(TurnState.DISPATCHED)
            outcome.intent = plan.intent

            agent = self.registry.resolve(plan.intent)
            history = self.pruner.prune(request.messages, request.agent_context)
            stream = agent.stream(
                history,
                request.model_config,
                request.context,
                llm_factory=self._llm_factory,
                max_steps=self._config.max_steps,
            )

            outcome.advance(TurnState.STREAMING)
            async for event in stream:
                await channel.send(event)

            # The generator owns the title when it runs; it ends by its own deadline
            title_result = None
            if title_task is not None:
                title_result = await title_task
                title = title_result.title if title_result else None
            else:
                title = plan.title
            usage = sum_usage([
                turn.continued_usage,
                plan.usage,
                stream.usage,
                title_result.usage if title_result else None,
            ])

            finish: Dict[str, Any] = {"type": "finish", "usage": usage.to_dict(), "intent": plan.intent}
            metadata: Dict[str, Any] = {
                "usage": usage.to_dict(),
                "planner": {"intent": plan.intent, "usage": plan.usage.to_dict() if plan.usage else None},
            }
            if title:
                finish["title"] = title
                metadata["title"] = title
            finish["messageMetadata"] = metadata

            await channel.send(finish)
            outcome.advance(TurnState.FINISHED)
            log_stream_out(
                logger,
                "finish",
                turn=turn.turn_id,
                intent=plan.intent,
                tokens=usage.total_tokens,
                seconds=f"{time.monotonic() - started:.1f}",
            )

        except ChannelClosed:
            logger.info(f"Client disconnected from turn {turn.turn_id} ({outcome.state.value})")
            log_stream_out(logger, "disconnected", turn=turn.turn_id)

        except Exception as e:
            log_error(logger, e, context=f"Turn {turn.turn_id} {outcome.state.value}")
            if outcome.state != TurnState.NEW:
                outcome.advance(TurnState.ERRORED)
            outcome.error = normalize_error(e)
            try:
                await channel.send({"type": "error", "errorText": outcome.error})
                log_stream_out(logger, "error", turn=turn.turn_id)
            except ChannelClosed:
                log_stream_out(logger, "disconnected", turn=turn.turn_id)

        finally:
            if title_task is not None and not title_task.done():
                title_task.cancel()
            channel.complete()

        return outcome
