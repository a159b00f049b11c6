"""
AgentStream - the shared runner behind every SubAgent.stream().

Runs the model with the agent's system prompt and tools and turns its
chunks into wire events:

    start-step
    reasoning-start / reasoning-delta / reasoning-end
    text-start / text-delta / text-end
    tool-input-available        (every tool call)
    tool-output-available       (server tools only)
    tool-output-error           (server tool reported failure, unknown tool)
    finish-step

Client tool calls end the stream after the step: the browser runs them and
resubmits the turn. Server tools run here and the model is called again,
up to max_steps steps.

Usage:
    stream = agent.stream(history, model_config, context)
    async for event in stream:
        ...
    stream.usage  # summed over every model call, once exhausted
"""

import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from config import runtime_config
from errors import ErrorCode, format_error_for_llm, ToolExecutionError
from logging_config import log_tool
from utils.llm import get_llm_client
from .agents.base import SubAgent, ToolContext
from .messages import ChatMessage, bound_tool_call_id, to_model_messages
from .usage import EMPTY_USAGE, TokenUsage

logger = logging.getLogger(__name__)


class AgentStream:
    """Async iterable of wire events plus the usage they cost."""

    def __init__(
        self,
        agent: SubAgent,
        history: List[ChatMessage],
        model_config,
        context: Dict[str, Any],
        llm_factory: Optional[Callable] = None,
        max_steps: Optional[int] = None,
    ):
        self.agent = agent
        self._history = history
        self._model_config = model_config
        self._context = context
        self._llm_factory = llm_factory or get_llm_client
        self._max_steps = max_steps or runtime_config.max_steps
        self._usage = EMPTY_USAGE
        self._started = False
        self.finished = False

    @property
    def usage(self) -> TokenUsage:
        """Usage so far; final once the stream is exhausted."""
        return self._usage

    def _add_usage(self, value: Any) -> None:
        usage = TokenUsage.from_any(value)
        if usage is not None:
            self._usage = self._usage + usage

    def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        if self._started:
            raise RuntimeError("AgentStream can only be iterated once")
        self._started = True
        return self._run()

    async def _run(self) -> AsyncIterator[Dict[str, Any]]:
        client = self._llm_factory(self._model_config)
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": self.agent.build_system_prompt(self._context)},
            *to_model_messages(self._history),
        ]
        tools = [spec.to_openai() for spec in self.agent.tools] or None
        tool_context = ToolContext(self._model_config, self._context, self._llm_factory)

        for step in range(self._max_steps):
            yield {"type": "start-step"}

            text_id = f"text-{step}"
            reasoning_id = f"reasoning-{step}"
            text_open = reasoning_open = False
            text_parts: List[str] = []
            tool_calls: List[Dict[str, Any]] = []

            async for chunk in client.stream_chat(messages, tools=tools):
                if chunk.get("thinking"):
                    if not reasoning_open:
                        reasoning_open = True
                        yield {"type": "reasoning-start", "id": reasoning_id}
                    yield {"type": "reasoning-delta", "id": reasoning_id, "delta": chunk["thinking"]}
                elif chunk.get("content"):
                    if reasoning_open:
                        reasoning_open = False
                        yield {"type": "reasoning-end", "id": reasoning_id}
                    if not text_open:
                        text_open = True
                        yield {"type": "text-start", "id": text_id}
                    text_parts.append(chunk["content"])
                    yield {"type": "text-delta", "id": text_id, "delta": chunk["content"]}
                elif chunk.get("tool_calls"):
                    tool_calls.extend(chunk["tool_calls"])
                elif chunk.get("usage"):
                    self._add_usage(chunk["usage"])

            if reasoning_open:
                yield {"type": "reasoning-end", "id": reasoning_id}
            if text_open:
                yield {"type": "text-end", "id": text_id}

            if not tool_calls:
                yield {"type": "finish-step"}
                break

            pending_client_calls = False
            replay_calls: List[Dict[str, Any]] = []
            replay_results: List[Dict[str, Any]] = []

            for call in tool_calls:
                name = call.get("name") or ""
                call_id = bound_tool_call_id(call.get("id") or f"call_{step}")
                arguments = call.get("arguments") or {}
                yield {"type": "tool-input-available", "toolCallId": call_id, "toolName": name, "input": arguments}
                replay_calls.append({"id": call_id, "function": {"name": name, "arguments": arguments}})

                spec = self.agent.tool(name)
                if spec is None:
                    error = ToolExecutionError(f"Unknown tool: {name}", tool=name, code=ErrorCode.TOOL_UNKNOWN)
                    logger.warning(f"{self.agent.id} called unknown tool '{name}'")
                    yield {"type": "tool-output-error", "toolCallId": call_id, "errorText": error.message}
                    replay_results.append(
                        {"role": "tool", "tool_call_id": call_id, "content": format_error_for_llm(error, name)}
                    )
                    continue

                if not spec.server_side:
                    pending_client_calls = True
                    continue

                log_tool(logger, name, "start", call=call_id)
                result = await spec.executor(arguments, tool_context)
                if isinstance(result, dict):
                    self._add_usage(result.get("usage"))
                succeeded = not (isinstance(result, dict) and result.get("success") is False)
                log_tool(logger, name, "end", call=call_id, success=succeeded)

                if succeeded:
                    yield {"type": "tool-output-available", "toolCallId": call_id, "output": result}
                else:
                    error_text = (result.get("error") or {}).get("message") or "Tool failed"
                    yield {"type": "tool-output-error", "toolCallId": call_id, "errorText": error_text}
                replay_results.append({
                    "role": "tool",
                    "tool_call_id": call_id,
                    "content": json.dumps(result, ensure_ascii=False, default=str),
                })

            yield {"type": "finish-step"}

            if pending_client_calls:
                # The client runs its tools and resubmits the turn
                break

            messages.append({"role": "assistant", "content": "".join(text_parts), "tool_calls": replay_calls})
            messages.extend(replay_results)
        else:
            logger.warning(f"{self.agent.id} stopped after {self._max_steps} steps")

        self.finished = True
