"""
Shared pytest fixtures and fakes for the chat turn tests.

The fake LLM client stands in for services.llm_client.LLMClient: scripted
generate_json() replies for planner/title calls and scripted stream_chat()
chunk lists for sub-agent steps. Every call is recorded for assertions.
"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import pytest

from routers.chat_orchestration.channel import EventChannel
from routers.chat_orchestration.messages import ChatMessage
from services.llm_config import ModelConfig


class FakeLLMClient:
    """Scripted LLM client.

    Args:
        json_replies: Items returned by generate_json(), oldest first. An item
            is a (content, usage) tuple, a dict (JSON-encoded, no usage) or an
            exception instance to raise.
        streams: One chunk list per stream_chat() call. A chunk may be an
            exception instance (raised mid-stream) or {"sleep": seconds}.
        json_handler: Called with the messages instead of json_replies when set.
    """

    def __init__(
        self,
        json_replies: Optional[List[Any]] = None,
        streams: Optional[List[List[Any]]] = None,
        json_handler: Optional[Callable[[List[Dict[str, Any]]], Any]] = None,
    ):
        self.json_replies = list(json_replies or [])
        self.streams = list(streams or [])
        self.json_handler = json_handler
        self.json_calls: List[List[Dict[str, Any]]] = []
        self.stream_calls: List[Dict[str, Any]] = []

    @staticmethod
    def _reply(item: Any):
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, dict):
            return json.dumps(item), None
        return item

    async def generate_json(self, messages, temperature=None):
        self.json_calls.append(messages)
        if self.json_handler is not None:
            item = self.json_handler(messages)
            if asyncio.iscoroutine(item):
                item = await item
            return self._reply(item)
        if not self.json_replies:
            raise AssertionError("Unexpected generate_json() call")
        return self._reply(self.json_replies.pop(0))

    async def stream_chat(self, messages, tools=None, temperature=None):
        self.stream_calls.append({"messages": list(messages), "tools": tools})
        chunks = self.streams.pop(0) if self.streams else [{"content": "OK"}, {"done": True}]
        for chunk in chunks:
            if isinstance(chunk, BaseException):
                raise chunk
            if "sleep" in chunk:
                await asyncio.sleep(chunk["sleep"])
                continue
            yield chunk


def factory_for(client: FakeLLMClient):
    """llm_factory that hands out the same fake for every model config."""
    return lambda model_config: client


# ---------------------------------------------------------------------------
# Message builders (UI message shapes as the web client sends them)
# ---------------------------------------------------------------------------

def user(text: str, id: Optional[str] = None) -> ChatMessage:
    return ChatMessage(id=id, role="user", parts=[{"type": "text", "text": text}])


def assistant(parts: List[Dict[str, Any]], id: Optional[str] = None, metadata=None) -> ChatMessage:
    return ChatMessage(id=id, role="assistant", parts=parts, metadata=metadata)


def text_part(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


def ui_tool(name: str, call_id: str, state: str = "output-available", input=None, output=None) -> Dict[str, Any]:
    part = {"type": f"tool-{name}", "toolCallId": call_id, "state": state, "input": input or {}}
    if output is not None:
        part["output"] = output
    return part


def tool_message(tool_name: str, output: Any, call_id: str = "call_1") -> ChatMessage:
    return ChatMessage(role="tool", toolName=tool_name, toolCallId=call_id, output=output)


async def drain(run: Callable[[EventChannel], Any]):
    """Run a producer against a fresh channel; return (events, producer result)."""
    channel = EventChannel()
    task = asyncio.create_task(run(channel))
    events = [event async for event in channel]
    result = await task
    return events, result


@pytest.fixture
def model_config():
    return ModelConfig(provider="OpenAI", model_id="gpt-4o-mini", api_key="sk-test")
