"""
Tests for the OpenAI-compatible LLM client.

The SDK client is replaced with a MagicMock whose chat.completions.create
is an AsyncMock, so no network is touched.
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from errors import ErrorCode, ExternalServiceError, LLMError, ProviderAPIError, RetryError
from services.llm_client import (
    LLMClient,
    _extract_thinking,
    _parse_arguments,
    _ThinkTagSplitter,
    _translate_messages_for_openai,
    _wrap_sdk_error,
    is_retryable_error,
)
from services.llm_config import ModelConfig

_REQUEST = httpx.Request("POST", "https://provider.test/v1/chat/completions")


def _status_error(cls, status: int, body=None):
    response = httpx.Response(status, json=body or {"error": {"message": "nope"}}, request=_REQUEST)
    return cls("nope", response=response, body=body)


@pytest.fixture
def openai_config():
    return ModelConfig(provider="OpenAI", model_id="gpt-4o-mini", api_key="sk-test")


def _client(config, create, retry_max=2):
    sdk = MagicMock()
    sdk.chat.completions.create = create
    return LLMClient(config, timeout=5, retry_max=retry_max, retry_delay=0, openai_client=sdk)


def _completion(content, usage=None):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(model_dump=lambda: usage) if usage else None,
    )


def _chunk(content=None, tool_calls=None, usage=None, reasoning=None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls, reasoning_content=reasoning)
    return SimpleNamespace(
        choices=[SimpleNamespace(delta=delta)] if (content or tool_calls or reasoning) else [],
        usage=SimpleNamespace(model_dump=lambda: usage) if usage else None,
    )


def _tool_delta(index, id=None, name=None, arguments=None):
    return SimpleNamespace(index=index, id=id, function=SimpleNamespace(name=name, arguments=arguments))


async def _astream(chunks):
    for chunk in chunks:
        if isinstance(chunk, BaseException):
            raise chunk
        yield chunk


async def _collect(agen):
    return [item async for item in agen]


class TestTranslateMessages:
    """Internal message dicts -> OpenAI wire format."""

    def test_tool_message_keeps_call_id_and_encodes_content(self):
        out = _translate_messages_for_openai([
            {"role": "tool", "tool_call_id": "call_9", "content": {"rows": 3}},
        ])
        assert out == [{"role": "tool", "content": '{"rows": 3}', "tool_call_id": "call_9"}]

    def test_assistant_tool_calls_encode_arguments(self):
        out = _translate_messages_for_openai([
            {
                "role": "assistant",
                "content": "",
                "tool_calls": [{"id": "c1", "function": {"name": "explore_schema", "arguments": {"db": "default"}}}],
            },
        ])
        msg = out[0]
        assert msg["content"] is None
        call = msg["tool_calls"][0]
        assert call["type"] == "function"
        assert call["function"]["name"] == "explore_schema"
        assert json.loads(call["function"]["arguments"]) == {"db": "default"}

    def test_string_arguments_pass_through(self):
        out = _translate_messages_for_openai([
            {"role": "assistant", "content": "Checking", "tool_calls": [{"function": {"name": "x", "arguments": "{}"}}]},
        ])
        assert out[0]["content"] == "Checking"
        assert out[0]["tool_calls"][0]["id"] == "call_0"
        assert out[0]["tool_calls"][0]["function"]["arguments"] == "{}"

    def test_plain_messages_unchanged(self):
        messages = [{"role": "system", "content": "rules"}, {"role": "user", "content": "hi"}]
        assert _translate_messages_for_openai(messages) == messages


class TestThinking:
    """Inline <think> handling."""

    def test_extract_thinking(self):
        clean, thinking = _extract_thinking('<think>pick general</think>{"intent": "general"}')
        assert clean == '{"intent": "general"}'
        assert thinking == "pick general"

    def test_extract_without_tags(self):
        assert _extract_thinking("plain") == ("plain", "")
        assert _extract_thinking("") == ("", "")

    def test_splitter_handles_tags_split_across_deltas(self):
        splitter = _ThinkTagSplitter()
        pieces = []
        for delta in ["Hello <th", "ink>hmm, let", " me see</thi", "nk> world"]:
            pieces.extend(splitter.feed(delta))
        pieces.extend(splitter.flush())

        content = "".join(p["content"] for p in pieces if "content" in p)
        thinking = "".join(p["thinking"] for p in pieces if "thinking" in p)
        assert content == "Hello  world"
        assert thinking == "hmm, let me see"

    def test_splitter_flushes_short_tail(self):
        splitter = _ThinkTagSplitter()
        assert splitter.feed("Hi") == []
        assert splitter.flush() == [{"content": "Hi"}]
        assert splitter.flush() == []


class TestParseArguments:

    def test_object(self):
        assert _parse_arguments('{"sql": "SELECT 1"}') == {"sql": "SELECT 1"}

    def test_empty_and_invalid(self):
        assert _parse_arguments("") == {}
        assert _parse_arguments("{not json") == {}

    def test_non_object_wrapped(self):
        assert _parse_arguments("[1, 2]") == {"value": [1, 2]}


class TestErrorClassification:
    """Retryable vs permanent errors and SDK error wrapping."""

    def test_sdk_transient_errors_retry(self):
        assert is_retryable_error(openai.APITimeoutError(request=_REQUEST))
        assert is_retryable_error(openai.APIConnectionError(request=_REQUEST))
        assert is_retryable_error(_status_error(openai.InternalServerError, 500))

    def test_status_codes(self):
        assert is_retryable_error(ProviderAPIError("busy", status_code=503))
        assert is_retryable_error(ProviderAPIError("slow down", status_code=429))
        assert not is_retryable_error(ProviderAPIError("bad key", status_code=401))
        assert not is_retryable_error(_status_error(openai.NotFoundError, 404))

    def test_message_patterns(self):
        assert is_retryable_error(Exception("Connection reset by peer"))
        assert not is_retryable_error(Exception("Model not found, connection reset"))
        assert not is_retryable_error(ValueError("boom"))

    def test_wrap_status_error(self, openai_config):
        body = {"error": {"message": "Incorrect API key provided"}}
        wrapped = _wrap_sdk_error(_status_error(openai.AuthenticationError, 401, body), openai_config)
        assert isinstance(wrapped, ProviderAPIError)
        assert wrapped.status_code == 401
        assert "Incorrect API key provided" in wrapped.response_body
        assert wrapped.code == ErrorCode.EXTERNAL_PROVIDER_ERROR

    def test_wrap_timeout_and_connection(self, openai_config):
        timeout = _wrap_sdk_error(openai.APITimeoutError(request=_REQUEST), openai_config)
        assert isinstance(timeout, LLMError)
        assert timeout.code == ErrorCode.LLM_TIMEOUT

        conn = _wrap_sdk_error(openai.APIConnectionError(request=_REQUEST), openai_config)
        assert isinstance(conn, ExternalServiceError)
        assert conn.code == ErrorCode.EXTERNAL_NETWORK_ERROR

    def test_unknown_errors_unchanged(self, openai_config):
        error = ValueError("boom")
        assert _wrap_sdk_error(error, openai_config) is error


class TestRetry:
    """_with_retry through generate_json."""

    def test_transient_then_success(self, openai_config):
        create = AsyncMock(side_effect=[
            _status_error(openai.InternalServerError, 500),
            _completion('{"intent": "general"}', {"prompt_tokens": 5, "completion_tokens": 2}),
        ])
        client = _client(openai_config, create)

        content, usage = asyncio.run(client.generate_json([{"role": "user", "content": "hi"}]))

        assert content == '{"intent": "general"}'
        assert usage == {"prompt_tokens": 5, "completion_tokens": 2}
        assert create.await_count == 2

    def test_retries_exhausted(self, openai_config):
        create = AsyncMock(side_effect=_status_error(openai.InternalServerError, 500))
        client = _client(openai_config, create, retry_max=2)

        with pytest.raises(RetryError) as exc_info:
            asyncio.run(client.generate_json([{"role": "user", "content": "hi"}]))

        assert create.await_count == 3
        assert len(exc_info.value.errors) == 3
        assert isinstance(exc_info.value.last_error, ProviderAPIError)
        assert exc_info.value.code == ErrorCode.LLM_RETRIES_EXHAUSTED

    def test_permanent_error_not_retried(self, openai_config):
        create = AsyncMock(side_effect=_status_error(openai.NotFoundError, 404))
        client = _client(openai_config, create)

        with pytest.raises(ProviderAPIError) as exc_info:
            asyncio.run(client.generate_json([{"role": "user", "content": "hi"}]))

        assert exc_info.value.status_code == 404
        assert create.await_count == 1

    def test_zero_retries_single_attempt(self, openai_config):
        create = AsyncMock(side_effect=_status_error(openai.InternalServerError, 500))
        client = _client(openai_config, create, retry_max=0)

        with pytest.raises(RetryError):
            asyncio.run(client.generate_json([{"role": "user", "content": "hi"}]))
        assert create.await_count == 1

    def test_circuit_breaker_opens(self, openai_config):
        create = AsyncMock(side_effect=ValueError("boom"))
        client = _client(openai_config, create, retry_max=0)

        async def hammer():
            for _ in range(5):
                with pytest.raises(ValueError):
                    await client.generate_json([{"role": "user", "content": "hi"}])
            await client.generate_json([{"role": "user", "content": "hi"}])

        with pytest.raises(LLMError, match="temporarily unavailable"):
            asyncio.run(hammer())
        assert create.await_count == 5

    def test_json_mode_and_thinking_stripped(self, openai_config):
        create = AsyncMock(return_value=_completion('<think>hmm</think>{"a": 1}'))
        client = _client(openai_config, create)

        content, usage = asyncio.run(client.generate_json([{"role": "user", "content": "hi"}], temperature=0.1))

        assert content == '{"a": 1}'
        assert usage == {}
        kwargs = create.await_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.1
        assert kwargs["stream"] is False


class TestStreamChat:
    """Streaming normalization."""

    def test_content_thinking_usage_and_done(self, openai_config):
        chunks = [
            _chunk(reasoning="planning"),
            _chunk(content="<think>inner</think>Top "),
            _chunk(content="10 rows"),
            _chunk(usage={"prompt_tokens": 9, "completion_tokens": 4}),
        ]
        create = AsyncMock(return_value=_astream(chunks))
        client = _client(openai_config, create)

        out = asyncio.run(_collect(client.stream_chat([{"role": "user", "content": "hi"}])))

        assert out[-1] == {"done": True}
        assert {"usage": {"prompt_tokens": 9, "completion_tokens": 4}} in out
        thinking = "".join(c["thinking"] for c in out if "thinking" in c)
        content = "".join(c["content"] for c in out if "content" in c)
        assert thinking == "planninginner"
        assert content == "Top 10 rows"
        assert create.await_args.kwargs["stream_options"] == {"include_usage": True}

    def test_tool_call_fragments_assembled(self, openai_config):
        chunks = [
            _chunk(tool_calls=[_tool_delta(0, id="call_a", name="validate_sql", arguments='{"sql": ')]),
            _chunk(tool_calls=[_tool_delta(0, arguments='"SELECT 1"}')]),
            _chunk(tool_calls=[_tool_delta(1, name="explore_schema", arguments="")]),
        ]
        create = AsyncMock(return_value=_astream(chunks))
        client = _client(openai_config, create)
        tools = [{"type": "function", "function": {"name": "validate_sql"}}]

        out = asyncio.run(_collect(client.stream_chat([{"role": "user", "content": "hi"}], tools=tools)))

        calls = next(c["tool_calls"] for c in out if "tool_calls" in c)
        assert calls == [
            {"id": "call_a", "name": "validate_sql", "arguments": {"sql": "SELECT 1"}},
            {"id": "call_1", "name": "explore_schema", "arguments": {}},
        ]
        assert create.await_args.kwargs["tools"] == tools

    def test_mid_stream_sdk_error_wrapped(self, openai_config):
        chunks = [_chunk(content="partial answer "), openai.APIConnectionError(request=_REQUEST)]
        create = AsyncMock(return_value=_astream(chunks))
        client = _client(openai_config, create)

        async def consume():
            seen = []
            async for chunk in client.stream_chat([{"role": "user", "content": "hi"}]):
                seen.append(chunk)
            return seen

        with pytest.raises(ExternalServiceError):
            asyncio.run(consume())
        assert create.await_count == 1
