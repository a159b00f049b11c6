"""
LLM Client - wraps the async OpenAI SDK for any OpenAI-compatible provider.

Chunk format yielded by stream_chat():
    {"content": "..."}                      visible text delta
    {"thinking": "..."}                     reasoning delta
    {"tool_calls": [{"id", "name", "arguments"}]}   completed tool calls
    {"usage": {...}}                        provider usage counters
    {"done": True}                          end of stream

Key translations:
- Thinking: reasoning_content deltas and inline <think>...</think> tags -> "thinking"
- Tool calls: fragments accumulated per index -> complete dicts with parsed arguments
- Errors: SDK errors -> ProviderAPIError / ExternalServiceError; exhausted retries -> RetryError
"""

import asyncio
import json
import logging
import re
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

import httpx
import openai
from openai import AsyncOpenAI

from config import runtime_config
from errors import ExternalServiceError, LLMError, ProviderAPIError, RetryError
from logging_config import log_llm
from services.llm_config import ModelConfig, default_temperature

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PERMANENT_ERROR_PATTERNS = [
    "model not found",
    "does not exist",
    "invalid model",
    "invalid api key",
]

_TRANSIENT_ERROR_PATTERNS = [
    "connection refused",
    "connection reset",
    "temporarily unavailable",
    "overloaded",
    "timed out",
]


def is_retryable_error(error: BaseException) -> bool:
    """Check if error is transient and worth retrying (not permanent failures)."""
    if isinstance(error, (openai.APITimeoutError, openai.APIConnectionError, openai.RateLimitError)):
        return True
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status == 429 or status >= 500
    error_str = str(error).lower()
    # Never retry permanent errors
    if any(p in error_str for p in _PERMANENT_ERROR_PATTERNS):
        return False
    return any(p in error_str for p in _TRANSIENT_ERROR_PATTERNS)


def _wrap_sdk_error(error: BaseException, model_config: ModelConfig) -> BaseException:
    """Translate OpenAI SDK exceptions into the application's hierarchy."""
    if isinstance(error, openai.APIStatusError):
        try:
            body = error.response.text
        except httpx.ResponseNotRead:
            body = None
        return ProviderAPIError(
            error.message,
            status_code=error.status_code,
            response_body=body,
            service=model_config.provider,
        )
    if isinstance(error, openai.APITimeoutError):
        return LLMError(f"{model_config.label} timed out", model=model_config.model_id, error_type="timeout")
    if isinstance(error, openai.APIConnectionError):
        return ExternalServiceError(
            f"Could not reach {model_config.provider}",
            details=str(error),
            service=model_config.provider,
        )
    return error


class _CircuitBreaker:
    """Prevents cascading failures when a provider is down."""

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 30):
        self.failures = 0
        self.threshold = failure_threshold
        self.timeout = recovery_timeout
        self.last_failure_time = 0.0
        self.state = "closed"  # closed, open, half_open

    def is_open(self) -> bool:
        if self.state == "open":
            if time.time() - self.last_failure_time > self.timeout:
                self.state = "half_open"
                return False
            return True
        return False

    def record_success(self) -> None:
        self.failures = 0
        self.state = "closed"

    def record_failure(self) -> None:
        self.failures += 1
        self.last_failure_time = time.time()
        if self.failures >= self.threshold:
            self.state = "open"
            logger.error("Circuit breaker OPEN - provider unavailable")


def _translate_messages_for_openai(messages: List[Dict]) -> List[Dict]:
    """Translate internal model messages to OpenAI API format.

    Tool results carry their tool_call_id; assistant tool calls get
    JSON-encoded arguments.
    """
    translated = []
    for msg in messages:
        role = msg.get("role", "user")
        content = msg.get("content", "")

        if role == "tool":
            translated.append({
                "role": "tool",
                "content": content if isinstance(content, str) else json.dumps(content),
                "tool_call_id": msg.get("tool_call_id", "call_0"),
            })
            continue

        new_msg = {"role": role, "content": content}
        if role == "assistant" and msg.get("tool_calls"):
            openai_tool_calls = []
            for i, tc in enumerate(msg["tool_calls"]):
                fn = tc.get("function", tc)
                arguments = fn.get("arguments", {})
                openai_tool_calls.append({
                    "id": tc.get("id", f"call_{i}"),
                    "type": "function",
                    "function": {
                        "name": fn.get("name", ""),
                        "arguments": arguments if isinstance(arguments, str) else json.dumps(arguments),
                    },
                })
            new_msg["tool_calls"] = openai_tool_calls
            # OpenAI requires content to be None when tool_calls present
            if not content:
                new_msg["content"] = None

        translated.append(new_msg)

    return translated


def _extract_thinking(content: str) -> Tuple[str, str]:
    """Split <think>...</think> blocks out of a complete response.

    Returns:
        (clean_content, thinking_text)
    """
    if not content:
        return "", ""

    think_pattern = re.compile(r"<think>(.*?)</think>", re.DOTALL)
    thinking = "\n".join(think_pattern.findall(content)).strip()
    clean = think_pattern.sub("", content).strip()
    return clean, thinking


class _ThinkTagSplitter:
    """Incrementally routes streamed text into content and thinking.

    Keeps a short tail buffered so a tag split across two deltas is still
    recognised.
    """

    TAG_OPEN = "<think>"
    TAG_CLOSE = "</think>"

    def __init__(self):
        self.in_think = False
        self.buffer = ""

    def _chunk(self, text: str) -> Dict[str, str]:
        return {"thinking": text} if self.in_think else {"content": text}

    def feed(self, text: str) -> List[Dict[str, str]]:
        out: List[Dict[str, str]] = []
        self.buffer += text
        while self.buffer:
            tag = self.TAG_CLOSE if self.in_think else self.TAG_OPEN
            idx = self.buffer.find(tag)
            if idx >= 0:
                if idx:
                    out.append(self._chunk(self.buffer[:idx]))
                self.buffer = self.buffer[idx + len(tag):]
                self.in_think = not self.in_think
            elif len(self.buffer) > len(tag):
                safe = self.buffer[:-(len(tag) - 1)]
                self.buffer = self.buffer[len(safe):]
                out.append(self._chunk(safe))
            else:
                break  # Wait for more data
        return out

    def flush(self) -> List[Dict[str, str]]:
        if not self.buffer:
            return []
        remaining, self.buffer = self.buffer, ""
        return [self._chunk(remaining)]


def _parse_arguments(raw: str) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse tool call arguments: {raw[:200]}")
        return {}
    return parsed if isinstance(parsed, dict) else {"value": parsed}


class LLMClient:
    """Async client for one provider / model / credential triple."""

    def __init__(
        self,
        model_config: ModelConfig,
        timeout: Optional[float] = None,
        retry_max: Optional[int] = None,
        retry_delay: Optional[float] = None,
        openai_client: Optional[AsyncOpenAI] = None,
    ):
        """
        Args:
            model_config: Provider, model and API key to call
            timeout: Request timeout in seconds
            retry_max: Retries after the first attempt for transient failures
            retry_delay: Base back-off delay in seconds (doubles per retry)
            openai_client: Pre-built SDK client (tests)
        """
        self.model_config = model_config
        self._timeout = timeout if timeout is not None else runtime_config.llm_timeout_s
        self._retry_max = retry_max if retry_max is not None else runtime_config.llm_retry_max
        self._retry_delay = retry_delay if retry_delay is not None else runtime_config.llm_retry_delay_s
        self._breaker = _CircuitBreaker()
        self._openai = openai_client or AsyncOpenAI(
            api_key=model_config.api_key,
            base_url=model_config.base_url,
            timeout=self._timeout,
            max_retries=0,  # retries handled by _with_retry
        )

    @property
    def model(self) -> str:
        return self.model_config.model_id

    async def _with_retry(self, call: Callable[[], Awaitable[T]]) -> T:
        """Run call, retrying transient failures with exponential back-off.

        Raises:
            LLMError: Circuit breaker is open
            RetryError: Every attempt failed with a transient error
            ProviderAPIError / ExternalServiceError: Permanent failure
        """
        if self._breaker.is_open():
            raise LLMError(f"{self.model_config.label} is temporarily unavailable", model=self.model)

        errors: List[BaseException] = []
        for attempt in range(self._retry_max + 1):
            try:
                result = await call()
                self._breaker.record_success()
                return result
            except Exception as e:
                wrapped = _wrap_sdk_error(e, self.model_config)
                errors.append(wrapped)
                if not is_retryable_error(e):
                    self._breaker.record_failure()
                    if wrapped is e:
                        raise
                    raise wrapped from e
                if attempt < self._retry_max:
                    delay = self._retry_delay * (2 ** attempt)
                    logger.warning(
                        f"{self.model_config.label} attempt {attempt + 1} failed ({e}), retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)

        self._breaker.record_failure()
        raise RetryError(
            f"Failed after {len(errors)} attempts. Last error: {errors[-1]}",
            errors=errors,
            model=self.model,
        )

    def _base_kwargs(self, messages: List[Dict], temperature: Optional[float]) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": _translate_messages_for_openai(messages),
            "temperature": temperature if temperature is not None else default_temperature(self.model),
        }

    async def generate_json(
        self, messages: List[Dict], temperature: Optional[float] = None
    ) -> Tuple[str, Dict[str, Any]]:
        """Non-streaming call in JSON mode.

        Returns:
            (content_text, usage_dict). Inline thinking is stripped.
        """
        kwargs = self._base_kwargs(messages, temperature)
        kwargs["response_format"] = {"type": "json_object"}

        log_llm(logger, "start", self.model_config.label)
        start = time.monotonic()
        response = await self._with_retry(lambda: self._openai.chat.completions.create(stream=False, **kwargs))
        log_llm(logger, "end", self.model_config.label, time.monotonic() - start)

        raw_content = (response.choices[0].message.content or "") if response.choices else ""
        content, _thinking = _extract_thinking(raw_content)
        usage = response.usage.model_dump() if getattr(response, "usage", None) else {}
        return content, usage

    async def stream_chat(
        self,
        messages: List[Dict],
        tools: Optional[List[Dict]] = None,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """Stream a chat completion as normalized chunk dicts.

        Only opening the stream is retried; a failure after the first chunk
        propagates unchanged.
        """
        kwargs = self._base_kwargs(messages, temperature)
        kwargs["stream_options"] = {"include_usage": True}
        if tools:
            kwargs["tools"] = tools

        log_llm(logger, "start", self.model_config.label)
        start = time.monotonic()
        stream = await self._with_retry(lambda: self._openai.chat.completions.create(stream=True, **kwargs))

        splitter = _ThinkTagSplitter()
        pending_calls: Dict[int, Dict[str, str]] = {}

        try:
            async for chunk in stream:
                if getattr(chunk, "usage", None):
                    yield {"usage": chunk.usage.model_dump()}

                delta = chunk.choices[0].delta if chunk.choices else None
                if not delta:
                    continue

                reasoning = getattr(delta, "reasoning_content", None) or getattr(delta, "reasoning", None)
                if isinstance(reasoning, str) and reasoning:
                    yield {"thinking": reasoning}

                if delta.content:
                    for piece in splitter.feed(delta.content):
                        yield piece

                for tc in delta.tool_calls or []:
                    slot = pending_calls.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                    if tc.id:
                        slot["id"] = tc.id
                    if tc.function:
                        if tc.function.name:
                            slot["name"] += tc.function.name
                        if tc.function.arguments:
                            slot["arguments"] += tc.function.arguments
        except openai.OpenAIError as e:
            raise _wrap_sdk_error(e, self.model_config) from e

        for piece in splitter.flush():
            yield piece

        if pending_calls:
            yield {
                "tool_calls": [
                    {
                        "id": slot["id"] or f"call_{index}",
                        "name": slot["name"],
                        "arguments": _parse_arguments(slot["arguments"]),
                    }
                    for index, slot in sorted(pending_calls.items())
                ]
            }

        log_llm(logger, "end", self.model_config.label, time.monotonic() - start)
        yield {"done": True}
