"""
Token usage accounting.

Provider SDKs report usage in several spellings (camelCase, snake_case,
OpenAI ``prompt_tokens``/``completion_tokens`` with nested details). Every
shape is read into one TokenUsage record; missing fields count as 0.

Usage:
    from routers.chat_orchestration.usage import TokenUsage, sum_usage

    total = sum_usage([planner_usage, agent_usage, None])
    payload = total.to_dict()
"""

import math
from dataclasses import dataclass, fields
from typing import Any, Iterable, Mapping, Optional, Union

UsageLike = Union["TokenUsage", Mapping[str, Any], None]


def _num(value: Any) -> int:
    """Non-negative int from a loosely typed counter; anything else is 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if not math.isfinite(value):
        return 0
    return max(0, int(value))


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _details(data: Mapping[str, Any], *keys: str) -> Mapping[str, Any]:
    value = _first(data, *keys)
    return value if isinstance(value, Mapping) else {}


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    reasoning_tokens: int = 0
    cached_input_tokens: int = 0

    def __post_init__(self):
        # Counters are never negative
        for f in fields(self):
            object.__setattr__(self, f.name, _num(getattr(self, f.name)))

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        if not isinstance(other, TokenUsage):
            return NotImplemented
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            reasoning_tokens=self.reasoning_tokens + other.reasoning_tokens,
            cached_input_tokens=self.cached_input_tokens + other.cached_input_tokens,
        )

    @classmethod
    def from_any(cls, value: UsageLike, strict: bool = True) -> Optional["TokenUsage"]:
        """Read a usage record from any known shape.

        Returns None when ``value`` carries no input, output or total counter.
        With strict=False any mapping is read, so a record holding only
        reasoning or cached counters still contributes them.
        """
        if isinstance(value, TokenUsage):
            return value
        if not isinstance(value, Mapping):
            return None

        input_tokens = _first(value, "inputTokens", "input_tokens", "prompt_tokens", "promptTokens")
        output_tokens = _first(value, "outputTokens", "output_tokens", "completion_tokens", "completionTokens")
        total_tokens = _first(value, "totalTokens", "total_tokens")
        if strict and not any(isinstance(v, (int, float)) and not isinstance(v, bool) for v in (input_tokens, output_tokens, total_tokens)):
            return None

        input_details = _details(value, "inputTokenDetails", "prompt_tokens_details", "input_tokens_details")
        output_details = _details(value, "outputTokenDetails", "completion_tokens_details", "output_tokens_details")

        cached = _num(_first(input_details, "cacheReadTokens", "cached_tokens")) or _num(
            _first(value, "cachedInputTokens", "cached_input_tokens")
        )
        reasoning = _num(_first(output_details, "reasoningTokens", "reasoning_tokens")) or _num(
            _first(value, "reasoningTokens", "reasoning_tokens")
        )

        return cls(
            input_tokens=_num(input_tokens),
            output_tokens=_num(output_tokens),
            total_tokens=_num(total_tokens),
            reasoning_tokens=reasoning,
            cached_input_tokens=cached,
        )

    def to_dict(self) -> dict:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.total_tokens,
            "reasoningTokens": self.reasoning_tokens,
            "cachedInputTokens": self.cached_input_tokens,
        }


EMPTY_USAGE = TokenUsage()


def sum_usage(records: Iterable[UsageLike]) -> TokenUsage:
    """Field-wise sum; missing records and fields count as 0."""
    total = EMPTY_USAGE
    for record in records:
        usage = TokenUsage.from_any(record, strict=False)
        if usage is not None:
            total = total + usage
    return total
