"""
Intent Classifier - picks the expert for a new turn.

Cascade, first match wins:
1. Reserved keyword: the message is, or starts with, an agent keyword ("@sql ...")
2. Heuristic: an agent's pattern matches the message text
3. Model: a JSON classification restricted to the registered intents

The model stage never fails the turn. Any error (transport, empty or
malformed output, unknown intent) resolves to the default intent with the
reason recorded in ``reasoning``.

Usage:
    classifier = IntentClassifier(registry)
    plan = await classifier.classify(messages, model_config)
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional

from pydantic import BaseModel, ValidationInfo, field_validator

from config import runtime_config, RuntimeConfig
from errors import LLMError
from logging_config import log_plan
from services.json_repair import parse_json_response
from services.llm_config import ModelConfig
from utils.llm import get_llm_client
from .agents.registry import SubAgentRegistry
from .messages import ChatMessage, is_first_user_message, last_user_message, message_text
from .title import derive_title
from .usage import TokenUsage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanResult:
    intent: str
    reasoning: Optional[str] = None
    title: Optional[str] = None
    usage: Optional[TokenUsage] = None
    stage: str = "model"  # keyword, heuristic, model, fallback, continuation

    def to_output(self) -> dict:
        """Payload of the plan tool's tool-output-available event."""
        output = {"intent": self.intent}
        if self.title:
            output["title"] = self.title
        if self.usage is not None:
            output["usage"] = self.usage.to_dict()
        if self.reasoning:
            output["reasoning"] = self.reasoning
        return output


class PlannerOutput(BaseModel):
    intent: str
    reasoning: str = ""
    title: Optional[str] = None

    @field_validator("intent")
    @classmethod
    def _registered(cls, value: str, info: ValidationInfo) -> str:
        allowed = (info.context or {}).get("intents")
        if allowed is not None and value not in allowed:
            raise ValueError(f"intent must be one of {', '.join(allowed)}")
        return value


_SQL_BLOCK = re.compile(r"```sql\s.*?```", re.DOTALL | re.IGNORECASE)
_JSON_BLOCK = re.compile(r"```json\s.*?```", re.DOTALL | re.IGNORECASE)


def summarize_message(message: ChatMessage, max_chars: int) -> str:
    """One compact line of history for the planner prompt."""
    text = message_text(message)
    text = _SQL_BLOCK.sub("[SQL omitted]", text)
    text = _JSON_BLOCK.sub("[JSON omitted]", text)
    text = " ".join(text.split())
    if len(text) > max_chars:
        text = text[:max_chars] + "..."
    return f"{message.role}: {text}"


def build_planner_prompt(
    registry: SubAgentRegistry,
    messages: List[ChatMessage],
    title_required: bool,
    previous_intent: Optional[str] = None,
    config: Optional[RuntimeConfig] = None,
) -> str:
    cfg = config or runtime_config
    lines = [
        "You route a ClickHouse console chat to one expert. Pick the intent that best fits the latest user message.",
        "",
        "## Experts",
    ]
    lines.extend(f"- {agent.id}: {agent.description}" for agent in registry)

    lines += ["", "## Output", 'Reply in JSON: {"intent": "<one of the ids above>", "reasoning": "<one sentence>"'
              + (', "title": "<2-5 word conversation title>"}' if title_required else "}")]
    if title_required:
        lines.append("This is the first message of the conversation, so a short title is required.")
    if previous_intent:
        lines += ["", f"The previous turn was handled by: {previous_intent}. Keep it for follow-ups on the same task."]

    history = [m for m in messages if m.role in ("user", "assistant")][-cfg.planner_history_window:]
    if history:
        lines += ["", "## Conversation (most recent last)"]
        lines.extend(summarize_message(m, cfg.planner_message_chars) for m in history)
    return "\n".join(lines)


class IntentClassifier:
    """Keyword -> heuristic -> model cascade over a SubAgentRegistry."""

    def __init__(
        self,
        registry: SubAgentRegistry,
        llm_factory: Optional[Callable] = None,
        config: Optional[RuntimeConfig] = None,
    ):
        self.registry = registry
        self._llm_factory = llm_factory or get_llm_client
        self._config = config or runtime_config

    def _local_title(self, messages: List[ChatMessage], first: bool) -> Optional[str]:
        if not first:
            return None
        user = last_user_message(messages)
        return derive_title(message_text(user)) if user else None

    def classify_by_keyword(self, text: str) -> Optional[str]:
        for agent in self.registry:
            if agent.matches_keyword(text):
                return agent.id
        return None

    def classify_by_heuristics(self, text: str) -> Optional[str]:
        for agent in self.registry:
            if agent.matches_heuristics(text):
                return agent.id
        return None

    async def classify(
        self,
        messages: List[ChatMessage],
        model_config: ModelConfig,
        previous_intent: Optional[str] = None,
    ) -> PlanResult:
        user = last_user_message(messages)
        if user is None:
            return PlanResult(intent=self.registry.default_intent, reasoning="No user message found", stage="fallback")

        text = message_text(user).strip()
        first = is_first_user_message(messages)

        intent = self.classify_by_keyword(text)
        if intent:
            log_plan(logger, intent, "keyword")
            return PlanResult(intent, "Keyword override", self._local_title(messages, first), stage="keyword")

        intent = self.classify_by_heuristics(text)
        if intent:
            log_plan(logger, intent, "heuristic")
            return PlanResult(
                intent, f"{intent} heuristics detected", self._local_title(messages, first), stage="heuristic"
            )

        return await self.classify_by_model(messages, model_config, first, previous_intent)

    async def classify_by_model(
        self,
        messages: List[ChatMessage],
        model_config: ModelConfig,
        first: bool,
        previous_intent: Optional[str] = None,
    ) -> PlanResult:
        prompt = build_planner_prompt(self.registry, messages, first, previous_intent, self._config)
        usage = None
        try:
            client = self._llm_factory(model_config)
            content, raw_usage = await client.generate_json([{"role": "user", "content": prompt}])
            usage = TokenUsage.from_any(raw_usage)
            data = parse_json_response(content)
            if data is None:
                raise LLMError("No output generated by the planner", model=model_config.model_id, error_type="invalid")
            output = PlannerOutput.model_validate(data, context={"intents": self.registry.ids()})
        except Exception as e:
            logger.warning(f"Intent classification failed, using {self.registry.default_intent}: {e}")
            log_plan(logger, self.registry.default_intent, "fallback")
            return PlanResult(
                intent=self.registry.default_intent,
                reasoning=f"Classification failed: {e}",
                title=self._local_title(messages, first),
                usage=usage,
                stage="fallback",
            )

        title = output.title.strip() if output.title else None
        if first and not title:
            title = self._local_title(messages, first)
        log_plan(logger, output.intent, "model")
        return PlanResult(
            intent=output.intent,
            reasoning=output.reasoning or None,
            title=title if first else None,
            usage=usage,
            stage="model",
        )
