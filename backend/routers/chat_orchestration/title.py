"""
Conversation titles.

derive_title() builds a title from the first user message without a model
call. TitleGenerator asks the model for a nicer one; it runs beside the
turn and is bounded by a soft timeout, so a slow title never delays the
finish event.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from pydantic import BaseModel, ValidationError as PydanticValidationError

from services.json_repair import parse_json_response
from services.llm_config import ModelConfig
from utils.llm import get_llm_client
from .messages import ChatMessage, is_first_user_message, last_user_message, message_text
from .usage import TokenUsage

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 64
TITLE_MAX_TOKENS = 10

TITLE_SYSTEM_PROMPT = f"""You are a title generator for chat sessions.
Given the user's message, reply in JSON with a "title" field: a very short conversation title (2-5 words, max {TITLE_MAX_LENGTH} characters).
No quotes, punctuation, or explanation in the title value."""


def derive_title(text: str) -> Optional[str]:
    """Deterministic title: first words of the message, lower-cased, at most 64 chars.

    When the budget cuts a word, the title ends at the last space that lies
    past the budget's midpoint instead.
    """
    content = (text or "").lower()
    tokens = content.split()
    if not tokens:
        return None

    title = " ".join(tokens[:TITLE_MAX_TOKENS])
    if len(title) > TITLE_MAX_LENGTH:
        title = title[:TITLE_MAX_LENGTH].strip()
        last_space = title.rfind(" ")
        if last_space > TITLE_MAX_LENGTH // 2:
            title = title[:last_space]
    return title


@dataclass(frozen=True)
class TitleResult:
    title: Optional[str]
    usage: Optional[TokenUsage] = None


class _TitleOutput(BaseModel):
    title: str


class TitleGenerator:
    """Model-generated titles for new conversations."""

    def __init__(self, llm_factory: Optional[Callable] = None):
        self._llm_factory = llm_factory or get_llm_client

    async def _generate(self, text: str, model_config: ModelConfig) -> Optional[TitleResult]:
        client = self._llm_factory(model_config)
        content, usage = await client.generate_json(
            [{"role": "system", "content": TITLE_SYSTEM_PROMPT}, {"role": "user", "content": text}]
        )
        try:
            output = _TitleOutput.model_validate(parse_json_response(content))
        except PydanticValidationError:
            return TitleResult(title=None, usage=TokenUsage.from_any(usage))
        title = output.title.strip()[:TITLE_MAX_LENGTH] or None
        return TitleResult(title=title, usage=TokenUsage.from_any(usage))

    async def generate(
        self,
        messages: List[ChatMessage],
        model_config: ModelConfig,
        timeout: Optional[float] = None,
    ) -> Optional[TitleResult]:
        """Title for a brand-new conversation, or None.

        Skipped unless the history is exactly one user message. Errors and
        timeouts return None; they never fail the turn.
        """
        if not is_first_user_message(messages):
            return None
        user = last_user_message(messages)
        text = message_text(user).strip() if user else ""
        if not text:
            return None

        try:
            if timeout is not None and timeout > 0:
                return await asyncio.wait_for(self._generate(text, model_config), timeout)
            return await self._generate(text, model_config)
        except asyncio.TimeoutError:
            logger.info(f"Title generation exceeded {timeout:.1f}s, continuing without it")
            return None
        except Exception as e:
            logger.warning(f"Error generating chat title: {e}")
            return None
