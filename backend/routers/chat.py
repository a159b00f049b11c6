"""
Querypilot Chat Router - NDJSON turn streaming

POST /api/chat validates a turn submission, then streams the turn as
newline-delimited JSON envelopes. Validation and model selection happen
before the response starts, so a rejected request never opens a stream.

Architecture:
- chat.py: HTTP endpoints, request validation, response streaming
- chat_orchestration/: the turn pipeline
  - multiplexer.py: TurnMultiplexer (start -> plan -> sub-agent -> finish/error)
  - planner.py: IntentClassifier
  - agents/: SubAgent descriptors and the SubAgentRegistry
  - pruner.py: MessagePruner
  - channel.py: EventChannel backpressure between turn and response body
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Set

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from errors import ErrorCode, ValidationError
from services.llm_config import resolve_model_config
from .chat_orchestration import (
    ChatMessage,
    EventChannel,
    MEDIA_TYPE,
    SubAgentRegistry,
    TurnMultiplexer,
    TurnRequest,
    build_default_registry,
    encode_event,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat")

# Strong references to running turns until they finish
_running_turns: Set["asyncio.Task"] = set()


class ModelOverride(BaseModel):
    """Explicit model choice; all three fields or none are accepted."""
    provider: Optional[str] = None
    modelId: Optional[str] = None
    apiKey: Optional[str] = None


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(min_length=1)
    context: Optional[Dict[str, Any]] = None
    model: Optional[ModelOverride] = None
    generateTitle: Optional[bool] = None
    agentContext: Optional[Dict[str, Any]] = None


def _first_problem(error: PydanticValidationError) -> ValidationError:
    problem = error.errors()[0]
    location = ".".join(str(p) for p in problem.get("loc", ())) or "body"
    missing = problem.get("type") == "missing" or location == "messages"
    return ValidationError(
        f"Invalid request: {location}",
        details=problem.get("msg"),
        code=ErrorCode.VALIDATION_MISSING_PARAM if missing else ErrorCode.VALIDATION_INVALID_TYPE,
        parameter=location,
    )


def parse_chat_request(raw: bytes) -> ChatRequest:
    """Decode and validate a turn submission.

    Raises:
        ValidationError: Malformed JSON, missing or empty messages, bad field types
    """
    try:
        payload = json.loads(raw or b"null")
    except json.JSONDecodeError as e:
        raise ValidationError("Request body is not valid JSON", details=str(e), code=ErrorCode.VALIDATION_INVALID_FORMAT)
    if not isinstance(payload, dict):
        raise ValidationError("Messages are required", details="Send a JSON object with a messages list", parameter="messages")
    try:
        return ChatRequest.model_validate(payload)
    except PydanticValidationError as e:
        raise _first_problem(e)


def build_turn_request(body: ChatRequest) -> TurnRequest:
    """Resolve the model and assemble the turn.

    Raises:
        ValidationError: Partial model override or unknown provider
        LLMError: No model given and none configured on the server
    """
    override = body.model.model_dump() if body.model is not None else None
    model_config = resolve_model_config(override)
    return TurnRequest(
        messages=body.messages,
        model_config=model_config,
        context=body.context or {},
        generate_title=body.generateTitle,
        agent_context=body.agentContext or {},
    )


def get_registry(request: Request) -> SubAgentRegistry:
    registry = getattr(request.app.state, "agent_registry", None)
    if registry is None:
        registry = build_default_registry()
        request.app.state.agent_registry = registry
    return registry


def get_multiplexer(request: Request) -> TurnMultiplexer:
    multiplexer = getattr(request.app.state, "multiplexer", None)
    if multiplexer is None:
        multiplexer = TurnMultiplexer(get_registry(request))
        request.app.state.multiplexer = multiplexer
    return multiplexer


async def _stream_turn(channel: EventChannel):
    try:
        async for event in channel:
            yield encode_event(event)
    finally:
        # Client gone or stream done; a pending send now raises ChannelClosed
        channel.close()


@router.post("")
async def chat(request: Request):
    """Run one chat turn and stream its events."""
    body = parse_chat_request(await request.body())
    turn = build_turn_request(body)

    channel = EventChannel()
    task = asyncio.create_task(get_multiplexer(request).run(channel, turn))
    _running_turns.add(task)
    task.add_done_callback(_running_turns.discard)

    return StreamingResponse(
        _stream_turn(channel),
        media_type=MEDIA_TYPE,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/agents")
async def list_agents(request: Request):
    """Registered intents, in classification order."""
    return {"agents": get_registry(request).describe()}
