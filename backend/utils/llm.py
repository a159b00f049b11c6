"""LLM client factory."""

import logging
from typing import Dict

from openai import AsyncOpenAI

from config import runtime_config
from services.llm_client import LLMClient
from services.llm_config import ModelConfig, find_model

logger = logging.getLogger(__name__)

# One SDK transport (connection pool) per provider; credentials stay per client
_transports: Dict[str, AsyncOpenAI] = {}


def _get_transport(model_config: ModelConfig) -> AsyncOpenAI:
    transport = _transports.get(model_config.provider)
    if transport is None:
        logger.debug(f"Creating transport for {model_config.provider}")
        transport = AsyncOpenAI(
            api_key=model_config.api_key,
            base_url=model_config.base_url,
            timeout=runtime_config.llm_timeout_s,
            max_retries=0,  # retries handled by LLMClient
        )
        _transports[model_config.provider] = transport
    return transport


def get_llm_client(model_config: ModelConfig) -> LLMClient:
    """Build a client for one provider / model / key.

    The client (and its circuit breaker) belongs to the caller. Only the
    provider's HTTP connection pool is shared, so the cache is bounded by
    the provider table no matter how many credentials pass through.
    """
    info = find_model(model_config.provider, model_config.model_id)
    # Free models are never retried
    retry_max = 0 if info is not None and info.free else None
    sdk = _get_transport(model_config).with_options(api_key=model_config.api_key)
    return LLMClient(model_config, retry_max=retry_max, openai_client=sdk)


async def close_llm_clients() -> None:
    """Close shared transports (shutdown, tests)."""
    transports = list(_transports.values())
    _transports.clear()
    for transport in transports:
        await transport.close()
