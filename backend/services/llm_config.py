"""
LLM Provider Configuration - provider endpoints, model catalogue, auto-selection.

Every supported provider exposes an OpenAI-compatible endpoint, so a single
client implementation serves all of them. A request either names an explicit
(provider, model, key) triple or gets one chosen from configured credentials.
"""

import random
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Sequence

from config import runtime_config, RuntimeConfig
from errors import LLMError, ValidationError, ErrorCode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelInfo:
    """One entry of the model catalogue."""
    provider: str
    model_id: str
    description: str = ""
    auto_selectable: bool = False
    disabled: bool = False
    free: bool = False


@dataclass(frozen=True)
class ProviderSpec:
    """An OpenAI-compatible provider endpoint."""
    name: str
    base_url: Optional[str]  # None = OpenAI default endpoint
    key_field: str  # RuntimeConfig attribute holding the API key
    models: Sequence[ModelInfo] = field(default_factory=tuple)


@dataclass(frozen=True)
class ModelConfig:
    """The provider / model / credential triple a turn runs with."""
    provider: str
    model_id: str
    api_key: str = field(repr=False)

    @property
    def base_url(self) -> Optional[str]:
        return PROVIDERS[self.provider].base_url

    @property
    def label(self) -> str:
        return f"{self.provider}/{self.model_id}"


# Priority order for auto-selection: first provider with a key wins
PROVIDERS: Dict[str, ProviderSpec] = {
    "OpenAI": ProviderSpec(
        name="OpenAI",
        base_url=None,
        key_field="openai_api_key",
        models=(
            ModelInfo("OpenAI", "gpt-4.1", "Flagship GPT model for complex SQL tasks."),
            ModelInfo("OpenAI", "gpt-4o", "Multimodal GPT model."),
            ModelInfo("OpenAI", "gpt-4o-mini", "Small, fast GPT model.", auto_selectable=True),
            ModelInfo("OpenAI", "gpt-5-mini", "Reasoning model, fixed temperature."),
            ModelInfo("OpenAI", "o3-mini", "Reasoning model optimized for fast responses."),
        ),
    ),
    "Google": ProviderSpec(
        name="Google",
        base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
        key_field="google_api_key",
        models=(
            ModelInfo("Google", "gemini-2.5-flash", "Fast Gemini model.", auto_selectable=True),
            ModelInfo("Google", "gemini-2.5-pro", "Most capable Gemini 2.5 model."),
        ),
    ),
    "Anthropic": ProviderSpec(
        name="Anthropic",
        base_url="https://api.anthropic.com/v1/",
        key_field="anthropic_api_key",
        models=(
            ModelInfo("Anthropic", "claude-haiku-4-5", "Fast Claude model.", auto_selectable=True),
            ModelInfo("Anthropic", "claude-sonnet-4-5", "Balanced Claude model."),
        ),
    ),
    "OpenRouter": ProviderSpec(
        name="OpenRouter",
        base_url="https://openrouter.ai/api/v1",
        key_field="openrouter_api_key",
        models=(
            ModelInfo("OpenRouter", "qwen/qwen3-coder:free", "Qwen coder model.", auto_selectable=True, free=True),
            ModelInfo("OpenRouter", "openai/gpt-oss-20b:free", "Open-weight GPT.", auto_selectable=True, free=True),
            ModelInfo("OpenRouter", "openai/gpt-oss-120b:free", "Large open-weight GPT.", auto_selectable=True, free=True),
        ),
    ),
    "Groq": ProviderSpec(
        name="Groq",
        base_url="https://api.groq.com/openai/v1",
        key_field="groq_api_key",
        models=(
            ModelInfo("Groq", "openai/gpt-oss-20b", "Fast inference on Groq hardware.", auto_selectable=True),
            # Tool calls are unreliable on this model
            ModelInfo("Groq", "qwen/qwen3-32b", "Qwen 3 32B.", disabled=True),
        ),
    ),
    "Cerebras": ProviderSpec(
        name="Cerebras",
        base_url="https://api.cerebras.ai/v1",
        key_field="cerebras_api_key",
        models=(
            ModelInfo("Cerebras", "gpt-oss-120b", "Large open-weight GPT on Cerebras.", auto_selectable=True),
        ),
    ),
}


def default_temperature(model_id: str) -> float:
    """Sampling temperature for a model; some models only accept 1."""
    if "gpt-5-nano" in model_id or "gpt-5-mini" in model_id:
        return 1.0
    return runtime_config.temperature


def auto_select_model(
    config: Optional[RuntimeConfig] = None,
    choose: Callable[[Sequence[ModelInfo]], ModelInfo] = random.choice,
) -> ModelConfig:
    """Pick a model from the first provider that has a configured key.

    Raises:
        LLMError: No provider has both a key and an auto-selectable model.
    """
    cfg = config or runtime_config
    for spec in PROVIDERS.values():
        api_key = getattr(cfg, spec.key_field, "")
        if not api_key:
            continue
        candidates = [m for m in spec.models if m.auto_selectable and not m.disabled]
        if not candidates:
            continue
        chosen = choose(candidates)
        logger.debug(f"Auto-selected model {spec.name}/{chosen.model_id}")
        return ModelConfig(provider=spec.name, model_id=chosen.model_id, api_key=api_key)

    raise LLMError(
        "The server currently does not provide any models",
        details="Configure a provider API key or choose your own model in the settings",
    )


def resolve_model_config(override: Optional[dict], config: Optional[RuntimeConfig] = None) -> ModelConfig:
    """Return the explicit override when complete, otherwise auto-select.

    The override must carry provider, modelId and apiKey together; a partial
    override is rejected rather than mixed with auto-selection.
    """
    if override is None:
        return auto_select_model(config)

    provider = override.get("provider")
    model_id = override.get("modelId")
    api_key = override.get("apiKey")
    missing = [name for name, value in (("provider", provider), ("modelId", model_id), ("apiKey", api_key)) if not value]
    if missing:
        raise ValidationError(
            "Missing required model configuration",
            details="provider, modelId and apiKey must all be provided",
            code=ErrorCode.VALIDATION_PARTIAL_OVERRIDE,
            parameter="model",
            received=",".join(sorted(k for k in ("provider", "modelId", "apiKey") if k not in missing)) or "none",
            missing=missing,
        )
    if provider not in PROVIDERS:
        raise ValidationError(
            f"Unsupported provider: {provider}",
            code=ErrorCode.VALIDATION_UNKNOWN_PROVIDER,
            parameter="model.provider",
            expected=", ".join(PROVIDERS),
            received=str(provider),
        )
    return ModelConfig(provider=provider, model_id=model_id, api_key=api_key)


def find_model(provider: str, model_id: str) -> Optional[ModelInfo]:
    spec = PROVIDERS.get(provider)
    if spec is None:
        return None
    return next((m for m in spec.models if m.model_id == model_id), None)


def list_models() -> list:
    """Catalogue of enabled models, for the settings UI."""
    return [
        {
            "provider": m.provider,
            "modelId": m.model_id,
            "description": m.description,
            "free": m.free,
            "autoSelectable": m.auto_selectable,
        }
        for spec in PROVIDERS.values()
        for m in spec.models
        if not m.disabled
    ]
