"""
Tests for model selection and the provider catalogue.
"""

import pytest

from config import RuntimeConfig, runtime_config
from errors import ErrorCode, LLMError, ValidationError
from services.llm_config import (
    PROVIDERS,
    ModelConfig,
    auto_select_model,
    default_temperature,
    find_model,
    list_models,
    resolve_model_config,
)

_KEY_FIELDS = [spec.key_field for spec in PROVIDERS.values()]


def _config(**keys) -> RuntimeConfig:
    config = RuntimeConfig()
    config.update(**{field: "" for field in _KEY_FIELDS})
    config.update(**keys)
    return config


def _first(candidates):
    return candidates[0]


class TestAutoSelect:
    """First provider with a key and an auto-selectable model wins."""

    def test_priority_order(self):
        config = _config(groq_api_key="gsk", openrouter_api_key="or-key")
        chosen = auto_select_model(config, choose=_first)
        assert chosen == ModelConfig("OpenRouter", "qwen/qwen3-coder:free", "or-key")

    def test_only_enabled_candidates(self):
        seen = []

        def record(candidates):
            seen.extend(candidates)
            return candidates[0]

        auto_select_model(_config(groq_api_key="gsk"), choose=record)
        assert [m.model_id for m in seen] == ["openai/gpt-oss-20b"]

    def test_no_keys(self):
        with pytest.raises(LLMError, match="does not provide any models"):
            auto_select_model(_config())


class TestResolveModelConfig:
    """Explicit override or auto-selection; never a mix."""

    def test_complete_override(self):
        config = resolve_model_config({"provider": "Anthropic", "modelId": "claude-haiku-4-5", "apiKey": "ak"})
        assert config == ModelConfig("Anthropic", "claude-haiku-4-5", "ak")
        assert config.base_url == "https://api.anthropic.com/v1/"
        assert config.label == "Anthropic/claude-haiku-4-5"

    def test_no_override_auto_selects(self):
        chosen = resolve_model_config(None, _config(cerebras_api_key="csk"))
        assert chosen.provider == "Cerebras"

    def test_partial_override_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            resolve_model_config({"provider": "OpenAI", "modelId": "gpt-4o"}, _config(openai_api_key="sk"))
        error = exc_info.value
        assert error.code == ErrorCode.VALIDATION_PARTIAL_OVERRIDE
        assert error.context["missing"] == ["apiKey"]
        assert error.context["received"] == "modelId,provider"

    def test_unknown_provider(self):
        with pytest.raises(ValidationError) as exc_info:
            resolve_model_config({"provider": "Nope", "modelId": "m", "apiKey": "k"})
        assert exc_info.value.code == ErrorCode.VALIDATION_UNKNOWN_PROVIDER

    def test_api_key_hidden_from_repr(self):
        assert "secret" not in repr(ModelConfig("OpenAI", "gpt-4o", "secret"))


class TestCatalogue:

    def test_find_model(self):
        assert find_model("OpenRouter", "openai/gpt-oss-20b:free").free is True
        assert find_model("OpenAI", "missing") is None
        assert find_model("Nope", "gpt-4o") is None

    def test_list_models_hides_disabled(self):
        ids = {(m["provider"], m["modelId"]) for m in list_models()}
        assert ("Groq", "qwen/qwen3-32b") not in ids
        assert ("OpenAI", "gpt-4o-mini") in ids

    def test_default_temperature(self):
        assert default_temperature("gpt-5-mini") == 1.0
        assert default_temperature("gpt-4o") == runtime_config.temperature
