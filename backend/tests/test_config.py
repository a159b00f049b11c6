"""
Tests for runtime configuration.
"""

from config import RuntimeConfig


class TestRuntimeConfig:

    def test_env_defaults(self, monkeypatch):
        monkeypatch.setenv("CHAT_TITLE_TIMEOUT", "1.5")
        monkeypatch.setenv("CHAT_GENERATE_TITLE", "yes")
        monkeypatch.setenv("GEMINI_API_KEY", "g-key")
        monkeypatch.delenv("GOOGLE_GENERATIVE_AI_API_KEY", raising=False)

        config = RuntimeConfig()

        assert config.title_timeout_s == 1.5
        assert config.generate_title is True
        assert config.google_api_key == "g-key"

    def test_update_within_range(self):
        config = RuntimeConfig()
        result = config.update(max_steps=8, title_timeout_s=0.5)
        assert result == {"updated": ["max_steps", "title_timeout_s"], "ignored": []}
        assert config.max_steps == 8

    def test_update_rejects_out_of_range_and_unknown(self):
        config = RuntimeConfig()
        before = config.max_steps
        result = config.update(max_steps=500, nonsense=1, _lock=None)
        assert result["updated"] == []
        assert sorted(result["ignored"]) == ["_lock", "max_steps", "nonsense"]
        assert config.max_steps == before

    def test_to_dict_redacts_keys(self):
        config = RuntimeConfig()
        config.update(openai_api_key="sk-secret", groq_api_key="")
        exported = config.to_dict()
        assert exported["openai_api_key"] == "***"
        assert exported["groq_api_key"] == ""
        assert "sk-secret" not in str(exported)
        assert not any(key.startswith("_") for key in exported)
