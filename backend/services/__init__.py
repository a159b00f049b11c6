"""
Querypilot Services - model provider access.

- llm_config: provider endpoints, model catalogue, auto-selection
- llm_client: async OpenAI-compatible client with retries
- json_repair: JSON extraction and repair for model output
"""

from .llm_config import ModelConfig, auto_select_model, resolve_model_config
from .llm_client import LLMClient

__all__ = ["ModelConfig", "auto_select_model", "resolve_model_config", "LLMClient"]
