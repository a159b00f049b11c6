"""
Runtime Configuration for Querypilot.

Provides a singleton RuntimeConfig class populated from environment
variables. Values can be adjusted at runtime via update(), without a
service restart.

Usage:
    from config import runtime_config
    budget = runtime_config.title_timeout_s
    runtime_config.update(title_timeout_s=1.5)
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, Any
from threading import Lock

logger = logging.getLogger(__name__)


def _first_env(*keys: str, default: str) -> str:
    """Return the first non-empty environment value from keys, else default."""
    for key in keys:
        value = os.environ.get(key, "").strip()
        if value:
            return value
    return default


def _env_bool(key: str, default: str = "false") -> bool:
    return os.environ.get(key, default).strip().lower() in ("1", "true", "yes")


# Fields never echoed back by to_dict()
SECRET_FIELDS = {
    "openai_api_key",
    "google_api_key",
    "anthropic_api_key",
    "openrouter_api_key",
    "groq_api_key",
    "cerebras_api_key",
}


@dataclass
class RuntimeConfig:
    """
    Singleton configuration for runtime-adjustable parameters.

    All values have defaults from environment variables, but can be
    changed at runtime via the update() method.
    """

    app_name: str = field(default_factory=lambda: os.environ.get("APP_NAME", "Querypilot"))
    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO").upper())

    # Turn orchestration
    title_timeout_s: float = field(default_factory=lambda: float(os.environ.get("CHAT_TITLE_TIMEOUT", "3.0")))
    generate_title: bool = field(default_factory=lambda: _env_bool("CHAT_GENERATE_TITLE"))
    max_steps: int = field(default_factory=lambda: int(os.environ.get("CHAT_MAX_STEPS", "5")))

    # Planner prompt compaction
    planner_history_window: int = field(
        default_factory=lambda: int(os.environ.get("PLANNER_HISTORY_WINDOW", "6"))
    )
    planner_message_chars: int = field(
        default_factory=lambda: int(os.environ.get("PLANNER_MESSAGE_CHARS", "500"))
    )

    # Model calls
    llm_timeout_s: float = field(default_factory=lambda: float(os.environ.get("LLM_TIMEOUT", "60")))
    llm_retry_max: int = field(default_factory=lambda: int(os.environ.get("LLM_RETRY_MAX", "2")))
    llm_retry_delay_s: float = field(default_factory=lambda: float(os.environ.get("LLM_RETRY_DELAY", "1.0")))
    temperature: float = field(default_factory=lambda: float(os.environ.get("LLM_TEMPERATURE", "0.1")))

    # HTTP surface
    max_request_bytes: int = field(
        default_factory=lambda: int(os.environ.get("MAX_REQUEST_BYTES", str(10 * 1024 * 1024)))
    )
    cors_origin_regex: str = field(
        default_factory=lambda: os.environ.get(
            "CORS_ORIGIN_REGEX", r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"
        )
    )

    # Provider credentials, in auto-selection priority order
    openai_api_key: str = field(default_factory=lambda: os.environ.get("OPENAI_API_KEY", ""))
    google_api_key: str = field(
        default_factory=lambda: _first_env("GOOGLE_GENERATIVE_AI_API_KEY", "GEMINI_API_KEY", default="")
    )
    anthropic_api_key: str = field(default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY", ""))
    openrouter_api_key: str = field(default_factory=lambda: os.environ.get("OPENROUTER_API_KEY", ""))
    groq_api_key: str = field(default_factory=lambda: os.environ.get("GROQ_API_KEY", ""))
    cerebras_api_key: str = field(default_factory=lambda: os.environ.get("CEREBRAS_API_KEY", ""))

    # Internal state
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)
    _update_count: int = field(default=0, repr=False)

    # Validation ranges for numeric config values
    _VALIDATION_RANGES: Dict[str, tuple] = field(default_factory=lambda: {
        "title_timeout_s": (0.0, 30.0),
        "max_steps": (1, 20),
        "planner_history_window": (1, 50),
        "planner_message_chars": (50, 10000),
        "llm_timeout_s": (1.0, 600.0),
        "llm_retry_max": (0, 10),
        "llm_retry_delay_s": (0.0, 30.0),
        "temperature": (0.0, 2.0),
    }, repr=False, compare=False)

    def update(self, **kwargs) -> Dict[str, Any]:
        """
        Update configuration values at runtime.

        Args:
            **kwargs: Key-value pairs to update (e.g., title_timeout_s=1.5)

        Returns:
            Dict with 'updated' (changed keys) and 'ignored' (unknown or rejected keys)
        """
        updated = []
        ignored = []

        with self._lock:
            for key, value in kwargs.items():
                if key.startswith("_") or not hasattr(self, key):
                    ignored.append(key)
                    logger.warning(f"Config ignored unknown key: {key}")
                    continue

                if key in self._VALIDATION_RANGES:
                    lo, hi = self._VALIDATION_RANGES[key]
                    if not (lo <= value <= hi):
                        ignored.append(key)
                        logger.warning(f"Config rejected {key}={value} (must be {lo}-{hi})")
                        continue

                old_value = getattr(self, key)
                setattr(self, key, value)
                updated.append(key)
                if key in SECRET_FIELDS:
                    logger.info(f"Config updated: {key}")
                else:
                    logger.info(f"Config updated: {key} = {value} (was {old_value})")

            self._update_count += 1

        return {"updated": updated, "ignored": ignored}

    def to_dict(self) -> Dict[str, Any]:
        """Export current config as dict (excludes internal fields, redacts keys)."""
        from dataclasses import fields as dataclass_fields

        result = {}
        for field_info in dataclass_fields(self):
            if field_info.name.startswith("_"):
                continue
            value = getattr(self, field_info.name)
            if field_info.name in SECRET_FIELDS:
                value = "***" if value else ""
            result[field_info.name] = value
        return result


# Singleton instance
runtime_config = RuntimeConfig()

