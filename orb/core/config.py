"""Unified configuration for the orb assistant."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from orb.core.prompts import SYSTEM_PROMPT


class Settings(BaseSettings):
    """Global application settings."""

    model_config = SettingsConfigDict(
        env_prefix="ORB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    # HTTP server
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = ["*"]

    # Logs
    log_dir: str = "orb/logs"
    log_level: str = "INFO"
    log_rotate_mb: int = 5
    log_retention_days: int = 7

    # AI query service (OpenAI compatible)
    llm_base_url: str = "http://127.0.0.1:11434"
    llm_chat_endpoint: str = "/v1/chat/completions"
    llm_model: str | None = None
    llm_api_key: str | None = None
    llm_extra_headers: dict[str, str] = {}
    llm_timeout_sec: float = 60.0
    llm_temperature: float = 0.7
    llm_max_output_tokens: int = 1024

    # Conversation
    chat_history_max_messages: int = 10
    chat_system_prompt: str = SYSTEM_PROMPT
    # None leaves playback open-ended; the playback collaborator must report completion.
    playback_timeout_sec: float | None = None
    # confirmed actions older than this many user turns are retired; None keeps them
    action_confirmed_retention_turns: int | None = 5

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls.json_config_settings_source,
            file_secret_settings,
        )

    @staticmethod
    def json_config_settings_source() -> dict[str, object]:
        """Load config.json from the project root when present."""
        config_path = Path(__file__).resolve().parents[2] / "config.json"
        if config_path.is_file():
            try:
                return json.loads(config_path.read_text(encoding="utf-8"))
            except ValueError:
                return {}
        return {}


@lru_cache()
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
