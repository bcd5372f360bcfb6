"""Configuration models for the browser chat handler."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "https://gemini.google.com/app"
DEFAULT_DISCOVERY_PORT = 9222
DEFAULT_TIMEOUT_MS = 60000
DEFAULT_MODEL_NAME = "gemini-via-browser"


class UiSelectors(BaseModel):
    """CSS selectors describing the chat application's DOM."""

    model_config = ConfigDict(frozen=True)

    prompt_input: str = 'div.ql-editor[aria-label="Enter a prompt here"]'
    send_button: str = 'button[aria-label="Send message"][aria-disabled="false"].submit'
    stop_button: str = 'button[aria-label="Stop response"].stop'
    ready_indicator: str = 'button[aria-label="Microphone"]'
    response_container: str = "model-response"
    content_panel: str = ".markdown-main-panel"


class HandlerConfig(BaseSettings):
    """Settings for a single handler instance.

    Values are read from keyword arguments, then ``BROWSER_CHAT_HANDLER_*``
    environment variables, then an optional ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="BROWSER_CHAT_HANDLER_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        frozen=True,
    )

    base_url: str = Field(default=DEFAULT_BASE_URL)
    discovery_port: int = Field(default=DEFAULT_DISCOVERY_PORT)
    discovery_hosts: list[str] = Field(default_factory=lambda: ["127.0.0.1", "localhost"])
    discovery_timeout: float = Field(
        default=2.0,
        description="Timeout (in seconds) for each endpoint discovery probe.",
    )
    timeout_ms: int = Field(
        default=DEFAULT_TIMEOUT_MS,
        description="Timeout (in milliseconds) applied to every browser operation.",
    )
    model_name: str = Field(default=DEFAULT_MODEL_NAME)
    max_tokens: Optional[int] = Field(
        default=None,
        description="Max output tokens reported by get_model(); 8192 when unset.",
    )
    poll_interval_ms: int = Field(default=100)
    processing_indicator_timeout_ms: int = Field(default=5000)
    selectors: UiSelectors = Field(default_factory=UiSelectors)

    @field_validator("base_url", "discovery_port", "timeout_ms", "model_name", mode="before")
    @classmethod
    def _drop_missing(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or value == "":
            return cls.model_fields[info.field_name].default
        return value

    # Runs on the coerced value so "0" read from the environment counts as unset.
    @field_validator("base_url", "discovery_port", "timeout_ms", "model_name", mode="after")
    @classmethod
    def _fall_back_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if not value:
            return cls.model_fields[info.field_name].default
        return value


def load_config(
    path: Path | None = None,
    *,
    env_file: Path | None = None,
    **overrides: object,
) -> HandlerConfig:
    """Load configuration from an optional YAML file and overrides."""

    data: dict[str, Any] = {}
    if path:
        import yaml

        data = yaml.safe_load(path.read_text()) or {}
    if overrides:
        _deep_update(data, overrides)
    settings_kwargs: dict[str, object] = {}
    if env_file is not None:
        settings_kwargs["_env_file"] = env_file
    config = HandlerConfig(**data, **settings_kwargs)
    if not data:
        return config

    merged = config.model_dump(mode="python")
    _deep_update(merged, data)
    return HandlerConfig.model_validate(merged)


def _deep_update(target: dict[str, Any], updates: Mapping[str, Any]) -> None:
    """Recursively merge ``updates`` into ``target`` in-place."""

    for key, value in updates.items():
        if (
            isinstance(value, Mapping)
            and isinstance(existing := target.get(key), Mapping)
        ):
            nested: dict[str, Any]
            if isinstance(existing, dict):
                nested = existing
            else:
                nested = dict(existing)
            _deep_update(nested, value)
            target[key] = nested
        else:
            target[key] = value
