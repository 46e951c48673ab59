"""Configuration loading and validation for the brain-chat client."""

from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
import logging
import os
from pathlib import Path
import tomllib
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigValidationError

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "brain-chat"
CONFIG_PATH = CONFIG_DIR / "config.toml"

VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}

# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "BRAIN_LLM_HOST": ("ollama", "host"),
    "BRAIN_LLM_PORT": ("ollama", "port"),
    "BRAIN_LLM_TOOL_MODEL": ("ollama", "tool_model"),
    "BRAIN_LLM_VISION_MODEL": ("ollama", "title_model"),
}

DEFAULT_TITLE_PROMPT = (
    "Long answers are forbidden, and so is any extra text. "
    "Generate a title for this conversation from the user's point of view."
)


def _non_empty_string(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("Expected a string value.")
    normalized = value.strip()
    if not normalized:
        raise ValueError("String value must not be empty.")
    return normalized


class OllamaConfig(BaseModel):
    """Inference backend endpoint and model settings."""

    host: str = "localhost"
    port: int = Field(default=11434, ge=1, le=65535)
    tool_model: str = "qwq:32b"
    title_model: str = "gemma3:27b"
    timeout: int = Field(default=120, ge=1, le=3600)
    pull_model_on_start: bool = False

    @field_validator("host", "tool_model", "title_model", mode="before")
    @classmethod
    def _validate_required_string(cls, value: Any) -> str:
        return _non_empty_string(value)

    @property
    def base_url(self) -> str:
        """Return the endpoint URL, honouring an explicit scheme in ``host``."""
        if "://" in self.host:
            parsed = urlparse(self.host)
            if parsed.port is not None:
                return self.host.rstrip("/")
            return f"{self.host.rstrip('/')}:{self.port}"
        return f"http://{self.host}:{self.port}"


class ReasoningConfig(BaseModel):
    """Markers delimiting the model's reasoning segment."""

    start_tag: str = "<think>"
    end_tag: str = "</think>"
    title_fallback: Literal["raw", "none"] = "raw"

    @field_validator("start_tag", "end_tag", mode="before")
    @classmethod
    def _validate_tag(cls, value: Any) -> str:
        return _non_empty_string(value)


class ChatConfig(BaseModel):
    """Conversation behaviour and REPL keywords."""

    system_prompt: str = ""
    title_prompt: str = DEFAULT_TITLE_PROMPT
    max_tool_iterations: int | None = Field(default=None, ge=1, le=1000)
    exit_keyword: str = "exit"
    title_keyword: str = "title"

    @field_validator("system_prompt", mode="before")
    @classmethod
    def _normalize_prompt(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Expected a string value.")
        return value.strip()

    @field_validator("title_prompt", "exit_keyword", "title_keyword", mode="before")
    @classmethod
    def _validate_required_string(cls, value: Any) -> str:
        return _non_empty_string(value)


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = "~/.local/state/brain-chat/app.log"

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        return _non_empty_string(value)


class McpConfig(BaseModel):
    """Location of the auxiliary tool-server settings file."""

    settings_path: str = "mcp.json"

    @field_validator("settings_path", mode="before")
    @classmethod
    def _validate_path(cls, value: Any) -> str:
        return _non_empty_string(value)


class Config(BaseModel):
    """Root configuration model for all sections."""

    ollama: OllamaConfig = OllamaConfig()
    reasoning: ReasoningConfig = ReasoningConfig()
    chat: ChatConfig = ChatConfig()
    logging: LoggingConfig = LoggingConfig()
    mcp: McpConfig = McpConfig()


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump()


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Ensure that the config directory exists and return its path."""
    directory = config_dir or CONFIG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create config directory %s: %s", directory, exc)
    return directory


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values."""
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _env_overrides(environ: Mapping[str, str]) -> dict[str, dict[str, Any]]:
    overrides: dict[str, dict[str, Any]] = {}
    for variable, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(variable)
        if value is not None and value.strip():
            overrides.setdefault(section, {})[key] = value.strip()
    return overrides


def _validate_config(raw: dict[str, Any]) -> Config:
    """Validate merged config and fall back to safe defaults when possible."""
    try:
        return Config.model_validate(raw)
    except ValidationError as exc:
        LOGGER.warning("Configuration validation failed, using safe defaults: %s", exc)
        return Config()
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def load_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Mapping[str, Any]] | None = None,
) -> Config:
    """Load configuration from TOML and the environment, then validate.

    Precedence, lowest first: defaults, TOML file, environment variables,
    explicit ``overrides`` (CLI flags).
    """
    target_path = config_path or CONFIG_PATH

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    merged = _deep_merge(DEFAULT_CONFIG, raw_data)
    merged = _deep_merge(merged, _env_overrides(os.environ if environ is None else environ))
    if overrides:
        cleaned = {
            section: {k: v for k, v in values.items() if v is not None}
            for section, values in overrides.items()
        }
        merged = _deep_merge(merged, cleaned)
    return _validate_config(merged)
