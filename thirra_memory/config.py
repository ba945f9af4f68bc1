"""Pydantic models for engine settings and config file loading."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from thirra_memory import constants
from thirra_memory.errors import ContextAssemblyError

# --- Config File Loading ---

CONFIG_PATH = Path.home() / ".config" / "thirra-memory" / "config.toml"
CONFIG_PATH_2 = Path("thirra-memory.toml")


class ConfigError(ContextAssemblyError):
    """Raised when a configuration file cannot be loaded or validated."""


def _replace_dashed_keys(cfg: dict[str, Any]) -> dict[str, Any]:
    """Replace dashed keys with underscores in the config options."""
    return {k.replace("-", "_"): v for k, v in cfg.items()}


def load_config(config_path_str: str | None = None) -> dict[str, Any]:
    """Load the TOML configuration file and process it for nested structures."""
    if config_path_str:
        config_path = Path(config_path_str)
    elif CONFIG_PATH.exists():
        config_path = CONFIG_PATH
    elif CONFIG_PATH_2.exists():
        config_path = CONFIG_PATH_2
    else:
        return {}

    if not config_path.exists():
        msg = f"Config file not found at {config_path_str}"
        raise ConfigError(msg)

    try:
        with config_path.open("rb") as f:
            cfg = tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {config_path}: {exc}"
        raise ConfigError(msg) from exc
    return {
        k.replace("-", "_"): _replace_dashed_keys(v) if isinstance(v, dict) else v
        for k, v in cfg.items()
    }


# --- Pydantic Models for Configuration ---

# --- Section: Provider ---


def _env_api_key() -> str | None:
    return os.environ.get("OPENROUTER_API_KEY") or os.environ.get("OPENAI_API_KEY")


def _env_base_url() -> str:
    return os.environ.get("OPENROUTER_BASE_URL", constants.DEFAULT_OPENAI_BASE_URL)


class ProviderSettings(BaseModel):
    """Connection settings for the OpenAI-compatible chat and embedding endpoints."""

    openai_base_url: str = Field(default_factory=_env_base_url, validate_default=True)
    openai_api_key: str | None = Field(default_factory=_env_api_key)
    lightweight_model: str = constants.DEFAULT_LIGHTWEIGHT_MODEL
    embedding_model: str = constants.DEFAULT_EMBEDDING_MODEL
    app_base_url: str = "http://localhost:4000"
    app_title: str = constants.DEFAULT_APP_TITLE
    request_timeout: float = 120.0

    @field_validator("openai_base_url")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def default_headers(self) -> dict[str, str]:
        """Attribution headers sent with every upstream request."""
        return {"HTTP-Referer": self.app_base_url, "X-Title": self.app_title}


# --- Section: Routing ---


class RoutingSettings(BaseModel):
    """Model tier table and classifier used by the query router."""

    classifier_model: str = constants.DEFAULT_CLASSIFIER_MODEL
    coding_model: str = constants.DEFAULT_CODING_MODEL
    general_model: str = constants.DEFAULT_GENERAL_MODEL
    heavy_model: str = constants.DEFAULT_HEAVY_MODEL
    history_messages: int = Field(2, ge=0)
    """How many recent history messages the classifier sees."""


# --- Section: Memory ---


class MemorySettings(BaseModel):
    """Short- and long-term memory layer settings."""

    recent_message_count: int = Field(constants.RECENT_MESSAGE_COUNT, ge=1)
    summary_cap_chars: int = Field(constants.SUMMARY_CAP_CHARS, gt=0)
    max_facts_per_conversation: int = Field(constants.MAX_FACTS_PER_CONVERSATION, gt=0)
    summary_max_tokens: int = Field(256, gt=0)


# --- Section: RAG ---


class RagSettings(BaseModel):
    """Semantic index and retrieval settings."""

    chunk_size: int = Field(constants.CHUNK_SIZE, gt=0)
    chunk_overlap: int = Field(constants.CHUNK_OVERLAP, ge=0)
    retrieval_chunk_max_chars: int = Field(constants.RETRIEVAL_CHUNK_MAX_CHARS, gt=0)
    threshold_factor: float = Field(constants.THRESHOLD_FACTOR, ge=0.0, le=1.0)
    max_chunks_per_conversation: int = Field(constants.MAX_CHUNKS_PER_CONVERSATION, gt=0)
    complex_query_threshold: float = Field(constants.COMPLEX_QUERY_THRESHOLD, ge=0.0, le=1.0)
    compress_context: bool = True
    compress_target_low: float = Field(0.4, gt=0.0, le=1.0)
    compress_target_high: float = Field(0.6, gt=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_ranges(self) -> RagSettings:
        if self.chunk_overlap >= self.chunk_size:
            msg = f"chunk_overlap ({self.chunk_overlap}) must be < chunk_size ({self.chunk_size})"
            raise ValueError(msg)
        if self.compress_target_low > self.compress_target_high:
            msg = "compress_target_low must not exceed compress_target_high"
            raise ValueError(msg)
        return self


# --- Section: Prompt Budget ---


class BudgetSettings(BaseModel):
    """Character budget parameters for the prompt budget guard."""

    prompt_char_budget: int = Field(constants.PROMPT_CHAR_BUDGET, gt=0)
    max_history_chars: int = Field(constants.MAX_HISTORY_CHARS, gt=0)
    compressed_recent_chars: int = Field(constants.COMPRESSED_RECENT_CHARS, gt=0)
    summary_cap_chars: int = Field(constants.SUMMARY_CAP_CHARS, gt=0)
    max_context_tokens: int = Field(constants.MAX_CONTEXT_TOKENS, gt=0)
    context_token_ratio: float = Field(0.6, gt=0.0, le=1.0)
    """Retrieved context is pruned once input tokens exceed this share of the window."""
    attachment_max_chars: int = Field(constants.ATTACHMENT_MAX_CHARS, gt=0)


# --- Section: Caches ---


class CacheSettings(BaseModel):
    """Lifetimes and bounds for per-conversation state."""

    turns_ttl_seconds: float = Field(constants.TURNS_CACHE_TTL_SECONDS, gt=0)
    summary_ttl_seconds: float = Field(constants.SUMMARY_CACHE_TTL_SECONDS, gt=0)
    summary_drift_threshold: int = Field(constants.SUMMARY_DRIFT_THRESHOLD, ge=1)
    max_conversations: int = Field(constants.MAX_CACHED_CONVERSATIONS, gt=0)


class Settings(BaseModel):
    """All engine settings."""

    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    routing: RoutingSettings = Field(default_factory=RoutingSettings)
    memory: MemorySettings = Field(default_factory=MemorySettings)
    rag: RagSettings = Field(default_factory=RagSettings)
    budget: BudgetSettings = Field(default_factory=BudgetSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> Settings:
        """Build settings from a loaded config dict, raising ConfigError on bad values."""
        try:
            return cls.model_validate(cfg)
        except ValidationError as exc:
            msg = f"Invalid configuration: {exc}"
            raise ConfigError(msg) from exc


def load_settings(config_path_str: str | None = None) -> Settings:
    """Load settings from the config file (or defaults when none is found)."""
    return Settings.from_config(load_config(config_path_str))
