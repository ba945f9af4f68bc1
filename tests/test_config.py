"""Tests for the configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from thirra_memory import config
from thirra_memory.config import ConfigError, ProviderSettings, Settings, load_config, load_settings


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Create a temporary config file for testing."""
    config_content = """
[provider]
openai-base-url = "http://localhost:8080/v1/"
lightweight-model = "local/chat"

[routing]
coding-model = "local/coder"
history-messages = 3

[memory]
recent-message-count = 7

[rag]
chunk-size = 500
chunk-overlap = 50
compress-context = false

[budget]
prompt-char-budget = 9000
"""
    config_path = tmp_path / "config.toml"
    config_path.write_text(config_content)
    return config_path


@pytest.fixture
def no_default_configs(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(config, "CONFIG_PATH", tmp_path / "missing.toml")
    monkeypatch.setattr(config, "CONFIG_PATH_2", tmp_path / "missing-2.toml")


def test_load_config_replaces_dashed_keys(config_file: Path) -> None:
    cfg = load_config(str(config_file))
    assert cfg["provider"]["openai_base_url"] == "http://localhost:8080/v1/"
    assert cfg["rag"]["compress_context"] is False


def test_load_settings_from_file(config_file: Path) -> None:
    settings = load_settings(str(config_file))
    assert settings.provider.openai_base_url == "http://localhost:8080/v1"
    assert settings.provider.lightweight_model == "local/chat"
    assert settings.routing.coding_model == "local/coder"
    assert settings.routing.history_messages == 3
    assert settings.memory.recent_message_count == 7
    assert settings.rag.chunk_size == 500
    assert not settings.rag.compress_context
    assert settings.budget.prompt_char_budget == 9000
    # Untouched sections keep their defaults.
    assert settings.cache.turns_ttl_seconds == 30.0


@pytest.mark.usefixtures("no_default_configs")
def test_no_config_gives_defaults() -> None:
    assert load_config() == {}
    assert load_settings() == Settings()


def test_missing_explicit_path(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "nope.toml"))


def test_invalid_toml(tmp_path: Path) -> None:
    bad = tmp_path / "bad.toml"
    bad.write_text("[rag\nchunk-size = ")
    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_config(str(bad))


@pytest.mark.parametrize(
    "cfg",
    [
        {"rag": {"chunk_size": 100, "chunk_overlap": 100}},
        {"rag": {"compress_target_low": 0.8, "compress_target_high": 0.5}},
        {"budget": {"prompt_char_budget": 0}},
        {"cache": {"summary_drift_threshold": 0}},
    ],
)
def test_invalid_values_raise_config_error(cfg: dict) -> None:
    with pytest.raises(ConfigError, match="Invalid configuration"):
        Settings.from_config(cfg)


def test_provider_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-fallback")
    monkeypatch.setenv("OPENROUTER_BASE_URL", "https://proxy.example/api/")
    provider = ProviderSettings()
    assert provider.openai_api_key == "sk-fallback"
    assert provider.openai_base_url == "https://proxy.example/api"

    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-router")
    assert ProviderSettings().openai_api_key == "sk-router"


def test_default_headers() -> None:
    provider = ProviderSettings(app_base_url="https://app.example", app_title="Thirra")
    assert provider.default_headers == {"HTTP-Referer": "https://app.example", "X-Title": "Thirra"}
