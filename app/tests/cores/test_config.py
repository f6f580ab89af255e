# python -m pytest app/tests/cores/test_config.py -v

import pytest

from app.config import (
    PROFILES,
    AIProviderName,
    ConfigError,
    Settings,
    get_profile,
)


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_known_profiles():
    assert set(PROFILES) == {"llama3.2-postgres", "gpt4o-mini-postgres", "gemini-postgres"}
    assert get_profile("llama3.2-postgres").ai.provider is AIProviderName.OLLAMA


def test_unknown_profile_raises():
    with pytest.raises(ConfigError) as excinfo:
        get_profile("mistral-sqlite")

    assert str(excinfo.value) == "Configuration 'mistral-sqlite' not found"


def test_empty_overrides_keep_profile_values():
    profile = get_profile("gpt4o-mini-postgres", overrides=_settings())

    assert profile == PROFILES["gpt4o-mini-postgres"]


def test_environment_overrides_apply_on_top_of_profile():
    cfg = _settings(
        llm_provider="OpenAI_Compatible",
        llm_model="qwen2.5-coder",
        llm_provider_url="http://vllm:8000/v1",
        target_db_host="db",
        target_db_port=6543,
        target_db_schema="sales",
    )

    profile = get_profile("llama3.2-postgres", overrides=cfg)

    assert profile.ai.provider is AIProviderName.OPENAI_COMPATIBLE
    assert profile.ai.model == "qwen2.5-coder"
    assert profile.ai.base_url == "http://vllm:8000/v1"
    assert (profile.database.host, profile.database.port, profile.database.schema_name) == ("db", 6543, "sales")
    assert profile.database.user == PROFILES["llama3.2-postgres"].database.user
    # the registry entry itself is not mutated
    assert PROFILES["llama3.2-postgres"].database.host == "localhost"


def test_unsupported_provider_override():
    with pytest.raises(ConfigError) as excinfo:
        get_profile("gemini-postgres", overrides=_settings(llm_provider="anthropic"))

    assert "Unsupported llm_provider" in str(excinfo.value)


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("SQL_ROW_LIMIT", "250")
    monkeypatch.setenv("CONFIG_PROFILE", "gemini-postgres")

    cfg = _settings()

    assert cfg.sql_row_limit == 250
    assert cfg.config_profile == "gemini-postgres"
    assert cfg.max_repair_attempts == 1
