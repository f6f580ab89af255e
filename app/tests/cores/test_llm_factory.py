# python -m pytest app/tests/cores/test_llm_factory.py -v

import pytest
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI

from app.config import AIProfile, AIProviderName, ConfigError, Settings
from app.core.llm_factory import create_llm


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_ollama_goes_through_openai_compatible_endpoint():
    ai = AIProfile(provider=AIProviderName.OLLAMA, model="llama3.2", base_url="http://localhost:11434/")

    handle = create_llm(ai, _settings())

    assert isinstance(handle.llm, ChatOpenAI)
    assert handle.provider is AIProviderName.OLLAMA
    assert handle.model == "llama3.2"
    assert str(handle.llm.openai_api_base).rstrip("/") == "http://localhost:11434/v1"


def test_openai_requires_api_key():
    ai = AIProfile(provider=AIProviderName.OPENAI, model="gpt-4o-mini")

    with pytest.raises(ConfigError) as excinfo:
        create_llm(ai, _settings(openai_api_key=""))

    assert "OPENAI_API_KEY" in str(excinfo.value)


def test_openai_model_uses_sampling_settings():
    ai = AIProfile(provider=AIProviderName.OPENAI, model="gpt-4o-mini")

    handle = create_llm(ai, _settings(openai_api_key="sk-test", llm_temperature=0.0, llm_max_output_tokens=256))

    assert isinstance(handle.llm, ChatOpenAI)
    assert handle.llm.model_name == "gpt-4o-mini"
    assert handle.llm.temperature == 0.0
    assert handle.llm.max_tokens == 256


def test_openai_compatible_requires_base_url():
    ai = AIProfile(provider=AIProviderName.OPENAI_COMPATIBLE, model="qwen")

    with pytest.raises(ConfigError):
        create_llm(ai, _settings(openai_compatible_api_key="k"))


def test_google_model():
    ai = AIProfile(provider=AIProviderName.GOOGLE, model="gemini-2.0-flash")

    handle = create_llm(ai, _settings(google_api_key="g-test"))

    assert isinstance(handle.llm, ChatGoogleGenerativeAI)


def test_empty_model_name():
    with pytest.raises(ConfigError):
        create_llm(AIProfile(provider=AIProviderName.OLLAMA, model="  "), _settings())
