"""
Core LLM factory.

Builds the chat model for the active profile. Providers are an enum dispatched through a
registry, so an unsupported provider cannot reach a runtime default branch.

NOTE:
- Ollama is reached through its OpenAI-compatible endpoint (<base_url>/v1).
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI

from app.config import AIProfile, AIProviderName, ConfigError, Settings, settings as default_settings
from app.smart_logger import SmartLogger

logger = logging.getLogger(__name__)

ChatModel = Union[ChatOpenAI, ChatGoogleGenerativeAI]


def _filter_init_kwargs(cls: type, kwargs: Dict[str, Any]) -> Dict[str, Any]:
    """
    Keep compatibility across LangChain versions by passing only supported kwargs.
    """
    # Pydantic-based LangChain models expose their accepted init keys as model fields,
    # while their __init__ signature is often just (**data).
    model_fields = getattr(cls, "model_fields", None)
    if isinstance(model_fields, dict) and model_fields:
        allowed = set(model_fields.keys())
        dropped = sorted(k for k, v in kwargs.items() if k not in allowed and v is not None)
        if dropped:
            logger.debug("%s does not accept %s; skipped", cls.__name__, dropped)
        return {k: v for k, v in kwargs.items() if k in allowed and v is not None}

    sig = inspect.signature(cls.__init__)
    if any(p.kind == inspect.Parameter.VAR_KEYWORD for p in sig.parameters.values()):
        return {k: v for k, v in kwargs.items() if v is not None}
    allowed = set(sig.parameters.keys())
    return {k: v for k, v in kwargs.items() if k in allowed and v is not None}


def _require_key(value: str, env_name: str, provider: AIProviderName) -> str:
    key = (value or "").strip()
    if not key or key.lower() == "dummy":
        raise ConfigError(f"{env_name} is missing (llm_provider={provider.value})")
    return key


@dataclass(frozen=True)
class LLMHandle:
    llm: ChatModel
    provider: AIProviderName
    model: str


def _openai_kwargs(model: str, api_key: str, base_url: Optional[str], cfg: Settings) -> Dict[str, Any]:
    # ChatOpenAI has renamed parameters across versions; pass both spellings and filter.
    return {
        "model": model,
        "model_name": model,
        "api_key": api_key,
        "openai_api_key": api_key,
        "temperature": float(cfg.llm_temperature),
        "max_tokens": int(cfg.llm_max_output_tokens),
        "base_url": base_url or None,
        "openai_api_base": base_url or None,
    }


def _build_openai(ai: AIProfile, cfg: Settings) -> ChatModel:
    api_key = _require_key(cfg.openai_api_key, "OPENAI_API_KEY", ai.provider)
    return ChatOpenAI(**_filter_init_kwargs(ChatOpenAI, _openai_kwargs(ai.model, api_key, ai.base_url, cfg)))


def _build_openai_compatible(ai: AIProfile, cfg: Settings) -> ChatModel:
    if not ai.base_url:
        raise ConfigError("llm_provider_url is required when llm_provider=openai_compatible")
    api_key = _require_key(
        cfg.openai_compatible_api_key or cfg.openai_api_key, "OPENAI_COMPATIBLE_API_KEY", ai.provider
    )
    return ChatOpenAI(**_filter_init_kwargs(ChatOpenAI, _openai_kwargs(ai.model, api_key, ai.base_url, cfg)))


def _build_ollama(ai: AIProfile, cfg: Settings) -> ChatModel:
    base_url = (ai.base_url or "http://localhost:11434").rstrip("/")
    if not base_url.endswith("/v1"):
        base_url = f"{base_url}/v1"
    # Ollama ignores the key but the OpenAI client requires one.
    return ChatOpenAI(**_filter_init_kwargs(ChatOpenAI, _openai_kwargs(ai.model, "ollama", base_url, cfg)))


def _build_google(ai: AIProfile, cfg: Settings) -> ChatModel:
    api_key = _require_key(cfg.google_api_key, "GOOGLE_API_KEY", ai.provider)
    raw_kwargs = {
        "model": ai.model,
        "google_api_key": api_key,
        "temperature": float(cfg.llm_temperature),
        "max_output_tokens": int(cfg.llm_max_output_tokens),
    }
    return ChatGoogleGenerativeAI(**_filter_init_kwargs(ChatGoogleGenerativeAI, raw_kwargs))


_BUILDERS: Dict[AIProviderName, Callable[[AIProfile, Settings], ChatModel]] = {
    AIProviderName.OPENAI: _build_openai,
    AIProviderName.OPENAI_COMPATIBLE: _build_openai_compatible,
    AIProviderName.OLLAMA: _build_ollama,
    AIProviderName.GOOGLE: _build_google,
}


def create_llm(ai: AIProfile, cfg: Optional[Settings] = None, *, purpose: str = "sql_generation") -> LLMHandle:
    """
    Create a LangChain chat model for the given AI profile.

    Args:
        ai: provider/model/base_url of the active profile
        cfg: settings holding API keys and sampling options
        purpose: for logging only
    """
    cfg = cfg or default_settings
    model = (ai.model or "").strip()
    if not model:
        raise ConfigError("llm_model is empty")

    llm = _BUILDERS[ai.provider](ai, cfg)
    SmartLogger.log(
        "INFO",
        "text2sql.llm.created",
        category="text2sql.llm",
        params={"provider": ai.provider.value, "model": model, "base_url": ai.base_url, "purpose": purpose},
        max_inline_chars=0,
    )
    return LLMHandle(llm=llm, provider=ai.provider, model=model)
