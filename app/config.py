"""Application configuration"""
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings


class ConfigError(Exception):
    """Raised when the configuration cannot be resolved"""
    pass


class AIProviderName(str, Enum):
    OLLAMA = "ollama"
    OPENAI = "openai"
    OPENAI_COMPATIBLE = "openai_compatible"
    GOOGLE = "google"


class ProfileName(str, Enum):
    LLAMA32_POSTGRES = "llama3.2-postgres"
    GPT4O_MINI_POSTGRES = "gpt4o-mini-postgres"
    GEMINI_POSTGRES = "gemini-postgres"


class DatabaseProviderName(str, Enum):
    POSTGRES = "postgres"


class AIProfile(BaseModel):
    provider: AIProviderName
    model: str
    base_url: Optional[str] = None


class DatabaseProfile(BaseModel):
    provider: DatabaseProviderName = DatabaseProviderName.POSTGRES
    host: str = "localhost"
    port: int = 5432
    database: str = "mydb"
    user: str = "postgres"
    password: str = "password"
    schema_name: str = "public"


class AppProfile(BaseModel):
    """A named combination of generation provider and target database"""

    name: str
    ai: AIProfile
    database: DatabaseProfile


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # Profile
    config_profile: str = ProfileName.LLAMA32_POSTGRES.value

    # LLM (override the profile when set)
    llm_provider: str = ""
    llm_model: str = ""
    llm_provider_url: str = ""
    openai_api_key: str = ""
    openai_compatible_api_key: str = ""
    google_api_key: str = ""
    llm_temperature: float = 0.1
    llm_max_output_tokens: int = 500

    # Target Database (override the profile when set)
    target_db_host: str = ""
    target_db_port: int = 0
    target_db_name: str = ""
    target_db_user: str = ""
    target_db_password: str = ""
    target_db_schema: str = ""
    target_db_ssl: str = "disable"
    target_db_pool_min_size: int = 1
    target_db_pool_max_size: int = 10

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 3000

    # Security & Limits
    sql_row_limit: int = 1000
    sql_timeout_seconds: int = 30
    dry_run_timeout_seconds: int = 10
    generation_timeout_seconds: int = 60
    max_repair_attempts: int = 1
    max_join_depth: int = 10
    max_subquery_depth: int = 10

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


PROFILES: Dict[str, AppProfile] = {
    ProfileName.LLAMA32_POSTGRES.value: AppProfile(
        name=ProfileName.LLAMA32_POSTGRES.value,
        ai=AIProfile(
            provider=AIProviderName.OLLAMA,
            model="llama3.2",
            base_url="http://localhost:11434",
        ),
        database=DatabaseProfile(),
    ),
    ProfileName.GPT4O_MINI_POSTGRES.value: AppProfile(
        name=ProfileName.GPT4O_MINI_POSTGRES.value,
        ai=AIProfile(provider=AIProviderName.OPENAI, model="gpt-4o-mini"),
        database=DatabaseProfile(),
    ),
    ProfileName.GEMINI_POSTGRES.value: AppProfile(
        name=ProfileName.GEMINI_POSTGRES.value,
        ai=AIProfile(provider=AIProviderName.GOOGLE, model="gemini-2.0-flash"),
        database=DatabaseProfile(),
    ),
}


def get_profile(name: str, overrides: Optional[Settings] = None) -> AppProfile:
    """
    Resolve a named profile and apply non-empty environment overrides on top of it.

    Raises:
        ConfigError: if the profile name is unknown or the provider override is invalid.
    """
    base = PROFILES.get((name or "").strip())
    if base is None:
        raise ConfigError(f"Configuration '{name}' not found")
    if overrides is None:
        return base

    ai_updates: Dict[str, object] = {}
    if overrides.llm_provider:
        try:
            ai_updates["provider"] = AIProviderName(overrides.llm_provider.strip().lower())
        except ValueError as exc:
            allowed = ", ".join(p.value for p in AIProviderName)
            raise ConfigError(
                f"Unsupported llm_provider={overrides.llm_provider!r}. Allowed: {allowed}"
            ) from exc
    if overrides.llm_model:
        ai_updates["model"] = overrides.llm_model
    if overrides.llm_provider_url:
        ai_updates["base_url"] = overrides.llm_provider_url

    db_updates: Dict[str, object] = {}
    for field_name, attr in (
        ("host", "target_db_host"),
        ("port", "target_db_port"),
        ("database", "target_db_name"),
        ("user", "target_db_user"),
        ("password", "target_db_password"),
        ("schema_name", "target_db_schema"),
    ):
        value = getattr(overrides, attr)
        if value:
            db_updates[field_name] = value

    return AppProfile(
        name=base.name,
        ai=base.ai.model_copy(update=ai_updates),
        database=base.database.model_copy(update=db_updates),
    )


settings = Settings()
