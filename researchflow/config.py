from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, ValidationError

from .constants import DEFAULT_GEMINI_MODEL, DEFAULT_GROQ_MODEL
from .errors import ConfigurationError

LLMProvider = Literal["gemini", "groq"]


class RedisConfig(BaseModel):
    """Configuration for Redis transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """Transport configuration settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()


class RetryConfig(BaseModel):
    """In-process retry policy for transient step failures."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 1.0


class PollConfig(BaseModel):
    """Polling of long-running external jobs."""

    interval_seconds: float = 30.0
    max_attempts: int = 40
    progress_baseline: int = 10
    progress_increment: int = 1
    progress_ceiling: int = 60


class DiscoveryConfig(BaseModel):
    """Limits applied while gathering sources."""

    search_limit: int = 10
    iteration_limit: int = 5
    max_iterations: int = 2
    content_limit: int = 50_000


class ProviderSettings(BaseModel):
    """Credentials and model preferences for capability providers."""

    llm_provider: LLMProvider = "gemini"
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    groq_api_key: Optional[str] = None
    groq_model: str = DEFAULT_GROQ_MODEL
    serper_api_key: Optional[str] = None
    jina_api_key: Optional[str] = None

    def has_inference(self) -> bool:
        return bool(self.gemini_api_key or self.groq_api_key)

    def configured(self) -> list[str]:
        """Names of providers with a credential, safe to persist."""
        names = []
        for name in ("gemini", "groq", "serper", "jina"):
            if getattr(self, f"{name}_api_key"):
                names.append(name)
        return names


class ResearchFlowConfig(BaseModel):
    """Top-level configuration model."""

    transport: TransportConfig = TransportConfig()
    database_url: Optional[str] = None
    max_concurrent_runs: int = 3
    # A run left IN_PROGRESS without updates for this long is treated as
    # abandoned and may be resumed by another executor.
    run_lease_seconds: float = 3600.0
    retry: RetryConfig = RetryConfig()
    poll: PollConfig = PollConfig()
    discovery: DiscoveryConfig = DiscoveryConfig()
    providers: ProviderSettings = ProviderSettings()


def load_config(path: Optional[str] = None) -> ResearchFlowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to RESEARCHFLOW_CONFIG
            env variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("RESEARCHFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ResearchFlowConfig(**data)
    else:
        config = ResearchFlowConfig()

    env_db_url = os.getenv("RESEARCHFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_transport = os.getenv("RESEARCHFLOW_TRANSPORT")
    if env_transport:
        config.transport.backend = env_transport.lower()
    return config


_PROVIDER_ENV = {
    "gemini_api_key": "GEMINI_API_KEY",
    "gemini_model": "GEMINI_MODEL",
    "groq_api_key": "GROQ_API_KEY",
    "groq_model": "GROQ_MODEL",
    "serper_api_key": "SERPER_API_KEY",
    "jina_api_key": "JINA_API_KEY",
    "llm_provider": "RESEARCHFLOW_LLM_PROVIDER",
}


async def load_provider_settings(
    user_id: Optional[str] = None, path: Optional[str] = None
) -> ProviderSettings:
    """Read provider settings fresh from the config file and environment.

    Called at the top of every stage so that a credential fixed while a run
    is waiting is picked up by the next stage. ``user_id`` is accepted so
    that per-user loaders can share the signature; the file-based loader
    ignores it.
    """

    data = load_config(path).providers.model_dump()
    for field, env_name in _PROVIDER_ENV.items():
        value = os.getenv(env_name)
        if value:
            data[field] = value.lower() if field == "llm_provider" else value
    try:
        return ProviderSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid provider settings: {exc}") from exc
