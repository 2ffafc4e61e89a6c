"""Tests for configuration loading."""

import pytest

from researchflow.config import load_config, load_provider_settings
from researchflow.errors import ConfigurationError
from researchflow.transports import get_transport
from researchflow.transports.redis import RedisTransport


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
transport:
  backend: redis
  redis:
    host: testhost
    port: 1234
retry:
  max_attempts: 5
poll:
  interval_seconds: 2
"""
    )
    monkeypatch.setenv("RESEARCHFLOW_CONFIG", str(config_path))

    config = load_config()
    assert config.transport.backend == "redis"
    assert config.transport.redis.host == "testhost"
    assert config.transport.redis.port == 1234
    assert config.retry.max_attempts == 5
    assert config.poll.interval_seconds == 2
    assert config.poll.max_attempts == 40


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.setenv("RESEARCHFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    config = load_config()
    assert config.transport.backend == "inmemory"
    assert config.database_url is None
    assert config.max_concurrent_runs == 3
    assert config.discovery.search_limit == 10


def test_database_url_env_override(tmp_path, monkeypatch):
    monkeypatch.setenv("RESEARCHFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("RESEARCHFLOW_DATABASE_URL", "sqlite:///runs.db")
    assert load_config().database_url == "sqlite:///runs.db"


def test_get_transport_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
transport:
  backend: redis
  redis:
    host: confighost
    port: 6380
"""
    )
    monkeypatch.setenv("RESEARCHFLOW_CONFIG", str(config_path))

    transport = get_transport()
    assert isinstance(transport, RedisTransport)
    assert transport.host == "confighost"
    assert transport.port == 6380


def test_get_transport_backend_argument_and_unknown_backend(tmp_path, monkeypatch):
    monkeypatch.setenv("RESEARCHFLOW_CONFIG", str(tmp_path / "missing.yaml"))

    assert isinstance(get_transport("redis"), RedisTransport)
    assert not isinstance(get_transport(), RedisTransport)
    with pytest.raises(ConfigurationError):
        get_transport("kafka")


@pytest.mark.asyncio
async def test_provider_settings_are_read_fresh(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("providers:\n  llm_provider: groq\n")
    monkeypatch.setenv("RESEARCHFLOW_CONFIG", str(config_path))
    for name in ("GEMINI_API_KEY", "GROQ_API_KEY", "SERPER_API_KEY", "JINA_API_KEY"):
        monkeypatch.delenv(name, raising=False)

    first = await load_provider_settings()
    assert first.llm_provider == "groq"
    assert not first.has_inference()

    monkeypatch.setenv("GROQ_API_KEY", "late-key")
    second = await load_provider_settings()
    assert second.groq_api_key == "late-key"
    assert second.configured() == ["groq"]


@pytest.mark.asyncio
async def test_provider_preference_from_env_is_validated(tmp_path, monkeypatch):
    monkeypatch.setenv("RESEARCHFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("RESEARCHFLOW_LLM_PROVIDER", "GROQ")
    assert (await load_provider_settings()).llm_provider == "groq"

    monkeypatch.setenv("RESEARCHFLOW_LLM_PROVIDER", "openai")
    with pytest.raises(ConfigurationError):
        await load_provider_settings()
