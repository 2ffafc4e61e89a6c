"""Provider fallback tests."""

import pytest

from researchflow.config import ProviderSettings
from researchflow.contracts import RetryOptions
from researchflow.errors import ConfigurationError, NoProviderAvailable
from researchflow.providers import ProviderCandidate, ProviderFallbackResolver, inference_candidates
import researchflow.providers.factory as factory_module
from researchflow.providers.factory import ProviderFactory


def test_primary_wins_when_configured():
    resolver = ProviderFallbackResolver("inference")
    client = resolver.resolve(
        ProviderCandidate("gemini", lambda: "gemini-client", credential="k1"),
        ProviderCandidate("groq", lambda: "groq-client", credential="k2"),
    )
    assert client == "gemini-client"


def test_unconfigured_primary_falls_back_without_building():
    built = []

    def build_primary():
        built.append("gemini")
        return "gemini-client"

    client = ProviderFallbackResolver("inference").resolve(
        ProviderCandidate("gemini", build_primary, credential=None),
        ProviderCandidate("groq", lambda: "groq-client", credential="k2"),
    )
    assert client == "groq-client"
    assert built == []


def test_factory_configuration_error_falls_back():
    def broken():
        raise ConfigurationError("bad key format")

    client = ProviderFallbackResolver("inference").resolve(
        ProviderCandidate("gemini", broken, credential="k1"),
        ProviderCandidate("groq", lambda: "groq-client", credential="k2"),
    )
    assert client == "groq-client"


def test_no_provider_available():
    with pytest.raises(NoProviderAvailable) as excinfo:
        ProviderFallbackResolver("search").resolve(
            ProviderCandidate("serper", lambda: "serper", credential="")
        )
    assert excinfo.value.tried == ["serper"]


def test_inference_order_follows_preference():
    settings = ProviderSettings(llm_provider="groq", gemini_api_key="g", groq_api_key="q")
    assert [c.name for c in inference_candidates(settings)] == ["groq", "gemini"]


def test_retry_override_wins_and_model_stays_with_primary(monkeypatch):
    settings = ProviderSettings(
        llm_provider="groq", gemini_api_key="g", groq_api_key="q", groq_model="llama-3.1-8b"
    )
    overrides = RetryOptions(provider="gemini", model="gemini-2.5-pro")
    built = []

    primary, secondary = inference_candidates(settings, overrides)
    assert (primary.name, secondary.name) == ("gemini", "groq")

    def fake_gemini(key, model):
        built.append(("gemini", model))
        raise ConfigurationError("gemini down")

    def fake_groq(key, model):
        built.append(("groq", model))
        return "groq-client"

    monkeypatch.setattr(factory_module, "build_gemini_client", fake_gemini)
    monkeypatch.setattr(factory_module, "build_groq_client", fake_groq)

    assert ProviderFactory().inference(settings, overrides) == "groq-client"
    assert built == [("gemini", "gemini-2.5-pro"), ("groq", "llama-3.1-8b")]


def test_require_inference_without_keys():
    with pytest.raises(ConfigurationError, match="No LLM API keys found"):
        ProviderFactory().require_inference(ProviderSettings())
