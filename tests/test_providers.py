"""Tests for the provider registry and concrete providers."""

import httpx
import pytest

from hilo.providers import ProviderRegistry, get_registry
from hilo.providers.llm import OpenAIGeneration, PassthroughGeneration, list_openai_models
from hilo.providers.ollama_utils import ollama_base_url


class TestRegistry:

    def test_builtin_providers_are_registered(self):
        names = get_registry().list_generation_providers()
        assert {"anthropic", "openai", "ollama", "passthrough"} <= set(names)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Available providers"):
            get_registry().create_generation("nope")

    def test_params_are_passed_to_constructor(self):
        provider = get_registry().create_generation("passthrough", {"max_chars": 10})
        assert isinstance(provider, PassthroughGeneration)
        assert provider.max_chars == 10

    def test_constructor_errors_become_runtime_errors(self):
        registry = ProviderRegistry()

        class Broken:
            def __init__(self):
                raise ValueError("missing key")

        registry.register_generation("broken", Broken)
        with pytest.raises(RuntimeError, match="missing key"):
            registry.create_generation("broken")

    def test_missing_api_key(self):
        with pytest.raises(RuntimeError, match="API key required"):
            get_registry().create_generation("openai")


class TestPassthrough:

    def test_returns_last_paragraph(self):
        provider = PassthroughGeneration()
        assert provider.generate("sys", "Context.\n\nThe actual message.") == "The actual message."

    def test_truncates_on_word_boundary(self):
        provider = PassthroughGeneration(max_chars=12)
        assert provider.generate("sys", "one two three four") == "one two..."


class TestOpenAI:

    def test_token_kwargs_for_older_models(self):
        provider = OpenAIGeneration(model="gpt-4.1-mini", api_key="test")
        assert provider._completion_kwargs(200) == {"max_tokens": 200, "temperature": 0.3}

    def test_token_kwargs_for_reasoning_models(self):
        provider = OpenAIGeneration(model="gpt-5-mini", api_key="test")
        assert provider._completion_kwargs(200) == {"max_completion_tokens": 200}

    def test_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("HILO_OPENAI_API_KEY", "from-env")
        provider = OpenAIGeneration()
        assert provider.model == "gpt-4.1-mini"


class TestListModels:

    def test_sorted_model_ids(self, monkeypatch):
        seen = {}

        def fake_get(url, headers=None, timeout=None):
            seen["url"] = url
            seen["auth"] = headers["Authorization"]
            return httpx.Response(
                200,
                json={"data": [{"id": "gpt-b"}, {"id": "gpt-a"}, {"object": "model"}]},
                request=httpx.Request("GET", url),
            )

        monkeypatch.setattr("hilo.providers.llm.httpx.get", fake_get)
        models = list_openai_models("https://api.example.com/v1/", "secret")
        assert models == ["gpt-a", "gpt-b"]
        assert seen == {"url": "https://api.example.com/v1/models", "auth": "Bearer secret"}

    def test_http_error(self, monkeypatch):
        def fake_get(url, headers=None, timeout=None):
            return httpx.Response(401, request=httpx.Request("GET", url))

        monkeypatch.setattr("hilo.providers.llm.httpx.get", fake_get)
        with pytest.raises(RuntimeError, match="HTTP 401"):
            list_openai_models("https://api.example.com/v1", "bad")

    def test_unreachable(self, monkeypatch):
        def fake_get(url, headers=None, timeout=None):
            raise httpx.ConnectError("refused", request=httpx.Request("GET", url))

        monkeypatch.setattr("hilo.providers.llm.httpx.get", fake_get)
        with pytest.raises(RuntimeError, match="Cannot reach"):
            list_openai_models("https://api.example.com/v1", "key")


class TestOllamaUrl:

    def test_default(self, monkeypatch):
        monkeypatch.delenv("OLLAMA_HOST", raising=False)
        assert ollama_base_url() == "http://localhost:11434"

    def test_env_host_gets_scheme(self, monkeypatch):
        monkeypatch.setenv("OLLAMA_HOST", "gpu-box:11434/")
        assert ollama_base_url() == "http://gpu-box:11434"

    def test_explicit_wins(self, monkeypatch):
        monkeypatch.setenv("OLLAMA_HOST", "other:1")
        assert ollama_base_url("https://ollama.local") == "https://ollama.local"
