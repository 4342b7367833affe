"""
Generation providers backed by LLM APIs.

SDK clients are imported when a provider is constructed, so an install
without (say) the anthropic package can still use the others.
"""

import os

import httpx

from .base import get_registry


class AnthropicGeneration:
    """
    Generation provider using Anthropic's Claude API.

    Authentication (checked in priority order):
    1. api_key parameter (if provided)
    2. ANTHROPIC_API_KEY

    Default model is claude-haiku-4.5, a good quality/cost point for
    short summaries. Configure via the [generation] section of hilo.toml.
    """

    def __init__(
        self,
        model: str = "claude-haiku-4-5-20251001",
        api_key: str | None = None,
        max_tokens: int = 1024,
    ):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise RuntimeError("AnthropicGeneration requires 'anthropic' library")

        self.model = model
        self.max_tokens = max_tokens

        key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not key:
            raise ValueError("Anthropic authentication required. Set ANTHROPIC_API_KEY")

        self.client = Anthropic(api_key=key)

    def generate(
        self,
        system: str,
        user: str,
        *,
        max_tokens: int = 0,
    ) -> str | None:
        """Send a prompt to Anthropic and return generated text."""
        # The Anthropic SDK retries rate limits itself; anything that
        # still fails propagates to the caller.
        response = self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens or self.max_tokens,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        if response.content:
            return response.content[0].text
        return None


class OpenAIGeneration:
    """
    Generation provider using the OpenAI chat API, or any
    OpenAI-compatible endpoint via ``base_url``.

    Requires: api_key parameter, HILO_OPENAI_API_KEY or OPENAI_API_KEY
    (a custom ``base_url`` may accept any key).

    Default model is gpt-4.1-mini.
    """

    def __init__(
        self,
        model: str = "gpt-4.1-mini",
        api_key: str | None = None,
        base_url: str | None = None,
        max_tokens: int = 1024,
    ):
        try:
            from openai import OpenAI
        except ImportError:
            raise RuntimeError("OpenAIGeneration requires 'openai' library")

        self.model = model
        self.max_tokens = max_tokens
        self.base_url = base_url or None

        key = api_key or os.environ.get("HILO_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY")
        if not key:
            raise ValueError(
                "OpenAI API key required. Set HILO_OPENAI_API_KEY or OPENAI_API_KEY"
            )

        self._client = OpenAI(api_key=key, base_url=self.base_url)

        # GPT-5+ and reasoning models use a different API surface:
        # - max_completion_tokens instead of max_tokens
        # - temperature must be omitted (only default=1 supported)
        self._new_api = self.model.startswith(("gpt-5", "o3", "o4"))

    def _completion_kwargs(self, max_tokens: int) -> dict:
        """Return model-appropriate kwargs for token limit and temperature."""
        if self._new_api:
            return {"max_completion_tokens": max_tokens}
        return {"max_tokens": max_tokens, "temperature": 0.3}

    def generate(
        self,
        system: str,
        user: str,
        *,
        max_tokens: int = 0,
    ) -> str | None:
        """Send a prompt to OpenAI and return generated text."""
        response = self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            **self._completion_kwargs(max_tokens or self.max_tokens),
        )
        if response.choices:
            return response.choices[0].message.content
        return None


class OllamaGeneration:
    """
    Generation provider using Ollama's local API.

    Respects OLLAMA_HOST env var (default: http://localhost:11434).
    """

    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str | None = None,
    ):
        from .ollama_utils import ollama_base_url, ollama_check_model

        self.model = model
        self.base_url = ollama_base_url(base_url)
        ollama_check_model(self.base_url, self.model)

    def generate(
        self,
        system: str,
        user: str,
        *,
        max_tokens: int = 0,
    ) -> str | None:
        """Send a prompt to Ollama and return generated text."""
        import requests

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "stream": False,
        }
        if max_tokens:
            payload["options"] = {"num_predict": max_tokens}

        response = requests.post(
            f"{self.base_url}/api/chat",
            json=payload,
            timeout=(10, 300),  # (connect, read); generation can be slow
        )
        if not response.ok:
            detail = response.text[:200] if response.text else ""
            raise RuntimeError(
                f"Ollama generate failed (model={self.model}): "
                f"HTTP {response.status_code} from {self.base_url}. {detail}"
            )
        return response.json()["message"]["content"].strip()


class PassthroughGeneration:
    """
    Generation provider that echoes the tail of the user prompt.

    Useful for testing, or for running without any LLM: mini-summaries
    become truncated message text and volume checks never fire on their
    own (only the length threshold archives).
    """

    def __init__(self, max_chars: int = 500):
        self.max_chars = max_chars

    def generate(
        self,
        system: str,
        user: str,
        *,
        max_tokens: int = 0,
    ) -> str | None:
        """Return the last paragraph of the user prompt, truncated."""
        text = user.strip().rsplit("\n\n", 1)[-1]
        if len(text) <= self.max_chars:
            return text
        return text[:self.max_chars].rsplit(" ", 1)[0] + "..."


# -----------------------------------------------------------------------------
# Model discovery
# -----------------------------------------------------------------------------

def list_openai_models(base_url: str, api_key: str, *, timeout: float = 15.0) -> list[str]:
    """
    List model ids served by an OpenAI-compatible endpoint.

    GET {base_url}/models with a bearer token.

    Raises:
        RuntimeError: If the endpoint is unreachable or returns an error
    """
    url = base_url.rstrip("/") + "/models"
    try:
        resp = httpx.get(
            url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
        )
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise RuntimeError(
            f"Model listing failed: HTTP {e.response.status_code} from {url}"
        ) from e
    except httpx.HTTPError as e:
        raise RuntimeError(f"Cannot reach {url}: {e}") from e
    data = resp.json()
    return sorted(m["id"] for m in data.get("data", []) if "id" in m)


# Register providers
_registry = get_registry()
_registry.register_generation("anthropic", AnthropicGeneration)
_registry.register_generation("openai", OpenAIGeneration)
_registry.register_generation("ollama", OllamaGeneration)
_registry.register_generation("passthrough", PassthroughGeneration)
