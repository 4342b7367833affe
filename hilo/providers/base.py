"""
Base provider protocol and registry.

A generation provider wraps one LLM backend behind a single blocking
call. Using Protocol for structural subtyping - no explicit inheritance
required.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class GenerationProvider(Protocol):
    """
    Generates text from a system+user prompt pair.

    Example implementation:
        class OpenAIGeneration:
            def __init__(self, model: str = "gpt-4.1-mini"):
                self.client = OpenAI()
                self.model = model

            def generate(self, system: str, user: str, *, max_tokens: int = 4096) -> str | None:
                response = self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                    max_tokens=max_tokens,
                )
                return response.choices[0].message.content
    """

    def generate(
        self,
        system: str,
        user: str,
        *,
        max_tokens: int = 4096,
    ) -> str | None:
        """
        Send a system+user prompt to the underlying LLM and return text.

        Args:
            system: System prompt
            user: User prompt
            max_tokens: Maximum tokens in response

        Returns:
            Generated text, or None if the backend returned nothing

        Raises:
            Any backend error (network, auth, rate limit). Callers decide
            whether to fall back or give up.
        """
        ...


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry for discovering and instantiating generation providers.

    Providers are registered by name and instantiated from configuration,
    so the store configuration (TOML) can name a provider rather than
    requiring code changes.

    Example:
        registry = ProviderRegistry()
        registry.register_generation("openai", OpenAIGeneration)

        # Later, from config:
        provider = registry.create_generation("openai", {"model": "gpt-4.1-mini"})
    """

    def __init__(self):
        self._generation_providers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Lazily load provider modules so they can register themselves."""
        if self._lazy_loaded:
            return
        self._lazy_loaded = True
        # Safe to import: SDK clients are only imported on instantiation
        from . import llm  # noqa: F401

    def register_generation(self, name: str, provider_class: type) -> None:
        """Register a generation provider class."""
        self._generation_providers[name] = provider_class

    def create_generation(self, name: str, params: dict | None = None) -> GenerationProvider:
        """
        Create a generation provider instance.

        Raises:
            ValueError: If no provider is registered under ``name``
            RuntimeError: If the provider cannot be constructed
        """
        self._ensure_providers_loaded()
        if name not in self._generation_providers:
            available = ", ".join(self._generation_providers.keys()) or "none"
            raise ValueError(
                f"Unknown generation provider: '{name}'. "
                f"Available providers: {available}."
            )
        try:
            return self._generation_providers[name](**(params or {}))
        except ImportError as e:
            raise RuntimeError(
                f"Failed to create generation provider '{name}': {e}\n"
                f"Install required dependencies."
            ) from e
        except Exception as e:
            raise RuntimeError(
                f"Failed to create generation provider '{name}': {e}"
            ) from e

    def list_generation_providers(self) -> list[str]:
        """List registered generation provider names."""
        self._ensure_providers_loaded()
        return list(self._generation_providers.keys())


# Global registry instance
# Concrete providers register themselves on import
_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry
