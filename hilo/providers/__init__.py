"""
Generation providers for hilo.

Concrete providers register themselves with the registry when
``hilo.providers.llm`` is imported; the registry does that lazily.
"""

from .base import GenerationProvider, ProviderRegistry, get_registry

__all__ = ["GenerationProvider", "ProviderRegistry", "get_registry"]
