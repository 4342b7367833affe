"""
Async generation facade.

Providers make blocking SDK/HTTP calls; the summarization core runs on
an event loop. Generator runs the provider call in a worker thread and
turns every failure mode (exception, None, empty text) into a single
GenerationError. When a fallback provider is configured it is tried
once after the primary fails.
"""

import asyncio
import logging
from typing import Callable, Optional

from .config import StoreConfig
from .errors import GenerationError
from .providers.base import GenerationProvider, get_registry

logger = logging.getLogger(__name__)


class Generator:
    """Prompt in, text out, with an optional fallback provider."""

    def __init__(
        self,
        primary: GenerationProvider,
        fallback: Optional[GenerationProvider] = None,
        max_tokens: int = 0,
    ):
        """
        Args:
            primary: Provider used for every call
            fallback: Provider tried when the primary fails
            max_tokens: Response token limit; 0 leaves it to the provider
        """
        self._primary = primary
        self._fallback = fallback
        self._max_tokens = max_tokens

    async def _call(self, provider: GenerationProvider, system: str, user: str) -> str:
        kwargs = {"max_tokens": self._max_tokens} if self._max_tokens > 0 else {}
        try:
            text = await asyncio.to_thread(provider.generate, system, user, **kwargs)
        except Exception as e:
            raise GenerationError(f"{type(provider).__name__}: {e}") from e
        if not text or not text.strip():
            raise GenerationError(f"{type(provider).__name__}: empty response")
        return text

    async def complete(self, system: str, user: str) -> str:
        """
        Generate text for a system+user prompt.

        Raises:
            GenerationError: If the primary (and fallback, if any) failed
        """
        try:
            return await self._call(self._primary, system, user)
        except GenerationError as e:
            if self._fallback is None:
                raise
            logger.warning("Primary generation failed (%s), trying fallback", e)
        return await self._call(self._fallback, system, user)


class LazyGenerator:
    """
    Defers provider construction to the first completion.

    Some providers touch the network when constructed (Ollama checks that
    its model is installed), which read-only commands should not pay for.
    """

    def __init__(self, factory: Callable[[], Generator]):
        self._factory = factory
        self._generator: Optional[Generator] = None

    async def complete(self, system: str, user: str) -> str:
        if self._generator is None:
            try:
                self._generator = self._factory()
            except (ValueError, RuntimeError) as e:
                raise GenerationError(f"Generation provider unavailable: {e}") from e
        return await self._generator.complete(system, user)


def create_generator(config: StoreConfig) -> Generator:
    """
    Build a Generator from a store configuration.

    Raises:
        ValueError: Unknown provider name
        RuntimeError: Provider could not be constructed
    """
    registry = get_registry()
    primary = registry.create_generation(config.generation.name, config.generation.params)
    fallback = None
    if config.fallback is not None:
        try:
            fallback = registry.create_generation(config.fallback.name, config.fallback.params)
        except (ValueError, RuntimeError) as e:
            logger.warning("Fallback provider unavailable: %s", e)
    return Generator(primary, fallback, max_tokens=config.settings.max_tokens)
