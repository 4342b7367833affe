"""
Protocol definitions for the summarizer's collaborators.

Defines the interface contracts the orchestration core consumes:
- TranscriptProtocol: the conversation transcript (SQLite locally)
- NoteStoreProtocol: the prompt-injection note collections
- MetadataStoreProtocol: persisted summarization state
- GeneratorProtocol: prompt in, text out

Any object with matching methods works; no inheritance required.
"""

from typing import Callable, Iterable, Optional, Protocol, runtime_checkable

from .metadata import Metadata
from .note_store import NoteRecord
from .types import Role, Turn


@runtime_checkable
class TranscriptProtocol(Protocol):
    """An append-only conversation transcript."""

    def append(self, role: Role | str, text: str) -> Turn: ...

    def get_turn(self, turn_id: int) -> Optional[Turn]: ...

    def list_turns(self, start: int = 0, end: Optional[int] = None) -> list[Turn]: ...

    def latest_turn_id(self) -> int: ...

    def set_visibility(self, updates: Iterable[tuple[int, bool]]) -> int: ...


@runtime_checkable
class NoteStoreProtocol(Protocol):
    """Named collections of prompt-injection entries."""

    def collection_exists(self, collection: str) -> bool: ...

    def create_collection(self, collection: str) -> bool: ...

    def list_entries(self, collection: str) -> list[NoteRecord]: ...

    def upsert_entries(self, collection: str, records: list[NoteRecord]) -> list[NoteRecord]: ...

    def mutate(
        self,
        collection: str,
        fn: Callable[[list[NoteRecord]], list[NoteRecord]],
    ) -> list[NoteRecord]: ...


@runtime_checkable
class MetadataStoreProtocol(Protocol):
    """Persisted summarization metadata for one conversation."""

    def load(self) -> Metadata: ...

    def save(self, metadata: Metadata) -> None: ...


@runtime_checkable
class GeneratorProtocol(Protocol):
    """
    Text generation backend.

    complete() may raise GenerationError (or any exception); callers in
    the summarization core treat every failure as transient.
    """

    async def complete(self, system: str, user: str) -> str: ...
