"""
Shared pytest fixtures for hilo tests.

Provides a scripted generator so no test talks to an LLM, and temp-dir
SQLite stores for the transcript, notes and metadata.
"""

from pathlib import Path

import pytest

from hilo.api import Summarizer
from hilo.config import Settings, StoreConfig
from hilo.metadata import MetadataStore
from hilo.note_store import NoteStore
from hilo.notebook import Notebook, collection_name_for
from hilo.transcript import TranscriptStore


class ScriptedGenerator:
    """
    Generator that replays canned replies.

    Replies are consumed in order; once exhausted every call returns
    ``default``. An Exception in the reply list is raised instead of
    returned. Every call is recorded in ``calls``.
    """

    def __init__(self, replies=None, default: str = "A short summary."):
        self.replies = list(replies or [])
        self.default = default
        self.calls: list[tuple[str, str]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def complete(self, system: str, user: str) -> str:
        self.calls.append((system, user))
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeProvider:
    """Blocking generation provider with a call log."""

    def __init__(self, reply="generated", error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.calls: list[dict] = []

    def generate(self, system: str, user: str, **kwargs):
        self.calls.append({"system": system, "user": user, **kwargs})
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture(autouse=True)
def _no_provider_keys(monkeypatch):
    """Keep provider detection deterministic (passthrough)."""
    for var in ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "HILO_OPENAI_API_KEY", "HILO_STORE_PATH"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "hilo.db"


@pytest.fixture
def transcript(db_path):
    store = TranscriptStore(db_path, "chat")
    yield store
    store.close()


@pytest.fixture
def note_store(db_path):
    store = NoteStore(db_path)
    yield store
    store.close()


@pytest.fixture
def metadata_store(db_path):
    store = MetadataStore(db_path, "chat")
    yield store
    store.close()


@pytest.fixture
def notebook(note_store):
    """A notebook whose collection exists."""
    nb = Notebook(note_store, collection_name_for("chat"))
    nb.ensure()
    return nb


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def settings():
    return Settings(task_cooldown=0)


@pytest.fixture
def store_config(tmp_path, settings):
    return StoreConfig(path=tmp_path, settings=settings)


@pytest.fixture
def summarizer(store_config, generator):
    s = Summarizer(conversation="chat", config=store_config, generator=generator)
    yield s
    s.close()
