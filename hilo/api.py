"""
Core API for two-tier conversation summarization.

A Summarizer owns everything needed to summarize one conversation: the
settings, the stores, the generator and the task queue. The counter that
paces volume checks lives in metadata, so it survives restarts. Create one
per conversation.

Usage:
    async def main():
        with Summarizer(conversation="campaign") as s:
            turn = s.add_turn("assistant", "The ship leaves port at dawn.")
            await s.wait_idle()
"""

import logging
from pathlib import Path
from typing import Optional

from .archive import ArchiveIndex
from .config import Settings, StoreConfig, get_default_store_path, load_or_create_config
from .generator import LazyGenerator, create_generator
from .logging_config import configure_ops_log, remove_ops_log
from .metadata import MetadataStore
from .note_store import NoteStore
from .notebook import Notebook, collection_name_for
from .protocol import (
    GeneratorProtocol,
    MetadataStoreProtocol,
    NoteStoreProtocol,
    TranscriptProtocol,
)
from .queue import TaskQueue
from .summary import MiniSummaryManager
from .transcript import TranscriptStore
from .types import GENERATING_MARKER, Outcome, QueuedTask, Role, Turn, VolumeRecord
from .visibility import SyncResult, VisibilitySynchronizer
from .volume import VolumeArchiver

logger = logging.getLogger(__name__)

DATABASE_FILENAME = "hilo.db"


class Summarizer:
    """
    Incremental summarizer for one conversation.

    New turns get a mini-summary each; batches of mini-summaries are
    periodically folded into volumes. Work runs on a serial asyncio queue,
    so methods that enqueue must be called with an event loop running
    (or followed by ``await wait_idle()``).
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        conversation: str = "default",
        *,
        config: Optional[StoreConfig] = None,
        transcript: Optional[TranscriptProtocol] = None,
        note_store: Optional[NoteStoreProtocol] = None,
        metadata_store: Optional[MetadataStoreProtocol] = None,
        generator: Optional[GeneratorProtocol] = None,
        create_collection: bool = True,
    ) -> None:
        """
        Args:
            store_path: Store directory. Uses HILO_STORE_PATH or ~/.hilo if
                not specified.
            conversation: Conversation to summarize
            config: Pre-loaded StoreConfig (skips filesystem config discovery)
            transcript: Injected transcript (skips the SQLite default)
            note_store: Injected note store (skips the SQLite default)
            metadata_store: Injected metadata store (skips the SQLite default)
            generator: Injected generator (skips provider construction)
            create_collection: Create the conversation's note collection
                if it does not exist yet
        """
        if config is not None:
            self._config = config
            self._store_path = Path(config.path)
        else:
            self._store_path = (
                Path(store_path).expanduser().resolve() if store_path is not None
                else get_default_store_path()
            )
            self._config = load_or_create_config(self._store_path)
        self._conversation = conversation

        self._ops_log_handler = configure_ops_log(self._store_path)

        db_path = self._store_path / DATABASE_FILENAME
        self._owned = []
        if transcript is None:
            transcript = TranscriptStore(db_path, conversation)
            self._owned.append(transcript)
        if note_store is None:
            note_store = NoteStore(db_path)
            self._owned.append(note_store)
        if metadata_store is None:
            metadata_store = MetadataStore(db_path, conversation)
            self._owned.append(metadata_store)
        if generator is None:
            generator = LazyGenerator(lambda: create_generator(self._config))

        self._transcript = transcript
        self._metadata_store = metadata_store
        self._generator = generator
        self._notebook = Notebook(note_store, collection_name_for(conversation))
        if create_collection:
            self.ensure_collection()

        settings = self._config.settings
        self._archive_index = ArchiveIndex(metadata_store, self._notebook)
        self._summaries = MiniSummaryManager(
            settings, transcript, self._notebook, metadata_store, generator,
        )
        self._visibility = VisibilitySynchronizer(
            settings, transcript, self._notebook, self._archive_index,
        )
        self._volumes = VolumeArchiver(
            settings, self._notebook, metadata_store, self._archive_index, generator,
            on_archived=self._after_archive,
        )
        self._queue = TaskQueue(cooldown=settings.task_cooldown)
        self._queue.set_handlers(
            mini_summary=self._summarize,
            volume_summary=self._volumes.archive,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def store_path(self) -> Path:
        return self._store_path

    @property
    def conversation(self) -> str:
        return self._conversation

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def settings(self) -> Settings:
        return self._config.settings

    @property
    def transcript(self) -> TranscriptProtocol:
        return self._transcript

    @property
    def notebook(self) -> Notebook:
        return self._notebook

    @property
    def archive_index(self) -> ArchiveIndex:
        return self._archive_index

    @property
    def summaries(self) -> MiniSummaryManager:
        return self._summaries

    @property
    def volumes(self) -> VolumeArchiver:
        return self._volumes

    @property
    def queue(self) -> TaskQueue:
        return self._queue

    def ensure_collection(self) -> bool:
        """Create the conversation's note collection. Returns True if new."""
        return self._notebook.ensure()

    # -------------------------------------------------------------------------
    # New turns
    # -------------------------------------------------------------------------

    def add_turn(self, role: Role | str, text: str) -> Turn:
        """Append a turn to the transcript and process it."""
        turn = self._transcript.append(role, text)
        self.on_new_turn(turn.id)
        return turn

    def _previous_summarizable(self, turn_id: int) -> Optional[int]:
        for turn in reversed(self._transcript.list_turns(0, turn_id - 1)):
            if not turn.is_system and turn.text.strip():
                return turn.id
        return None

    def on_new_turn(self, turn_id: int) -> bool:
        """
        React to a newly arrived turn.

        Creates the placeholder, syncs visibility and enqueues the
        mini-summary (preceded by a volume check every ``check_interval``
        turns). With ``deferred_summary`` the previous turn is summarized
        instead, since it can no longer change.

        Never raises; failures are logged.

        Returns:
            True if a mini-summary was enqueued
        """
        settings = self.settings
        if not settings.auto_mini_summary:
            return False
        turn = self._transcript.get_turn(turn_id)
        if turn is None or turn.is_system or not turn.text.strip():
            return False
        if turn_id < settings.ignore_turns:
            return False

        target = turn_id
        if settings.deferred_summary:
            target = self._previous_summarizable(turn_id)
            if target is None or target < settings.ignore_turns:
                return False

        try:
            self._summaries.create_placeholder(target)
            self._visibility.sync()

            metadata = self._metadata_store.load()
            metadata.scheduled_summaries += 1
            self._metadata_store.save(metadata)
            if settings.auto_volume_summary and metadata.scheduled_summaries % settings.check_interval == 0:
                self._queue.enqueue(QueuedTask.volume_summary())
            self._queue.enqueue(QueuedTask.mini_summary(target))
        except Exception:
            logger.exception("Failed to process new turn %d", turn_id)
            return False
        return True

    async def _summarize(self, turn_id: int) -> Outcome:
        """Queue handler: summarize a turn, then re-sync so the new text is injected."""
        outcome = await self._summaries.handle(turn_id)
        if outcome.is_ok:
            self._visibility.sync()
        return outcome

    # -------------------------------------------------------------------------
    # Manual triggers
    # -------------------------------------------------------------------------

    def enqueue(self, task: QueuedTask) -> None:
        """Queue a task directly."""
        self._queue.enqueue(task)

    def request_mini_summary(self, turn_id: Optional[int] = None) -> Optional[int]:
        """
        Queue a mini-summary, regenerating it if one exists.

        Args:
            turn_id: Turn to summarize; defaults to the latest turn

        Returns:
            The turn id queued, or None if there is no such turn
        """
        if turn_id is None:
            turn_id = self._transcript.latest_turn_id()
        if turn_id < 0 or self._transcript.get_turn(turn_id) is None:
            logger.warning("No turn %d to summarize", turn_id)
            return None
        self._queue.enqueue(QueuedTask.mini_summary(turn_id))
        return turn_id

    def request_volume_check(self) -> None:
        """Queue a volume check."""
        self._queue.enqueue(QueuedTask.volume_summary())

    def backfill(self, start: Optional[int] = None, end: Optional[int] = None) -> int:
        """
        Queue mini-summaries for assistant turns that have none, and
        regenerate any summary left as a placeholder (a failed generation
        holds archiving back until it is redone).

        Args:
            start: First turn id; defaults to ``ignore_turns``
            end: Last turn id; defaults to the latest turn

        Returns:
            Number of mini-summaries queued. A volume check follows them
            when any were queued.
        """
        if not self._notebook.bound:
            logger.warning("No note collection bound; nothing to backfill")
            return 0
        if start is None:
            start = self.settings.ignore_turns
        if end is None:
            end = self._transcript.latest_turn_id()
        if start > end:
            return 0

        notes = {e.turn_id: e for e in self._notebook.mini_summaries()}
        count = 0
        for turn in self._transcript.list_turns(start, end):
            note = notes.get(turn.id)
            if note is None:
                if turn.role != Role.ASSISTANT:
                    continue
            elif note.content != GENERATING_MARKER:
                continue
            self._queue.enqueue(QueuedTask.mini_summary(turn.id))
            count += 1
        if count:
            self._queue.enqueue(QueuedTask.volume_summary())
            logger.info("Backfill queued %d mini-summaries", count)
        return count

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def sync_visibility(self) -> SyncResult:
        """Recompute turn visibility and summary enablement."""
        return self._visibility.sync()

    def _after_archive(self, record: VolumeRecord) -> None:
        self.sync_visibility()

    def reposition_entries(self) -> int:
        """Move every summary entry to the position current settings give it."""
        if not self._notebook.bound:
            logger.warning("No note collection bound; nothing to reposition")
            return 0
        s = self.settings
        return self._notebook.reposition(
            s.mini_summary_depth, s.mini_summary_start_order,
            s.volume_summary_depth, s.volume_start_order,
        )

    def status(self) -> dict:
        """Snapshot of summarization progress."""
        metadata = self._metadata_store.load()
        info = {
            "conversation": self._conversation,
            "collection": self._notebook.collection,
            "bound": self._notebook.bound,
            "latest_turn_id": self._transcript.latest_turn_id(),
            "current_volume_number": metadata.current_volume_number,
            "last_processed_turn_id": metadata.last_processed_turn_id,
            "scheduled_summaries": metadata.scheduled_summaries,
            "volumes": [
                {"volume": v.volume_number, "start": v.start_turn_id, "end": v.end_turn_id}
                for v in metadata.volumes
            ],
            "queue": self._queue.stats(),
        }
        if info["bound"]:
            minis = self._notebook.mini_summaries()
            info["mini_summaries"] = len(minis)
            info["placeholders"] = sum(1 for e in minis if e.content == GENERATING_MARKER)
            info["enabled_summaries"] = sum(1 for e in minis if e.enabled)
            info["unarchived_summaries"] = len(self._archive_index.unarchived_summaries())
        return info

    async def wait_idle(self) -> None:
        """Wait until every queued task has run."""
        await self._queue.join()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the stores this instance opened and detach its ops log."""
        if self._queue.stats()["pending"]:
            logger.warning("Closing with %d queued task(s); they are dropped",
                           self._queue.stats()["pending"])
        for store in self._owned:
            store.close()
        self._owned = []
        if self._ops_log_handler is not None:
            remove_ops_log(self._ops_log_handler)
            self._ops_log_handler = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close resources."""
        self.close()
        return False
