"""
Archive index: which turns are already folded into a volume.

Derived on demand from Metadata.volumes, which is the single source of
truth. Nothing is cached; volumes are appended rarely compared to
mini-summaries, and a stale cache would be worse than a rescan.
"""

from .notebook import Notebook
from .protocol import MetadataStoreProtocol
from .types import Entry


class ArchiveIndex:
    """Answers archival questions for one conversation."""

    def __init__(self, metadata_store: MetadataStoreProtocol, notebook: Notebook):
        self._metadata_store = metadata_store
        self._notebook = notebook

    def archived_turn_ids(self) -> set[int]:
        """Union of every archived [start, end] range."""
        archived: set[int] = set()
        for volume in self._metadata_store.load().volumes:
            archived.update(range(volume.start_turn_id, volume.end_turn_id + 1))
        return archived

    def is_archived(self, turn_id: int) -> bool:
        return any(v.covers(turn_id) for v in self._metadata_store.load().volumes)

    def unarchived_summaries(self) -> list[Entry]:
        """Mini-summary entries not covered by any volume, by turn id."""
        archived = self.archived_turn_ids()
        return [e for e in self._notebook.mini_summaries() if e.turn_id not in archived]
