"""
Typed access to a conversation's summary note collection.

Translates between raw NoteRecords (string names) and Entries (parsed
names). Everything above this module works with MiniName / VolumeName
and never looks at the bracketed name strings.
"""

import logging
from typing import Callable, Optional

from .note_store import NoteRecord
from .protocol import NoteStoreProtocol
from .types import Entry, EntryName, MiniName, Position, VolumeName, parse_entry_name

logger = logging.getLogger(__name__)


def collection_name_for(conversation: str) -> str:
    """Name of the note collection holding a conversation's summaries."""
    return f"{conversation}[summary]"


def record_to_entry(record: NoteRecord) -> Entry:
    return Entry(
        name=parse_entry_name(record.name),
        content=record.content,
        enabled=record.enabled,
        position=Position(
            depth=record.depth,
            order=record.order,
            type=record.position_type,
            role=record.role,
        ),
        uid=record.uid,
    )


def entry_to_record(entry: Entry) -> NoteRecord:
    return NoteRecord(
        name=entry.name.render(),
        content=entry.content,
        enabled=entry.enabled,
        depth=entry.position.depth,
        order=entry.position.order,
        position_type=entry.position.type,
        role=entry.position.role,
        uid=entry.uid,
    )


class Notebook:
    """
    The summary entries of one conversation.

    The collection may be unbound (not created in the note store). Callers
    check ``bound`` first; operations on an unbound notebook raise
    ValueError from the store.
    """

    def __init__(self, store: NoteStoreProtocol, collection: Optional[str]):
        self._store = store
        self._collection = collection

    @property
    def collection(self) -> Optional[str]:
        return self._collection

    @property
    def bound(self) -> bool:
        """True if the collection is set and exists in the store."""
        return bool(self._collection) and self._store.collection_exists(self._collection)

    def ensure(self) -> bool:
        """Create the collection if needed. Returns True if it was created."""
        if not self._collection:
            raise ValueError("No note collection configured")
        return self._store.create_collection(self._collection)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def entries(self) -> list[Entry]:
        """All entries, including ones this package did not create."""
        return [record_to_entry(r) for r in self._store.list_entries(self._collection)]

    def find(self, name: EntryName) -> Optional[Entry]:
        """Find an entry by name."""
        for entry in self.entries():
            if entry.name == name:
                return entry
        return None

    def find_mini(self, turn_id: int) -> Optional[Entry]:
        """Find the mini-summary entry for a turn."""
        return self.find(MiniName(turn_id))

    def mini_summaries(self) -> list[Entry]:
        """All mini-summary entries, ordered by turn id."""
        minis = [e for e in self.entries() if e.is_mini]
        return sorted(minis, key=lambda e: e.turn_id)

    def volumes(self) -> list[Entry]:
        """All volume entries, ordered by volume number."""
        vols = [e for e in self.entries() if e.is_volume]
        return sorted(vols, key=lambda e: e.name.number)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def upsert(self, entries: list[Entry]) -> list[Entry]:
        """Insert or update entries by name. Returns the stored entries."""
        stored = self._store.upsert_entries(
            self._collection, [entry_to_record(e) for e in entries]
        )
        return [record_to_entry(r) for r in stored]

    def mutate(self, fn: Callable[[list[Entry]], list[Entry]]) -> list[Entry]:
        """Atomically rewrite the collection through ``fn``."""
        def apply(records: list[NoteRecord]) -> list[NoteRecord]:
            entries = fn([record_to_entry(r) for r in records])
            return [entry_to_record(e) for e in entries]

        return [record_to_entry(r) for r in self._store.mutate(self._collection, apply)]

    def set_positions(self, positions: dict[EntryName, Position]) -> int:
        """
        Move entries to new positions in one atomic update.

        Returns:
            Number of entries moved
        """
        moved = 0

        def apply(entries: list[Entry]) -> list[Entry]:
            nonlocal moved
            for entry in entries:
                position = positions.get(entry.name)
                if position is not None and position != entry.position:
                    entry.position = position
                    moved += 1
            return entries

        self.mutate(apply)
        return moved

    def reposition(self, mini_depth: int, mini_order_base: int,
                   volume_depth: int, volume_order_base: int) -> int:
        """Recompute every summary entry's position from depth/order settings."""
        positions: dict[EntryName, Position] = {}
        for entry in self.entries():
            if isinstance(entry.name, MiniName):
                positions[entry.name] = Position(
                    depth=mini_depth, order=mini_order_base + entry.name.turn_id,
                )
            elif isinstance(entry.name, VolumeName):
                positions[entry.name] = Position(
                    depth=volume_depth, order=volume_order_base + entry.name.number,
                )
        moved = self.set_positions(positions)
        if moved:
            logger.info("Repositioned %d summary entries", moved)
        return moved
