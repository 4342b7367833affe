"""
Note store using SQLite.

Holds named collections of prompt-injection entries ("worldbooks"): text
with an enabled flag and an injection position. The downstream prompt
assembler reads enabled entries ordered by depth and order.

The store knows nothing about summaries. Entry names are opaque strings
here; the summarization core gives them meaning (see notebook.py).

mutate() is an atomic read-modify-write: the collection is read and
rewritten inside a single IMMEDIATE transaction, so concurrent writers
cannot interleave with it.
"""

import logging
import sqlite3
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class NoteRecord:
    """
    A raw note-store entry.

    Attributes:
        name: Entry name (opaque to the store)
        content: Entry text
        enabled: Whether the entry is injected into prompts
        depth: Injection depth
        order: Sort order within a depth
        position_type: Injection mode (only "at_depth" is produced here)
        role: Message role the entry is injected as
        uid: Row identifier, None for entries not yet stored
    """
    name: str
    content: str
    enabled: bool = False
    depth: int = 9999
    order: int = 0
    position_type: str = "at_depth"
    role: str = "system"
    uid: Optional[int] = None


class NoteStore:
    """
    SQLite-backed store for note collections.

    Collections must be created before entries can be written to them;
    writing to an unknown collection raises ValueError.
    """

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Path to SQLite database file
        """
        self._db_path = store_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        # isolation_level=None gives us manual transaction control
        # so mutate() can use BEGIN IMMEDIATE
        self._conn = sqlite3.connect(
            str(self._db_path), check_same_thread=False,
            isolation_level=None,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS note_collections (
                name TEXT PRIMARY KEY,
                created_at TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS notes (
                uid INTEGER PRIMARY KEY AUTOINCREMENT,
                collection TEXT NOT NULL,
                name TEXT NOT NULL,
                content TEXT NOT NULL,
                enabled INTEGER NOT NULL DEFAULT 0,
                depth INTEGER NOT NULL DEFAULT 9999,
                sort_order INTEGER NOT NULL DEFAULT 0,
                position_type TEXT NOT NULL DEFAULT 'at_depth',
                role TEXT NOT NULL DEFAULT 'system',
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_notes_collection
            ON notes(collection)
        """)

    def _now(self) -> str:
        """Current timestamp in ISO format."""
        return datetime.now(timezone.utc).isoformat()

    # -------------------------------------------------------------------------
    # Collections
    # -------------------------------------------------------------------------

    def collection_exists(self, collection: str) -> bool:
        """Check if a collection exists."""
        cursor = self._conn.execute(
            "SELECT 1 FROM note_collections WHERE name = ?", (collection,)
        )
        return cursor.fetchone() is not None

    def create_collection(self, collection: str) -> bool:
        """Create a collection. Returns False if it already existed."""
        with self._lock:
            cursor = self._conn.execute(
                "INSERT OR IGNORE INTO note_collections (name, created_at) VALUES (?, ?)",
                (collection, self._now()),
            )
        created = cursor.rowcount > 0
        if created:
            logger.info("Created note collection %s", collection)
        return created

    def list_collections(self) -> list[str]:
        """List collection names."""
        cursor = self._conn.execute("SELECT name FROM note_collections ORDER BY name")
        return [row["name"] for row in cursor]

    def _require_collection(self, collection: str) -> None:
        if not self.collection_exists(collection):
            raise ValueError(f"Unknown note collection: {collection}")

    # -------------------------------------------------------------------------
    # Entries
    # -------------------------------------------------------------------------

    def _row_to_record(self, row: sqlite3.Row) -> NoteRecord:
        return NoteRecord(
            uid=row["uid"],
            name=row["name"],
            content=row["content"],
            enabled=bool(row["enabled"]),
            depth=row["depth"],
            order=row["sort_order"],
            position_type=row["position_type"],
            role=row["role"],
        )

    def _select(self, collection: str) -> list[NoteRecord]:
        cursor = self._conn.execute("""
            SELECT uid, name, content, enabled, depth, sort_order, position_type, role
            FROM notes
            WHERE collection = ?
            ORDER BY uid ASC
        """, (collection,))
        return [self._row_to_record(row) for row in cursor]

    def _write(self, collection: str, record: NoteRecord) -> NoteRecord:
        """Insert or update one record. Caller holds the transaction."""
        now = self._now()
        if record.uid is not None:
            cursor = self._conn.execute("""
                UPDATE notes
                SET name = ?, content = ?, enabled = ?, depth = ?, sort_order = ?,
                    position_type = ?, role = ?, updated_at = ?
                WHERE uid = ? AND collection = ?
            """, (record.name, record.content, int(record.enabled), record.depth,
                  record.order, record.position_type, record.role, now,
                  record.uid, collection))
            if cursor.rowcount > 0:
                return record
        cursor = self._conn.execute("""
            INSERT INTO notes
            (collection, name, content, enabled, depth, sort_order, position_type, role, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (collection, record.name, record.content, int(record.enabled), record.depth,
              record.order, record.position_type, record.role, now))
        return replace(record, uid=cursor.lastrowid)

    def list_entries(self, collection: str) -> list[NoteRecord]:
        """
        List all entries of a collection in insertion order.

        Raises:
            ValueError: If the collection does not exist
        """
        self._require_collection(collection)
        return self._select(collection)

    def upsert_entries(self, collection: str, records: list[NoteRecord]) -> list[NoteRecord]:
        """
        Insert or update entries.

        A record with a uid updates that row. A record without one updates
        the existing entry of the same name, or is inserted as a new entry.

        Returns:
            The stored records, with uids assigned
        """
        self._require_collection(collection)
        stored = []
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                by_name = {r.name: r.uid for r in self._select(collection)}
                for record in records:
                    if record.uid is None and record.name in by_name:
                        record = replace(record, uid=by_name[record.name])
                    stored.append(self._write(collection, record))
                self._conn.execute("COMMIT")
            except Exception:
                self._conn.execute("ROLLBACK")
                raise
        return stored

    def mutate(
        self,
        collection: str,
        fn: Callable[[list[NoteRecord]], list[NoteRecord]],
    ) -> list[NoteRecord]:
        """
        Atomically rewrite a collection.

        ``fn`` receives the current entries and returns the new entry list.
        Returned records without a uid are inserted, records with a uid are
        updated, and stored entries missing from the result are deleted.

        Returns:
            The collection contents after the rewrite
        """
        self._require_collection(collection)
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                current = self._select(collection)
                updated = fn([replace(r) for r in current])
                kept_uids = {r.uid for r in updated if r.uid is not None}
                for record in current:
                    if record.uid not in kept_uids:
                        self._conn.execute(
                            "DELETE FROM notes WHERE uid = ? AND collection = ?",
                            (record.uid, collection),
                        )
                result = [self._write(collection, record) for record in updated]
                self._conn.execute("COMMIT")
            except Exception:
                self._conn.execute("ROLLBACK")
                raise
        return result

    def count(self, collection: str) -> int:
        """Count entries in a collection."""
        cursor = self._conn.execute(
            "SELECT COUNT(*) FROM notes WHERE collection = ?", (collection,)
        )
        return cursor.fetchone()[0]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        """Ensure connection is closed on garbage collection."""
        self.close()
