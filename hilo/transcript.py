"""
Conversation transcript store using SQLite.

An append-only list of turns per conversation. Turn ids are assigned
here, start at 0, and increase by one per appended turn. The only
mutable attribute is the ``hidden`` flag, which controls whether a turn
is shown verbatim to the prompt assembler.
"""

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from .types import Role, Turn

logger = logging.getLogger(__name__)


class TranscriptStore:
    """
    SQLite-backed transcript for one conversation.

    Several conversations can share one database file; each
    TranscriptStore instance is bound to a single conversation.
    """

    def __init__(self, store_path: Path, conversation: str = "default"):
        """
        Args:
            store_path: Path to SQLite database file
            conversation: Conversation this instance reads and writes
        """
        self._db_path = store_path
        self._conversation = conversation
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS turns (
                conversation TEXT NOT NULL,
                id INTEGER NOT NULL,
                role TEXT NOT NULL,
                text TEXT NOT NULL,
                hidden INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                PRIMARY KEY (conversation, id)
            )
        """)
        self._conn.commit()

    @property
    def conversation(self) -> str:
        return self._conversation

    def _row_to_turn(self, row: sqlite3.Row) -> Turn:
        return Turn(
            id=row["id"],
            role=Role(row["role"]),
            text=row["text"],
            hidden=bool(row["hidden"]),
        )

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def append(self, role: Role | str, text: str) -> Turn:
        """
        Append a turn to the conversation.

        Returns:
            The stored Turn with its assigned id
        """
        role = Role(role)
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            cursor = self._conn.execute(
                "SELECT COALESCE(MAX(id), -1) FROM turns WHERE conversation = ?",
                (self._conversation,),
            )
            turn_id = cursor.fetchone()[0] + 1
            self._conn.execute("""
                INSERT INTO turns (conversation, id, role, text, hidden, created_at)
                VALUES (?, ?, ?, ?, 0, ?)
            """, (self._conversation, turn_id, role.value, text, now))
            self._conn.commit()
        return Turn(id=turn_id, role=role, text=text)

    def set_visibility(self, updates: Iterable[tuple[int, bool]]) -> int:
        """
        Set the hidden flag for a batch of turns.

        Args:
            updates: (turn_id, hidden) pairs

        Returns:
            Number of turns updated
        """
        rows = [(int(hidden), self._conversation, turn_id) for turn_id, hidden in updates]
        if not rows:
            return 0
        with self._lock:
            cursor = self._conn.executemany("""
                UPDATE turns SET hidden = ?
                WHERE conversation = ? AND id = ?
            """, rows)
            self._conn.commit()
        return cursor.rowcount

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get_turn(self, turn_id: int) -> Optional[Turn]:
        """Get a turn by id, or None if it doesn't exist."""
        cursor = self._conn.execute("""
            SELECT id, role, text, hidden FROM turns
            WHERE conversation = ? AND id = ?
        """, (self._conversation, turn_id))
        row = cursor.fetchone()
        return self._row_to_turn(row) if row else None

    def list_turns(self, start: int = 0, end: Optional[int] = None) -> list[Turn]:
        """
        List turns with ids in [start, end], ascending.

        Args:
            start: First turn id (inclusive)
            end: Last turn id (inclusive), None for the latest
        """
        if end is None:
            cursor = self._conn.execute("""
                SELECT id, role, text, hidden FROM turns
                WHERE conversation = ? AND id >= ?
                ORDER BY id ASC
            """, (self._conversation, start))
        else:
            cursor = self._conn.execute("""
                SELECT id, role, text, hidden FROM turns
                WHERE conversation = ? AND id >= ? AND id <= ?
                ORDER BY id ASC
            """, (self._conversation, start, end))
        return [self._row_to_turn(row) for row in cursor]

    def latest_turn_id(self) -> int:
        """Id of the most recent turn, or -1 for an empty conversation."""
        cursor = self._conn.execute(
            "SELECT COALESCE(MAX(id), -1) FROM turns WHERE conversation = ?",
            (self._conversation,),
        )
        return cursor.fetchone()[0]

    def count(self) -> int:
        """Count turns in the conversation."""
        cursor = self._conn.execute(
            "SELECT COUNT(*) FROM turns WHERE conversation = ?",
            (self._conversation,),
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
