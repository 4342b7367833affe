"""
Summarization metadata: volume counter, progress markers and archived ranges.

Metadata is owned by the summarization core. It is read at the start of
every archival decision and written after every committed mini-summary
or volume. It is persisted as a versioned JSON record per conversation.
"""

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .types import VolumeRecord

logger = logging.getLogger(__name__)

METADATA_VERSION = 1


@dataclass
class Metadata:
    """Runtime summarization state for one conversation."""
    current_volume_number: int = 1
    last_processed_turn_id: int = -1
    # Mini-summaries scheduled by on_new_turn; paces volume checks
    scheduled_summaries: int = 0
    volumes: list[VolumeRecord] = field(default_factory=list)
    version: int = METADATA_VERSION

    def append_volume(self, record: VolumeRecord) -> None:
        """Record an archived volume and advance the volume counter."""
        self.volumes.append(VolumeRecord(
            volume_number=record.volume_number,
            start_turn_id=record.start_turn_id,
            end_turn_id=record.end_turn_id,
        ))
        self.current_volume_number = record.volume_number + 1


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def metadata_from_dict(data: Optional[dict]) -> Metadata:
    """
    Build Metadata from a raw dict with defaulting.

    Numeric fields are coerced; malformed volume entries are dropped with
    a warning rather than failing the whole load.
    """
    data = data or {}
    volumes = []
    for raw in data.get("volumes", []) or []:
        try:
            volumes.append(VolumeRecord(
                volume_number=int(raw["volume"]),
                start_turn_id=int(raw["start_turn_id"]),
                end_turn_id=int(raw["end_turn_id"]),
            ))
        except (KeyError, TypeError, ValueError):
            logger.warning("Dropping malformed volume record: %r", raw)
    return Metadata(
        current_volume_number=_as_int(data.get("current_volume_number"), 1),
        last_processed_turn_id=_as_int(data.get("last_processed_turn_id"), -1),
        scheduled_summaries=_as_int(data.get("scheduled_summaries"), 0),
        volumes=volumes,
        version=_as_int(data.get("version"), METADATA_VERSION),
    )


def metadata_to_dict(metadata: Metadata) -> dict:
    """Serialize Metadata to the dict form metadata_from_dict reads."""
    return {
        "version": metadata.version,
        "current_volume_number": metadata.current_volume_number,
        "last_processed_turn_id": metadata.last_processed_turn_id,
        "scheduled_summaries": metadata.scheduled_summaries,
        "volumes": [
            {
                "volume": v.volume_number,
                "start_turn_id": v.start_turn_id,
                "end_turn_id": v.end_turn_id,
            }
            for v in metadata.volumes
        ],
    }


class MetadataStore:
    """SQLite-backed metadata records, one per conversation."""

    def __init__(self, store_path: Path, conversation: str = "default"):
        """
        Args:
            store_path: Path to SQLite database file
            conversation: Conversation whose record this instance manages
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
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS summary_metadata (
                conversation TEXT PRIMARY KEY,
                version INTEGER NOT NULL,
                data_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def load(self) -> Metadata:
        """Load metadata, returning defaults when none has been saved."""
        cursor = self._conn.execute(
            "SELECT version, data_json FROM summary_metadata WHERE conversation = ?",
            (self._conversation,),
        )
        row = cursor.fetchone()
        if row is None:
            return Metadata()
        version, data_json = row
        if version > METADATA_VERSION:
            raise ValueError(
                f"Metadata version {version} is newer than supported ({METADATA_VERSION})"
            )
        try:
            data = json.loads(data_json)
        except json.JSONDecodeError:
            logger.warning("Corrupt metadata for %s, using defaults", self._conversation)
            data = {}
        return metadata_from_dict(data)

    def save(self, metadata: Metadata) -> None:
        """Persist metadata, replacing any previous record."""
        now = datetime.now(timezone.utc).isoformat()
        data_json = json.dumps(metadata_to_dict(metadata))
        with self._lock:
            self._conn.execute("""
                INSERT OR REPLACE INTO summary_metadata
                (conversation, version, data_json, updated_at)
                VALUES (?, ?, ?, ?)
            """, (self._conversation, metadata.version, data_json, now))
            self._conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
