"""
Visibility sync between raw turns and their summaries.

The last ``visible_turns`` turns are shown verbatim; older turns are
hidden and represented by their mini-summary, or by a volume once
archived. A summary entry is enabled exactly when its turn is hidden and not yet
archived, once its text has been generated.
"""

import logging
from dataclasses import dataclass

from .archive import ArchiveIndex
from .config import Settings
from .notebook import Notebook
from .protocol import TranscriptProtocol
from .types import GENERATING_MARKER, Entry

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Counts of what a sync changed."""
    turns_changed: int = 0
    entries_changed: int = 0


class VisibilitySynchronizer:
    """Recomputes turn visibility and summary enablement."""

    def __init__(
        self,
        settings: Settings,
        transcript: TranscriptProtocol,
        notebook: Notebook,
        archive_index: ArchiveIndex,
    ):
        self._settings = settings
        self._transcript = transcript
        self._notebook = notebook
        self._archive_index = archive_index

    def first_visible_turn(self, latest: int) -> int:
        """Lowest turn id inside the visible window."""
        return latest - self._settings.visible_turns + 1

    def sync(self) -> SyncResult:
        """Bring hidden flags and enabled flags in line with the window."""
        result = SyncResult()
        latest = self._transcript.latest_turn_id()
        if latest < 0:
            return result
        threshold = self.first_visible_turn(latest)

        updates = [
            (turn.id, turn.id < threshold)
            for turn in self._transcript.list_turns(0, latest)
            if not turn.is_system and turn.hidden != (turn.id < threshold)
        ]
        if updates:
            result.turns_changed = self._transcript.set_visibility(updates)

        if not self._notebook.bound:
            logger.warning("No note collection bound; summary visibility not synced")
            return result

        archived = self._archive_index.archived_turn_ids()

        def apply(entries: list[Entry]) -> list[Entry]:
            for entry in entries:
                if not entry.is_mini:
                    continue
                enabled = (
                    entry.turn_id < threshold
                    and entry.turn_id not in archived
                    and entry.content != GENERATING_MARKER
                )
                if entry.enabled != enabled:
                    entry.enabled = enabled
                    result.entries_changed += 1
            return entries

        self._notebook.mutate(apply)
        if result.turns_changed or result.entries_changed:
            logger.debug("Visibility sync: %d turns, %d entries changed",
                         result.turns_changed, result.entries_changed)
        return result
