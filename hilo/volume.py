"""
Volume trigger and archiver.

Unarchived mini-summaries accumulate until either their combined length
passes the configured threshold or the generator judges the current
story arc complete. Archiving folds them into one volume entry, disables
the covered mini-summaries and records the range in metadata.

The generator declares which range it actually summarized on a trailing
``summary<A>-summary<B>`` line, which allows archiving only the first
part of what was offered.
"""

import logging
import re
from typing import Callable, Optional

from .config import Settings
from .errors import GenerationError
from .notebook import Notebook
from .archive import ArchiveIndex
from .prompts import (
    SUMMARY_LABEL,
    VOLUME_COMPLETE_TOKEN,
    VOLUME_INCOMPLETE_TOKEN,
    volume_completion_check_prompt,
    volume_summary_prompt,
)
from .protocol import GeneratorProtocol, MetadataStoreProtocol
from .types import GENERATING_MARKER, Entry, Outcome, Position, VolumeName, VolumeRecord

logger = logging.getLogger(__name__)

_RANGE_MARKER = re.compile(
    rf"^\s*\[?{SUMMARY_LABEL}(\d+)\]?\s*[-~]\s*\[?{SUMMARY_LABEL}(\d+)\]?\s*$",
    re.IGNORECASE,
)


def parse_range_marker(
    content: str,
    provisional: tuple[int, int],
) -> tuple[str, tuple[int, int], list[str]]:
    """
    Split a volume reply into summary text and the range it covers.

    Args:
        content: Generator reply, possibly ending in a range marker line
        provisional: (min, max) turn ids of the summaries offered

    Returns:
        (content without the marker line, (start, end), warnings)
    """
    warnings: list[str] = []
    lines = content.rstrip().split("\n")
    match = _RANGE_MARKER.match(lines[-1]) if lines else None
    if match is None:
        warnings.append("volume summary has no range marker; archiving the full range")
        return content.strip(), provisional, warnings

    body = "\n".join(lines[:-1]).strip()
    start, end = int(match.group(1)), int(match.group(2))
    low, high = provisional

    if start > end:
        warnings.append(
            f"inverted range marker {SUMMARY_LABEL}{start}-{SUMMARY_LABEL}{end}; "
            f"archiving the full range {low}-{high}"
        )
        return body, provisional, warnings
    if end < low or start > high:
        warnings.append(
            f"range marker {start}-{end} is outside the offered range {low}-{high}; "
            "archiving the full range"
        )
        return body, provisional, warnings
    if start < low or end > high:
        clamped = (max(start, low), min(end, high))
        warnings.append(
            f"range marker {start}-{end} exceeds the offered range {low}-{high}; "
            f"clamped to {clamped[0]}-{clamped[1]}"
        )
        return body, clamped, warnings
    return body, (start, end), warnings


class VolumeArchiver:
    """Decides when to archive and folds mini-summaries into volumes."""

    def __init__(
        self,
        settings: Settings,
        notebook: Notebook,
        metadata_store: MetadataStoreProtocol,
        archive_index: ArchiveIndex,
        generator: GeneratorProtocol,
        on_archived: Optional[Callable[[VolumeRecord], None]] = None,
    ):
        """
        Args:
            on_archived: Called after a volume is committed (the
                orchestrator re-syncs visibility here)
        """
        self._settings = settings
        self._notebook = notebook
        self._metadata_store = metadata_store
        self._archive_index = archive_index
        self._generator = generator
        self._on_archived = on_archived

    @property
    def _marker(self) -> str:
        return self._settings.no_merge_marker_value if self._settings.no_merge_marker else ""

    def candidates(self) -> list[Entry]:
        """
        Unarchived mini-summaries that have finished generating.

        Only the earliest run is offered. It stops at the first summary
        still being generated and before the next archived volume, so the
        resulting range never covers a placeholder or an existing volume.
        """
        pending = []
        for entry in self._archive_index.unarchived_summaries():
            if entry.content == GENERATING_MARKER:
                break
            pending.append(entry)
        if not pending:
            return []
        first = pending[0].turn_id
        later_starts = [
            v.start_turn_id for v in self._metadata_store.load().volumes
            if v.start_turn_id > first
        ]
        if later_starts:
            boundary = min(later_starts)
            pending = [e for e in pending if e.turn_id < boundary]
        return pending

    async def should_archive(self, candidates: Optional[list[Entry]] = None) -> bool:
        """
        Decide whether the unarchived summaries make up a volume.

        Over the length threshold is always a yes; otherwise the generator
        is asked. Any reply other than a clear answer counts as no.
        """
        if candidates is None:
            candidates = self.candidates()
        if not candidates:
            return False

        total = sum(len(e.content) for e in candidates)
        if total > self._settings.volume_token_threshold:
            logger.info("Unarchived summaries total %d chars (threshold %d); archiving",
                        total, self._settings.volume_token_threshold)
            return True

        system, user = volume_completion_check_prompt(
            [e.content for e in candidates], self._settings.prompts, marker=self._marker,
        )
        try:
            reply = await self._generator.complete(system, user)
        except GenerationError as e:
            logger.warning("Volume completion check failed: %s", e)
            return False

        if VOLUME_COMPLETE_TOKEN in reply:
            return True
        if VOLUME_INCOMPLETE_TOKEN in reply:
            return False
        logger.warning("Unexpected volume completion check reply: %.200r", reply)
        return False

    async def archive(self) -> Outcome:
        """Task handler: archive the current volume if it is ready."""
        if not self._notebook.bound:
            logger.warning("No note collection bound; volume check skipped")
            return Outcome.skipped("no note collection")

        candidates = self.candidates()
        if not candidates:
            return Outcome.skipped("no unarchived summaries")
        if not await self.should_archive(candidates):
            return Outcome.skipped("volume not complete")

        turn_ids = [e.turn_id for e in candidates]
        provisional = (min(turn_ids), max(turn_ids))
        previous = [e.content for e in self._notebook.volumes()]
        system, user = volume_summary_prompt(
            [(e.turn_id, e.content) for e in candidates],
            previous,
            self._settings.prompts,
            marker=self._marker,
        )
        try:
            reply = await self._generator.complete(system, user)
        except GenerationError as e:
            return Outcome.failed(f"volume generation failed: {e}")

        content, (start, end), warnings = parse_range_marker(reply, provisional)
        for warning in warnings:
            logger.warning("%s", warning)
        if not content:
            return Outcome.failed("volume summary is empty")

        metadata = self._metadata_store.load()
        record = VolumeRecord(metadata.current_volume_number, start, end, content)
        self._commit(record)
        metadata.append_volume(record)
        self._metadata_store.save(metadata)
        logger.info("Archived volume %d: turns %d-%d", record.volume_number, start, end)

        if self._on_archived is not None:
            self._on_archived(record)
        return Outcome.ok(record)

    def _commit(self, record: VolumeRecord) -> None:
        """Disable covered mini-summaries and add the volume entry, atomically."""
        volume_entry = Entry(
            name=VolumeName(record.volume_number, record.start_turn_id, record.end_turn_id),
            content=record.content,
            enabled=True,
            position=Position(
                depth=self._settings.volume_summary_depth,
                order=self._settings.volume_order(record.volume_number),
            ),
        )

        def apply(entries: list[Entry]) -> list[Entry]:
            for entry in entries:
                if entry.is_mini and record.covers(entry.turn_id):
                    entry.enabled = False
            entries.append(volume_entry)
            return entries

        self._notebook.mutate(apply)
