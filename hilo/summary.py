"""
Mini-summaries: one short digest per conversation turn.

A turn's summary entry exists from the moment the turn arrives (as a
placeholder) so that visibility sync and prompt assembly never see a
hole. The queued mini_summary task later generates the real text and
writes it into the same entry.
"""

import logging
import re
from typing import Optional

from .config import CaptureTag, CleanupRule, Settings
from .errors import GenerationError
from .metadata import Metadata
from .notebook import Notebook
from .prompts import mini_summary_prompt
from .protocol import GeneratorProtocol, MetadataStoreProtocol, TranscriptProtocol
from .types import EMPTY_MESSAGE_SUMMARY, GENERATING_MARKER, Entry, MiniName, Outcome, Position

logger = logging.getLogger(__name__)

# Number of earlier mini-summaries passed to the generator as context
CONTEXT_SUMMARIES = 2

# Replacement tokens in cleanup rules: $1, $<name>, $& and $$
_REPLACEMENT_TOKEN = re.compile(r"\$(\$|&|<[A-Za-z_]\w*>|\d{1,2})")

# Named groups written as (?<name>...) rather than Python's (?P<name>...)
_NAMED_GROUP = re.compile(r"\(\?<([A-Za-z_]\w*)>")


# -----------------------------------------------------------------------------
# Message preparation
# -----------------------------------------------------------------------------

def extract_tagged(text: str, tags: list[CaptureTag]) -> str:
    """
    Keep only the parts of ``text`` between configured tag pairs.

    Every match of every pair is kept, in tag order, joined by newlines.
    When no pair matches, the whole text is returned unchanged.
    """
    if not tags:
        return text
    parts = []
    for tag in tags:
        pattern = re.compile(re.escape(tag.start_tag) + r"(.*?)" + re.escape(tag.end_tag), re.DOTALL)
        parts.extend(m.strip() for m in pattern.findall(text) if m.strip())
    if not parts:
        logger.warning("No capture tag matched; summarizing the full message")
        return text
    return "\n".join(parts)


def _compile_rule(rule: CleanupRule) -> re.Pattern:
    flags = 0
    if "i" in rule.flags:
        flags |= re.IGNORECASE
    if "m" in rule.flags:
        flags |= re.MULTILINE
    if "s" in rule.flags:
        flags |= re.DOTALL
    return re.compile(_NAMED_GROUP.sub(r"(?P<\1>", rule.pattern), flags)


def _expand_replacement(template: str, match: re.Match) -> str:
    """Expand $-style group references against a match."""
    def token(t: re.Match) -> str:
        ref = t.group(1)
        if ref == "$":
            return "$"
        if ref == "&":
            return match.group(0)
        if ref.startswith("<"):
            try:
                return match.group(ref[1:-1]) or ""
            except IndexError:
                return t.group(0)
        index = int(ref)
        if 0 < index <= match.re.groups:
            return match.group(index) or ""
        return t.group(0)

    return _REPLACEMENT_TOKEN.sub(token, template)


def clean_message(text: str, rules: list[CleanupRule]) -> str:
    """
    Apply cleanup substitutions in order.

    A rule whose pattern does not compile is skipped with a warning; the
    remaining rules still run.
    """
    for rule in rules:
        try:
            pattern = _compile_rule(rule)
        except re.error as e:
            logger.warning("Skipping invalid cleanup pattern %r: %s", rule.pattern, e)
            continue
        count = 0 if "g" in rule.flags else 1
        text = pattern.sub(lambda m: _expand_replacement(rule.replacement, m), text, count=count)
    return text


# -----------------------------------------------------------------------------
# Manager
# -----------------------------------------------------------------------------

class MiniSummaryManager:
    """Creates, generates and commits per-turn summary entries."""

    def __init__(
        self,
        settings: Settings,
        transcript: TranscriptProtocol,
        notebook: Notebook,
        metadata_store: MetadataStoreProtocol,
        generator: GeneratorProtocol,
    ):
        self._settings = settings
        self._transcript = transcript
        self._notebook = notebook
        self._metadata_store = metadata_store
        self._generator = generator

    def _new_entry(self, turn_id: int, content: str) -> Entry:
        return Entry(
            name=MiniName(turn_id),
            content=content,
            enabled=False,
            position=Position(
                depth=self._settings.mini_summary_depth,
                order=self._settings.mini_summary_order(turn_id),
            ),
        )

    def _unbound(self, operation: str, turn_id: int) -> Optional[Outcome]:
        if self._notebook.bound:
            return None
        logger.warning("No note collection bound; %s for turn %d skipped", operation, turn_id)
        return Outcome.skipped("no note collection")

    def create_placeholder(self, turn_id: int) -> Outcome:
        """Insert a generating-marker entry for a turn unless one exists."""
        skipped = self._unbound("placeholder", turn_id)
        if skipped:
            return skipped
        if self._notebook.find_mini(turn_id) is not None:
            return Outcome.skipped("entry exists")
        self._notebook.upsert([self._new_entry(turn_id, GENERATING_MARKER)])
        logger.debug("Created placeholder for turn %d", turn_id)
        return Outcome.ok()

    def context_for(self, turn_id: int) -> str:
        """The most recent finished summaries before a turn, oldest first."""
        prior = [
            e for e in self._notebook.mini_summaries()
            if e.turn_id < turn_id and e.content != GENERATING_MARKER
        ]
        return "\n".join(e.content for e in prior[-CONTEXT_SUMMARIES:])

    async def generate(self, turn_id: int) -> Outcome:
        """
        Generate the summary text for a turn.

        Returns:
            Ok with the summary text, or Failed if the turn is missing or
            the generator failed. Nothing is written.
        """
        turn = self._transcript.get_turn(turn_id)
        if turn is None:
            return Outcome.failed(f"turn {turn_id} not found")
        if not turn.text.strip():
            return Outcome.ok(EMPTY_MESSAGE_SUMMARY)

        message = extract_tagged(turn.text, self._settings.capture_tags)
        message = clean_message(message, self._settings.cleanup)
        marker = self._settings.no_merge_marker_value if self._settings.no_merge_marker else ""
        system, user = mini_summary_prompt(
            message, self.context_for(turn_id), self._settings.prompts, marker=marker,
        )
        try:
            summary = await self._generator.complete(system, user)
        except GenerationError as e:
            return Outcome.failed(f"generation failed: {e}")
        return Outcome.ok(summary)

    def commit(self, turn_id: int, content: str) -> Outcome:
        """Write a turn's summary and advance the progress marker."""
        skipped = self._unbound("commit", turn_id)
        if skipped:
            return skipped
        entry = self._notebook.find_mini(turn_id)
        if entry is None:
            entry = self._new_entry(turn_id, content)
        else:
            entry.content = content
        self._notebook.upsert([entry])

        metadata: Metadata = self._metadata_store.load()
        metadata.last_processed_turn_id = turn_id
        self._metadata_store.save(metadata)
        return Outcome.ok(content)

    async def handle(self, turn_id: int) -> Outcome:
        """Task handler: generate and commit a turn's mini-summary."""
        skipped = self._unbound("mini-summary", turn_id)
        if skipped:
            return skipped
        outcome = await self.generate(turn_id)
        if not outcome.is_ok:
            return outcome
        return self.commit(turn_id, outcome.value)
