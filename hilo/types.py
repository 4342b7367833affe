"""
Data types for two-tier conversation summarization.

Entry names are the only identity the note store carries, so they are
parsed once at the store boundary into a small tagged union (MiniName,
VolumeName, OtherName) and never re-parsed downstream.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


# Placeholder content written before the real summary is generated
GENERATING_MARKER = "(generating summary...)"

# Result of summarizing a turn with no text
EMPTY_MESSAGE_SUMMARY = "(empty message)"

_MINI_NAME_RE = re.compile(r"^\[mini-summary-turn(\d+)\]$")
_VOLUME_NAME_RE = re.compile(r"^\[volume(\d+)-turn(\d+)~turn(\d+)\]$")


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class Turn:
    """One entry in the conversation transcript."""
    id: int
    role: Role
    text: str
    hidden: bool = False

    @property
    def is_system(self) -> bool:
        return self.role == Role.SYSTEM


# -----------------------------------------------------------------------------
# Entry names
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class MiniName:
    turn_id: int

    def render(self) -> str:
        return f"[mini-summary-turn{self.turn_id}]"


@dataclass(frozen=True)
class VolumeName:
    number: int
    start: int
    end: int

    def render(self) -> str:
        return f"[volume{self.number}-turn{self.start}~turn{self.end}]"


@dataclass(frozen=True)
class OtherName:
    raw: str

    def render(self) -> str:
        return self.raw


EntryName = Union[MiniName, VolumeName, OtherName]


def parse_entry_name(name: str) -> EntryName:
    """Parse a note-store entry name into its tagged form.

    Names that follow neither convention come back as OtherName so that
    foreign entries in a shared collection pass through untouched.
    """
    m = _MINI_NAME_RE.match(name)
    if m:
        return MiniName(int(m.group(1)))
    m = _VOLUME_NAME_RE.match(name)
    if m:
        return VolumeName(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    return OtherName(name)


# -----------------------------------------------------------------------------
# Note store entries
# -----------------------------------------------------------------------------

@dataclass
class Position:
    """Where the prompt assembler injects an entry."""
    depth: int
    order: int
    type: str = "at_depth"
    role: str = "system"


@dataclass
class Entry:
    """
    A note-store entry as seen by the orchestration core.

    Attributes:
        name: Parsed entry name (MiniName, VolumeName or OtherName)
        content: Entry text
        enabled: Whether the prompt assembler injects this entry
        position: Injection depth and ordering
        uid: Store-assigned identifier (None until persisted)
    """
    name: EntryName
    content: str
    enabled: bool = False
    position: Position = field(default_factory=lambda: Position(depth=9999, order=0))
    uid: Optional[int] = None

    @property
    def turn_id(self) -> Optional[int]:
        """Turn id for mini-summary entries, None otherwise."""
        if isinstance(self.name, MiniName):
            return self.name.turn_id
        return None

    @property
    def is_mini(self) -> bool:
        return isinstance(self.name, MiniName)

    @property
    def is_volume(self) -> bool:
        return isinstance(self.name, VolumeName)


# -----------------------------------------------------------------------------
# Volumes
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class VolumeRecord:
    """An archived, contiguous range of turns folded into one summary."""
    volume_number: int
    start_turn_id: int
    end_turn_id: int
    content: str = ""

    def covers(self, turn_id: int) -> bool:
        return self.start_turn_id <= turn_id <= self.end_turn_id


# -----------------------------------------------------------------------------
# Queued work
# -----------------------------------------------------------------------------

class TaskKind(str, Enum):
    MINI_SUMMARY = "mini_summary"
    VOLUME_SUMMARY = "volume_summary"


@dataclass(frozen=True)
class QueuedTask:
    """A unit of summarization work. In-memory only."""
    kind: TaskKind
    turn_id: Optional[int] = None

    @classmethod
    def mini_summary(cls, turn_id: int) -> "QueuedTask":
        return cls(TaskKind.MINI_SUMMARY, turn_id)

    @classmethod
    def volume_summary(cls) -> "QueuedTask":
        return cls(TaskKind.VOLUME_SUMMARY)

    def __str__(self) -> str:
        if self.kind == TaskKind.MINI_SUMMARY:
            return f"mini_summary({self.turn_id})"
        return "volume_summary"


# -----------------------------------------------------------------------------
# Outcomes
# -----------------------------------------------------------------------------

class OutcomeStatus(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class Outcome:
    """
    Result of a summarization step.

    Handlers return an Outcome instead of raising or silently returning,
    so callers (and tests) can tell a skip from a success from a failure.
    Only the task queue collapses outcomes into log lines.
    """
    status: OutcomeStatus
    reason: str = ""
    value: Any = None

    @classmethod
    def ok(cls, value: Any = None) -> "Outcome":
        return cls(OutcomeStatus.OK, value=value)

    @classmethod
    def skipped(cls, reason: str) -> "Outcome":
        return cls(OutcomeStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, reason: str) -> "Outcome":
        return cls(OutcomeStatus.FAILED, reason=reason)

    @property
    def is_ok(self) -> bool:
        return self.status == OutcomeStatus.OK

    @property
    def is_skipped(self) -> bool:
        return self.status == OutcomeStatus.SKIPPED

    @property
    def is_failed(self) -> bool:
        return self.status == OutcomeStatus.FAILED
