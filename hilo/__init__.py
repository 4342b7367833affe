"""
hilo: two-tier incremental summarization of conversation logs.

Each turn gets a short mini-summary; batches of mini-summaries are folded
into volume summaries as the conversation grows. Older turns are hidden
from raw display and represented by their summaries instead.
"""

from .api import Summarizer
from .config import Settings, StoreConfig, load_or_create_config
from .errors import GenerationError, HiloError
from .types import Entry, MiniName, Outcome, QueuedTask, Role, Turn, VolumeName, VolumeRecord

__version__ = "0.1.0"

__all__ = [
    "Summarizer",
    "Settings",
    "StoreConfig",
    "load_or_create_config",
    "GenerationError",
    "HiloError",
    "Entry",
    "MiniName",
    "VolumeName",
    "VolumeRecord",
    "Outcome",
    "QueuedTask",
    "Role",
    "Turn",
]
