"""
Errors and error logging for hilo.

Library code raises the exception classes below; the CLI writes full
stack traces to the store's error log and shows users a one-line message.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class HiloError(Exception):
    """Base class for hilo errors."""


class GenerationError(HiloError):
    """The generation backend failed or returned nothing usable."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting HILO_STORE_PATH."""
    store = os.environ.get("HILO_STORE_PATH")
    if store:
        return Path(store) / "hilo-errors.log"
    return Path.home() / ".hilo" / "hilo-errors.log"


def log_exception(exc: Exception, context: str = "", store_path: Path | None = None) -> Path:
    """
    Append an exception's traceback to the error log.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)
        store_path: Store directory; defaults to HILO_STORE_PATH or ~/.hilo

    Returns:
        Path to the error log file
    """
    log_path = Path(store_path) / "hilo-errors.log" if store_path else _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Unwritable log; the caller still reports the error
    return log_path
