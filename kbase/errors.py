"""
Error types and error logging for kbase.

Usage errors and provider failures are exceptions. Negative results
(missing document, missing chunk, edit that changes nothing) are not:
they come back as ``None`` or as an ``EditFailure`` value.

The CLI logs full stack traces to a file while showing clean messages
to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class KbaseError(Exception):
    """Base class for kbase errors."""


class DimensionMismatch(KbaseError, ValueError):
    """Two embedding vectors of different length were compared or mixed."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}"
        )


class ProviderError(KbaseError, RuntimeError):
    """The embedding provider failed (transport, quota, bad response)."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting KBASE_STORE_PATH."""
    store = os.environ.get("KBASE_STORE_PATH")
    if store:
        return Path(store) / "kbase-errors.log"
    return Path.home() / ".kbase" / "kbase-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
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
        pass  # Can't write error log, don't crash over it
    return log_path
