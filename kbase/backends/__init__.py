"""Record backends: where documents and chunk rows live."""

from .memory import MemoryBackend
from .sqlite import SQLiteBackend

__all__ = ["MemoryBackend", "SQLiteBackend"]
