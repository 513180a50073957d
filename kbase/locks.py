"""
Per-document locking.

Copy-on-write edits read a document, add its replacement, then delete
it. Two writers on the same document must not interleave those steps,
so every mutation of a document id holds that id's lock. Writers on
different documents do not wait for each other.
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class DocumentLocks:
    """Registry of reentrant locks keyed by document id."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def _get(self, document_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(document_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[document_id] = lock
            return lock

    @contextmanager
    def hold(self, document_id: str) -> Iterator[None]:
        """Hold the lock for one document for the duration of the block."""
        lock = self._get(document_id)
        with lock:
            yield

    def discard(self, document_id: str) -> None:
        """Forget the lock of a deleted document.

        Ids are never reused, so a discarded lock is never needed again.
        """
        with self._guard:
            self._locks.pop(document_id, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
