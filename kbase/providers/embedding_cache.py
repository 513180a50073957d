"""
Embedding cache using SQLite.

Avoids repeated provider calls for text that was embedded before, for
example when the index is rebuilt after a restart. Keys are SHA-256
digests of the text; vectors are stored as packed float32.

The cache is an optimization only. Nothing else relies on a hit.
"""

import hashlib
import logging
import sqlite3
import threading
from array import array
from pathlib import Path
from typing import Optional

from ..types import utc_now
from .base import EmbeddingProvider

logger = logging.getLogger(__name__)


def content_hash(text: str) -> str:
    """SHA-256 hex digest of the text, the cache key."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _encode(vector: list[float]) -> bytes:
    return array("f", vector).tobytes()


def _decode(blob: bytes) -> list[float]:
    values = array("f")
    values.frombytes(blob)
    return values.tolist()


class SQLiteEmbeddingCache:
    """SQLite-backed text → vector cache, keyed by content hash."""

    def __init__(self, cache_path: Path):
        """
        Args:
            cache_path: Path to SQLite database file
        """
        self._cache_path = Path(cache_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._cache_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._cache_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS embedding_cache (
                hash TEXT PRIMARY KEY,
                vector BLOB NOT NULL,
                dimension INTEGER NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def get(self, text: str) -> Optional[list[float]]:
        """Cached vector for the text, or None."""
        with self._lock:
            row = self._conn.execute("""
                SELECT vector, dimension FROM embedding_cache WHERE hash = ?
            """, (content_hash(text),)).fetchone()
        if row is None:
            return None
        vector = _decode(row[0])
        if len(vector) != row[1]:
            # Truncated or corrupt row: treat as a miss
            logger.warning("Discarding corrupt cache entry (%d != %d)", len(vector), row[1])
            return None
        return vector

    def put(self, text: str, vector: list[float]) -> None:
        """Store (or replace) the vector for the text."""
        with self._lock:
            self._conn.execute("""
                INSERT OR REPLACE INTO embedding_cache (hash, vector, dimension, created_at)
                VALUES (?, ?, ?, ?)
            """, (content_hash(text), _encode(vector), len(vector), utc_now()))
            self._conn.commit()

    def has(self, text: str) -> bool:
        with self._lock:
            row = self._conn.execute(
                "SELECT 1 FROM embedding_cache WHERE hash = ?", (content_hash(text),)
            ).fetchone()
        return row is not None

    def clear(self) -> None:
        """Remove every cached vector."""
        with self._lock:
            self._conn.execute("DELETE FROM embedding_cache")
            self._conn.commit()

    def size(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM embedding_cache").fetchone()[0]

    def stats(self) -> dict:
        """Entry count, oldest and newest entry timestamps, and file path."""
        with self._lock:
            row = self._conn.execute("""
                SELECT COUNT(*), MIN(created_at), MAX(created_at) FROM embedding_cache
            """).fetchone()
        return {
            "size": row[0],
            "oldest": row[1],
            "newest": row[2],
            "path": str(self._cache_path),
        }

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __del__(self):
        self.close()


class CachingEmbeddingProvider:
    """
    Wraps an embedding provider with a content-hash cache.

    Exposes the same interface as the wrapped provider, plus hit/miss
    counters. Provider errors propagate unchanged and are not cached.
    """

    def __init__(self, provider: EmbeddingProvider, cache):
        self._provider = provider
        self._cache = cache
        self.hits = 0
        self.misses = 0

    @property
    def provider(self) -> EmbeddingProvider:
        return self._provider

    @property
    def cache(self):
        return self._cache

    @property
    def dimension(self) -> int:
        return self._provider.dimension

    @property
    def model_name(self) -> str:
        return getattr(self._provider, "model_name", "unknown")

    def embed(self, text: str) -> list[float]:
        cached = self._cache.get(text)
        if cached is not None:
            self.hits += 1
            return cached
        self.misses += 1
        vector = self._provider.embed(text)
        self._cache.put(text, vector)
        return vector

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed only the cache misses, in one provider batch."""
        results: list[Optional[list[float]]] = [self._cache.get(t) for t in texts]
        missing = [i for i, v in enumerate(results) if v is None]
        self.hits += len(texts) - len(missing)
        self.misses += len(missing)
        if missing:
            vectors = self._provider.embed_batch([texts[i] for i in missing])
            for i, vector in zip(missing, vectors):
                self._cache.put(texts[i], vector)
                results[i] = vector
        return results

    def cache_stats(self) -> dict:
        """Hit/miss counters since construction or the last clear."""
        total = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / total if total else 0.0,
        }

    def clear_cache(self) -> None:
        self._cache.clear()
        self.hits = 0
        self.misses = 0
