"""
In-memory embedding index with exhaustive cosine ranking.

One index holds the entries of every document so that a query ranks
chunks across the whole store. Entries keep insertion order; that
order is the tie-break when two chunks score the same.
"""

import heapq
import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional

from .errors import DimensionMismatch
from .types import Chunk, SearchHit

logger = logging.getLogger(__name__)


def cosine_similarity(vec_a: list[float], vec_b: list[float]) -> float:
    """
    Compute cosine similarity between two vectors.

    Returns 0.0 when either vector has zero magnitude.

    Raises:
        DimensionMismatch: If the vectors differ in length
    """
    if len(vec_a) != len(vec_b):
        raise DimensionMismatch(len(vec_a), len(vec_b))

    dot_product = sum(a * b for a, b in zip(vec_a, vec_b))
    magnitude_a = math.sqrt(sum(a * a for a in vec_a))
    magnitude_b = math.sqrt(sum(b * b for b in vec_b))

    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    return dot_product / (magnitude_a * magnitude_b)


@dataclass(frozen=True)
class EmbeddingEntry:
    """A chunk and its embedding vector."""
    chunk: Chunk
    vector: tuple[float, ...]


class EmbeddingIndex:
    """
    Flat list of (chunk, vector) entries.

    The first vector added fixes the dimension; later vectors and query
    vectors of another length raise DimensionMismatch. Not thread-safe:
    the owning DocumentStore serializes mutations.
    """

    def __init__(self):
        self._entries: list[EmbeddingEntry] = []
        self._dimension: Optional[int] = None

    @property
    def dimension(self) -> Optional[int]:
        """Vector length, or None while the index has never held a vector."""
        return self._dimension

    def _check_dimension(self, vector: list[float]) -> None:
        if self._dimension is not None and len(vector) != self._dimension:
            raise DimensionMismatch(self._dimension, len(vector))

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def add(self, chunk: Chunk, vector: list[float]) -> None:
        """Append one entry."""
        self._check_dimension(vector)
        if self._dimension is None:
            self._dimension = len(vector)
        self._entries.append(EmbeddingEntry(chunk, tuple(vector)))

    def add_many(self, entries: Iterable[tuple[Chunk, list[float]]]) -> None:
        """
        Append several entries, all or nothing.

        Every vector is checked before any entry is added, so a bad
        vector leaves the index unchanged.
        """
        pending = list(entries)
        dimension = self._dimension
        for _, vector in pending:
            if dimension is None:
                dimension = len(vector)
            elif len(vector) != dimension:
                raise DimensionMismatch(dimension, len(vector))
        for chunk, vector in pending:
            self.add(chunk, vector)

    def remove(self, document_id: str) -> int:
        """
        Delete every entry belonging to a document.

        Returns:
            Number of entries removed
        """
        before = len(self._entries)
        self._entries = [e for e in self._entries if e.chunk.document_id != document_id]
        return before - len(self._entries)

    def clear(self) -> None:
        """Remove all entries. The dimension is forgotten too."""
        self._entries = []
        self._dimension = None

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def search(
        self,
        query_vector: list[float],
        top_k: int,
        skip: int = 0,
    ) -> list[SearchHit]:
        """
        Rank every entry by cosine similarity to the query.

        Keeps the best ``top_k + skip`` entries and drops the first
        ``skip``, so ``search(q, k, skip)`` equals ``search(q, k + skip)[skip:]``.

        Args:
            query_vector: Embedded query
            top_k: Maximum number of hits to return
            skip: Number of leading hits to drop (pagination)

        Returns:
            Hits ordered by descending similarity, earlier entries first on ties
        """
        if skip < 0:
            raise ValueError(f"skip must not be negative, got {skip}")
        if top_k <= 0 or not self._entries:
            return []
        self._check_dimension(query_vector)

        scored = (
            (cosine_similarity(query_vector, entry.vector), position, entry.chunk)
            for position, entry in enumerate(self._entries)
        )
        # Higher similarity first, then lower insertion position
        best = heapq.nsmallest(top_k + skip, scored, key=lambda s: (-s[0], s[1]))
        logger.debug("Scored %d entries, kept %d", len(self._entries), len(best))
        return [SearchHit(chunk=chunk, similarity=sim) for sim, _, chunk in best[skip:]]

    def chunks_for(self, document_id: str) -> list[Chunk]:
        """Indexed chunks of one document, in insertion order."""
        return [e.chunk for e in self._entries if e.chunk.document_id == document_id]

    def document_count(self) -> int:
        """Number of distinct documents with at least one entry."""
        return len({e.chunk.document_id for e in self._entries})

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, document_id: str) -> bool:
        return any(e.chunk.document_id == document_id for e in self._entries)
