"""
Process-resident record backend.

Everything lives in dicts and disappears when the process exits.
"""

from dataclasses import replace
from typing import Iterator, Optional

from ..types import Chunk, Document


def _copy(document: Document) -> Document:
    # Callers never share the stored metadata dict
    return replace(document, metadata=dict(document.metadata))


class MemoryBackend:
    """Dict-backed store for documents and their chunks."""

    def __init__(self):
        self._documents: dict[str, Document] = {}
        self._chunks: dict[str, list[Chunk]] = {}

    @property
    def is_persistent(self) -> bool:
        return False

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def put_document(self, document: Document, chunks: list[Chunk]) -> None:
        """Store a document and its chunks (ordered by chunk_index)."""
        if document.id in self._documents:
            raise ValueError(f"Document already exists: {document.id}")
        self._documents[document.id] = _copy(document)
        self._chunks[document.id] = sorted(chunks, key=lambda c: c.chunk_index)

    def delete_document(self, document_id: str) -> bool:
        """Delete a document and its chunks. True if it existed."""
        self._chunks.pop(document_id, None)
        return self._documents.pop(document_id, None) is not None

    def clear(self) -> int:
        """Delete everything. Returns number of documents removed."""
        count = len(self._documents)
        self._documents.clear()
        self._chunks.clear()
        return count

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get_document(self, document_id: str) -> Optional[Document]:
        document = self._documents.get(document_id)
        return None if document is None else _copy(document)

    def list_documents(self) -> list[Document]:
        """All documents, most recently created first."""
        docs = [_copy(d) for d in self._documents.values()]
        docs.reverse()
        return sorted(docs, key=lambda d: d.created_at, reverse=True)

    def get_chunk(self, document_id: str, chunk_index: int) -> Optional[Chunk]:
        chunks = self._chunks.get(document_id)
        if chunks is None or not 0 <= chunk_index < len(chunks):
            return None
        return chunks[chunk_index]

    def list_chunks(self, document_id: str) -> list[Chunk]:
        return list(self._chunks.get(document_id, []))

    def iter_all_chunks(self) -> Iterator[Chunk]:
        """Every chunk, grouped by document in insertion order."""
        for chunks in list(self._chunks.values()):
            yield from chunks

    def count(self) -> int:
        return len(self._documents)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        pass
