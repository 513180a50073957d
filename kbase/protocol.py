"""
Protocol definitions for the knowledge base and its storage backends.

Defines interface contracts at two levels:
- KnowledgeBaseProtocol: the public API (CLI, MCP server, tool executor)
- RecordBackend / EmbeddingCacheProtocol: internal storage backends
  (in-memory dicts or SQLite locally; others via entry points)
"""

from typing import Any, Iterator, Optional, Protocol, runtime_checkable

from .types import Chunk, Document, EditResult, RenderRequest, RenderedDocument, SearchHit


@runtime_checkable
class KnowledgeBaseProtocol(Protocol):
    """
    The public interface for knowledge base operations.

    Implemented by:
    - DocumentStore (any RecordBackend + in-memory EmbeddingIndex)
    """

    # -- Write operations --

    def add_document(
        self,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Document: ...

    def delete_document(self, document_id: str) -> bool: ...

    def clear_all_documents(self) -> None: ...

    def edit_chunk(
        self,
        document_id: str,
        start_index: int,
        end_index: int,
        old_span: str,
        new_span: str,
    ) -> EditResult: ...

    # -- Read operations --

    def get_document(self, document_id: str) -> Optional[Document]: ...

    def get_all_documents(self) -> list[Document]: ...

    def get_chunk_by_index(self, document_id: str, chunk_index: int) -> Optional[Chunk]: ...

    def search(self, query: str, top_k: int = 5, skip: int = 0) -> list[SearchHit]: ...

    def render(self, requests: list[RenderRequest]) -> list[RenderedDocument]: ...

    # -- Index --

    def reload_index_from_storage(self) -> int: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Storage backend protocols, internal to DocumentStore
# ---------------------------------------------------------------------------


@runtime_checkable
class RecordBackend(Protocol):
    """
    Abstract document and chunk record backend.

    Holds documents and their chunk rows. Embedding vectors are never
    stored here; they live in the DocumentStore's in-memory index.

    Implemented by:
    - MemoryBackend (process-resident, lost on exit)
    - SQLiteBackend (durable, cascading chunk delete)
    """

    @property
    def is_persistent(self) -> bool: ...

    # -- Write --

    def put_document(self, document: Document, chunks: list[Chunk]) -> None: ...

    def delete_document(self, document_id: str) -> bool: ...

    def clear(self) -> int: ...

    # -- Read --

    def get_document(self, document_id: str) -> Optional[Document]: ...

    def list_documents(self) -> list[Document]: ...

    def get_chunk(self, document_id: str, chunk_index: int) -> Optional[Chunk]: ...

    def list_chunks(self, document_id: str) -> list[Chunk]: ...

    def iter_all_chunks(self) -> Iterator[Chunk]: ...

    def count(self) -> int: ...

    # -- Lifecycle --

    def close(self) -> None: ...


@runtime_checkable
class EmbeddingCacheProtocol(Protocol):
    """
    Text-to-vector cache keyed by a content hash of the text.

    Only saves provider calls; correctness never depends on it.
    """

    def get(self, text: str) -> Optional[list[float]]: ...

    def put(self, text: str, vector: list[float]) -> None: ...

    def clear(self) -> None: ...

    def size(self) -> int: ...

    def close(self) -> None: ...
