"""
Core API for the knowledge base.

DocumentStore ties together:
- a record backend (documents + chunk rows; in-memory or SQLite)
- an in-memory EmbeddingIndex it owns
- an embedding provider (optionally behind the embedding cache)
- per-document locks

add_document(): partition → embed each window → record + index
search(): embed query → rank all chunks
render(): chunk ranges → exact original text with omissions
edit_chunk(): copy-on-write replace within a chunk span
"""

import logging
import threading
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from .chunking import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, build_chunks, validate_geometry
from .editor import edit_chunk
from .index import EmbeddingIndex
from .locks import DocumentLocks
from .protocol import RecordBackend
from .providers.base import EmbeddingProvider
from .render import render
from .types import (
    Chunk, Document, EditResult, RenderedDocument, RenderRequest, SearchHit,
    new_document_id,
)

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5


def _validate_embedding_identity(config, provider: EmbeddingProvider) -> bool:
    """
    Record or compare the embedding identity stored in kbase.toml.

    On first open the identity is recorded. On later opens a different
    provider, model, or dimension is logged and recorded.

    Returns:
        True if a previously recorded identity changed
    """
    from .config import EmbeddingIdentity, save_config

    current = EmbeddingIdentity(
        provider=config.embedding.name,
        model=getattr(provider, "model_name", "unknown"),
        dimension=provider.dimension,
    )
    stored = config.embedding_identity
    if stored == current:
        return False

    if stored is None:
        logger.info("Recording embedding identity: %s/%s (%dd)",
                    current.provider, current.model, current.dimension)
    else:
        logger.warning(
            "Embedding provider changed: %s/%s (%dd) -> %s/%s (%dd); clearing embedding cache",
            stored.provider, stored.model, stored.dimension,
            current.provider, current.model, current.dimension,
        )
    config.embedding_identity = current
    save_config(config)
    return stored is not None


class DocumentStore:
    """
    Documents, their chunks, and similarity search over all chunks.

    Documents are immutable: an edit creates a new document and deletes
    the old one. Mutations of the same document are serialized by a
    per-document lock; the index and backend are guarded by one store
    lock held only for the short write steps, not while embedding.

    The embedding index is never persisted. With a durable backend, call
    ``reload_index_from_storage()`` after opening an existing store.
    """

    def __init__(
        self,
        backend: RecordBackend,
        embedding_provider: EmbeddingProvider,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    ):
        """
        Args:
            backend: Where documents and chunk rows live
            embedding_provider: Embeds chunk windows and queries
            chunk_size: Embedding window length in characters
            chunk_overlap: Characters each window shares with the previous one
        """
        validate_geometry(chunk_size, chunk_overlap)
        self._backend = backend
        self._embedding_provider = embedding_provider
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._index = EmbeddingIndex()
        self._write_lock = threading.RLock()
        self.locks = DocumentLocks()
        self._ops_log_handler: Optional[logging.Handler] = None
        self._store_path: Optional[Path] = None

    @classmethod
    def open(
        cls,
        store_path: Optional[Union[str, Path]] = None,
        *,
        reload_index: bool = False,
        embedding_provider: Optional[EmbeddingProvider] = None,
    ) -> "DocumentStore":
        """
        Open (or create) a store directory using its kbase.toml.

        Args:
            store_path: Store directory (default: KBASE_STORE_PATH or ~/.kbase)
            reload_index: Rebuild the embedding index from stored chunks
            embedding_provider: Use this provider instead of the configured one

        Returns:
            A ready DocumentStore
        """
        from .backend import create_backend
        from .config import load_or_create_config
        from .logging_config import configure_ops_log
        from .providers import get_registry
        from .providers.embedding_cache import CachingEmbeddingProvider, SQLiteEmbeddingCache

        config = load_or_create_config(Path(store_path).expanduser() if store_path else None)

        if embedding_provider is None:
            embedding_provider = get_registry().create_embedding(
                config.embedding.name,
                config.embedding.params,
            )
        identity_changed = _validate_embedding_identity(config, embedding_provider)
        if config.embedding_cache:
            cache = SQLiteEmbeddingCache(config.cache_path)
            if identity_changed:
                # Vectors from another model must never reach the index
                cache.clear()
            embedding_provider = CachingEmbeddingProvider(embedding_provider, cache)

        store = cls(
            create_backend(config),
            embedding_provider,
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
        )
        store._store_path = config.path
        store._ops_log_handler = configure_ops_log(config.path)
        logger.info("Opened store %s (backend=%s, embedding=%s)",
                    config.path, config.backend, config.embedding.name)

        if reload_index:
            store.reload_index_from_storage()
        return store

    @property
    def backend(self) -> RecordBackend:
        return self._backend

    @property
    def index(self) -> EmbeddingIndex:
        return self._index

    @property
    def embedding_provider(self) -> EmbeddingProvider:
        return self._embedding_provider

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def chunk_overlap(self) -> int:
        return self._chunk_overlap

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def add_document(
        self,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Document:
        """
        Add a document: partition, embed every window, then store.

        Windows are embedded one at a time in partition order. Nothing
        is recorded or indexed until every embedding succeeded, so a
        provider failure leaves no trace of the document.

        Args:
            content: Document text
            metadata: Optional string-keyed metadata

        Returns:
            The new Document

        Raises:
            ProviderError: If the embedding provider fails
            DimensionMismatch: If the provider returns a vector of the wrong length
        """
        document_id = new_document_id()
        chunks = build_chunks(document_id, content, self._chunk_size, self._chunk_overlap)
        document = Document(
            id=document_id,
            content=content,
            number_of_chunks=len(chunks),
            metadata=dict(metadata or {}),
        )

        with self.locks.hold(document_id):
            vectors = [self._embedding_provider.embed(chunk.content) for chunk in chunks]

            with self._write_lock:
                self._backend.put_document(document, chunks)
                try:
                    self._index.add_many(zip(chunks, vectors))
                except Exception:
                    self._backend.delete_document(document_id)
                    raise

        logger.info("Added document %s (%d chunks, %d chars)",
                    document_id, len(chunks), len(content))
        return document

    def delete_document(self, document_id: str) -> bool:
        """
        Delete a document, its chunks, and its index entries.

        Returns:
            True if the document existed
        """
        with self.locks.hold(document_id):
            with self._write_lock:
                deleted = self._backend.delete_document(document_id)
                removed = self._index.remove(document_id)
        self.locks.discard(document_id)

        if deleted:
            logger.info("Deleted document %s (%d index entries)", document_id, removed)
        return deleted

    def clear_all_documents(self) -> None:
        """Delete every document, chunk, and index entry."""
        with self._write_lock:
            count = self._backend.clear()
            self._index.clear()
        logger.info("Cleared %d documents", count)

    def edit_chunk(
        self,
        document_id: str,
        start_index: int,
        end_index: int,
        old_span: str,
        new_span: str,
    ) -> EditResult:
        """Copy-on-write edit; see ``kbase.editor.edit_chunk``."""
        return edit_chunk(self, document_id, start_index, end_index, old_span, new_span)

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get_document(self, document_id: str) -> Optional[Document]:
        return self._backend.get_document(document_id)

    def get_all_documents(self) -> list[Document]:
        """All documents, most recently created first."""
        return self._backend.list_documents()

    def get_chunk_by_index(self, document_id: str, chunk_index: int) -> Optional[Chunk]:
        return self._backend.get_chunk(document_id, chunk_index)

    def get_chunks(self, document_id: str) -> list[Chunk]:
        """All chunks of a document, ordered by index."""
        return self._backend.list_chunks(document_id)

    def search(self, query: str, top_k: int = DEFAULT_TOP_K, skip: int = 0) -> list[SearchHit]:
        """
        Rank every indexed chunk by cosine similarity to the query.

        Args:
            query: Query text (embedded with the store's provider)
            top_k: Maximum number of hits
            skip: Leading hits to drop, for pagination

        Returns:
            At most ``top_k`` hits, highest similarity first
        """
        if top_k <= 0:
            return []
        query_vector = self._embedding_provider.embed(query)
        with self._write_lock:
            hits = self._index.search(query_vector, top_k, skip)
        logger.debug("Search %r top_k=%d skip=%d -> %d hits", query[:40], top_k, skip, len(hits))
        return hits

    def render(
        self,
        requests: Iterable[Union[RenderRequest, tuple[str, int, int]]],
    ) -> list[RenderedDocument]:
        """Render chunk ranges as shown/omitted units; see ``kbase.render``."""
        normalized = [
            r if isinstance(r, RenderRequest) else RenderRequest(*r)
            for r in requests
        ]
        return render(self, normalized)

    # -------------------------------------------------------------------------
    # Index
    # -------------------------------------------------------------------------

    def reload_index_from_storage(self) -> int:
        """
        Rebuild the embedding index by re-embedding every stored window.

        The new index replaces the old one only when every chunk was
        embedded; on a provider error the previous index stays in place.

        Returns:
            Number of chunks indexed
        """
        logger.info("Reloading embedding index from storage")
        with self._write_lock:
            chunks = list(self._backend.iter_all_chunks())
        rebuilt = EmbeddingIndex()
        for chunk in chunks:
            rebuilt.add(chunk, self._embedding_provider.embed(chunk.content))
        with self._write_lock:
            self._index = rebuilt
        logger.info("Loaded %d chunks from %d documents into index",
                    len(rebuilt), rebuilt.document_count())
        return len(rebuilt)

    def stats(self) -> dict:
        """Document, chunk, and cache counts."""
        with self._write_lock:
            result = {
                "stored_documents": self._backend.count(),
                "indexed_documents": self._index.document_count(),
                "indexed_chunks": len(self._index),
                "dimension": self._index.dimension,
                "persistent": self._backend.is_persistent,
            }
        cache_stats = getattr(self._embedding_provider, "cache_stats", None)
        if cache_stats is not None:
            result["cache"] = cache_stats()
            file_stats = getattr(self._embedding_provider.cache, "stats", None)
            if file_stats is not None:
                result["cache"].update(file_stats())
        return result

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the backend, the embedding cache, and the ops log."""
        self._backend.close()
        cache = getattr(self._embedding_provider, "cache", None)
        if cache is not None:
            cache.close()
        if self._ops_log_handler is not None:
            logging.getLogger("kbase").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
