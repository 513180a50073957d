"""
kbase - a small retrieval-augmented knowledge base.

Documents are split into overlapping embedding windows with disjoint
reconstruction ranges, searched by cosine similarity, rendered back to
exact text by chunk range, and edited copy-on-write.

Quick start:
    from kbase import DocumentStore

    store = DocumentStore.open("~/.kbase")
    doc = store.add_document("Some long text ...", {"source": "notes"})
    hits = store.search("what was that about?", top_k=3)
    print(format_rendered(store.render([(h.document_id, h.chunk_index, h.chunk_index)
                                        for h in hits])))
"""

from .chunking import build_chunks, partition
from .errors import DimensionMismatch, KbaseError, ProviderError
from .index import EmbeddingIndex, cosine_similarity
from .render import format_rendered
from .store import DocumentStore
from .types import (
    Chunk,
    ChunkRange,
    Document,
    EditFailure,
    RenderedDocument,
    RenderRequest,
    RenderUnit,
    SearchHit,
)

__version__ = "0.1.0"
__all__ = [
    "DocumentStore",
    "EmbeddingIndex",
    "partition",
    "build_chunks",
    "cosine_similarity",
    "format_rendered",
    "Chunk",
    "ChunkRange",
    "Document",
    "EditFailure",
    "RenderedDocument",
    "RenderRequest",
    "RenderUnit",
    "SearchHit",
    "KbaseError",
    "DimensionMismatch",
    "ProviderError",
]
