"""
Embedding providers and the embedding cache.

Concrete providers register themselves with the global registry when
``kbase.providers.embeddings`` is imported; the registry does that
lazily on first use.
"""

from .base import EmbeddingProvider, ProviderRegistry, get_registry
from .embedding_cache import CachingEmbeddingProvider, SQLiteEmbeddingCache

__all__ = [
    "EmbeddingProvider",
    "ProviderRegistry",
    "get_registry",
    "CachingEmbeddingProvider",
    "SQLiteEmbeddingCache",
]
