"""
Shared pytest fixtures for kbase tests.

Provides mock embedding providers so no test talks to a remote service.
"""

import hashlib
from pathlib import Path

import pytest

from kbase.backends import MemoryBackend, SQLiteBackend
from kbase.config import ProviderConfig, StoreConfig, save_config
from kbase.errors import ProviderError
from kbase.providers import get_registry
from kbase.store import DocumentStore


class MockEmbeddingProvider:
    """
    Deterministic mock embedding provider for testing.

    Generates consistent embeddings based on text hash. Identical text
    gives identical vectors (similarity 1.0).
    """

    dimension = 64
    model_name = "mock-model"

    def __init__(self, **params):
        self.params = params
        self.embed_calls = 0
        self.batch_calls = 0
        self.texts: list[str] = []

    def embed(self, text: str) -> list[float]:
        """Generate deterministic embedding from text hash."""
        self.embed_calls += 1
        self.texts.append(text)
        h = hashlib.md5(text.encode()).hexdigest()
        embedding = []
        for i in range(0, 32, 2):
            # Centre on zero so unrelated texts are not all near-parallel
            val = int(h[i:i+2], 16) / 255.0 - 0.5
            embedding.append(val)
        embedding = (embedding * 4)[:self.dimension]
        return embedding

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts."""
        self.batch_calls += 1
        return [self.embed(t) for t in texts]


class SmallMockProvider(MockEmbeddingProvider):
    """A different mock model with shorter vectors."""

    dimension = 32
    model_name = "mock-small"


class FailingEmbeddingProvider(MockEmbeddingProvider):
    """Mock provider that raises ProviderError after ``fail_after`` successful calls."""

    def __init__(self, fail_after: int = 0):
        super().__init__()
        self.fail_after = fail_after

    def embed(self, text: str) -> list[float]:
        if self.embed_calls >= self.fail_after:
            self.embed_calls += 1
            raise ProviderError("mock provider unavailable")
        return super().embed(text)


# Config files in test stores name the mock provider
get_registry().register_embedding("mock", MockEmbeddingProvider)


# Small geometry so short test strings span several chunks
CHUNK_SIZE = 10
CHUNK_OVERLAP = 3


@pytest.fixture
def mock_embedding_provider():
    """Create a fresh MockEmbeddingProvider instance."""
    return MockEmbeddingProvider()


@pytest.fixture
def memory_store(mock_embedding_provider):
    """DocumentStore over the in-memory backend."""
    store = DocumentStore(
        MemoryBackend(),
        mock_embedding_provider,
        chunk_size=CHUNK_SIZE,
        chunk_overlap=CHUNK_OVERLAP,
    )
    yield store
    store.close()


@pytest.fixture
def sqlite_store(tmp_path, mock_embedding_provider):
    """DocumentStore over a SQLite backend in a temp directory."""
    store = DocumentStore(
        SQLiteBackend(tmp_path / "documents.db"),
        mock_embedding_provider,
        chunk_size=CHUNK_SIZE,
        chunk_overlap=CHUNK_OVERLAP,
    )
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path, mock_embedding_provider):
    """DocumentStore over each record backend in turn."""
    if request.param == "memory":
        backend = MemoryBackend()
    else:
        backend = SQLiteBackend(tmp_path / "documents.db")
    s = DocumentStore(
        backend,
        mock_embedding_provider,
        chunk_size=CHUNK_SIZE,
        chunk_overlap=CHUNK_OVERLAP,
    )
    yield s
    s.close()


@pytest.fixture
def store_path(tmp_path, monkeypatch) -> Path:
    """A store directory configured for the mock provider and SQLite backend."""
    path = tmp_path / "store"
    save_config(StoreConfig(
        path=path,
        backend="sqlite",
        chunk_size=CHUNK_SIZE,
        chunk_overlap=CHUNK_OVERLAP,
        embedding=ProviderConfig("mock"),
    ))
    monkeypatch.setenv("KBASE_STORE_PATH", str(path))
    return path
