"""
Tests for the SQLite record backend and the backend factory.
"""

import sqlite3

import pytest

from kbase.backend import create_backend
from kbase.backends import MemoryBackend, SQLiteBackend
from kbase.backends.sqlite import SCHEMA_VERSION
from kbase.chunking import build_chunks
from kbase.config import StoreConfig
from kbase.protocol import RecordBackend
from kbase.store import DocumentStore
from kbase.types import Document

from conftest import CHUNK_OVERLAP, CHUNK_SIZE, MockEmbeddingProvider


def _document(doc_id: str, text: str, **metadata) -> tuple[Document, list]:
    chunks = build_chunks(doc_id, text, CHUNK_SIZE, CHUNK_OVERLAP)
    return Document(doc_id, text, len(chunks), metadata), chunks


@pytest.fixture
def backend(tmp_path):
    b = SQLiteBackend(tmp_path / "documents.db")
    yield b
    b.close()


class TestSQLiteBackend:

    def test_satisfies_protocol(self, backend):
        assert isinstance(backend, RecordBackend)
        assert isinstance(MemoryBackend(), RecordBackend)

    def test_round_trip(self, backend):
        doc, chunks = _document("d1", "The cat sat on the mat.", source="file")
        backend.put_document(doc, chunks)
        assert backend.get_document("d1") == doc
        assert backend.list_chunks("d1") == chunks
        assert backend.get_chunk("d1", 1) == chunks[1]
        assert backend.get_chunk("d1", len(chunks)) is None

    def test_unicode_metadata_and_content(self, backend):
        doc, chunks = _document("u", "Grüße aus Köln, 東京", note="naïve")
        backend.put_document(doc, chunks)
        assert backend.get_document("u") == doc

    def test_duplicate_id_rejected_atomically(self, backend):
        doc, chunks = _document("d1", "first version")
        backend.put_document(doc, chunks)
        dup, dup_chunks = _document("d1", "second version that is longer")
        with pytest.raises(sqlite3.IntegrityError):
            backend.put_document(dup, dup_chunks)
        assert backend.get_document("d1") == doc
        assert backend.list_chunks("d1") == chunks

    def test_delete_cascades_to_chunks(self, backend):
        doc, chunks = _document("d1", "The cat sat on the mat.")
        backend.put_document(doc, chunks)
        assert backend.delete_document("d1") is True
        assert backend.list_chunks("d1") == []
        rows = backend._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
        assert rows == 0
        assert backend.delete_document("d1") is False

    def test_clear(self, backend):
        for i in range(3):
            backend.put_document(*_document(f"d{i}", f"document number {i}"))
        backend.clear()
        assert backend.count() == 0
        assert list(backend.iter_all_chunks()) == []

    def test_iter_all_chunks_grouped_in_creation_order(self, backend):
        a, a_chunks = _document("a", "first document text")
        b, b_chunks = _document("b", "second document text")
        backend.put_document(a, a_chunks)
        backend.put_document(b, b_chunks)
        assert list(backend.iter_all_chunks()) == a_chunks + b_chunks

    def test_persists_across_reopen(self, tmp_path):
        path = tmp_path / "documents.db"
        doc, chunks = _document("d1", "persistent text here")
        with SQLiteBackend(path) as first:
            first.put_document(doc, chunks)
        with SQLiteBackend(path) as second:
            assert second.get_document("d1") == doc
            assert second.count() == 1

    def test_schema_version_recorded(self, backend):
        version = backend._conn.execute("PRAGMA user_version").fetchone()[0]
        assert version == SCHEMA_VERSION

    def test_newer_schema_rejected(self, tmp_path):
        path = tmp_path / "documents.db"
        conn = sqlite3.connect(path)
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION + 1}")
        conn.close()
        with pytest.raises(ValueError, match="newer"):
            SQLiteBackend(path)


class TestStoreRestart:

    def test_reload_index_after_restart(self, tmp_path):
        path = tmp_path / "documents.db"
        text = "The cat sat on the mat. The cat ran away."
        with DocumentStore(SQLiteBackend(path), MockEmbeddingProvider(),
                           chunk_size=CHUNK_SIZE, chunk_overlap=CHUNK_OVERLAP) as store:
            doc = store.add_document(text)

        with DocumentStore(SQLiteBackend(path), MockEmbeddingProvider(),
                           chunk_size=CHUNK_SIZE, chunk_overlap=CHUNK_OVERLAP) as store:
            # Records survive; the index does not until reloaded
            assert store.get_document(doc.id) == doc
            assert store.search(text[0:10]) == []
            assert store.reload_index_from_storage() == doc.number_of_chunks
            hits = store.search(text[0:10], top_k=1)
            assert (hits[0].document_id, hits[0].chunk_index) == (doc.id, 0)
            [rendered] = store.render([(doc.id, 0, doc.number_of_chunks - 1)])
            assert rendered.units[0].text == text


class TestCreateBackend:

    def test_memory(self, tmp_path):
        assert isinstance(create_backend(StoreConfig(path=tmp_path, backend="memory")), MemoryBackend)

    def test_sqlite(self, tmp_path):
        backend = create_backend(StoreConfig(path=tmp_path, backend="sqlite"))
        assert isinstance(backend, SQLiteBackend)
        assert backend.path == tmp_path / "documents.db"
        backend.close()

    def test_unknown_backend(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown backend"):
            create_backend(StoreConfig(path=tmp_path, backend="no-such-backend"))
