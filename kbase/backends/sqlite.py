"""
Document and chunk records using SQLite.

Stores canonical document content and chunk rows durably. Embedding
vectors are not persisted; after a restart the owning DocumentStore
rebuilds its index with ``reload_index_from_storage()``.

Schema:
- documents(id PK, content, number_of_chunks, metadata_json, created_at)
- chunks((document_id, chunk_index) PK, content, range_start, range_end),
  with ON DELETE CASCADE from documents
"""

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Iterator, Optional

from ..types import Chunk, ChunkRange, Document

logger = logging.getLogger(__name__)

# Bump when the schema changes; _migrate() upgrades older files
SCHEMA_VERSION = 1


class SQLiteBackend:
    """
    SQLite-backed store for documents and chunks.

    A document row and its chunk rows are written in one transaction,
    so readers never see a document without its chunks.
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    @property
    def is_persistent(self) -> bool:
        return True

    @property
    def path(self) -> Path:
        return self._db_path

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        # Enable WAL mode for better concurrent access across processes
        self._conn.execute("PRAGMA journal_mode=WAL")
        # Wait up to 5 seconds for locks instead of failing immediately
        self._conn.execute("PRAGMA busy_timeout=5000")
        # Cascading chunk delete needs foreign keys on, per connection
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                content TEXT NOT NULL,
                number_of_chunks INTEGER NOT NULL,
                metadata_json TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL
            )
        """)

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS chunks (
                document_id TEXT NOT NULL,
                chunk_index INTEGER NOT NULL,
                content TEXT NOT NULL,
                range_start INTEGER NOT NULL,
                range_end INTEGER NOT NULL,
                PRIMARY KEY (document_id, chunk_index),
                FOREIGN KEY (document_id) REFERENCES documents (id) ON DELETE CASCADE
            )
        """)

        # Index for timestamp queries
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_documents_created
            ON documents(created_at)
        """)

        self._migrate()
        self._conn.commit()

    def _migrate(self) -> None:
        """Upgrade older database files to the current schema."""
        version = self._conn.execute("PRAGMA user_version").fetchone()[0]
        if version > SCHEMA_VERSION:
            raise ValueError(
                f"Database schema version {version} is newer than supported "
                f"({SCHEMA_VERSION}): {self._db_path}"
            )
        if version < SCHEMA_VERSION:
            logger.info("Migrating %s from schema %d to %d",
                        self._db_path, version, SCHEMA_VERSION)
            self._conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

    @staticmethod
    def _row_to_document(row: sqlite3.Row) -> Document:
        return Document(
            id=row["id"],
            content=row["content"],
            number_of_chunks=row["number_of_chunks"],
            metadata=json.loads(row["metadata_json"]),
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_chunk(row: sqlite3.Row) -> Chunk:
        return Chunk(
            document_id=row["document_id"],
            chunk_index=row["chunk_index"],
            content=row["content"],
            range=ChunkRange(row["range_start"], row["range_end"]),
        )

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def put_document(self, document: Document, chunks: list[Chunk]) -> None:
        """
        Insert a document and all of its chunks in one transaction.

        Raises:
            sqlite3.IntegrityError: If the document id already exists
        """
        metadata_json = json.dumps(document.metadata, ensure_ascii=False)
        with self._lock:
            try:
                self._conn.execute("""
                    INSERT INTO documents
                    (id, content, number_of_chunks, metadata_json, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (document.id, document.content, document.number_of_chunks,
                      metadata_json, document.created_at))
                self._conn.executemany("""
                    INSERT INTO chunks
                    (document_id, chunk_index, content, range_start, range_end)
                    VALUES (?, ?, ?, ?, ?)
                """, [
                    (c.document_id, c.chunk_index, c.content, c.range.start, c.range.end)
                    for c in chunks
                ])
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def delete_document(self, document_id: str) -> bool:
        """
        Delete a document record. Its chunks go with it (cascade).

        Returns:
            True if document existed and was deleted
        """
        with self._lock:
            cursor = self._conn.execute("""
                DELETE FROM documents
                WHERE id = ?
            """, (document_id,))
            self._conn.commit()
        return cursor.rowcount > 0

    def clear(self) -> int:
        """
        Delete all documents and chunks.

        Returns:
            Number of documents deleted
        """
        with self._lock:
            cursor = self._conn.execute("DELETE FROM documents")
            self._conn.execute("DELETE FROM chunks")
            self._conn.commit()
        return cursor.rowcount

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get_document(self, document_id: str) -> Optional[Document]:
        """
        Get a document by ID.

        Returns:
            Document if found, None otherwise
        """
        with self._lock:
            row = self._conn.execute("""
                SELECT id, content, number_of_chunks, metadata_json, created_at
                FROM documents
                WHERE id = ?
            """, (document_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_document(row)

    def list_documents(self) -> list[Document]:
        """All documents, most recently created first."""
        with self._lock:
            rows = self._conn.execute("""
                SELECT id, content, number_of_chunks, metadata_json, created_at
                FROM documents
                ORDER BY created_at DESC, rowid DESC
            """).fetchall()
        return [self._row_to_document(row) for row in rows]

    def get_chunk(self, document_id: str, chunk_index: int) -> Optional[Chunk]:
        """Get one chunk by document and index, or None."""
        with self._lock:
            row = self._conn.execute("""
                SELECT document_id, chunk_index, content, range_start, range_end
                FROM chunks
                WHERE document_id = ? AND chunk_index = ?
            """, (document_id, chunk_index)).fetchone()
        if row is None:
            return None
        return self._row_to_chunk(row)

    def list_chunks(self, document_id: str) -> list[Chunk]:
        """All chunks of a document, ordered by index."""
        with self._lock:
            rows = self._conn.execute("""
                SELECT document_id, chunk_index, content, range_start, range_end
                FROM chunks
                WHERE document_id = ?
                ORDER BY chunk_index
            """, (document_id,)).fetchall()
        return [self._row_to_chunk(row) for row in rows]

    def iter_all_chunks(self) -> Iterator[Chunk]:
        """
        Every stored chunk, grouped by document in creation order.

        Rows are fetched up front so callers may embed (slowly) without
        holding the connection lock.
        """
        with self._lock:
            rows = self._conn.execute("""
                SELECT c.document_id, c.chunk_index, c.content, c.range_start, c.range_end
                FROM chunks c
                JOIN documents d ON d.id = c.document_id
                ORDER BY d.created_at, d.rowid, c.chunk_index
            """).fetchall()
        for row in rows:
            yield self._row_to_chunk(row)

    def count(self) -> int:
        """Count stored documents."""
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
