"""
Data types for the knowledge base.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union


def utc_now() -> str:
    """Current UTC timestamp in canonical format: YYYY-MM-DDTHH:MM:SS.

    All timestamps in kbase are UTC, stored without timezone suffix.
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


def new_document_id() -> str:
    """Fresh document identifier. Random, so ids are never reused."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class ChunkRange:
    """Half-open ``[start, end)`` character offsets into a document's content."""
    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class Document:
    """
    A document in the knowledge base.

    Content is canonical and never changes. Editing produces a new
    Document with a new id (see ``kbase.editor``).

    Attributes:
        id: Opaque unique identifier
        content: Full original text
        number_of_chunks: Chunks produced when the document was added (>= 1)
        metadata: Caller-supplied string-keyed metadata
        created_at: UTC timestamp of creation
    """
    id: str
    content: str
    number_of_chunks: int
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now)

    def __str__(self) -> str:
        preview = self.content[:60].replace("\n", " ")
        return f"{self.id} ({self.number_of_chunks} chunks): {preview}..."


@dataclass(frozen=True)
class Chunk:
    """
    One slice of a document, with two geometries.

    ``content`` is the embedding window. It overlaps its neighbours so
    the embedding model sees boundary context, and is never used to
    rebuild text. ``range`` is the disjoint reconstruction range: the
    ranges of a document's chunks partition its content exactly.
    """
    document_id: str
    chunk_index: int
    content: str
    range: ChunkRange


@dataclass(frozen=True)
class SearchHit:
    """A chunk returned by similarity search, with its cosine similarity."""
    chunk: Chunk
    similarity: float

    @property
    def document_id(self) -> str:
        return self.chunk.document_id

    @property
    def chunk_index(self) -> int:
        return self.chunk.chunk_index

    @property
    def text(self) -> str:
        return self.chunk.content

    def __str__(self) -> str:
        return f"{self.document_id}#{self.chunk_index} [{self.similarity:.3f}]"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RenderRequest:
    """Request to show chunks ``start..end`` (inclusive) of a document."""
    document_id: str
    start: int
    end: int


SHOWN = "shown"
OMITTED = "omitted"


@dataclass(frozen=True)
class RenderUnit:
    """A contiguous inclusive chunk-index range, either shown or omitted.

    ``text`` is the reconstructed original text for shown units and
    ``None`` for omitted ones.
    """
    kind: str
    start: int
    end: int
    text: Optional[str] = None

    @property
    def shown(self) -> bool:
        return self.kind == SHOWN


@dataclass
class RenderedDocument:
    """Render output for one document.

    When the document does not exist, ``found`` is False and there are
    no units.
    """
    document_id: str
    found: bool
    created_at: Optional[str] = None
    units: list[RenderUnit] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Editing
# ---------------------------------------------------------------------------


class EditFailure(enum.Enum):
    """Why a copy-on-write edit produced no new document."""
    DOCUMENT_NOT_FOUND = "Document not found"
    CHUNK_NOT_FOUND = "Chunk not found"
    NO_OP = "Content is the same, no changes made"

    @property
    def message(self) -> str:
        return self.value


EditResult = Union[Document, EditFailure]
