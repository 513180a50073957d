"""
Render chunk-index ranges back into original text.

Requests for the same document are clipped to the document, sorted,
and merged into disjoint intervals. Each interval is rebuilt from the
document's canonical content using the reconstruction ranges of its
first and last chunk, so overlapping embedding windows never duplicate
text. The gaps between intervals come back as omitted units, so every
chunk index of a rendered document is covered exactly once.

Two requests merge when they overlap or when the second starts right
after the first ends (``next.start <= current.end + 1``); an adjacent
pair would otherwise leave an empty omission between them.
"""

import json
from typing import Iterable, Protocol

from .errors import KbaseError
from .types import (
    OMITTED, SHOWN, Chunk, Document, RenderedDocument, RenderRequest, RenderUnit,
)


class _ChunkSource(Protocol):
    def get_document(self, document_id: str) -> Document | None: ...

    def get_chunk_by_index(self, document_id: str, chunk_index: int) -> Chunk | None: ...


def merge_intervals(
    requests: Iterable[RenderRequest],
    number_of_chunks: int,
) -> list[tuple[int, int]]:
    """
    Clip requests to ``[0, number_of_chunks - 1]`` and merge them.

    Returns:
        Sorted, disjoint, non-adjacent inclusive intervals. Requests that
        fall entirely outside the document are dropped.
    """
    last = number_of_chunks - 1
    clipped = []
    for req in requests:
        start = max(req.start, 0)
        end = min(req.end, last)
        if end >= start:
            clipped.append((start, end))
    clipped.sort()

    merged: list[list[int]] = []
    for start, end in clipped:
        if merged and start <= merged[-1][1] + 1:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])
    return [(start, end) for start, end in merged]


def render_document(
    source: _ChunkSource,
    document_id: str,
    requests: list[RenderRequest],
) -> RenderedDocument:
    """Render the requested ranges of one document."""
    document = source.get_document(document_id)
    if document is None:
        return RenderedDocument(document_id=document_id, found=False)

    rendered = RenderedDocument(
        document_id=document_id,
        found=True,
        created_at=document.created_at,
    )
    cursor = 0
    for start, end in merge_intervals(requests, document.number_of_chunks):
        if start > cursor:
            rendered.units.append(RenderUnit(OMITTED, cursor, start - 1))

        first = source.get_chunk_by_index(document_id, start)
        last = source.get_chunk_by_index(document_id, end)
        if first is None or last is None:
            missing = start if first is None else end
            raise KbaseError(
                f"Chunk with index {missing} not found in document {document_id}"
            )
        text = document.content[first.range.start:last.range.end]
        rendered.units.append(RenderUnit(SHOWN, start, end, text))
        cursor = end + 1

    if cursor <= document.number_of_chunks - 1:
        rendered.units.append(RenderUnit(OMITTED, cursor, document.number_of_chunks - 1))
    return rendered


def render(source: _ChunkSource, requests: Iterable[RenderRequest]) -> list[RenderedDocument]:
    """
    Render requested chunk ranges, grouped per document.

    Documents appear in the order their ids first occur in ``requests``.
    A missing document renders as ``found=False``.
    """
    by_document: dict[str, list[RenderRequest]] = {}
    for req in requests:
        by_document.setdefault(req.document_id, []).append(req)
    return [
        render_document(source, document_id, doc_requests)
        for document_id, doc_requests in by_document.items()
    ]


def format_rendered(documents: list[RenderedDocument]) -> str:
    """
    Format render output as tagged text.

    Example::

        <document id="abc" createdAt="2026-01-30T10:00:00">
        <chunk indexStart="0" indexEnd="0">
        First chunk text
        </chunk>
        <chunk indexStart="1" indexEnd="4" omitted/>
        </document>
    """
    parts: list[str] = []
    for doc in documents:
        doc_id = json.dumps(doc.document_id)
        if not doc.found:
            parts.append(f"<document id={doc_id}>\nDocument not found.\n</document>\n")
            continue
        parts.append(f"<document id={doc_id} createdAt={json.dumps(doc.created_at)}>\n")
        for unit in doc.units:
            if unit.shown:
                parts.append(
                    f'<chunk indexStart="{unit.start}" indexEnd="{unit.end}">\n'
                    f"{unit.text}\n</chunk>\n"
                )
            else:
                parts.append(f'<chunk indexStart="{unit.start}" indexEnd="{unit.end}" omitted/>\n')
        parts.append("</document>\n")
    return "".join(parts)
