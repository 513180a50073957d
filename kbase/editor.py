"""
Copy-on-write editing of a chunk span.

An edit never changes a document in place. The text covered by the
reconstruction ranges of chunks ``start_index..end_index`` gets its
first occurrence of ``old_span`` replaced; the resulting full text is
added as a brand-new document (new id, re-partitioned, re-embedded in
full) and the old document is deleted. Chunk boundaries after the edit
point shift, which is why nothing is patched locally.

Adding the new document and deleting the old one are two steps. If the
delete fails, both documents remain. Duplication, not loss.
"""

import logging

from .types import EditFailure, EditResult

logger = logging.getLogger(__name__)


def replace_first(text: str, old: str, new: str) -> str:
    """Replace the first occurrence of ``old`` in ``text``.

    An empty ``old`` matches at position 0, as ``str.replace`` does.
    """
    return text.replace(old, new, 1)


def edit_chunk(
    store,
    document_id: str,
    start_index: int,
    end_index: int,
    old_span: str,
    new_span: str,
) -> EditResult:
    """
    Replace text within a chunk span, producing a new document.

    Args:
        store: DocumentStore owning the document
        document_id: Document to edit
        start_index: First chunk of the span
        end_index: Last chunk of the span (inclusive)
        old_span: Text to find within the span
        new_span: Replacement text

    Returns:
        The new Document, or an EditFailure:
        DOCUMENT_NOT_FOUND, CHUNK_NOT_FOUND (also for start_index >
        end_index), or NO_OP when the span is
        unchanged (``old_span`` absent, or equal to ``new_span``)
    """
    with store.locks.hold(document_id):
        document = store.get_document(document_id)
        if document is not None:
            return _edit_locked(store, document, start_index, end_index, old_span, new_span)
    # Unknown ids must not leave a lock behind
    store.locks.discard(document_id)
    return EditFailure.DOCUMENT_NOT_FOUND


def _edit_locked(store, document, start_index, end_index, old_span, new_span) -> EditResult:
    """Body of edit_chunk; the caller holds the document lock."""
    document_id = document.id
    start_chunk = store.get_chunk_by_index(document_id, start_index)
    end_chunk = store.get_chunk_by_index(document_id, end_index)
    # A reversed span covers no chunks
    if start_chunk is None or end_chunk is None or start_index > end_index:
        return EditFailure.CHUNK_NOT_FOUND

    span_start = start_chunk.range.start
    span_end = end_chunk.range.end
    span = document.content[span_start:span_end]
    replaced = replace_first(span, old_span, new_span)
    if replaced == span:
        return EditFailure.NO_OP

    full_content = document.content[:span_start] + replaced + document.content[span_end:]
    new_document = store.add_document(full_content, document.metadata)
    store.delete_document(document_id)

    logger.info(
        "Edited %s chunks %d-%d -> %s (%+d chars)",
        document_id, start_index, end_index, new_document.id,
        len(full_content) - len(document.content),
    )
    return new_document
