"""
Offset-based chunk partitioning.

A document is cut with a sliding window of ``chunk_size`` characters,
each window starting ``chunk_overlap`` characters before the previous
one ended. The windows are what gets embedded. The window end offsets
are kept separately as boundaries: consecutive boundaries give the
disjoint reconstruction range of each chunk, so the same text can be
rebuilt without duplicated characters.

Example (size 10, overlap 3, 25 characters)::

    windows     text[0:10]  text[7:17]  text[14:24]  text[21:25]
    boundaries  10          17          24           25
    ranges      [0,10)      [10,17)     [17,24)      [24,25)
"""

from .types import Chunk, ChunkRange

DEFAULT_CHUNK_SIZE = 500
DEFAULT_CHUNK_OVERLAP = 100


def validate_geometry(chunk_size: int, chunk_overlap: int) -> None:
    """Reject window settings that would never advance the cursor."""
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if chunk_overlap < 0:
        raise ValueError(f"chunk_overlap must not be negative, got {chunk_overlap}")
    if chunk_overlap >= chunk_size:
        raise ValueError(
            f"chunk_overlap ({chunk_overlap}) must be smaller than "
            f"chunk_size ({chunk_size})"
        )


def partition(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> tuple[list[str], list[int]]:
    """
    Split text into overlapping embedding windows.

    Args:
        text: Text to split
        chunk_size: Window length in characters
        chunk_overlap: Characters shared with the previous window

    Returns:
        (windows, boundaries) where ``boundaries[i]`` is the end offset
        of window i. Text no longer than ``chunk_size`` (including empty
        text) gives a single window and a single boundary at ``len(text)``.

    Raises:
        ValueError: If ``chunk_overlap >= chunk_size`` or either is out of range
    """
    validate_geometry(chunk_size, chunk_overlap)

    windows: list[str] = []
    boundaries: list[int] = []
    length = len(text)
    start = 0
    while True:
        end = min(start + chunk_size, length)
        windows.append(text[start:end])
        boundaries.append(end)
        if end == length:
            break
        start = end - chunk_overlap
    return windows, boundaries


def build_chunks(
    document_id: str,
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> list[Chunk]:
    """Partition text and assemble Chunks in partition order.

    Chunk i covers ``[boundaries[i-1], boundaries[i])`` (0 for the first
    chunk), not the window's own start offset.
    """
    windows, boundaries = partition(text, chunk_size, chunk_overlap)
    chunks = []
    previous_end = 0
    for index, (window, end) in enumerate(zip(windows, boundaries)):
        chunks.append(Chunk(
            document_id=document_id,
            chunk_index=index,
            content=window,
            range=ChunkRange(previous_end, end),
        ))
        previous_end = end
    return chunks
