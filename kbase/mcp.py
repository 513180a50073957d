"""
MCP stdio server exposing the knowledge base to AI agents.

Exposes the knowledge base actions as MCP tools so local AI agents get
search, chunk retrieval, and copy-on-write editing without HTTP
infrastructure.

Usage:
    kbase mcp                        # stdio server (via CLI)

All store calls are serialized through a single asyncio.Lock, which
gives the one-request-at-a-time discipline the store expects from an
interactive session.
"""

import asyncio
import os
from pathlib import Path
from typing import Annotated, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from .errors import ProviderError
from .store import DocumentStore
from .tools import KnowledgeTool

# ---------------------------------------------------------------------------
# Server setup
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "kbase",
    instructions=(
        "Knowledge base with semantic search over document chunks. "
        "Search, read chunk ranges, add, delete, and edit documents. "
        "Omitted chunk ranges in results can be fetched with kb_get_chunk."
    ),
)

_store: Optional[DocumentStore] = None
_lock = asyncio.Lock()


def _get_tool() -> KnowledgeTool:
    """Lazy-init the store (respects KBASE_STORE_PATH) and rebuild its index.

    Must be called inside ``async with _lock``.
    """
    global _store
    if _store is None:
        store_path = os.environ.get("KBASE_STORE_PATH")
        _store = DocumentStore.open(
            Path(store_path) if store_path else None,
            reload_index=True,
        )
    return KnowledgeTool(_store)


# ---------------------------------------------------------------------------
# Tool annotations
# ---------------------------------------------------------------------------

_READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False)
_ADDITIVE = ToolAnnotations(destructiveHint=False, idempotentHint=False)
_DESTRUCTIVE = ToolAnnotations(destructiveHint=True, idempotentHint=False)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool(
    description=(
        "Search the knowledge base for chunks relevant to a query. "
        "Results show each matching chunk in its document, with other chunks marked omitted."
    ),
    annotations=_READ_ONLY,
)
async def kb_search(
    query: Annotated[str, Field(description="Search query to find relevant chunks.")],
    top_k: Annotated[int, Field(description="Number of top results to return.", ge=1)] = 3,
    skip: Annotated[int, Field(description="Number of results to skip (for pagination).", ge=0)] = 0,
) -> str:
    """Search chunks by meaning."""
    async with _lock:
        try:
            return _get_tool().search(query, top_k, skip)
        except ProviderError as e:
            return f"Error: {e}"


@mcp.tool(
    description="Retrieve chunks start..end (inclusive) of a document as exact text.",
    annotations=_READ_ONLY,
)
async def kb_get_chunk(
    document_id: Annotated[str, Field(description="ID of the document.")],
    chunk_index_start: Annotated[int, Field(description="Index of the start chunk.", ge=0)],
    chunk_index_end: Annotated[int, Field(description="Index of the end chunk.", ge=0)],
) -> str:
    """Render a chunk range."""
    async with _lock:
        return _get_tool().get_chunk(document_id, chunk_index_start, chunk_index_end)


@mcp.tool(
    description="Add a new Markdown document to the knowledge base. Returns the new document ID.",
    annotations=_ADDITIVE,
)
async def kb_add_document(
    content: Annotated[str, Field(description="Content of the document to add.")],
) -> str:
    """Add a document."""
    async with _lock:
        try:
            return _get_tool().add_document(content)
        except ProviderError as e:
            return f"Error: {e}"


@mcp.tool(
    description="Delete a document and all of its chunks from the knowledge base.",
    annotations=_DESTRUCTIVE,
)
async def kb_delete_document(
    document_id: Annotated[str, Field(description="ID of the document to delete.")],
) -> str:
    """Delete a document."""
    async with _lock:
        return _get_tool().delete_document(document_id)


@mcp.tool(
    description=(
        "Replace the first occurrence of old_content within chunks start..end of a document. "
        "Creates a new document with a new ID and deletes the old one."
    ),
    annotations=_DESTRUCTIVE,
)
async def kb_edit_chunk(
    document_id: Annotated[str, Field(description="ID of the document.")],
    chunk_index_start: Annotated[int, Field(description="Starting chunk index to edit.", ge=0)],
    chunk_index_end: Annotated[int, Field(description="Ending chunk index to edit.", ge=0)],
    old_content: Annotated[str, Field(description="Current content to be replaced.")],
    new_content: Annotated[str, Field(description="New content to replace with.")],
) -> str:
    """Copy-on-write edit."""
    async with _lock:
        try:
            return _get_tool().edit_chunk(
                document_id, chunk_index_start, chunk_index_end, old_content, new_content,
            )
        except ProviderError as e:
            return f"Error: {e}"


def main():
    """Run the MCP stdio server."""
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
