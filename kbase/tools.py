"""
Knowledge base actions for LLM tool calling.

One tool, ``knowledge_base``, with five actions. Each action takes
plain arguments and returns the text handed back to the model.
Search results and chunk lookups come back through the range
renderer, so the model sees exact document text with omitted ranges
marked; omitted ranges can be fetched later with ``get_chunk``.
"""

import json
import logging

from .protocol import KnowledgeBaseProtocol
from .render import format_rendered
from .types import EditFailure, RenderRequest

logger = logging.getLogger(__name__)

TOOL_NAME = "knowledge_base"

TOOL_DESCRIPTION = """
Manage knowledge base with search, add, delete, and retrieve document chunks.

## Term Definitions
- Document: An unit of knowledge.
- Knowledge Base: A collection of documents.
- Chunk: A part of a document.

## Document Format
Documents are in Markdown format.
Documents should include headings for better organization and navigation.

## Documentation Guidelines
When adding, search existing documentation to avoid contradictions; consider editing instead of adding.

## Actions
- **search**: Search for relevant chunks based on a query. Use skip parameter for pagination.
- **getChunk**: Retrieve a specific chunk range by document ID and index.
- **addDocument**: Add a new document to the knowledge base.
- **deleteDocument**: Delete a document from the knowledge base.
- **editChunk**: Edit a specific chunk range in a document.

## Tips
- The **omitted chunks** can be retrieved with **getChunk**.
""".strip()

ACTIONS = ("search", "getChunk", "addDocument", "deleteDocument", "editChunk")

DEFAULT_SEARCH_TOP_K = 3


class KnowledgeTool:
    """Executes knowledge base actions against a DocumentStore."""

    def __init__(self, store: KnowledgeBaseProtocol):
        self._store = store

    def search(self, query: str, top_k: int = DEFAULT_SEARCH_TOP_K, skip: int = 0) -> str:
        """Search and render each hit's chunk in document context."""
        hits = self._store.search(query, top_k, skip)
        if not hits:
            return "No matching chunks."
        return format_rendered(self._store.render([
            RenderRequest(h.document_id, h.chunk_index, h.chunk_index) for h in hits
        ]))

    def get_chunk(self, document_id: str, start: int, end: int) -> str:
        """Render chunks ``start..end`` of one document."""
        return format_rendered(self._store.render([RenderRequest(document_id, start, end)]))

    def add_document(self, content: str) -> str:
        document = self._store.add_document(content)
        return f"Document added with ID: {document.id}"

    def delete_document(self, document_id: str) -> str:
        if self._store.delete_document(document_id):
            return f"Document with ID {document_id} deleted."
        return f"Document with ID {document_id} not found."

    def edit_chunk(
        self,
        document_id: str,
        start: int,
        end: int,
        old_content: str,
        new_content: str,
    ) -> str:
        result = self._store.edit_chunk(document_id, start, end, old_content, new_content)
        if isinstance(result, EditFailure):
            return (
                f"Failed to edit chunks {start}-{end} in document {document_id}: "
                f"{result.message}"
            )
        return f"Successfully edited chunks {start}-{end}. New document ID: {result.id}"

    def execute(self, arguments: str | dict) -> str:
        """
        Run one tool call.

        Args:
            arguments: JSON string or dict of the form
                ``{"action": {"type": "search", "query": ..., "topK": ..., "skip": ...}}``

        Raises:
            ValueError: On malformed arguments or an unknown action type
        """
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError as e:
                raise ValueError(f"Tool arguments are not valid JSON: {e}") from e

        action = arguments.get("action") if isinstance(arguments, dict) else None
        if not isinstance(action, dict):
            raise ValueError("Tool arguments must contain an 'action' object")
        kind = action.get("type")
        logger.debug("Tool action %s", kind)

        try:
            if kind == "search":
                return self.search(
                    str(action["query"]),
                    int(action.get("topK", DEFAULT_SEARCH_TOP_K)),
                    int(action.get("skip", 0)),
                )
            if kind == "getChunk":
                return self.get_chunk(
                    str(action["documentId"]),
                    int(action["chunkIndexStart"]),
                    int(action["chunkIndexEnd"]),
                )
            if kind == "addDocument":
                return self.add_document(str(action["content"]))
            if kind == "deleteDocument":
                return self.delete_document(str(action["documentId"]))
            if kind == "editChunk":
                return self.edit_chunk(
                    str(action["documentId"]),
                    int(action["chunkIndexStart"]),
                    int(action["chunkIndexEnd"]),
                    str(action["oldContent"]),
                    str(action["newContent"]),
                )
        except KeyError as e:
            raise ValueError(f"Missing field for action {kind!r}: {e.args[0]}") from e
        raise ValueError(f"Unknown action: {kind!r}. Expected one of {', '.join(ACTIONS)}")
