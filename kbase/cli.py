"""
CLI interface for the knowledge base.

Usage:
    kbase add "Some text to remember"
    kbase import ./docs
    kbase search "query text"
    kbase show <id> 0 3
    kbase edit <id> 2 2 "old text" "new text"
"""

import atexit
import json
import os
import sys
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .errors import KbaseError, log_exception
from .logging_config import configure_quiet_mode, enable_debug_mode
from .render import format_rendered
from .store import DocumentStore
from .types import Document, EditFailure, RenderRequest

# Maximum number of files to import from a directory at once
MAX_DIR_FILES = 1000

# Set KBASE_VERBOSE=1 to enable debug mode via environment
if os.environ.get("KBASE_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from . import __version__
        print(f"kbase {__version__}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


app = typer.Typer(
    name="kbase",
    help="Knowledge base with chunked semantic search.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="KBASE_STORE_PATH",
        help="Path to the store directory",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Knowledge base with chunked semantic search."""


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _get_store(reload_index: bool = False) -> DocumentStore:
    """Open the store, exiting with a clean message on failure."""
    try:
        store = DocumentStore.open(_store_override, reload_index=reload_index)
    except (KbaseError, ValueError, RuntimeError, OSError) as e:
        log_path = log_exception(e, "open store")
        typer.echo(f"Error: {e} (details: {log_path})", err=True)
        raise typer.Exit(1)
    atexit.register(store.close)
    return store


def _fail(e: Exception, command: str):
    log_path = log_exception(e, command)
    typer.echo(f"Error: {e} (details: {log_path})", err=True)
    raise typer.Exit(1)


def _parse_metadata(meta: Optional[list[str]]) -> dict[str, str]:
    """Parse key=value metadata list to dict."""
    if not meta:
        return {}
    parsed = {}
    for pair in meta:
        if "=" not in pair:
            typer.echo(f"Error: Invalid metadata format '{pair}'. Use key=value", err=True)
            raise typer.Exit(1)
        k, v = pair.split("=", 1)
        parsed[k] = v
    return parsed


def _document_dict(document: Document, *, with_content: bool = True) -> dict:
    d = asdict(document)
    if not with_content:
        d.pop("content")
    return d


def _echo_document(document: Document) -> None:
    if _json_output:
        typer.echo(json.dumps(_document_dict(document), ensure_ascii=False))
    else:
        typer.echo(str(document))


def _list_markdown_files(directory: Path) -> list[Path]:
    """Markdown files in a directory, sorted by name.

    Skips symlinks, subdirectories, and hidden files (names starting with '.').
    """
    files = []
    for entry in sorted(directory.iterdir()):
        if entry.name.startswith("."):
            continue
        if entry.is_symlink() or entry.is_dir():
            continue
        if entry.suffix.lower() == ".md":
            files.append(entry)
    return files


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def add(
    content: Annotated[Optional[str], typer.Argument(
        help="Document text, or '-' to read stdin",
    )] = None,
    file: Annotated[Optional[Path], typer.Option(
        "--file", "-f", help="Read document text from a file",
    )] = None,
    meta: Annotated[Optional[list[str]], typer.Option(
        "--meta", "-m", help="Metadata as key=value (repeatable)",
    )] = None,
):
    """Add a document."""
    if file is not None:
        text = file.read_text(encoding="utf-8")
    elif content == "-" or (content is None and not sys.stdin.isatty()):
        text = sys.stdin.read()
    elif content is not None:
        text = content
    else:
        typer.echo("Error: provide document text, '-', or --file", err=True)
        raise typer.Exit(1)

    metadata = _parse_metadata(meta)
    if file is not None:
        metadata.setdefault("filename", file.name)

    store = _get_store()
    try:
        document = store.add_document(text, metadata)
    except KbaseError as e:
        _fail(e, "add")
    _echo_document(document)


@app.command("import")
def import_dir(
    directory: Annotated[Path, typer.Argument(
        help="Directory of Markdown (.md) files", exists=True, file_okay=False,
    )],
):
    """Add every Markdown file in a directory as a document."""
    files = _list_markdown_files(directory)
    if len(files) > MAX_DIR_FILES:
        typer.echo(f"Error: {len(files)} files exceeds limit of {MAX_DIR_FILES}", err=True)
        raise typer.Exit(1)

    store = _get_store()
    added = 0
    for path in files:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            typer.echo(f"Skipped {path.name}: {e}", err=True)
            continue
        try:
            document = store.add_document(text, {
                "source": "file",
                "filename": path.name,
                "baseName": path.stem,
                "loadedAt": datetime.now(timezone.utc).isoformat(),
            })
        except KbaseError as e:
            _fail(e, f"import {path.name}")
        added += 1
        if not _json_output:
            typer.echo(f"{path.name}: {document.id} ({document.number_of_chunks} chunks)")
    if _json_output:
        typer.echo(json.dumps({"imported": added}))
    else:
        typer.echo(f"Imported {added} of {len(files)} files")


@app.command()
def get(
    document_id: Annotated[str, typer.Argument(help="Document ID")],
):
    """Print a document's full content."""
    store = _get_store()
    document = store.get_document(document_id)
    if document is None:
        typer.echo(f"Not found: {document_id}", err=True)
        raise typer.Exit(1)
    if _json_output:
        typer.echo(json.dumps(_document_dict(document), ensure_ascii=False))
    else:
        typer.echo(document.content)


@app.command("list")
def list_documents():
    """List documents, newest first."""
    store = _get_store()
    documents = store.get_all_documents()
    if _json_output:
        typer.echo(json.dumps(
            [_document_dict(d, with_content=False) for d in documents],
            ensure_ascii=False,
        ))
        return
    for document in documents:
        typer.echo(str(document))


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search query text")],
    top_k: Annotated[int, typer.Option("--top-k", "-k", help="Number of results", min=1)] = 3,
    skip: Annotated[int, typer.Option("--skip", help="Results to skip (pagination)", min=0)] = 0,
):
    """Search chunks and show each hit in its document."""
    store = _get_store(reload_index=True)
    try:
        hits = store.search(query, top_k, skip)
    except KbaseError as e:
        _fail(e, "search")
    if _json_output:
        typer.echo(json.dumps([
            {
                "document_id": h.document_id,
                "chunk_index": h.chunk_index,
                "text": h.text,
                "similarity": h.similarity,
            }
            for h in hits
        ], ensure_ascii=False))
        return
    if not hits:
        typer.echo("No matching chunks.")
        return
    for hit in hits:
        typer.echo(str(hit))
    typer.echo(format_rendered(store.render([
        RenderRequest(h.document_id, h.chunk_index, h.chunk_index) for h in hits
    ])), nl=False)


@app.command()
def show(
    document_id: Annotated[str, typer.Argument(help="Document ID")],
    start: Annotated[int, typer.Argument(help="First chunk index", min=0)] = 0,
    end: Annotated[Optional[int], typer.Argument(help="Last chunk index (default: last)", min=0)] = None,
):
    """Render a chunk range of a document as exact text."""
    store = _get_store()
    if end is None:
        document = store.get_document(document_id)
        end = document.number_of_chunks - 1 if document else start
    rendered = store.render([RenderRequest(document_id, start, end)])
    if _json_output:
        typer.echo(json.dumps([asdict(r) for r in rendered], ensure_ascii=False))
    else:
        typer.echo(format_rendered(rendered), nl=False)
    if not rendered[0].found:
        raise typer.Exit(1)


@app.command()
def edit(
    document_id: Annotated[str, typer.Argument(help="Document ID")],
    start: Annotated[int, typer.Argument(help="First chunk index of the span", min=0)],
    end: Annotated[int, typer.Argument(help="Last chunk index of the span", min=0)],
    old: Annotated[str, typer.Argument(help="Text to replace (first occurrence)")],
    new: Annotated[str, typer.Argument(help="Replacement text")],
):
    """Replace text within a chunk span. Creates a new document ID."""
    store = _get_store()
    try:
        result = store.edit_chunk(document_id, start, end, old, new)
    except KbaseError as e:
        _fail(e, "edit")
    if isinstance(result, EditFailure):
        typer.echo(f"Failed to edit chunks {start}-{end} in document {document_id}: "
                   f"{result.message}", err=True)
        raise typer.Exit(1)
    _echo_document(result)


@app.command()
def delete(
    document_id: Annotated[str, typer.Argument(help="Document ID")],
):
    """Delete a document and its chunks."""
    store = _get_store()
    if not store.delete_document(document_id):
        typer.echo(f"Not found: {document_id}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Deleted {document_id}")


@app.command()
def clear(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
):
    """Delete every document in the store."""
    if not yes:
        typer.confirm("Delete all documents?", abort=True)
    store = _get_store()
    store.clear_all_documents()
    typer.echo("Cleared")


@app.command()
def reload():
    """Rebuild the embedding index from stored chunks (warms the cache)."""
    store = _get_store()
    try:
        count = store.reload_index_from_storage()
    except KbaseError as e:
        _fail(e, "reload")
    typer.echo(f"Indexed {count} chunks")


@app.command()
def stats():
    """Show document, index, and cache statistics."""
    store = _get_store(reload_index=True)
    info = store.stats()
    if _json_output:
        typer.echo(json.dumps(info))
        return
    for key, value in info.items():
        if isinstance(value, dict):
            typer.echo(f"{key}:")
            for k, v in value.items():
                typer.echo(f"  {k}: {v}")
        else:
            typer.echo(f"{key}: {value}")


@app.command()
def mcp():
    """Run the MCP stdio server."""
    if _store_override is not None:
        os.environ["KBASE_STORE_PATH"] = str(_store_override)
    from .mcp import main as mcp_main
    mcp_main()


def main():
    app()


if __name__ == "__main__":
    main()
