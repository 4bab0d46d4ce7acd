# =============================================================================
# mindlens/cli/ingest.py: Command-line access to the MindLens pipeline
# =============================================================================
#
# Runs the same services as the web API, built by mindlens.main._build_all,
# without the HTTP layer.  Ingestion runs synchronously, so the command only
# returns once the attachment is completed or failed.
#
# Supported subcommands:
#
#   ingest: add a URL or local file to a book (created on first use by
#            title) and index it
#   ask   : stream an answer for a question over one book or all books
#   books : list books with their attachments and processing status
#
# The owner id comes from --owner (default: $MINDLENS_OWNER, then "local").
#
# Usage examples:
#   python -m mindlens.cli ingest --book "Research" --url https://example.com/q3
#   python -m mindlens.cli ingest --book "Research" --file ./report.pdf
#   python -m mindlens.cli ask --book "Research" "what happened to revenue?"
#   python -m mindlens.cli ask --all "summarize everything about revenue"
#   python -m mindlens.cli books
# =============================================================================

"""Command-line interface for ingesting sources and asking questions.

Usage::

    python -m mindlens.cli ingest --book "Research" --url https://example.com/q3

    python -m mindlens.cli ask --book "Research" "what happened to revenue?"

    python -m mindlens.cli books
"""

from __future__ import annotations

import argparse
import asyncio
import mimetypes
import os
import sys
from pathlib import Path
from typing import Any

from mindlens.config.settings import Settings
from mindlens.models.library import Collection, SourceKind
from mindlens.models.rag import AnswerEventType, QueryScope
from mindlens.providers.loaders.transcript_loader import extract_video_id
from mindlens.utils.errors import MindLensError

_DEFAULT_OWNER = "local"


def _build_components(app_settings: Settings) -> dict[str, Any]:
    # Deferred so `--help` does not pay for provider imports.
    from mindlens.main import _build_all

    return _build_all(app_settings)


async def _find_or_create_book(library, owner_id: str, title: str) -> Collection:  # noqa: ANN001
    for collection, _count in await library.list_collections(owner_id):
        if collection.title == title:
            return collection
    print(f"Creating book: {title}")
    return await library.create_collection(owner_id, title=title)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_ingest(args: argparse.Namespace, components: dict[str, Any]) -> int:
    library = components["library_service"]
    ingestion = components["ingestion_service"]
    owner_id = args.owner

    book = await _find_or_create_book(library, owner_id, args.book)

    if args.file:
        path = Path(args.file)
        if not path.is_file():
            print(f"Error: file not found: {path}", file=sys.stderr)
            return 1
        data = path.read_bytes()
        content_type = mimetypes.guess_type(path.name)[0]
        stored = await library.store_upload(owner_id, path.name, content_type, data)
        kind = SourceKind.FILE
        attachment = await library.add_attachment(
            owner_id,
            book.collection_id,
            kind,
            name=args.name or path.name,
            locator=stored["file_path"],
            original_file_name=path.name,
            file_size=stored["size"],
            mime_type=stored["type"],
        )
    else:
        if args.type:
            kind = SourceKind(args.type)
        else:
            kind = SourceKind.VIDEO if extract_video_id(args.url) else SourceKind.WEB_PAGE
        attachment = await library.add_attachment(
            owner_id,
            book.collection_id,
            kind,
            name=args.name or args.url,
            locator=args.url,
        )

    print(f"Ingesting {kind.value}: {attachment.name}")
    print(f"  Book:       {book.title} ({book.collection_id})")
    print(f"  Attachment: {attachment.attachment_id}")

    result = await ingestion.ingest(
        owner_id,
        book.collection_id,
        attachment.attachment_id,
        kind,
        attachment.locator,
    )

    print("\nIngestion complete:")
    print(f"  Pages loaded:   {result.page_count}")
    print(f"  Chunks indexed: {result.chunk_count}")
    print(f"  Characters:     {result.character_count}")
    print(f"  Namespace:      {result.namespace}")
    print(f"  Time:           {result.ingestion_time:.2f}s")
    return 0


async def _handle_ask(args: argparse.Namespace, components: dict[str, Any]) -> int:
    library = components["library_service"]
    retrieval = components["retrieval_service"]
    streamer = components["answer_streamer"]
    owner_id = args.owner

    scope_title: str | None = None
    if args.all:
        scope = QueryScope.all_collections()
    else:
        matches = [
            c for c, _n in await library.list_collections(owner_id) if c.title == args.book
        ]
        if not matches:
            print(f"Error: no book titled {args.book!r}", file=sys.stderr)
            return 1
        scope = QueryScope.collection(matches[0].collection_id)
        scope_title = matches[0].title

    chunks = await retrieval.retrieve(owner_id, scope, args.question, k=args.limit)

    exit_code = 0
    async for event in streamer.answer(args.question, chunks, scope_title=scope_title):
        if event.type is AnswerEventType.CONTENT:
            print(event.data, end="", flush=True)
        elif event.type is AnswerEventType.ERROR:
            print(f"\nError: {event.data}", file=sys.stderr)
            exit_code = 1
    print()

    if args.show_sources and chunks:
        print("\nSources:")
        for i, retrieved in enumerate(chunks, start=1):
            meta = retrieved.chunk.metadata
            print(
                f"  {i}. [{retrieved.similarity_score:.3f}] "
                f"{meta.collection_title} / {meta.attachment_name} (chunk {meta.chunk_index})"
            )
    return exit_code


async def _handle_books(args: argparse.Namespace, components: dict[str, Any]) -> int:
    library = components["library_service"]
    owner_id = args.owner

    entries = await library.list_collections(owner_id)
    if not entries:
        print("No books yet.")
        return 0

    print(f"Books for {owner_id}")
    print("=" * 40)
    for collection, count in entries:
        print(f"{collection.title}  ({count} attachments)  id={collection.collection_id}")
        for attachment in await library.list_attachments(owner_id, collection.collection_id):
            chunks = attachment.metadata.chunk_count
            detail = f"{chunks} chunks" if chunks is not None else ""
            if attachment.metadata.error:
                detail = attachment.metadata.error
            print(
                f"  - [{attachment.status.value:<10}] {attachment.source_kind.value:<8} "
                f"{attachment.name}  {detail}".rstrip()
            )
    return 0


_HANDLERS = {
    "ingest": _handle_ingest,
    "ask": _handle_ask,
    "books": _handle_books,
}


async def _run(args: argparse.Namespace, app_settings: Settings) -> int:
    components = _build_components(app_settings)
    metadata_store = components["metadata_store"]
    await metadata_store.initialize()
    try:
        return await _HANDLERS[args.command](args, components)
    except MindLensError as exc:
        print(f"\nError: {exc}", file=sys.stderr)
        return 1
    finally:
        await metadata_store.close()


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the MindLens CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m mindlens.cli",
        description="Index sources into MindLens books and ask questions over them.",
    )
    parser.add_argument(
        "--owner",
        default=os.environ.get("MINDLENS_OWNER", _DEFAULT_OWNER),
        help="Owner id to act as (default: $MINDLENS_OWNER or 'local')",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- ingest --
    ingest_parser = subparsers.add_parser("ingest", help="Add a source to a book and index it")
    ingest_parser.add_argument("--book", required=True, help="Book title (created if missing)")
    source = ingest_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--url", help="Web page, GitHub repository or YouTube URL")
    source.add_argument("--file", help="Local PDF, DOCX, EPUB, RTF or text file")
    ingest_parser.add_argument("--name", help="Attachment name (default: URL or file name)")
    ingest_parser.add_argument(
        "--type",
        choices=[SourceKind.WEB_PAGE.value, SourceKind.VIDEO.value],
        help="Source kind for --url (default: detected from the URL)",
    )

    # -- ask --
    ask_parser = subparsers.add_parser("ask", help="Stream an answer to a question")
    scope = ask_parser.add_mutually_exclusive_group(required=True)
    scope.add_argument("--book", help="Title of the book to search")
    scope.add_argument("--all", action="store_true", help="Search every book")
    ask_parser.add_argument("question", help="The question to answer")
    ask_parser.add_argument("--limit", type=int, default=None, help="Number of chunks to retrieve")
    ask_parser.add_argument(
        "--show-sources",
        action="store_true",
        dest="show_sources",
        help="Print the retrieved chunks after the answer",
    )

    # -- books --
    subparsers.add_parser("books", help="List books and attachment status")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parses the subcommand, reads Settings from the environment / .env file,
    builds the same components the web server uses and dispatches.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    exit_code = asyncio.run(_run(args, app_settings))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
