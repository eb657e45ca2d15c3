"""argparse front end for :class:`~ragdesk.services.knowledge_base.KnowledgeBase`.

Usage::

    python -m ragdesk.cli upload notes/handbook.pdf --title "Staff Handbook"
    python -m ragdesk.cli ask "How many vacation days do I get?"
    python -m ragdesk.cli ask "What changed?" --since 2026-01-01 --document-id 3f2a...
    python -m ragdesk.cli list
    python -m ragdesk.cli check-index
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import uuid
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable

from ragdesk.config.loader import load_settings
from ragdesk.config.settings import Settings
from ragdesk.main import build_application
from ragdesk.models.chat import MessageRole
from ragdesk.models.document import UploadMetadata
from ragdesk.models.rag import QueryFilters
from ragdesk.services.knowledge_base import KnowledgeBase, document_task_key
from ragdesk.utils.errors import RagDeskError
from ragdesk.utils.logging import configure_logging

Handler = Callable[[argparse.Namespace, KnowledgeBase], Awaitable[int]]


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_upload(args: argparse.Namespace, kb: KnowledgeBase) -> int:
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    document_id = await kb.upload(
        path.read_bytes(),
        UploadMetadata(filename=path.name, title=args.title, content_type=args.content_type),
    )
    print(f"Uploaded {path.name} as {document_id}; processing...")

    wait_error = await _wait_quietly(kb, document_task_key(document_id))

    document = await kb.get_document(document_id)
    if document is None:
        print("Error: document disappeared during processing", file=sys.stderr)
        return 1

    print(f"  Status: {document.status.value}")
    if document.error_message:
        print(f"  Error:  {document.error_message}")
        return 1
    if wait_error is not None:
        print(f"  Error:  {wait_error}")
        return 1
    return 0


async def _handle_ask(args: argparse.Namespace, kb: KnowledgeBase) -> int:
    filters = QueryFilters(
        document_ids=args.document_ids or None,
        created_after=args.since,
    )
    chat_id = args.chat or uuid.uuid4().hex
    task = await kb.ask(args.question, chat_id=chat_id, filters=filters)

    try:
        await kb.wait_for(task.task_key)
    except RagDeskError as exc:
        print(f"Error: {exc}", file=sys.stderr)

    replies = [m for m in await kb.get_messages(chat_id) if m.role == MessageRole.ASSISTANT]
    if not replies:
        print("Error: no answer was recorded", file=sys.stderr)
        return 1

    reply = replies[-1]
    print(reply.content)
    citations = reply.metadata.get("citations", [])
    if citations:
        print("\nSources:")
        for number, citation in enumerate(citations, start=1):
            print(
                f"  [{number}] {citation['document_title']} "
                f"(chunk {citation['position']}, relevance {citation['relevance']:.2f})"
            )
    print(f"\nChat: {chat_id}")
    return 0


async def _handle_list(args: argparse.Namespace, kb: KnowledgeBase) -> int:
    documents = await kb.list_documents()
    if not documents:
        print("No documents.")
        return 0

    for document in documents:
        print(
            f"{document.id}  {document.status.value:<10}  "
            f"{document.created_at:%Y-%m-%d %H:%M}  {document.title}"
        )
        if document.error_message:
            print(f"    {document.error_message}")
    return 0


async def _handle_delete(args: argparse.Namespace, kb: KnowledgeBase) -> int:
    if not await kb.delete_document(args.document_id):
        print(f"Error: no document {args.document_id}", file=sys.stderr)
        return 1
    print(f"Deleted {args.document_id}")
    return 0


async def _handle_reprocess(args: argparse.Namespace, kb: KnowledgeBase) -> int:
    task = await kb.reprocess_document(args.document_id)
    print(f"Reprocessing {args.document_id}...")
    wait_error = await _wait_quietly(kb, task.task_key)

    document = await kb.get_document(args.document_id)
    status = document.status.value if document is not None else "deleted"
    print(f"  Status: {status}")
    if document is not None and document.error_message:
        print(f"  Error:  {document.error_message}")
        return 1
    if wait_error is not None:
        print(f"  Error:  {wait_error}")
        return 1
    return 0


async def _handle_check_index(args: argparse.Namespace, kb: KnowledgeBase) -> int:
    report = await kb.check_index()
    print(f"Chunk rows:    {report.row_count}")
    print(f"Index entries: {report.index_count}")
    if report.consistent:
        print("Index is consistent.")
        return 0
    print("Index has drifted; run `rebuild-index` to repair it.")
    return 1


async def _handle_rebuild_index(args: argparse.Namespace, kb: KnowledgeBase) -> int:
    written = await kb.rebuild_index()
    print(f"Rebuilt vector index with {written} vectors.")
    return 0


async def _wait_quietly(kb: KnowledgeBase, task_key: str) -> RagDeskError | None:
    """Wait for *task_key*; return its failure instead of raising it.

    A failed processing run also leaves its message on the document row.
    """
    try:
        await kb.wait_for(task_key)
    except RagDeskError as exc:
        return exc
    return None


_HANDLERS: dict[str, Handler] = {
    "upload": _handle_upload,
    "ask": _handle_ask,
    "list": _handle_list,
    "delete": _handle_delete,
    "reprocess": _handle_reprocess,
    "check-index": _handle_check_index,
    "rebuild-index": _handle_rebuild_index,
}


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _parse_since(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an ISO date/time: {value}") from exc


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ragdesk CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m ragdesk.cli",
        description="Ask cited questions about your own documents.",
    )
    parser.add_argument(
        "--config", default="config/config.yaml", help="Path to the YAML config file"
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- upload --
    upload_parser = subparsers.add_parser("upload", help="Upload a document and process it")
    upload_parser.add_argument("file", help="Path to a PDF, DOCX, Markdown or text file")
    upload_parser.add_argument("--title", help="Display title (default: filename)")
    upload_parser.add_argument(
        "--content-type",
        dest="content_type",
        help="MIME type (default: inferred from the file suffix)",
    )

    # -- ask --
    ask_parser = subparsers.add_parser("ask", help="Ask a question")
    ask_parser.add_argument("question", help="The question")
    ask_parser.add_argument("--chat", help="Chat id to append to (default: a new chat)")
    ask_parser.add_argument(
        "--document-id",
        dest="document_ids",
        action="append",
        help="Restrict to this document (repeatable)",
    )
    ask_parser.add_argument(
        "--since",
        type=_parse_since,
        help="Only use documents uploaded at or after this ISO date/time",
    )

    # -- list / delete / reprocess --
    subparsers.add_parser("list", help="List documents")
    delete_parser = subparsers.add_parser("delete", help="Delete a document")
    delete_parser.add_argument("document_id")
    reprocess_parser = subparsers.add_parser("reprocess", help="Reprocess a failed document")
    reprocess_parser.add_argument("document_id")

    # -- index maintenance --
    subparsers.add_parser("check-index", help="Compare chunk rows with the vector index")
    subparsers.add_parser("rebuild-index", help="Rebuild the vector index from chunk rows")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    kb = build_application(settings)
    await kb.start()
    try:
        return await _HANDLERS[args.command](args, kb)
    finally:
        await kb.close()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        settings = load_settings(args.config)
        configure_logging(
            log_level=settings.log_level,
            json_output=(settings.app_env == "production"),
        )
        exit_code = asyncio.run(_run(args, settings))
    except RagDeskError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
