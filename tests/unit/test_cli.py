"""Unit tests for the ragdesk.cli command-line front end."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from ragdesk.cli.commands import (
    _handle_ask,
    _handle_check_index,
    _handle_delete,
    _handle_list,
    _handle_upload,
    build_parser,
    main,
)
from ragdesk.services.knowledge_base import KnowledgeBase


# ======================================================================
# Parser
# ======================================================================


class TestBuildParser:
    def test_upload_arguments(self) -> None:
        args = build_parser().parse_args(
            ["upload", "handbook.pdf", "--title", "Handbook", "--content-type", "application/pdf"]
        )
        assert args.command == "upload"
        assert args.file == "handbook.pdf"
        assert args.title == "Handbook"
        assert args.content_type == "application/pdf"

    def test_ask_filters(self) -> None:
        args = build_parser().parse_args(
            [
                "ask",
                "What changed?",
                "--document-id",
                "a",
                "--document-id",
                "b",
                "--since",
                "2026-01-01",
            ]
        )
        assert args.question == "What changed?"
        assert args.document_ids == ["a", "b"]
        assert args.since == datetime(2026, 1, 1)
        assert args.chat is None

    def test_bad_since_rejected(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["ask", "q", "--since", "last tuesday"])

    def test_default_config_path(self) -> None:
        args = build_parser().parse_args(["list"])
        assert args.config == "config/config.yaml"

    def test_no_command_exits(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1


# ======================================================================
# Handlers
# ======================================================================


class TestHandlers:
    @pytest.mark.asyncio()
    async def test_upload_then_list(
        self, knowledge_base: KnowledgeBase, tmp_path: Path, capsys
    ) -> None:
        source = tmp_path / "handbook.txt"
        source.write_text("Vacation days accrue monthly.", encoding="utf-8")
        parser = build_parser()

        code = await _handle_upload(parser.parse_args(["upload", str(source)]), knowledge_base)
        assert code == 0
        assert "Status: completed" in capsys.readouterr().out

        code = await _handle_list(parser.parse_args(["list"]), knowledge_base)
        assert code == 0
        assert "handbook" in capsys.readouterr().out

    @pytest.mark.asyncio()
    async def test_upload_missing_file(
        self, knowledge_base: KnowledgeBase, tmp_path: Path, capsys
    ) -> None:
        args = build_parser().parse_args(["upload", str(tmp_path / "missing.txt")])
        assert await _handle_upload(args, knowledge_base) == 1
        assert "file not found" in capsys.readouterr().err

    @pytest.mark.asyncio()
    async def test_upload_failure_reported(
        self, knowledge_base: KnowledgeBase, tmp_path: Path, capsys
    ) -> None:
        source = tmp_path / "blank.txt"
        source.write_text("   \n", encoding="utf-8")

        args = build_parser().parse_args(["upload", str(source)])
        assert await _handle_upload(args, knowledge_base) == 1
        out = capsys.readouterr().out
        assert "Status: failed" in out
        assert "No text could be extracted from document" in out

    @pytest.mark.asyncio()
    async def test_ask_prints_sources(
        self, knowledge_base: KnowledgeBase, tmp_path: Path, capsys
    ) -> None:
        source = tmp_path / "handbook.txt"
        source.write_text("Vacation days accrue monthly.", encoding="utf-8")
        parser = build_parser()
        await _handle_upload(
            parser.parse_args(["upload", str(source), "--title", "Handbook"]), knowledge_base
        )
        capsys.readouterr()

        code = await _handle_ask(
            parser.parse_args(["ask", "How do vacation days accrue?", "--chat", "c1"]),
            knowledge_base,
        )
        assert code == 0
        out = capsys.readouterr().out
        assert "The answer is in the documents [1]." in out
        assert "Sources:" in out
        assert "[1] Handbook" in out
        assert "Chat: c1" in out

    @pytest.mark.asyncio()
    async def test_delete_unknown(self, knowledge_base: KnowledgeBase, capsys) -> None:
        args = build_parser().parse_args(["delete", "nope"])
        assert await _handle_delete(args, knowledge_base) == 1
        assert "no document nope" in capsys.readouterr().err

    @pytest.mark.asyncio()
    async def test_check_index_consistent(self, knowledge_base: KnowledgeBase, capsys) -> None:
        args = build_parser().parse_args(["check-index"])
        assert await _handle_check_index(args, knowledge_base) == 0
        assert "Index is consistent." in capsys.readouterr().out
