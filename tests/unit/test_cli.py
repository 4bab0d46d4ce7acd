"""Unit tests for the command-line interface in mindlens.cli.ingest."""

from __future__ import annotations

from argparse import Namespace
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from mindlens.cli.ingest import (
    _build_parser,
    _handle_ask,
    _handle_books,
    _handle_ingest,
    _run,
    main,
)
from mindlens.models.library import AttachmentStatus
from tests.conftest import html_page

_PAGE_URL = "https://example.com/q3"


def _ingest_args(**overrides) -> Namespace:
    values = {
        "command": "ingest",
        "owner": "owner-a",
        "book": "Research",
        "url": None,
        "file": None,
        "name": None,
        "type": None,
    }
    values.update(overrides)
    return Namespace(**values)


def _ask_args(question: str, **overrides) -> Namespace:
    values = {
        "command": "ask",
        "owner": "owner-a",
        "book": None,
        "all": False,
        "question": question,
        "limit": None,
        "show_sources": False,
    }
    values.update(overrides)
    return Namespace(**values)


# ======================================================================
# Argument parsing
# ======================================================================


class TestParser:
    def test_ingest_url(self) -> None:
        args = _build_parser().parse_args(
            ["--owner", "owner-a", "ingest", "--book", "Research", "--url", _PAGE_URL]
        )
        assert args.command == "ingest"
        assert args.owner == "owner-a"
        assert args.url == _PAGE_URL
        assert args.file is None

    def test_ingest_requires_one_source(self) -> None:
        parser = _build_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(["ingest", "--book", "Research"])
        with pytest.raises(SystemExit):
            parser.parse_args(
                ["ingest", "--book", "Research", "--url", _PAGE_URL, "--file", "a.pdf"]
            )

    def test_ingest_type_choices(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(
                ["ingest", "--book", "R", "--url", _PAGE_URL, "--type", "file"]
            )

    def test_ask(self) -> None:
        args = _build_parser().parse_args(
            ["ask", "--all", "what happened?", "--limit", "3", "--show-sources"]
        )
        assert args.all is True
        assert args.book is None
        assert args.question == "what happened?"
        assert args.limit == 3
        assert args.show_sources is True

    def test_ask_requires_scope(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["ask", "what happened?"])

    def test_default_owner_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MINDLENS_OWNER", "env-owner")
        assert _build_parser().parse_args(["books"]).owner == "env-owner"
        monkeypatch.delenv("MINDLENS_OWNER")
        assert _build_parser().parse_args(["books"]).owner == "local"


# ======================================================================
# Handlers
# ======================================================================


class TestHandlers:
    @pytest.mark.asyncio
    async def test_ingest_url_creates_book_once(
        self,
        components: dict[str, Any],
        web_routes: dict[str, Any],
        sample_report_text: str,
        capsys: pytest.CaptureFixture,
    ) -> None:
        web_routes[_PAGE_URL] = html_page("Q3 results", sample_report_text)

        assert await _handle_ingest(_ingest_args(url=_PAGE_URL), components) == 0
        assert await _handle_ingest(_ingest_args(url=_PAGE_URL, name="Again"), components) == 0

        books = await components["library_service"].list_collections("owner-a")
        assert [(c.title, n) for c, n in books] == [("Research", 2)]
        out = capsys.readouterr().out
        assert out.count("Creating book: Research") == 1
        assert "Ingestion complete" in out

    @pytest.mark.asyncio
    async def test_ingest_local_file(
        self, components: dict[str, Any], tmp_path: Path, capsys: pytest.CaptureFixture
    ) -> None:
        source = tmp_path / "notes.txt"
        source.write_text("Revenue rose twelve percent.")

        assert await _handle_ingest(_ingest_args(file=str(source)), components) == 0

        library = components["library_service"]
        [(book, _count)] = await library.list_collections("owner-a")
        [attachment] = await library.list_attachments("owner-a", book.collection_id)
        assert attachment.name == "notes.txt"
        assert attachment.original_file_name == "notes.txt"
        assert attachment.status is AttachmentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_ingest_missing_file(
        self, components: dict[str, Any], tmp_path: Path, capsys: pytest.CaptureFixture
    ) -> None:
        args = _ingest_args(file=str(tmp_path / "missing.pdf"))
        assert await _handle_ingest(args, components) == 1
        assert "file not found" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_ask_streams_answer_with_sources(
        self,
        components: dict[str, Any],
        web_routes: dict[str, Any],
        sample_report_text: str,
        capsys: pytest.CaptureFixture,
    ) -> None:
        web_routes[_PAGE_URL] = html_page("Q3 results", sample_report_text)
        await _handle_ingest(_ingest_args(url=_PAGE_URL, name="Q3 report"), components)
        capsys.readouterr()

        args = _ask_args("How did revenue change?", book="Research", show_sources=True)
        assert await _handle_ask(args, components) == 0

        out = capsys.readouterr().out
        assert "According to Q3 report in the book Research" in out
        assert "Sources:" in out
        assert "Research / Q3 report" in out

    @pytest.mark.asyncio
    async def test_ask_unknown_book(
        self, components: dict[str, Any], capsys: pytest.CaptureFixture
    ) -> None:
        assert await _handle_ask(_ask_args("q", book="Nope"), components) == 1
        assert "no book titled 'Nope'" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_ask_all_with_no_results(
        self, components: dict[str, Any], capsys: pytest.CaptureFixture
    ) -> None:
        assert await _handle_ask(_ask_args("anything?", all=True), components) == 0
        assert "couldn't find any relevant information in your books" in capsys.readouterr().out
        assert components["llm"].calls == []

    @pytest.mark.asyncio
    async def test_books_listing(
        self, components: dict[str, Any], capsys: pytest.CaptureFixture
    ) -> None:
        assert await _handle_books(Namespace(owner="owner-a"), components) == 0
        assert "No books yet." in capsys.readouterr().out

        library = components["library_service"]
        book = await library.create_collection("owner-a", "Research")
        await library.add_attachment("owner-a", book.collection_id, "web_page", "Q3", _PAGE_URL)

        assert await _handle_books(Namespace(owner="owner-a"), components) == 0
        out = capsys.readouterr().out
        assert "Research  (1 attachments)" in out
        assert "[processing]" in out


# ======================================================================
# Runner and entry point
# ======================================================================


class TestRun:
    @pytest.mark.asyncio
    async def test_pipeline_errors_become_exit_code(
        self, components: dict[str, Any], capsys: pytest.CaptureFixture
    ) -> None:
        # The page is not routed, so loading fails with HTTP 404.
        with patch("mindlens.cli.ingest._build_components", return_value=components):
            exit_code = await _run(_ingest_args(url=_PAGE_URL), components["settings"])
        assert exit_code == 1
        assert "HTTP 404" in capsys.readouterr().err

    def test_main_without_command_exits(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1

    def test_main_dispatches(self) -> None:
        with patch("mindlens.cli.ingest._run", new=AsyncMock(return_value=0)) as run:
            with pytest.raises(SystemExit) as exc_info:
                main(["--owner", "owner-a", "books"])
        assert exc_info.value.code == 0
        args = run.call_args.args[0]
        assert args.command == "books"
        assert args.owner == "owner-a"
