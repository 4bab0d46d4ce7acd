"""Unit tests for FileLoader: format detection and per-format parsing."""

from __future__ import annotations

import asyncio
import io
from pathlib import Path
from unittest.mock import patch

import fitz
import pytest
from docx import Document
from ebooklib import epub

from mindlens.models.library import SourceKind
from mindlens.models.rag import SourcePage
from mindlens.providers.blob.local_blob_store import LocalBlobStore
from mindlens.providers.loaders.file_loader import FileLoader
from mindlens.utils.errors import LoadError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _load(loader: FileLoader, locator: str) -> list[SourcePage]:
    return [page async for page in loader.load(locator)]


def _pdf_bytes(pages: list[str], title: str | None = None) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    if title:
        doc.set_metadata({"title": title})
    data = doc.tobytes()
    doc.close()
    return data


def _docx_bytes(paragraphs: list[str], title: str | None = None) -> bytes:
    document = Document()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    if title:
        document.core_properties.title = title
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _epub_bytes(tmp_path: Path) -> bytes:
    book = epub.EpubBook()
    book.set_identifier("mindlens-test-book")
    book.set_title("Annual Review")
    book.set_language("en")
    chapter = epub.EpubHtml(title="Growth", file_name="chap_01.xhtml", lang="en")
    chapter.content = (
        "<html><body><h1>Growth</h1><p>Subscription growth drove revenue.</p></body></html>"
    )
    book.add_item(chapter)
    book.toc = (chapter,)
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.spine = ["nav", chapter]
    path = tmp_path / "review.epub"
    epub.write_epub(str(path), book)
    return path.read_bytes()


@pytest.fixture
def loader(blob_store: LocalBlobStore) -> FileLoader:
    return FileLoader(blob_store=blob_store)


# ---------------------------------------------------------------------------
# Plain text formats
# ---------------------------------------------------------------------------


class TestPlainText:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("suffix", [".txt", ".md", ".csv", ".json"])
    async def test_text_formats_yield_one_page(
        self, loader: FileLoader, blob_store: LocalBlobStore, suffix: str
    ) -> None:
        locator = await blob_store.save(f"1700000000000_notes{suffix}", b"Revenue rose 12%.\n")
        pages = await _load(loader, locator)
        assert len(pages) == 1
        assert pages[0].text == "Revenue rose 12%."
        assert pages[0].metadata["source"] == f"notes{suffix}"

    @pytest.mark.asyncio
    async def test_whitespace_is_collapsed(
        self, loader: FileLoader, blob_store: LocalBlobStore
    ) -> None:
        locator = await blob_store.save("notes.txt", b"a    b\n\n\n\n\nc")
        pages = await _load(loader, locator)
        assert pages[0].text == "a b\n\nc"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [b"", b"   \n\t  "])
    async def test_empty_file_yields_nothing(
        self, loader: FileLoader, blob_store: LocalBlobStore, content: bytes
    ) -> None:
        locator = await blob_store.save("empty.txt", content)
        assert await _load(loader, locator) == []

    @pytest.mark.asyncio
    async def test_rtf(self, loader: FileLoader, blob_store: LocalBlobStore) -> None:
        locator = await blob_store.save("memo.rtf", b"{\\rtf1\\ansi Revenue rose sharply.}")
        pages = await _load(loader, locator)
        assert "Revenue rose sharply." in pages[0].text

    @pytest.mark.asyncio
    async def test_rtf_parsed_off_the_event_loop(
        self, loader: FileLoader, blob_store: LocalBlobStore
    ) -> None:
        locator = await blob_store.save("memo.rtf", b"{\\rtf1\\ansi Margins widened.}")
        with patch.object(asyncio, "to_thread", wraps=asyncio.to_thread) as to_thread:
            pages = await _load(loader, locator)

        assert "Margins widened." in pages[0].text
        assert to_thread.call_args.args[0] is FileLoader._parse_rtf


# ---------------------------------------------------------------------------
# Binary document formats
# ---------------------------------------------------------------------------


class TestDocuments:
    @pytest.mark.asyncio
    async def test_pdf_one_page_per_pdf_page(
        self, loader: FileLoader, blob_store: LocalBlobStore
    ) -> None:
        data = _pdf_bytes(["Quarterly revenue rose", "Buyback approved"], title="Q3 Report")
        locator = await blob_store.save("1700000000000_q3.pdf", data)
        pages = await _load(loader, locator)

        assert [p.metadata["page_number"] for p in pages] == [1, 2]
        assert "Quarterly revenue rose" in pages[0].text
        assert "Buyback approved" in pages[1].text
        assert pages[0].metadata["title"] == "Q3 Report"
        assert pages[0].metadata["total_pages"] == 2
        assert pages[0].metadata["source"] == "q3.pdf"

    @pytest.mark.asyncio
    async def test_pdf_detected_without_extension(
        self, loader: FileLoader, blob_store: LocalBlobStore
    ) -> None:
        locator = await blob_store.save("scan", _pdf_bytes(["Detected by magic bytes"]))
        pages = await _load(loader, locator)
        assert "Detected by magic bytes" in pages[0].text

    @pytest.mark.asyncio
    async def test_corrupt_pdf_raises_load_error(
        self, loader: FileLoader, blob_store: LocalBlobStore
    ) -> None:
        locator = await blob_store.save("broken.pdf", b"this is not really a pdf")
        with pytest.raises(LoadError, match="broken.pdf"):
            await _load(loader, locator)

    @pytest.mark.asyncio
    async def test_docx(self, loader: FileLoader, blob_store: LocalBlobStore) -> None:
        data = _docx_bytes(["Board minutes", "", "Revenue rose."], title="Minutes")
        locator = await blob_store.save("minutes.docx", data)
        pages = await _load(loader, locator)
        assert len(pages) == 1
        assert pages[0].text == "Board minutes\n\nRevenue rose."
        assert pages[0].metadata["title"] == "Minutes"

    @pytest.mark.asyncio
    async def test_epub(
        self, loader: FileLoader, blob_store: LocalBlobStore, tmp_path: Path
    ) -> None:
        locator = await blob_store.save("review.epub", _epub_bytes(tmp_path))
        pages = await _load(loader, locator)
        chapter = next(p for p in pages if "Subscription growth" in p.text)
        assert chapter.metadata["title"] == "Annual Review"
        assert chapter.metadata["chapter"] == "Growth"


# ---------------------------------------------------------------------------
# Unsupported input
# ---------------------------------------------------------------------------


class TestUnsupported:
    @pytest.mark.asyncio
    async def test_legacy_doc_rejected(
        self, loader: FileLoader, blob_store: LocalBlobStore
    ) -> None:
        locator = await blob_store.save("old.doc", b"\xd0\xcf\x11\xe0 legacy word")
        with pytest.raises(LoadError, match=".docx"):
            await _load(loader, locator)

    @pytest.mark.asyncio
    async def test_unknown_extension_rejected(
        self, loader: FileLoader, blob_store: LocalBlobStore
    ) -> None:
        locator = await blob_store.save("tool.exe", b"MZ binary")
        with pytest.raises(LoadError, match="Unsupported file type"):
            await _load(loader, locator)

    @pytest.mark.asyncio
    async def test_missing_blob(self, loader: FileLoader) -> None:
        with pytest.raises(LoadError):
            await _load(loader, "upload/gone.txt")


def test_loader_identity(loader: FileLoader) -> None:
    assert loader.get_source_kind() is SourceKind.FILE
    assert loader.get_provider_name() == "file_loader"
    assert loader.cleanup_after_load() is True
